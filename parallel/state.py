"""
Shared state of one pool invocation.

Holds the work cursor that executors claim indices from, the pre-sized
result container, and the first non-successful outcome seen by any executor.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from parallel.errors import Break, Kill

logger = logging.getLogger(__name__)


class OutcomeKind(Enum):
    COMPLETED = 'completed'
    BROKEN = 'broken'
    KILLED = 'killed'
    FAILED = 'failed'


@dataclass(frozen=True)
class Outcome:
    """Result of running one work item, switched on by the coordinating executor."""

    kind: OutcomeKind
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def completed(cls, value: Any = None) -> 'Outcome':
        return cls(OutcomeKind.COMPLETED, value=value)

    @classmethod
    def broken(cls) -> 'Outcome':
        return cls(OutcomeKind.BROKEN)

    @classmethod
    def killed(cls) -> 'Outcome':
        return cls(OutcomeKind.KILLED)

    @classmethod
    def failed(cls, error: BaseException) -> 'Outcome':
        return cls(OutcomeKind.FAILED, error=error)

    @classmethod
    def from_exception(cls, error: BaseException) -> 'Outcome':
        """Map a raised error onto an outcome; Kill is checked first since it subclasses Break."""
        if isinstance(error, Kill):
            return cls.killed()
        if isinstance(error, Break):
            return cls.broken()
        return cls.failed(error)

    @property
    def stops_quietly(self) -> bool:
        return self.kind in (OutcomeKind.BROKEN, OutcomeKind.KILLED)


class PoolState:
    """
    Cursor, results and first outcome shared by every executor of one invocation.

    Each index in [0, item_count) is handed out by claim() exactly once.
    Once an outcome other than COMPLETED is recorded, claim() returns None
    so siblings stop picking up new work.
    """

    def __init__(self, item_count: int):
        self.item_count = item_count
        self.results: List[Any] = [None] * item_count
        self.outcome: Optional[Outcome] = None
        self._next_index = 0
        self._lock = threading.RLock()

    def claim(self) -> Optional[int]:
        """
        Atomically take the next unclaimed index.

        Returns:
            The claimed index, or None if the cursor is exhausted or the
            invocation has already been stopped.
        """
        with self._lock:
            if self.outcome is not None or self._next_index >= self.item_count:
                return None
            index = self._next_index
            self._next_index += 1
            return index

    def record(self, outcome: Outcome) -> bool:
        """
        Record a stopping outcome; only the first one wins.

        Returns:
            True if this outcome was recorded, False if another was already set.
        """
        if outcome.kind is OutcomeKind.COMPLETED:
            raise ValueError("Completed outcomes are stored with store(), not record()")
        with self._lock:
            if self.outcome is not None:
                logger.debug(f"Discarding {outcome.kind.value} outcome; pool already {self.outcome.kind.value}")
                return False
            self.outcome = outcome
            return True

    def store(self, index: int, value: Any) -> None:
        self.results[index] = value

    @property
    def stopped(self) -> bool:
        return self.outcome is not None

    @property
    def killed(self) -> bool:
        return self.outcome is not None and self.outcome.kind is OutcomeKind.KILLED

    @property
    def claimed(self) -> int:
        return self._next_index

    def kill(self) -> None:
        """Stop the invocation as if a work function had raised Kill."""
        self.record(Outcome.killed())

    def finalize(self) -> Optional[List[Any]]:
        """
        Turn the final state into the caller-visible result.

        Returns:
            The ordered results, or None if the invocation was broken or killed.

        Raises:
            The first recorded error when the invocation failed.
        """
        if self.outcome is None:
            return self.results
        if self.outcome.stops_quietly:
            logger.debug(f"Pool {self.outcome.kind.value} after claiming {self.claimed}/{self.item_count} items")
            return None
        raise self.outcome.error
