"""
Transport wrapper for errors raised inside worker processes.

The envelope is built in the child, pickled onto the response pipe, and
unwrapped by the supervising thread in the parent. Only errors that survive
a pickle round trip travel as themselves; anything else is replaced by an
UndumpableException describing the original.
"""

import logging
import pickle
import traceback
from dataclasses import dataclass
from typing import Optional

from parallel.errors import Break, Kill, RemoteTraceback, UndumpableException
from parallel.state import Outcome

logger = logging.getLogger(__name__)

KIND_ERROR = 'error'
KIND_BREAK = 'break'
KIND_KILL = 'kill'


def _is_dumpable(error: BaseException) -> bool:
    """Check that the error pickles and, since custom __init__ signatures often break it, unpickles too."""
    try:
        pickle.loads(pickle.dumps(error))
        return True
    except Exception:
        return False


def _qualified_name(error: BaseException) -> str:
    cls = type(error)
    return f"{cls.__module__}.{cls.__qualname__}"


@dataclass
class ExceptionEnvelope:
    """An error from a worker process, plus enough text to rebuild it when it cannot be pickled."""

    kind: str
    type_name: str
    message: str
    description: str
    exception: Optional[BaseException] = None
    traceback: Optional[str] = None

    @classmethod
    def wrap(cls, error: BaseException) -> 'ExceptionEnvelope':
        """
        Wrap an error raised by a work function.

        Args:
            error: The raised error.

        Returns:
            An envelope that always pickles; the original error is dropped if it does not.
        """
        if isinstance(error, Kill):
            kind = KIND_KILL
        elif isinstance(error, Break):
            kind = KIND_BREAK
        else:
            kind = KIND_ERROR

        tb_text = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        payload = error if _is_dumpable(error) else None
        if payload is None:
            logger.debug(f"Error {type(error).__name__} cannot be pickled; sending a substitute")

        return cls(
            kind=kind,
            type_name=_qualified_name(error),
            message=str(error),
            description=repr(error),
            exception=payload,
            traceback=tb_text,
        )

    @property
    def dumpable(self) -> bool:
        return self.exception is not None

    def unwrap(self) -> BaseException:
        """
        Rebuild a raisable error in the parent.

        The child's traceback is attached as __cause__, the way
        concurrent.futures reports errors from its process pool.
        """
        if self.kind == KIND_KILL:
            error = self.exception if isinstance(self.exception, Kill) else Kill(self.message)
        elif self.kind == KIND_BREAK:
            error = self.exception if isinstance(self.exception, Break) else Break(self.message)
        elif self.exception is not None:
            error = self.exception
        else:
            error = UndumpableException(f"Undumpable Exception -- {self.description}")

        if self.traceback and error.__cause__ is None:
            error.__cause__ = RemoteTraceback(self.traceback)
        return error

    def outcome(self) -> Outcome:
        return Outcome.from_exception(self.unwrap())
