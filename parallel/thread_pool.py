"""
Thread pool executor.

Provides the raw fixed fan-out (in_threads) and the claim loop that map
runs on top of it when items are processed in threads.
"""

import logging
import threading
from typing import Any, Callable, List, Optional

from parallel.cancellation import CancellationScope, current_scope, entered
from parallel.instrumentation import Job, with_instrumentation
from parallel.state import Outcome, OutcomeKind, PoolState

# Use the logger for this specific module
logger = logging.getLogger(__name__)

JOIN_INTERVAL = 0.1


def in_threads(func: Callable[[int], Any], count: int = 2,
               scope: Optional[CancellationScope] = None) -> List[Any]:
    """
    Run func(slot) for every slot in [0, count) in its own thread.

    Args:
        func: Function receiving the slot index.
        count: Number of threads.
        scope: Cancellation scope to register the threads with.

    Returns:
        Results of func ordered by slot.

    Raises:
        The error of the lowest failing slot, after every thread has finished.
    """
    if scope is None:
        scope = current_scope() or CancellationScope()

    outcomes: List[Optional[Outcome]] = [None] * count

    def run(slot: int) -> None:
        try:
            with entered(scope):
                outcomes[slot] = Outcome.completed(func(slot))
        except BaseException as e:
            outcomes[slot] = Outcome.failed(e)

    threads = [
        threading.Thread(target=run, args=(slot,), name=f"parallel-{slot}", daemon=True)
        for slot in range(count)
    ]
    for thread in threads:
        thread.start()

    with scope.registered(threads):
        wait_for_threads(threads)

    failures = [outcome.error for outcome in outcomes if outcome is not None and outcome.kind is OutcomeKind.FAILED]
    if failures:
        if len(failures) > 1:
            logger.debug(f"{len(failures)} threads failed; raising the first")
        raise failures[0]
    return [outcome.value for outcome in outcomes]


def wait_for_threads(threads: List[threading.Thread]) -> None:
    """Join every thread so that each one's outcome is collected before anything is raised."""
    for thread in threads:
        # short joins keep the main thread responsive to SIGINT
        while thread.is_alive():
            thread.join(JOIN_INTERVAL)


def work_in_threads(job: Job, options, count: int, scope: CancellationScope) -> Optional[List[Any]]:
    """
    Process job items in `count` threads claiming indices from a shared cursor.

    The first error stops further claiming; items already running finish.

    Returns:
        Results in item order, or None when stopped by Break/Kill.
    """
    state = PoolState(len(job))

    def process_items(slot: int) -> None:
        while True:
            index = state.claim()
            if index is None:
                break
            try:
                result = with_instrumentation(
                    job.items[index], index, options, lambda: job.call(index)
                )
            except Exception as e:
                if state.record(Outcome.from_exception(e)):
                    logger.debug(f"Thread {slot} stopped the pool at item {index}: {type(e).__name__}")
                break
            state.store(index, result)

    logger.debug(f"Working on {len(job)} items in {count} threads")
    with scope.registered([state]):
        in_threads(process_items, count, scope=scope)
    return state.finalize()

