"""
Public entry points: map, each and their variants.

The dispatcher picks thread or process execution and the pool size, wires
up progress reporting, and hands the items to the matching executor.
"""

import dataclasses
import logging
import threading
from typing import Any, Callable, Iterable, List, Optional, Tuple

from parallel.cancellation import CancellationScope, current_scope, entered
from parallel.config import Options, check_count
from parallel.instrumentation import Job, with_instrumentation
from parallel.process_pool import can_fork, work_in_processes
from parallel.processor_count import processor_count
from parallel.progress import ProgressBar, chain_finish
from parallel.state import Outcome, PoolState
from parallel.thread_pool import in_threads as _in_threads
from parallel.thread_pool import work_in_threads

logger = logging.getLogger(__name__)

THREADS = 'threads'
PROCESSES = 'processes'


def select_strategy(options: Options, item_count: int) -> Tuple[str, int]:
    """
    Decide between threads and processes and how many of them to use.

    Returns:
        (method, size); a size of 0 means the items run directly in the caller.
    """
    if not can_fork():
        method = THREADS
        size = options.in_threads or 0
        if options.in_threads is None:
            logger.warning("Process forking is not supported on this platform; running sequentially")
    elif options.in_threads is not None:
        method = THREADS
        size = options.in_threads
    else:
        method = PROCESSES
        if options.in_processes is not None:
            size = options.in_processes
        elif options.count is not None:
            size = options.count
        else:
            size = processor_count()

    return method, min(size, item_count)


def work_direct(job: Job, options: Options) -> Optional[List[Any]]:
    """Process every item in order in the calling thread, with the same hooks as the pools."""
    state = PoolState(len(job))
    while True:
        index = state.claim()
        if index is None:
            break
        try:
            result = with_instrumentation(
                job.items[index], index, options, lambda: job.call(index)
            )
        except Exception as e:
            state.record(Outcome.from_exception(e))
            break
        state.store(index, result)
    return state.finalize()


def _add_progress_bar(options: Options, total: int) -> Tuple[Options, Optional[ProgressBar]]:
    if options.progress is None:
        return options, None
    if isinstance(options.progress, str):
        bar = ProgressBar(options.progress, total).started()
        return dataclasses.replace(options, finish=chain_finish(bar, options.finish)), bar
    return dataclasses.replace(options, finish=chain_finish(options.progress, options.finish)), None


def map(items: Iterable[Any], func: Callable, options: Optional[Options] = None, **overrides) -> Optional[List[Any]]:
    """
    Apply func to every item in parallel.

    Args:
        items: Items to process; any iterable, materialized into a list.
        func: Work function called as func(item) or func(item, index).
        options: Base Options; keyword overrides are applied on top.

    Returns:
        Results in input order, or None if a work function raised Break or Kill.

    Raises:
        ConfigurationError: If the options are invalid.
        Exception: The first error raised by any work function.
    """
    options = Options.build(options, **overrides)
    items = list(items)

    if options.mutex is None:
        options = dataclasses.replace(options, mutex=threading.Lock())
    scope = options.scope
    if scope is None:
        scope = current_scope() or CancellationScope()

    method, size = select_strategy(options, len(items))
    # decided before the progress hook is chained onto finish
    job = Job(items, func, with_index=options.with_index, return_results=options.return_results)
    options, bar = _add_progress_bar(options, len(items))

    try:
        with entered(scope):
            if size == 0:
                logger.debug(f"Working on {len(items)} items directly")
                return work_direct(job, options)
            if method == THREADS:
                return work_in_threads(job, options, size, scope)
            return work_in_processes(job, options, size, scope)
    finally:
        if bar is not None:
            bar.close()


def map_with_index(items: Iterable[Any], func: Callable, options: Optional[Options] = None, **overrides) -> Optional[List[Any]]:
    """map() with the item index passed as second argument."""
    return map(items, func, options, **{**overrides, 'with_index': True})


def each(items: Iterable[Any], func: Callable, options: Optional[Options] = None, **overrides) -> Iterable[Any]:
    """Call func for every item in parallel, discarding results; returns `items` itself."""
    map(items, func, options, **{**overrides, 'preserve_results': False})
    return items


def each_with_index(items: Iterable[Any], func: Callable, options: Optional[Options] = None, **overrides) -> Iterable[Any]:
    return each(items, func, options, **{**overrides, 'with_index': True})


def in_threads(func: Callable[[int], Any], count: int = 2) -> List[Any]:
    """Run func(slot) for each slot in [0, count) concurrently in threads."""
    check_count("count", count)
    return _in_threads(func, count)


def in_processes(func: Callable[[int], Any], count: Optional[int] = None,
                 options: Optional[Options] = None, **overrides) -> Optional[List[Any]]:
    """Run func(slot) for each slot in [0, count) in forked processes; count defaults to the CPU count."""
    if count is None:
        count = processor_count()
    return map(range(count), func, options, **{**overrides, 'in_processes': count})
