"""
Per-item call wrappers shared by every execution strategy.
"""

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from parallel.envelope import ExceptionEnvelope


@dataclass
class Job:
    """The work function bound to the items of one invocation."""

    items: Sequence[Any]
    func: Callable
    with_index: bool = False
    return_results: bool = True

    def __len__(self) -> int:
        return len(self.items)

    def call(self, index: int) -> Any:
        """Call the work function for items[index], passing the index too when asked."""
        item = self.items[index]
        if self.with_index:
            result = self.func(item, index)
        else:
            result = self.func(item)
        if not self.return_results:
            # keep large results out of the pipes and the result list
            return None
        return result


def with_instrumentation(item: Any, index: int, options, compute: Callable[[], Any]) -> Any:
    """
    Run `compute` between the start and finish hooks of `options`.

    Both hooks run under options.mutex so they never interleave. The finish
    hook runs even when compute raises, receiving None in that case. An
    ExceptionEnvelope returned by a worker process is passed through
    untouched but reported to finish as None.
    """
    on_start = options.start
    on_finish = options.finish

    if on_start is not None:
        with options.mutex:
            on_start(item, index)

    result = None
    try:
        result = compute()
        if isinstance(result, ExceptionEnvelope):
            return result
        return result if options.preserve_results else None
    finally:
        if on_finish is not None:
            finished = None if isinstance(result, ExceptionEnvelope) else result
            with options.mutex:
                on_finish(item, index, finished)
