"""
Progress reporting driven by the finish hook.
"""

from typing import Callable, Optional

from tqdm import tqdm

BAR_FORMAT = "{desc} |{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]"


class _Bar(tqdm):
    # no monitor thread: worker processes are forked while the bar is open
    monitor_interval = 0


class ProgressBar:
    """A tqdm bar with the started/incremented interface the dispatcher needs."""

    def __init__(self, title: str, total: int, disable: Optional[bool] = None):
        self.title = title
        self.total = total
        self._disable = disable
        self.count = 0
        self._bar: Optional[_Bar] = None

    def started(self) -> 'ProgressBar':
        if self._bar is None:
            self._bar = _Bar(
                total=self.total,
                desc=self.title,
                bar_format=BAR_FORMAT,
                disable=self._disable,
            )
        return self

    def increment(self, count: int = 1) -> None:
        if self._bar is None:
            self.started()
        self.count += count
        self._bar.update(count)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()


def chain_finish(progress, finish: Optional[Callable]) -> Callable:
    """Build a finish hook that calls `finish` first and then advances `progress` once."""
    if isinstance(progress, ProgressBar):
        advance = progress.increment
    else:
        advance = progress

    def on_finish(item, index, result):
        if finish is not None:
            finish(item, index, result)
        advance()

    return on_finish
