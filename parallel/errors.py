"""
Error types raised by the worker pools.

Break and Kill are control-flow sentinels: raising one from a work function
stops the pool without reporting a failure to the caller.
"""

from typing import Optional


class DeadWorker(RuntimeError):
    """A worker process closed its pipes before answering a request."""

    def __init__(self, pid: Optional[int] = None, message: Optional[str] = None):
        self.pid = pid
        if message is None:
            message = f"Worker process {pid} died unexpectedly" if pid else "Worker process died unexpectedly"
        super().__init__(message)

    def __reduce__(self):
        return (self.__class__, (self.pid, str(self)))


class Break(Exception):
    """Stop claiming new items; in-flight items finish and no result is returned."""
    pass


class Kill(Break):
    """Like Break, but sibling workers are terminated without waiting for them."""
    pass


class UndumpableException(RuntimeError):
    """Stands in for an error that could not be serialized across a process boundary."""
    pass


class RemoteTraceback(Exception):
    """Carries the formatted traceback of an error raised in a worker process."""

    def __init__(self, tb: str):
        self.tb = tb
        super().__init__(tb)

    def __str__(self):
        return self.tb
