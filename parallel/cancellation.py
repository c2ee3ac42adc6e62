"""
Interrupt handling for active pool invocations.

A CancellationScope is created for each top-level call and handed down to
every executor it starts. Executor threads run with it as their current
scope, so a pool started from inside a work function joins it and is killed
by the same Ctrl+C. Executors register the things that must die on Ctrl+C
(worker processes, pool states, pids) for as long as they run. The first
registration from the main thread installs a SIGINT handler; when the last
main-thread registration leaves, the previous handler is put back. Separate
scopes chain because each handler defers to the one installed before it.

Forked workers drop the inherited scope: their SIGINT is ignored until a
pool nested inside them installs its own handler.
"""

import logging
import os
import signal
import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

INTERRUPT_SIGNAL = signal.SIGINT
KILL_SIGNAL = getattr(signal, 'SIGKILL', signal.SIGTERM)


def kill_that_thing(thing: Any) -> None:
    """
    Terminate one registered killable.

    Integers are treated as process ids and sent KILL_SIGNAL; a process that
    is already gone is ignored. Threads cannot be terminated from Python, so
    they are left to finish their current item. Anything else must provide
    a kill() method.
    """
    if thing is None:
        return
    if isinstance(thing, threading.Thread):
        logger.debug(f"Thread {thing.name} cannot be killed; it will stop after its current item")
        return
    if isinstance(thing, int):
        try:
            os.kill(thing, KILL_SIGNAL)
        except ProcessLookupError:
            # already exited and reaped
            pass
        return
    thing.kill()


class CancellationScope:
    """Stack of killable groups plus the SIGINT handler that kills them."""

    def __init__(self, signum: int = INTERRUPT_SIGNAL):
        self.signum = signum
        # (group, registered on the main thread)
        self._stack: List[Tuple[List[Any], bool]] = []
        self._lock = threading.RLock()
        self._previous_handler = None
        self._installed = False
        self.interrupted = False

    @property
    def active(self) -> bool:
        return bool(self._stack)

    @property
    def armed(self) -> bool:
        return self._installed

    @contextmanager
    def registered(self, things: Iterable[Any]) -> Iterator['CancellationScope']:
        """Keep `things` registered for the duration of the block."""
        group = list(things)
        try:
            self.push(group)
            yield self
        finally:
            self.pop(group)

    def push(self, group: List[Any]) -> None:
        """
        Register a group of killables.

        The handler is installed by the first group registered from the main
        thread, so pools nested in worker threads join an armed scope.
        """
        on_main = threading.current_thread() is threading.main_thread()
        with self._lock:
            self._stack.append((group, on_main))
            if on_main and not self._installed:
                self._arm()

    def pop(self, group: List[Any]) -> None:
        """Unregister `group`; groups may leave in any order and a missing one is ignored."""
        with self._lock:
            # drop references so finished pids are never signalled again
            for position, (registered, _) in enumerate(self._stack):
                if registered is group:
                    del self._stack[position]
                    break
            if self._installed and not any(on_main for _, on_main in self._stack):
                self._disarm()

    def killables(self) -> List[Any]:
        # read without the lock; the handler may interrupt a push/pop on the main thread
        return [thing for group, _ in list(self._stack) for thing in group]

    def kill_all(self) -> None:
        for thing in self.killables():
            try:
                kill_that_thing(thing)
            except OSError as e:
                logger.error(f"Failed to kill {thing!r}: {e}")

    def _arm(self) -> None:
        self._previous_handler = signal.getsignal(self.signum)
        signal.signal(self.signum, self._handle_interrupt)
        self._installed = True
        logger.debug(f"Installed interrupt handler for signal {self.signum}")

    def _disarm(self) -> None:
        if not self._installed:
            return
        previous = self._previous_handler
        # handlers installed outside Python cannot be restored; fall back to the default
        signal.signal(self.signum, previous if previous is not None else signal.SIG_DFL)
        self._previous_handler = None
        self._installed = False
        logger.debug(f"Restored previous handler for signal {self.signum}")

    def _handle_interrupt(self, signum, frame) -> None:
        self.interrupted = True
        logger.warning("Parallel execution interrupted, exiting ...")
        self.kill_all()

        previous = self._previous_handler
        if previous is None or previous in (signal.SIG_DFL, signal.default_int_handler):
            raise KeyboardInterrupt
        if previous is signal.SIG_IGN:
            return
        previous(signum, frame)


_inherited = threading.local()


def current_scope() -> Optional[CancellationScope]:
    """The scope of the invocation whose work is running on this thread, if any."""
    return getattr(_inherited, 'scope', None)


@contextmanager
def entered(scope: CancellationScope) -> Iterator[CancellationScope]:
    """Make `scope` the current scope of this thread, so nested invocations join it."""
    previous = current_scope()
    _inherited.scope = scope
    try:
        yield scope
    finally:
        _inherited.scope = previous


def forget_inherited_scope() -> None:
    """Called in forked workers: the copied scope belongs to the parent."""
    _inherited.scope = None
