"""
Process pool executor.

Forks every worker up front, then drives each one from its own supervising
thread. A supervisor claims the next index from the shared cursor, sends it
down the worker's request pipe and blocks until the result (or an
ExceptionEnvelope) comes back on the response pipe. Each pipe carries
length-framed pickles, one index per request and one value per response.

Work functions and items are not pickled: they are inherited by the forked
children. Only indices and results cross the pipes.
"""

import logging
import multiprocessing
import signal
import threading
from multiprocessing.connection import Connection
from typing import Any, List, Optional

from parallel.cancellation import CancellationScope, forget_inherited_scope
from parallel.envelope import ExceptionEnvelope
from parallel.errors import DeadWorker
from parallel.instrumentation import Job, with_instrumentation
from parallel.state import Outcome, OutcomeKind, PoolState
from parallel.thread_pool import in_threads

logger = logging.getLogger(__name__)

START_METHOD = 'fork'


def can_fork() -> bool:
    """Whether worker processes can be forked on this platform."""
    return START_METHOD in multiprocessing.get_all_start_methods()


class Worker:
    """One forked process, its two pipe ends in the parent, and its supervising thread."""

    def __init__(self, process, requests: Connection, responses: Connection):
        self.process = process
        self.requests = requests
        self.responses = responses
        self.thread: Optional[threading.Thread] = None

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid

    def close_pipes(self) -> None:
        self.requests.close()
        self.responses.close()

    def wait(self) -> None:
        try:
            self.process.join()
        except KeyboardInterrupt:
            # process died
            logger.debug(f"Interrupted while reaping worker {self.pid}")

    def kill(self) -> None:
        """Terminate the process; a no-op once it has been reaped."""
        self.process.kill()

    def work(self, index: int) -> Any:
        """
        Send one index and wait for its answer.

        Raises:
            DeadWorker: If either pipe breaks or the worker exits before answering.
        """
        try:
            self.requests.send(index)
        except OSError as e:
            raise DeadWorker(self.pid) from e

        try:
            return self.responses.recv()
        except (EOFError, OSError) as e:
            raise DeadWorker(self.pid) from e


def process_incoming_jobs(read: Connection, write: Connection, job: Job) -> None:
    """
    Serve requests in a worker process until the parent closes the request pipe.

    Errors raised by the work function are wrapped and sent back, never raised.
    """
    while True:
        try:
            index = read.recv()
        except EOFError:
            break

        try:
            result = job.call(index)
        except Exception as e:
            result = ExceptionEnvelope.wrap(e)

        try:
            write.send(result)
        except OSError:
            raise
        except Exception as e:
            # the result itself could not be pickled
            write.send(ExceptionEnvelope.wrap(e))


def _serve(job: Job, read: Connection, write: Connection,
           parent_ends: List[Connection], siblings: List[Worker]) -> None:
    """Entry point of a forked worker."""
    # the parent handles Ctrl+C and kills us
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    forget_inherited_scope()

    for sibling in siblings:
        sibling.close_pipes()
    for conn in parent_ends:
        conn.close()

    try:
        process_incoming_jobs(read, write, job)
    finally:
        read.close()
        write.close()


def start_worker(job: Job, started: List[Worker], context=None) -> Worker:
    """Open the request/response pipes and fork one worker serving `job`."""
    if context is None:
        context = multiprocessing.get_context(START_METHOD)

    child_read, parent_write = context.Pipe(duplex=False)
    parent_read, child_write = context.Pipe(duplex=False)

    process = context.Process(
        target=_serve,
        args=(job, child_read, child_write, [parent_read, parent_write], list(started)),
        name=f"parallel-worker-{len(started)}",
    )
    try:
        process.start()
    except BaseException:
        parent_read.close()
        parent_write.close()
        raise
    finally:
        child_read.close()
        child_write.close()

    logger.debug(f"Started worker {process.pid}")
    return Worker(process, parent_write, parent_read)


def create_workers(job: Job, count: int) -> List[Worker]:
    """Fork `count` workers before any work is handed out."""
    context = multiprocessing.get_context(START_METHOD)
    workers: List[Worker] = []
    try:
        for _ in range(count):
            workers.append(start_worker(job, workers, context))
    except BaseException:
        for worker in workers:
            worker.close_pipes()
            worker.wait()
        raise
    return workers


def work_in_processes(job: Job, options, count: int, scope: CancellationScope) -> Optional[List[Any]]:
    """
    Process job items in `count` forked workers.

    Returns:
        Results in item order, or None when stopped by Break/Kill.

    Raises:
        The first error raised by a work function (rebuilt in this process),
        or DeadWorker if a worker vanished.
    """
    state = PoolState(len(job))
    workers = create_workers(job, count)
    logger.debug(f"Working on {len(job)} items in {count} processes")

    def supervise(slot: int) -> None:
        worker = workers[slot]
        worker.thread = threading.current_thread()
        try:
            while True:
                index = state.claim()
                if index is None:
                    break

                try:
                    output = with_instrumentation(
                        job.items[index], index, options, lambda: worker.work(index)
                    )
                except DeadWorker as e:
                    if state.killed:
                        # terminated on purpose by a sibling's Kill or by an interrupt
                        break
                    logger.error(f"Worker {worker.pid} died while working on item {index}")
                    state.record(Outcome.failed(e))
                    break

                if isinstance(output, ExceptionEnvelope):
                    outcome = output.outcome()
                    if state.record(outcome) and outcome.kind is OutcomeKind.KILLED:
                        for other in workers:
                            if other is not worker:
                                other.kill()
                    break

                state.store(index, output)
        finally:
            worker.close_pipes()
            worker.wait()
            logger.debug(f"Reaped worker {worker.pid}")

    # the state goes first so supervisors know the deaths that follow are intended
    with scope.registered([state] + workers):
        in_threads(supervise, count, scope=scope)
    return state.finalize()
