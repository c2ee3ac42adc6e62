"""
Parallel: run a function over many items in threads or forked processes.
"""

__version__ = "0.3.0"

from .cancellation import CancellationScope
from .chunking import in_groups_of
from .config import ConfigurationError, Options
from .dispatcher import (
    each,
    each_with_index,
    in_processes,
    in_threads,
    map,
    map_with_index,
)
from .envelope import ExceptionEnvelope
from .errors import Break, DeadWorker, Kill, RemoteTraceback, UndumpableException
from .processor_count import physical_processor_count, processor_count
from .state import Outcome, OutcomeKind

__all__ = [
    "map",
    "map_with_index",
    "each",
    "each_with_index",
    "in_threads",
    "in_processes",
    "in_groups_of",
    "processor_count",
    "physical_processor_count",
    "Options",
    "ConfigurationError",
    "CancellationScope",
    "ExceptionEnvelope",
    "Outcome",
    "OutcomeKind",
    "Break",
    "Kill",
    "DeadWorker",
    "UndumpableException",
    "RemoteTraceback",
]
