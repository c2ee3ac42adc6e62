"""
CPU count detection.
"""

import logging
import os
from typing import Optional, Set, Tuple

logger = logging.getLogger(__name__)

ENV_OVERRIDE = "PARALLEL_PROCESSOR_COUNT"
CPUINFO_PATH = "/proc/cpuinfo"


def processor_count() -> int:
    """
    Number of processors usable by this process.

    The PARALLEL_PROCESSOR_COUNT environment variable wins when set to a
    positive integer. Otherwise the scheduler affinity mask is used where
    the platform has one, falling back to os.cpu_count().
    """
    override = os.environ.get(ENV_OVERRIDE)
    if override:
        try:
            value = int(override)
        except ValueError:
            value = 0
        if value > 0:
            return value
        logger.warning(f"Ignoring invalid {ENV_OVERRIDE}={override!r}")

    if hasattr(os, "sched_getaffinity"):
        try:
            return max(1, len(os.sched_getaffinity(0)))
        except OSError:
            pass
    return os.cpu_count() or 1


def physical_processor_count(cpuinfo_path: str = CPUINFO_PATH) -> int:
    """Number of physical cores, counted from /proc/cpuinfo; processor_count() where that is unavailable."""
    cores = _read_physical_cores(cpuinfo_path)
    if not cores:
        return processor_count()
    return len(cores)


def _read_physical_cores(cpuinfo_path: str) -> Optional[Set[Tuple[str, str]]]:
    try:
        with open(cpuinfo_path, 'r') as f:
            content = f.read()
    except OSError:
        return None

    cores = set()
    for block in content.split("\n\n"):
        fields = {}
        for line in block.splitlines():
            key, sep, value = line.partition(":")
            if sep:
                fields[key.strip()] = value.strip()
        if "core id" in fields:
            cores.add((fields.get("physical id", "0"), fields["core id"]))
    return cores
