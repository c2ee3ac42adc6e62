"""
Helpers for splitting items into groups before handing them to a pool.
"""

from typing import Any, Iterable, List


def in_groups_of(items: Iterable[Any], size: int) -> List[List[Any]]:
    """
    Split items into consecutive groups of `size`, e.g. to hand each process a batch.

    The last group may be shorter.

    Raises:
        ValueError: If size is not positive.
    """
    if size <= 0:
        raise ValueError(f"Group size must be positive, got {size}")
    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]
