from __future__ import annotations

from typing import List, Sequence, TypeVar

T = TypeVar("T")


def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive groups of ``size``; the last group may be shorter."""
    if size <= 0:
        raise ValueError(f"chunk size must be positive (got {size})")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
