"""
Limit/offset rules shared by every backend.
"""
from typing import List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

# Largest value a signed 64-bit LIMIT/OFFSET parameter can carry
MAX_PAGE_VALUE = 2 ** 63 - 1


def normalize_page(limit: int, offset: int) -> Optional[Tuple[int, int]]:
    """
    Clamp pagination arguments.

    Returns:
        (limit, offset) to apply, or None when the page is empty by definition
        (limit <= 0, or an offset no store can reach).
    """
    if limit <= 0 or offset >= MAX_PAGE_VALUE:
        return None
    return min(limit, MAX_PAGE_VALUE), max(offset, 0)


def paginate(items: Sequence[T], limit: int, offset: int) -> List[T]:
    """Slice an already-ordered sequence according to normalize_page."""
    page = normalize_page(limit, offset)
    if page is None:
        return []
    limit, offset = page
    return list(items[offset:offset + limit])
