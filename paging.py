from dataclasses import dataclass


@dataclass(frozen=True)
class Page:
    items: list
    total: int
    limit: int
    offset: int


def clamp_page(limit, offset, default_limit: int, max_limit: int) -> tuple[int, int]:
    """Bound ``limit`` to ``[1, max_limit]`` and ``offset`` to ``>= 0``."""
    if limit is None:
        limit = default_limit
    limit = max(1, min(int(limit), max_limit))
    offset = max(0, int(offset or 0))
    return limit, offset
