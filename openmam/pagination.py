"""Offset pagination shared by asset listing and search."""

import math
from typing import TypeVar

from openmam.asset.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

T = TypeVar("T")


def clamp_page(page: int | None, limit: int | None) -> tuple[int, int]:
    """Return (page, limit) with page >= 1 and limit within [1, MAX_PAGE_SIZE]."""
    page = max(1, page if page is not None else 1)
    limit = min(MAX_PAGE_SIZE, max(1, limit if limit is not None else DEFAULT_PAGE_SIZE))
    return page, limit


def paginate(items: list[T], page: int, limit: int) -> list[T]:
    start = (page - 1) * limit
    return items[start:start + limit]


def page_count(total: int, limit: int) -> int:
    return max(1, math.ceil(total / limit)) if total else 1
