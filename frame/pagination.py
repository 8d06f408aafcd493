"""Page envelopes, bounds and sort parsing for paged queries."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Generic, Mapping, TypeVar

from .documents import ASCENDING, DESCENDING
from .errors import ValidationError

T = TypeVar("T")

MIN_LIMIT = 1
MAX_LIMIT = 1000
MIN_PAGE = 1
MAX_PAGE = 1000
DEFAULT_LIMIT = 20
DEFAULT_PAGE = 1


@dataclass(slots=True)
class PageInfo:
    current: int
    prev: int
    has_prev: bool
    next: int
    has_next: bool
    total: int


@dataclass(slots=True)
class ItemInfo:
    limit: int
    begin: int
    end: int
    total: int


@dataclass(slots=True)
class Page(Generic[T]):
    """One page of results plus page and item counters."""

    data: list[T] = field(default_factory=list)
    pages: PageInfo | None = None
    items: ItemInfo | None = None


def check_bounds(page: int, limit: int) -> None:
    """Reject page/limit values outside the supported window."""
    if not MIN_LIMIT <= limit <= MAX_LIMIT:
        raise ValidationError(f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}")
    if not MIN_PAGE <= page <= MAX_PAGE:
        raise ValidationError(f"page must be between {MIN_PAGE} and {MAX_PAGE}")


def parse_sort(sort: str | None, allowed: Mapping[str, str]) -> list[tuple[str, int]]:
    """Translate a ``"-field,other"`` sort string into ``[(path, direction)]``.

    Every key must appear in ``allowed``, which maps the public sort key to
    the document path it orders by. Unknown keys raise ``ValidationError``.
    """
    if sort is None or not sort.strip():
        sort = "_id"
    order: list[tuple[str, int]] = []
    for raw in sort.split(","):
        key = raw.strip()
        direction = ASCENDING
        if key.startswith("-"):
            key, direction = key[1:], DESCENDING
        elif key.startswith("+"):
            key = key[1:]
        if key not in allowed:
            raise ValidationError(f"cannot sort by {key!r}")
        order.append((allowed[key], direction))
    return order


def build_page(data: list[Any], total: int, page: int, limit: int) -> Page[Any]:
    """Wrap a slice of results with page and item counters."""
    total_pages = math.ceil(total / limit) if total else 0
    begin = (page - 1) * limit + 1
    end = page * limit
    return Page(
        data=data,
        pages=PageInfo(
            current=page,
            prev=page - 1,
            has_prev=page - 1 != 0,
            next=page + 1,
            has_next=page + 1 <= total_pages,
            total=total_pages,
        ),
        items=ItemInfo(
            limit=limit,
            begin=min(begin, total),
            end=min(end, total),
            total=total,
        ),
    )
