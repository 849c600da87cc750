# app/api/perf.py

from __future__ import annotations

from math import ceil
from typing import Sequence, TypeVar

# Zentrale Pagination-Defaults
DEFAULT_PAGE_SIZE = 10      # Vorgabe für Listen
MAX_PAGE_SIZE     = 100     # Obergrenze pro Seite

T = TypeVar("T")


def _parse_int(val, default):
    try:
        return int(val)
    except (TypeError, ValueError):
        return default


def pagination_params(page, limit, *, default_limit: int = DEFAULT_PAGE_SIZE,
                      max_limit: int = MAX_PAGE_SIZE) -> tuple[int, int]:
    """
    Normalisiert (page, limit) für Listen-Endpunkte.
    page >= 1, 1 <= limit <= max_limit; Unlesbares fällt auf die Defaults zurück.
    """
    page = max(1, _parse_int(page, 1))
    limit = _parse_int(limit, default_limit)
    if limit < 1:
        limit = default_limit
    return page, min(limit, max_limit)


def page_bounds(page: int, limit: int) -> tuple[int, int]:
    """Halboffenes Intervall [start, end) der Seite im Gesamtergebnis."""
    start = (page - 1) * limit
    return start, start + limit


def total_pages(total: int, limit: int) -> int:
    return ceil(total / limit) if limit > 0 else 0


def paginate(items: Sequence[T], page: int, limit: int) -> tuple[list[T], int, int]:
    """
    Schneidet eine Seite aus `items`.
    Liefert (slice, total, total_pages); page > total_pages ergibt eine leere Liste.
    """
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")
    total = len(items)
    start, end = page_bounds(page, limit)
    return list(items[start:end]), total, total_pages(total, limit)
