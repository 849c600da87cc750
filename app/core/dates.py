# app/core/dates.py
"""
Zeit-Helfer. Server rechnet intern ausschließlich in UTC (aware datetimes).
"""

from __future__ import annotations
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Erzwingt UTC-Awareness; naive Werte werden als UTC interpretiert."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def effective_date(published_at: datetime | None, created_at: datetime) -> datetime:
    """Sortierschlüssel für Listen: publishedAt, sonst createdAt."""
    return ensure_utc(published_at or created_at)
