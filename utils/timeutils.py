"""Timestamp helpers shared by the pipeline stages."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Render an aware UTC timestamp as ISO-8601 with a trailing Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_iso(value: Any) -> Optional[datetime]:
    """
    Parse ISO-8601 text (date-only, naive or offset) into an aware UTC datetime.

    Naive values are taken as UTC. Returns None for empty or unparseable input.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value or "").strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def date_key(value: datetime) -> str:
    """YYYY-MM-DD bucket of a timestamp, in UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d")


def previous_date_key(value: datetime) -> str:
    return date_key(value - timedelta(days=1))
