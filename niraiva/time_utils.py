"""Utilities for working with timestamps and calendar dates in UTC."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d %b %Y", "%d %B %Y", "%b %d, %Y")


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Return ISO 8601 text for ``dt`` with a ``Z`` suffix, or ``None``."""

    if dt is None:
        return None
    text = ensure_utc(dt).replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        return text[:-6] + "Z"
    return text


def parse_calendar_date(value: Any) -> Optional[date]:
    """Best effort conversion of ``value`` into a :class:`date`.

    Accepts ``date``/``datetime`` instances, ISO 8601 timestamps and the
    handful of day-first formats printed on lab reports.
    """

    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00"))).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def iso_date(value: Any, default: Optional[date] = None) -> Optional[str]:
    """Return ``YYYY-MM-DD`` for ``value`` or for ``default`` when unparsable."""

    parsed = parse_calendar_date(value)
    if parsed is None:
        parsed = default
    return parsed.isoformat() if parsed is not None else None


__all__ = ["utc_now", "ensure_utc", "to_iso", "parse_calendar_date", "iso_date"]
