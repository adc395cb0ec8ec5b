"""Date coercion helpers shared by the models and the builder."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Optional

from dateutil import parser as dateutil_parser
from dateutil import tz

UTC = tz.tzutc()


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def coerce_datetime(value: Any) -> Optional[datetime]:
    """Accept a datetime, a date or a parseable string and return aware UTC.

    Empty values map to ``None``. Unparseable strings raise ``ValueError``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)
    if isinstance(value, str):
        try:
            return to_utc(dateutil_parser.parse(value.strip()))
        except (ValueError, OverflowError) as exc:
            raise ValueError(f"Invalid date: {value!r}") from exc
    raise ValueError(f"Unsupported date value: {value!r}")


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return to_utc(value).isoformat().replace("+00:00", "Z")
