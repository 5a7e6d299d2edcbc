"""Time utility helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime


def now_utc() -> datetime:
    """Return current timezone-aware UTC datetime."""
    return datetime.now(tz=UTC)


def utc_today() -> date:
    """Return current UTC date."""
    return now_utc().date()


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse a stored timestamp into an aware UTC datetime.

    PostgREST returns ISO strings that may end in ``Z`` and may drop
    trailing zero microseconds, so values are normalized before use.
    """
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        parsed = value

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_iso_date(value: str | date | None, default: date | None = None) -> date:
    """Parse an ISO date string with an optional fallback default."""
    if not value:
        if default is None:
            raise ValueError("Missing required date value")
        return default
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def to_iso(value: datetime) -> str:
    """Serialize a datetime in canonical UTC ISO form with microseconds."""
    return parse_timestamp(value).isoformat(timespec="microseconds")


def age_on(birth_date: date, today: date | None = None) -> int:
    """Return completed years between ``birth_date`` and ``today``."""
    target = today or utc_today()
    years = target.year - birth_date.year
    if (target.month, target.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years
