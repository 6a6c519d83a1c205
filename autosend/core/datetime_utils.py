"""Datetime helpers for the business timezone.

Database timestamps are naive UTC. Batches are planned in whole calendar
days of the business timezone (Europe/Sarajevo by default), so a date range
is turned into a half-open UTC window before querying fuel entries:

    window = resolve_date_range(date(2026, 3, 1), None, "Europe/Sarajevo")
    # window.start == 2026-02-28 23:00 UTC, window.end == 2026-03-01 23:00 UTC
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from autosend.core.errors import ValidationError


@dataclass(frozen=True)
class DateWindow:
    """Inclusive local date range plus its half-open naive UTC window."""

    date_from: date
    date_to: date
    start: datetime
    end: datetime


def utc_now() -> datetime:
    """Get current UTC time as naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def is_expired(expires_at: datetime) -> bool:
    """Check if a naive UTC timestamp is in the past."""
    return utc_now() > expires_at


def get_expiry(minutes: int = 0, hours: int = 0, days: int = 0) -> datetime:
    """Get a future naive UTC expiry timestamp."""
    return utc_now() + timedelta(minutes=minutes, hours=hours, days=days)


def is_valid_timezone(tz_name: str) -> bool:
    """Check if a timezone name is a valid IANA timezone."""
    try:
        ZoneInfo(tz_name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def local_today(tz_name: str) -> date:
    """Get today's calendar date in the given timezone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def start_of_day_utc(day: date, tz_name: str) -> datetime:
    """Get local midnight of ``day`` as a naive UTC datetime."""
    local_midnight = datetime.combine(day, time.min, tzinfo=ZoneInfo(tz_name))
    return local_midnight.astimezone(UTC).replace(tzinfo=None)


def resolve_date_range(
    date_from: date | None,
    date_to: date | None,
    tz_name: str,
    today: date | None = None,
) -> DateWindow:
    """Resolve an optional date range into a concrete query window.

    A missing ``date_from`` means yesterday in ``tz_name``; a missing
    ``date_to`` means the same day as ``date_from``.

    Raises:
        ValidationError: If ``date_from`` is after ``date_to``.
    """
    if date_from is None:
        date_from = (today or local_today(tz_name)) - timedelta(days=1)
    if date_to is None:
        date_to = date_from

    if date_from > date_to:
        raise ValidationError(
            f"Invalid date range: {format_date_label(date_from)} is after "
            f"{format_date_label(date_to)}."
        )

    return DateWindow(
        date_from=date_from,
        date_to=date_to,
        start=start_of_day_utc(date_from, tz_name),
        end=start_of_day_utc(date_to + timedelta(days=1), tz_name),
    )


def format_date_label(day: date) -> str:
    """Format a date the way it is shown to recipients (dd.mm.yyyy)."""
    return day.strftime("%d.%m.%Y")


def to_local(value: datetime, tz_name: str) -> datetime:
    """Convert a naive UTC timestamp to the given timezone."""
    return value.replace(tzinfo=UTC).astimezone(ZoneInfo(tz_name))
