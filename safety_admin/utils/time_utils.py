"""
Time helpers shared by the ban, appeal and archive flows.

All datetimes handled here are timezone-aware UTC. Firestore returns
``DatetimeWithNanoseconds`` which is a ``datetime`` subclass, so everything
below accepts either.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

from safety_admin.common.errors import ValidationError

BAN_DURATION_UNITS = ('minutes', 'hours', 'days')

_UNIT_LABELS = {
    'minutes': ('minute', 'minutes'),
    'hours': ('hour', 'hours'),
    'days': ('day', 'days'),
}


def ban_duration_to_timedelta(duration: int, unit: str = 'days') -> Optional[timedelta]:
    """
    Convert a ban duration to a timedelta.

    Returns None for ``duration == 0`` (permanent ban).

    Raises:
        ValidationError: negative or non-integer duration, unknown unit
    """
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise ValidationError("Ban duration must be an integer", field='banDuration')
    if duration < 0:
        raise ValidationError("Ban duration cannot be negative", field='banDuration')
    unit = (unit or 'days').lower()
    if unit not in BAN_DURATION_UNITS:
        raise ValidationError(
            f"Ban duration unit must be one of {', '.join(BAN_DURATION_UNITS)}",
            field='banDurationUnit',
        )
    if duration == 0:
        return None
    return timedelta(**{unit: duration})


def format_ban_duration(duration: int, unit: str = 'days') -> str:
    """'3 days', '1 hour', or 'Permanent'."""
    if not duration:
        return 'Permanent'
    singular, plural = _UNIT_LABELS.get((unit or 'days').lower(), _UNIT_LABELS['days'])
    return f"{duration} {singular if duration == 1 else plural}"


def ensure_utc(value: Any) -> Optional[datetime]:
    """Coerce Firestore timestamps, datetimes and ISO strings to aware UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if hasattr(value, 'to_datetime'):
        return ensure_utc(value.to_datetime())
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))
        except ValueError:
            return None
    return None


def to_iso(value: Any) -> Optional[str]:
    dt = ensure_utc(value)
    return dt.isoformat() if dt else None


def remaining_time(expires_at: Optional[datetime], now: datetime) -> Optional[Dict[str, int]]:
    """Break the time left on a ban into days/hours/minutes; None if permanent."""
    if expires_at is None:
        return None
    seconds = max(0, int((expires_at - now).total_seconds()))
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    return {'days': days, 'hours': hours, 'minutes': seconds // 60}


def days_remaining(expires_at: Optional[datetime], now: datetime) -> Optional[int]:
    if expires_at is None:
        return None
    seconds = (expires_at - now).total_seconds()
    if seconds <= 0:
        return 0
    return int(-(-seconds // 86400))


def admin_action_retention(now: datetime) -> datetime:
    """
    Expiry for audit entries: 00:00 UTC on the Monday after next.

    A Monday counts as "next week" so entries always live at least 7 days.
    """
    now = ensure_utc(now)
    days_until_monday = 7 - now.weekday()
    monday = (now + timedelta(days=days_until_monday + 7)).date()
    return datetime(monday.year, monday.month, monday.day, tzinfo=timezone.utc)


def archive_partition(day: date) -> str:
    """
    ``YYYY/week-WW/YYYY-MM-DD``: calendar year of ``day`` and its ISO week number.

    Around new year the two can disagree (2024-12-30 is ISO week 1), so the
    year segment always matches the date in the file name.
    """
    return f"{day.year}/week-{day.isocalendar()[1]:02d}/{day.isoformat()}"
