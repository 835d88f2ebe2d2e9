# utils/timeutils.py
from datetime import datetime, date, time
from typing import Optional, Union

import pytz
from flask import current_app, has_app_context

from utils.errors import ValidationError

DEFAULT_TIMEZONE = "America/Los_Angeles"

TzLike = Union[str, pytz.BaseTzInfo, None]


def reference_timezone(tz: TzLike = None):
    """Resolve the zone used for every "today"/"now" comparison.

    An explicit value always wins; otherwise the configured
    REFERENCE_TIMEZONE is used.
    """
    if tz is None:
        name = DEFAULT_TIMEZONE
        if has_app_context():
            name = current_app.config.get("REFERENCE_TIMEZONE", DEFAULT_TIMEZONE)
        return pytz.timezone(name)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


def _aware(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    if now.tzinfo is None:
        return pytz.utc.localize(now)
    return now


def local_now(tz: TzLike = None, now: Optional[datetime] = None) -> datetime:
    return _aware(now).astimezone(reference_timezone(tz))


def local_today(tz: TzLike = None, now: Optional[datetime] = None) -> date:
    return local_now(tz, now).date()


def start_of_day(day: date, tz: TzLike = None) -> datetime:
    """The instant a calendar date begins in the reference zone."""
    return reference_timezone(tz).localize(datetime.combine(day, time.min))


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.utc).replace(tzinfo=None)


def parse_date(value, field="date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValidationError(f"{field} is required")
    try:
        return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Invalid {field} format. Use YYYY-MM-DD.")


def parse_datetime(value, field="datetime") -> Optional[datetime]:
    """Parse ISO-8601 into naive UTC, the form datetimes are stored in."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    s = str(value).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(s))
    except ValueError:
        raise ValidationError(f"Invalid datetime format for {field}")


def utc_naive_now() -> datetime:
    """Current UTC time without tzinfo, the form timestamps are stored in."""
    return utc_now().replace(tzinfo=None)
