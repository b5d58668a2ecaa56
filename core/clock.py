"""Time sources and date coercion."""

from datetime import date, datetime, time
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

from core.errors import InvalidArgumentError

Clock = Callable[[], datetime]

DateLike = Union[datetime, date, str]


def wall_clock(timezone: str) -> Clock:
    """Clock returning naive local wall-clock time in `timezone`."""
    zone = ZoneInfo(timezone)

    def now() -> datetime:
        return datetime.now(zone).replace(tzinfo=None)

    return now


def coerce_datetime(value: Optional[DateLike], end_of_day: bool = False) -> Optional[datetime]:
    """
    Accept a datetime, a date or an ISO string.

    A bare date is widened to the start of that day, or to its last
    microsecond when `end_of_day` is set.

    Raises:
        InvalidArgumentError: The string is not an ISO date or datetime
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo is not None else value
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min)

    text = str(value).strip()
    try:
        if len(text) == 10:
            return coerce_datetime(date.fromisoformat(text), end_of_day)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidArgumentError(f"Invalid date: {value}")

    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    return parsed
