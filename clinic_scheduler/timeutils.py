# clinic_scheduler/timeutils.py
# Wall-clock helpers. Schedule and appointment times are "HH:MM" strings in the
# clinic's local frame; all comparisons happen on minutes since midnight.
import re
from datetime import date, datetime, timedelta
from typing import Tuple
from zoneinfo import ZoneInfo

from .errors import ValidationError

WEEKDAY_TOKENS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MINUTES_PER_DAY = 24 * 60

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def is_valid_hhmm(value: str) -> bool:
    return bool(value) and bool(_HHMM_RE.match(value))


def to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    match = _HHMM_RE.match(value or "")
    if not match:
        raise ValidationError(f"Invalid time format: {value!r} (expected HH:MM)")
    return int(match.group(1)) * 60 + int(match.group(2))


def from_minutes(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM". Caller keeps the value inside one day."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(value: str, delta: int) -> Tuple[str, int]:
    """Shift a wall-clock time, rolling over midnight.

    Returns the new "HH:MM" and the number of days crossed.
    """
    total = to_minutes(value) + delta
    day_offset, minutes = divmod(total, MINUTES_PER_DAY)
    return from_minutes(minutes), day_offset


def weekday_token(day: date) -> str:
    return WEEKDAY_TOKENS[day.weekday()]


def parse_iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date format: {value!r} (expected YYYY-MM-DD)")


class Clock:
    """Source of "now" in the clinic's timezone; injected so tests can pin it."""

    def __init__(self, tz_name: str = "UTC"):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def current_hhmm(self) -> str:
        return self.now().strftime("%H:%M")


class FixedClock(Clock):
    """Clock pinned to a single instant. Used by scripts and tests."""

    def __init__(self, instant: datetime, tz_name: str = "UTC"):
        super().__init__(tz_name)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, **kwargs) -> None:
        self.instant = self.instant + timedelta(**kwargs)
