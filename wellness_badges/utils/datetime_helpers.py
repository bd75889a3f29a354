"""
Standardized Date/Time Handling Utilities

Activity timestamps are stored as epoch milliseconds (UTC). Calendar-day and
hour-of-day decisions are made in an explicit reference time zone that is
carried by a Clock and injected into every evaluation, so "now" and "today"
can be fixed in tests.

CRITICAL RULES:
- Never call datetime.now() inside evaluation code, ask the Clock
- Never mix naive and aware datetimes
- Day boundaries are always the reference zone's, never the server's
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, date, timezone
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

MS_PER_DAY = 86_400_000

DEFAULT_TIMEZONE = "UTC"


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    """
    Convert an aware datetime to epoch milliseconds

    Raises:
        ValueError: if dt is naive
    """
    if dt.tzinfo is None:
        raise ValueError("Cannot convert naive datetime to epoch milliseconds")
    return int(dt.timestamp() * 1000)


def from_epoch_ms(ms: Union[int, float], tz: Optional[ZoneInfo] = None) -> datetime:
    """Convert epoch milliseconds to an aware datetime (UTC unless tz given)"""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.astimezone(tz) if tz else dt


def days_cutoff_ms(now_ms: int, days: Union[int, float]) -> int:
    """Epoch-ms instant `days` days before now_ms"""
    return int(now_ms - days * MS_PER_DAY)


@dataclass(frozen=True)
class Clock:
    """
    Injected source of "now" plus the reference time zone.

    Example:
        >>> clock = Clock.fixed(datetime(2024, 3, 10, 8, tzinfo=timezone.utc), "Europe/Berlin")
        >>> clock.today()
        datetime.date(2024, 3, 10)
    """
    tz: ZoneInfo = field(default_factory=lambda: ZoneInfo(DEFAULT_TIMEZONE))
    now_fn: Callable[[], datetime] = now_utc

    @classmethod
    def system(cls, tz_name: str = DEFAULT_TIMEZONE) -> "Clock":
        return cls(tz=ZoneInfo(tz_name))

    @classmethod
    def fixed(cls, instant: datetime, tz_name: str = DEFAULT_TIMEZONE) -> "Clock":
        if instant.tzinfo is None:
            raise ValueError("Clock.fixed needs an aware datetime")
        return cls(tz=ZoneInfo(tz_name), now_fn=lambda: instant)

    def now(self) -> datetime:
        """Current instant, expressed in the reference zone"""
        return self.now_fn().astimezone(self.tz)

    def now_ms(self) -> int:
        return to_epoch_ms(self.now_fn())

    def today(self) -> date:
        """Calendar date in the reference zone"""
        return self.now().date()

    @property
    def tz_name(self) -> str:
        return self.tz.key
