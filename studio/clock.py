"""Wall-clock access for validation and slot filtering"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from .config import STUDIO_TIMEZONE


class Clock:
    """Current time in the studio's timezone, as a naive local datetime"""

    def __init__(self, timezone: str = STUDIO_TIMEZONE):
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz).replace(tzinfo=None)

    def localize(self, value: datetime) -> datetime:
        """Attach the studio timezone to a naive local datetime"""
        return value.replace(tzinfo=self.tz)

    def to_local(self, value: datetime) -> datetime:
        """Convert an aware datetime to naive studio-local time"""
        if value.tzinfo is None:
            return value
        return value.astimezone(self.tz).replace(tzinfo=None)


class FrozenClock(Clock):
    """Clock pinned to a fixed instant; advance() moves it forward"""

    def __init__(self, frozen_at: datetime, timezone: str = STUDIO_TIMEZONE):
        super().__init__(timezone)
        self.frozen_at = frozen_at

    def now(self) -> datetime:
        return self.frozen_at

    def advance(self, **kwargs) -> None:
        self.frozen_at = self.frozen_at + timedelta(**kwargs)


_clock = Clock()


def get_clock() -> Clock:
    return _clock
