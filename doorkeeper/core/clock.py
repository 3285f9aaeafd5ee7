from __future__ import annotations

import datetime as dt
from abc import ABC, abstractmethod
from typing import Optional

from zoneinfo import ZoneInfo


class Clock(ABC):
    """Source of 'now'. Always returns timezone-aware datetimes."""

    @abstractmethod
    def now(self) -> dt.datetime:
        raise NotImplementedError


class RealClock(Clock):
    def __init__(self, timezone: Optional[str] = None):
        # None means host local time
        self._tz = ZoneInfo(timezone) if timezone else None

    def now(self) -> dt.datetime:
        if self._tz is None:
            return dt.datetime.now().astimezone()
        return dt.datetime.now(self._tz)
