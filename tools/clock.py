"""
Clock Tool
Source of "now" for services and background jobs
"""

from datetime import date, datetime
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current local time"""

    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall clock in the deployment timezone (naive local datetimes)"""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()


system_clock = SystemClock()
