from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional


class Watchdog:
    """Single-deadline timeout. Arming replaces the previous deadline; expiry fires once."""

    def __init__(self, timeout: timedelta) -> None:
        self.timeout = timeout
        self.deadline: Optional[datetime] = None

    @property
    def armed(self) -> bool:
        return self.deadline is not None

    def arm(self, now: datetime) -> None:
        self.deadline = now + self.timeout

    def disarm(self) -> None:
        self.deadline = None

    def expired(self, now: datetime) -> bool:
        if self.deadline is None or now < self.deadline:
            return False
        self.deadline = None
        return True
