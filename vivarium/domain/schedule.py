from __future__ import annotations
from dataclasses import dataclass
from datetime import time


@dataclass(frozen=True)
class TimeWindow:
    start: time
    end: time

    def matches(self, t: time) -> bool:
        # Handle overnight windows (e.g., 22:00 -> 02:00)
        if self.start <= self.end:
            return self.start <= t < self.end
        return t >= self.start or t < self.end


def parse_hhmm(s: str) -> time:
    h, m = s.strip().split(":")
    return time(int(h), int(m))
