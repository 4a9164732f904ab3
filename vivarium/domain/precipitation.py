from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .models import Message, PulseConfig, as_number
from .status import StatusReporter

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    if seconds >= 3600:
        return f"{seconds / 3600:.1f}h"
    if seconds >= 60:
        return f"{seconds / 60:.1f}m"
    return f"{seconds:.0f}s"


@dataclass
class PulseState:
    last_fire: Optional[datetime] = None
    pump_active: bool = False
    off_deadline: Optional[datetime] = None
    next_tick_at: Optional[datetime] = None
    night: bool = False
    interval: timedelta = timedelta(hours=1)
    duration: timedelta = timedelta(seconds=30)


class PulseController:
    """Runs the precipitation pump for ``duration`` at most once per ``interval``."""

    def __init__(self, config: PulseConfig, name: str = "precipitation_controller") -> None:
        self.config = config
        self.name = name
        self.status = StatusReporter()
        self.state = PulseState(
            interval=timedelta(seconds=config.interval_seconds),
            duration=timedelta(seconds=config.duration_seconds),
        )

    def start(self, now: datetime) -> list[Message]:
        self._schedule_tick(now)
        out = self.status.report({"state": "idle", "timestamp": now.isoformat()})
        return [out] if out else []

    def close(self, now: datetime) -> list[Message]:
        s = self.state
        s.next_tick_at = None
        s.off_deadline = None
        if not s.pump_active:
            return []
        s.pump_active = False
        logger.info("%s: closing with pump active, forcing pump off", self.name)
        return [self._pump(False)]

    def handle(self, msg: Message, now: datetime) -> list[Message]:
        if msg.topic in ("interval", "duration"):
            value = as_number(msg.payload)
            if value is None or value <= 0:
                logger.warning("%s: rejected %s=%r", self.name, msg.topic, msg.payload)
                return []
            setattr(self.state, msg.topic, timedelta(seconds=value))
            logger.info("%s: %s updated to %ss", self.name, msg.topic, value)
        elif msg.topic == "night" and isinstance(msg.payload, bool):
            if self.config.night_disable and msg.payload != self.state.night:
                self.state.night = msg.payload
                logger.info("%s: night=%s", self.name, msg.payload)
        else:
            logger.debug("%s: unsupported message topic=%r", self.name, msg.topic)
        return []

    def poll(self, now: datetime) -> list[Message]:
        s = self.state
        out: list[Message] = []
        if s.off_deadline is not None and now >= s.off_deadline:
            out.extend(self._stop(now))
        if s.next_tick_at is not None and now >= s.next_tick_at:
            self._schedule_tick(now)
            out.extend(self.evaluate(now))
        return out

    def evaluate(self, now: datetime) -> list[Message]:
        s = self.state
        if s.pump_active:
            return []

        if self.config.night_disable and s.night:
            status = self.status.report({"state": "paused", "timestamp": now.isoformat()})
            return [status] if status else []

        if s.last_fire is None or now - s.last_fire >= s.interval:
            return self._fire(now)

        remaining = (s.interval - (now - s.last_fire)).total_seconds()
        logger.debug("%s: next in %s", self.name, format_duration(remaining))
        status = self.status.report({"state": "waiting", "remaining": remaining, "timestamp": now.isoformat()})
        return [status] if status else []

    def _fire(self, now: datetime) -> list[Message]:
        s = self.state
        s.pump_active = True
        s.last_fire = now
        s.off_deadline = now + s.duration
        logger.info("%s: pump on (%s)", self.name, format_duration(s.duration.total_seconds()))
        return [
            self._pump(True),
            self.status.force({
                "state": "active",
                "duration": s.duration.total_seconds(),
                "timestamp": now.isoformat(),
            }),
        ]

    def _stop(self, now: datetime) -> list[Message]:
        s = self.state
        s.pump_active = False
        s.off_deadline = None
        remaining = max(0.0, (s.interval - (now - s.last_fire)).total_seconds())
        logger.info("%s: pump off, next in %s", self.name, format_duration(remaining))
        return [
            self._pump(False),
            self.status.force({"state": "waiting", "remaining": remaining, "timestamp": now.isoformat()}),
        ]

    def _schedule_tick(self, now: datetime) -> None:
        self.state.next_tick_at = now + timedelta(seconds=self.config.tick_interval_seconds)

    def _pump(self, on: bool) -> Message:
        return Message("actuators", {self.config.actuator_key: "on" if on else "off"})
