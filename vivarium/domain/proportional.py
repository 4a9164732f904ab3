from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .models import OPEN_LOOP, ActuatorPair, Message, ProportionalConfig, as_number
from .status import StatusReporter
from .watchdog import Watchdog

logger = logging.getLogger(__name__)

MAX_EFFORT = 100.0


@dataclass
class ProportionalState:
    target: Optional[float] = None
    reading: Optional[float] = None
    effort: float = 0.0
    open_loop: bool = True


class ProportionalController:
    """P-controller producing an effort in [-100, +100]; positive drives the low actuator."""

    def __init__(self, config: ProportionalConfig, pair: ActuatorPair, name: Optional[str] = None) -> None:
        self.config = config
        self.pair = pair
        self.name = name or f"{pair.quantity}_controller"
        self.state = ProportionalState()
        self.watchdog = Watchdog(timedelta(seconds=config.watchdog_timeout_seconds))
        self.status = StatusReporter()

    def start(self, now: datetime) -> list[Message]:
        self.watchdog.arm(now)
        return [self.status.force(self._open_loop_status(now, "No sensor feedback yet"))]

    def close(self, now: datetime) -> list[Message]:
        self.watchdog.disarm()
        self.state.effort = 0.0
        return [Message("control", {"effort": 0.0}), self._actuators(0.0)]

    def compute_effort(self, reading: float, target: float) -> float:
        effort = self.config.proportional_gain * (target - reading)
        return max(-MAX_EFFORT, min(MAX_EFFORT, effort))

    def handle(self, msg: Message, now: datetime) -> list[Message]:
        value = as_number(msg.payload)
        if value is None:
            logger.warning("%s: rejected non-numeric %s payload %r", self.name, msg.topic, msg.payload)
            return []
        if msg.topic == "sensor":
            self.state.reading = value
            if self.state.open_loop:
                logger.info("%s: sensor feedback restored", self.name)
            self.state.open_loop = False
            self.watchdog.arm(now)
        elif msg.topic in ("target", ""):
            self.state.target = value
        else:
            return []
        return self._run(now)

    def poll(self, now: datetime) -> list[Message]:
        if not self.watchdog.expired(now):
            return []
        return self._trip(now)

    def _trip(self, now: datetime) -> list[Message]:
        self.state.open_loop = True
        self.state.effort = 0.0
        logger.warning("%s: watchdog expired, running open-loop", self.name)
        return [
            Message("control", {"effort": 0.0}),
            self._actuators(0.0),
            self.status.force(self._open_loop_status(now, "No sensor feedback")),
        ]

    def _run(self, now: datetime) -> list[Message]:
        if self.watchdog.expired(now):
            return self._trip(now)
        s = self.state
        if s.open_loop:
            s.effort = 0.0
            out = [Message("control", {"effort": 0.0}), self._actuators(0.0)]
            status = self.status.report(self._open_loop_status(now, "No sensor feedback"))
            if status is not None:
                out.append(status)
            return out
        if s.reading is None or s.target is None:
            return []

        s.effort = self.compute_effort(s.reading, s.target)
        if s.effort > 0:
            state, text = self.pair.low_label, f"{self.pair.low_label} at {round(s.effort)}% effort"
        elif s.effort < 0:
            state, text = self.pair.high_label, f"{self.pair.high_label} at {round(-s.effort)}% effort"
        else:
            state, text = "idle", "Idle (on target)"

        out = [Message("control", {"effort": s.effort}), self._actuators(s.effort)]
        status = self.status.report({
            "state": state,
            "severity": "ok",
            "message": text,
            "target": s.target,
            "reading": s.reading,
            "timestamp": now.isoformat(),
        })
        if status is not None:
            out.append(status)
        return out

    def _open_loop_status(self, now: datetime, message: str) -> dict:
        return {"state": OPEN_LOOP, "severity": self.config.watchdog_severity, "message": message, "timestamp": now.isoformat()}

    def _actuators(self, effort: float) -> Message:
        return Message("actuators", {
            self.pair.low_key: "on" if effort > 0 else "off",
            self.pair.high_key: "on" if effort < 0 else "off",
        })
