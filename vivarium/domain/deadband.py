from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .models import (
    DRIVE_HIGH,
    DRIVE_LOW,
    IDLE,
    OPEN_LOOP,
    ActuatorCommand,
    ActuatorPair,
    ControllerConfig,
    Message,
    as_number,
)
from .status import StatusReporter
from .watchdog import Watchdog

logger = logging.getLogger(__name__)


@dataclass
class ControllerState:
    target: Optional[float] = None
    reading: Optional[float] = None
    mode: str = IDLE
    safety_override: Optional[str] = None  # None | "min" | "max"
    open_loop: bool = False


class DeadbandController:
    """Dual-deadband two-actuator controller with safety limits and a feedback watchdog.

    Drives ``pair.low_key`` while the reading is below target and
    ``pair.high_key`` while above. Once driving, it keeps going until the
    reading crosses the target itself, not merely the deadband edge.
    """

    def __init__(
        self,
        config: ControllerConfig,
        pair: ActuatorPair,
        name: Optional[str] = None,
        edge_triggered: bool = True,
    ) -> None:
        self.config = config
        self.pair = pair
        self.name = name or f"{pair.quantity}_controller"
        self.state = ControllerState()
        self.watchdog = Watchdog(config.watchdog_timeout)
        self.status = StatusReporter(edge_triggered=edge_triggered)

    def start(self, now: datetime) -> list[Message]:
        self.watchdog.arm(now)
        out = self.status.report({"state": "awaiting inputs", "timestamp": now.isoformat()})
        return [out] if out else []

    def close(self, now: datetime) -> list[Message]:
        self.watchdog.disarm()
        logger.info("%s: closing, forcing actuators off", self.name)
        return [self._actuators(False, False)]

    def evaluate(self, reading: float, target: Optional[float]) -> ActuatorCommand:
        s = self.state
        cfg = self.config

        if s.open_loop:
            return ActuatorCommand(False, False, OPEN_LOOP)

        if reading < cfg.minimum_limit:
            s.safety_override = "min"
            s.mode = DRIVE_LOW
            return ActuatorCommand(True, False, DRIVE_LOW, f"minimum {self.pair.quantity}")

        if reading > cfg.maximum_limit:
            s.safety_override = "max"
            s.mode = DRIVE_HIGH
            return ActuatorCommand(False, True, DRIVE_HIGH, f"maximum {self.pair.quantity}")

        s.safety_override = None

        if target is None:
            s.mode = IDLE
        elif reading < target - cfg.deadband:
            s.mode = DRIVE_LOW
        elif reading > target + cfg.deadband:
            s.mode = DRIVE_HIGH
        elif s.mode == DRIVE_LOW and reading < target:
            pass
        elif s.mode == DRIVE_HIGH and reading > target:
            pass
        else:
            s.mode = IDLE

        return ActuatorCommand(s.mode == DRIVE_LOW, s.mode == DRIVE_HIGH, s.mode)

    def handle(self, msg: Message, now: datetime) -> list[Message]:
        if msg.topic == "sensor":
            return self.update_reading(msg.payload, now)
        if msg.topic in ("target", ""):
            return self.update_target(msg.payload, now)
        logger.debug("%s: unsupported message topic=%r", self.name, msg.topic)
        return []

    def update_reading(self, value: object, now: datetime) -> list[Message]:
        reading = as_number(value)
        if reading is None:
            logger.warning("%s: rejected non-numeric reading %r", self.name, value)
            return []

        self.state.reading = reading
        if self.state.open_loop:
            self.state.open_loop = False
            logger.info("%s: exiting open-loop mode, sensor feedback restored", self.name)
        self.watchdog.arm(now)
        return self._run(now)

    def update_target(self, value: object, now: datetime) -> list[Message]:
        target = as_number(value)
        if target is None:
            logger.warning("%s: rejected non-numeric target %r", self.name, value)
            return []

        self.state.target = target
        logger.debug("%s: target updated to %s", self.name, target)
        if self.state.reading is None or self.state.open_loop:
            return []
        return self._run(now)

    def poll(self, now: datetime) -> list[Message]:
        if not self.watchdog.expired(now):
            return []
        return self._trip(now)

    def _trip(self, now: datetime) -> list[Message]:
        self.state.open_loop = True
        timeout = self.config.watchdog_timeout_seconds
        logger.warning("%s: no sensor feedback for %ss, entering open-loop mode", self.name, timeout)
        return [
            self._actuators(False, False),
            self.status.force({
                "state": OPEN_LOOP,
                "severity": self.config.watchdog_severity,
                "message": f"No sensor feedback for {timeout:g}s",
                "timestamp": now.isoformat(),
            }),
        ]

    def _run(self, now: datetime) -> list[Message]:
        if self.watchdog.expired(now):
            # deadline passed without a poll; the reading is stale
            return self._trip(now)
        cmd = self.evaluate(self.state.reading, self.state.target)
        out = [self._actuators(cmd.low, cmd.high)]
        status = self.status.report({
            "state": self._label(cmd.state),
            "target": self.state.target,
            "reading": self.state.reading,
            "deadband": self.config.deadband,
            "safetyOverride": cmd.override,
            "timestamp": now.isoformat(),
        })
        if status is not None:
            logger.info("%s: %s (reading=%s target=%s)", self.name, status.payload["state"],
                        self.state.reading, self.state.target)
            out.append(status)
        return out

    def _label(self, mode: str) -> str:
        if mode == DRIVE_LOW:
            return self.pair.low_label
        if mode == DRIVE_HIGH:
            return self.pair.high_label
        return mode

    def _actuators(self, low: bool, high: bool) -> Message:
        return Message("actuators", {
            self.pair.low_key: "on" if low else "off",
            self.pair.high_key: "on" if high else "off",
        })
