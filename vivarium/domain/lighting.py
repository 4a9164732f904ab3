from __future__ import annotations
import logging
from datetime import datetime, time, timezone, tzinfo
from typing import Optional, Union

from .models import LightingConfig, Message, as_number
from .schedule import TimeWindow
from .status import StatusReporter

logger = logging.getLogger(__name__)

INVALID_INPUT = "invalid input"


class ShapingController:
    """Turns a 0-100 lighting target into a dimmer level or an on/off command."""

    def __init__(self, config: LightingConfig, tz: tzinfo = timezone.utc, name: str = "lighting_controller") -> None:
        self.config = config
        self.tz = tz
        self.name = name
        self.status = StatusReporter()
        self.window: Optional[TimeWindow] = None
        if config.schedule_mode != "none":
            self.window = TimeWindow(start=config.schedule_time1, end=config.schedule_time2)
        self.last_output: Optional[Union[float, str]] = None

    def start(self, now: datetime) -> list[Message]:
        return []

    def poll(self, now: datetime) -> list[Message]:
        # stateless between inputs; re-shaped on every new target
        return []

    def shape(self, value: float, wall_clock: Optional[time] = None) -> float:
        cfg = self.config

        # 1) rectify below the cut-off and rescale the remainder to 0-100
        if value < cfg.bottom_cutoff:
            v = 0.0
        elif cfg.bottom_cutoff >= 100:
            v = 100.0
        else:
            v = (value - cfg.bottom_cutoff) / (100 - cfg.bottom_cutoff) * 100

        # 2) gain, 3) clamp
        v = min(100.0, max(0.0, v * cfg.gain))

        # 4) schedule gate
        if self.window is not None and wall_clock is not None:
            inside = self.window.matches(wall_clock)
            if cfg.schedule_mode == "allowed" and not inside:
                v = 0.0
            elif cfg.schedule_mode == "guaranteed" and inside:
                v = 100.0
        return v

    def output(self, v: float) -> Union[float, str]:
        if self.config.mode == "digital":
            return "on" if v > 0 else "off"
        return round(v, 1)

    def handle(self, msg: Message, now: datetime) -> list[Message]:
        value = as_number(msg.payload)
        if value is None:
            logger.warning("%s: invalid input %r", self.name, msg.payload)
            status = self.status.report({"state": INVALID_INPUT, "timestamp": now.isoformat()})
            return [status] if status else []

        wall_clock = now.astimezone(self.tz).time()
        v = self.shape(value, wall_clock)
        out_value = self.output(v)
        self.last_output = out_value

        out = [Message("actuators", {self.config.actuator_key: out_value})]
        status = self.status.report({
            "state": "on" if v > 0 else "off",
            "input": value,
            "output": out_value,
            "timestamp": now.isoformat(),
        })
        if status is not None:
            out.append(status)
        return out

    def close(self, now: datetime) -> list[Message]:
        off = 0.0 if self.config.mode == "analog" else "off"
        return [Message("actuators", {self.config.actuator_key: off})]
