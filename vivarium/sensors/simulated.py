from __future__ import annotations

import math
import random
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional

from .base import Sensor


@dataclass
class PatternConfig:
    type: str = "sine"     # sine|step|ramp|random
    baseline: float = 25.0
    amplitude: float = 3.0
    period_s: float = 600
    noise: float = 0.1

    step_low: float = 22.0
    step_high: float = 28.0
    step_period_s: float = 120

    ramp_min: float = 20.0
    ramp_max: float = 30.0
    ramp_period_s: float = 600


@dataclass
class PlantModel:
    """First-order response of the enclosure to its own actuators."""

    low_key: str
    high_key: str
    drive_rate_per_s: float = 0.01    # change per second while an actuator is on
    ambient: float = 20.0
    leak_per_s: float = 0.001         # fraction of the gap to ambient closed per second


class SimulatedSensor(Sensor):
    """Manual or patterned readings; disable() makes reads fail to exercise the watchdog."""

    def __init__(self, quantity: str, unit: str = "", manual_value: float = 0.0, sensor_id: str | None = None):
        self._quantity = quantity
        self._unit = unit
        self._sensor_id = sensor_id or f"{quantity}_sim"
        self._lock = Lock()
        self._enabled = True
        self._mode = "manual"   # manual|pattern|plant
        self._manual_value = float(manual_value)
        self._pattern = PatternConfig()
        self._plant: Optional[PlantModel] = None
        self._outputs: Optional[Callable[[], dict]] = None
        self._last_t: Optional[float] = None

    @property
    def sensor_id(self) -> str:
        return self._sensor_id

    @property
    def quantity(self) -> str:
        return self._quantity

    @property
    def unit(self) -> str:
        return self._unit

    def enable(self) -> None:
        with self._lock:
            self._enabled = True

    def disable(self) -> None:
        with self._lock:
            self._enabled = False

    def set_manual(self, value: float) -> None:
        with self._lock:
            self._mode = "manual"
            self._manual_value = float(value)

    def set_pattern(self, cfg: PatternConfig) -> None:
        with self._lock:
            self._mode = "pattern"
            self._pattern = cfg

    def set_plant(self, model: PlantModel, outputs: Callable[[], dict]) -> None:
        """Let the reading drift with the actuators reported by ``outputs``."""
        with self._lock:
            self._mode = "plant"
            self._plant = model
            self._outputs = outputs
            self._last_t = None

    def status(self) -> dict:
        with self._lock:
            return {
                "quantity": self._quantity,
                "enabled": self._enabled,
                "mode": self._mode,
                "manual_value": self._manual_value,
                "pattern": self._pattern.__dict__,
            }

    def read(self) -> float:
        with self._lock:
            if not self._enabled:
                raise RuntimeError(f"Simulated {self._quantity} sensor disabled")

            if self._mode == "manual":
                return float(self._manual_value)

            if self._mode == "plant":
                return self._step_plant()

            cfg = self._pattern

        t = time.time()

        if cfg.type == "sine":
            phase = (t % cfg.period_s) / cfg.period_s * 2.0 * math.pi
            v = cfg.baseline + cfg.amplitude * math.sin(phase)

        elif cfg.type == "step":
            half = cfg.step_period_s / 2.0
            v = cfg.step_high if (t % cfg.step_period_s) < half else cfg.step_low

        elif cfg.type == "ramp":
            frac = (t % cfg.ramp_period_s) / cfg.ramp_period_s
            v = cfg.ramp_min + (cfg.ramp_max - cfg.ramp_min) * frac

        elif cfg.type == "random":
            v = cfg.baseline + random.uniform(-cfg.amplitude, cfg.amplitude)

        else:
            v = cfg.baseline

        if cfg.noise > 0:
            v += random.uniform(-cfg.noise, cfg.noise)

        return float(v)

    def _step_plant(self) -> float:
        p = self._plant
        now = time.monotonic()
        dt = 0.0 if self._last_t is None else now - self._last_t
        self._last_t = now

        outputs = self._outputs() if self._outputs else {}
        drive = 0.0
        if outputs.get(p.low_key) == "on":
            drive += p.drive_rate_per_s
        if outputs.get(p.high_key) == "on":
            drive -= p.drive_rate_per_s
        leak = (p.ambient - self._manual_value) * min(1.0, p.leak_per_s * dt)
        self._manual_value += drive * dt + leak
        return float(self._manual_value)
