from __future__ import annotations
import math
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Literal, Optional


Severity = Literal["warning", "error"]
OutputMode = Literal["analog", "digital"]
ScheduleMode = Literal["none", "allowed", "guaranteed"]

IDLE = "idle"
DRIVE_LOW = "driveLow"
DRIVE_HIGH = "driveHigh"
OPEN_LOOP = "open-loop"


@dataclass(frozen=True)
class Message:
    topic: str
    payload: Any


def as_number(value: Any) -> Optional[float]:
    """Return value as a finite float, or None when it is not a usable number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def parse_utc_offset(tz: str) -> float:
    # "UTC+1", "utc-3.5"; anything else counts as UTC
    m = re.search(r"UTC([+-]?\d+(?:\.\d+)?)", tz or "", re.IGNORECASE)
    return float(m.group(1)) if m else 0.0


@dataclass(frozen=True)
class RhythmConfig:
    latitude: float = 50.98
    longitude: float = 4.32
    timezone_offset_hours: float = 1.0
    axial_tilt: float = 23.44
    orbital_period_days: float = 365.25
    rotational_period_hours: float = 24.0
    time_scale: float = 1.0
    phase_shift: float = 0.0
    diurnal_swing: float = 1.0
    seasonal_swing: float = 0.5
    tick_interval_seconds: float = 60.0
    decimals: int = 1

    def __post_init__(self) -> None:
        if self.diurnal_swing < 0 or self.seasonal_swing < 0:
            raise ValueError("swings must be >= 0")
        if self.decimals < 0:
            raise ValueError("decimals must be >= 0")
        if self.orbital_period_days <= 0 or self.rotational_period_hours <= 0:
            raise ValueError("orbital and rotational periods must be > 0")
        if self.time_scale <= 0:
            raise ValueError("time_scale must be > 0")
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be > 0")


@dataclass
class RhythmBounds:
    absolute_min: Optional[float] = None
    absolute_max: Optional[float] = None

    @property
    def complete(self) -> bool:
        return self.absolute_min is not None and self.absolute_max is not None


@dataclass(frozen=True)
class TargetEmission:
    target: float
    simulated_time: datetime


@dataclass(frozen=True)
class ControllerConfig:
    deadband: float = 1.0
    minimum_limit: float = 0.0
    maximum_limit: float = 100.0
    watchdog_timeout_seconds: float = 60.0
    watchdog_severity: Severity = "warning"

    def __post_init__(self) -> None:
        if self.deadband <= 0:
            raise ValueError("deadband must be > 0")
        if self.watchdog_timeout_seconds <= 0:
            raise ValueError("watchdog_timeout_seconds must be > 0")
        if self.watchdog_severity not in ("warning", "error"):
            raise ValueError(f"Unsupported watchdog severity: {self.watchdog_severity}")
        if self.minimum_limit > self.maximum_limit:
            raise ValueError("minimum_limit must not exceed maximum_limit")

    @property
    def watchdog_timeout(self) -> timedelta:
        return timedelta(seconds=self.watchdog_timeout_seconds)


@dataclass(frozen=True)
class ActuatorPair:
    """Names one controlled quantity and the two actuators that push it down/up."""

    quantity: str
    low_key: str
    high_key: str
    low_label: str
    high_label: str


TEMPERATURE_PAIR = ActuatorPair("temperature", "heater", "cooler", "heating", "cooling")
HUMIDITY_PAIR = ActuatorPair("humidity", "humidifier", "dehumidifier", "humidifying", "dehumidifying")


@dataclass(frozen=True)
class ActuatorCommand:
    low: bool
    high: bool
    state: str
    override: Optional[str] = None


@dataclass(frozen=True)
class LightingConfig:
    gain: float = 1.0
    bottom_cutoff: float = 0.0
    mode: OutputMode = "analog"
    schedule_time1: Optional[time] = None
    schedule_time2: Optional[time] = None
    schedule_mode: ScheduleMode = "none"
    actuator_key: str = "lighting"

    def __post_init__(self) -> None:
        if self.mode not in ("analog", "digital"):
            raise ValueError(f"Unsupported lighting mode: {self.mode}")
        if self.schedule_mode not in ("none", "allowed", "guaranteed"):
            raise ValueError(f"Unsupported schedule mode: {self.schedule_mode}")
        if self.schedule_mode != "none" and (self.schedule_time1 is None or self.schedule_time2 is None):
            raise ValueError("schedule_mode requires schedule_time1 and schedule_time2")
        if self.schedule_mode != "none" and self.schedule_time1 == self.schedule_time2:
            raise ValueError("schedule_time1 and schedule_time2 must differ")
        if not 0 <= self.bottom_cutoff <= 100:
            raise ValueError("bottom_cutoff must be within [0, 100]")
        if self.gain < 0:
            raise ValueError("gain must be >= 0")


@dataclass(frozen=True)
class PulseConfig:
    interval_seconds: float = 3600.0
    duration_seconds: float = 30.0
    tick_interval_seconds: float = 60.0
    night_disable: bool = False
    actuator_key: str = "pump"

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0 or self.duration_seconds <= 0:
            raise ValueError("interval_seconds and duration_seconds must be > 0")
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be > 0")


@dataclass(frozen=True)
class ProportionalConfig:
    proportional_gain: float = 10.0
    watchdog_timeout_seconds: float = 60.0
    watchdog_severity: Severity = "error"

    def __post_init__(self) -> None:
        if self.watchdog_timeout_seconds <= 0:
            raise ValueError("watchdog_timeout_seconds must be > 0")
        if self.watchdog_severity not in ("warning", "error"):
            raise ValueError(f"Unsupported watchdog severity: {self.watchdog_severity}")


@dataclass(frozen=True)
class Reading:
    ts_utc: datetime
    sensor_id: str
    quantity: str
    value: Optional[float]
    unit: str = ""
    ok: bool = True
    error: Optional[str] = None


@dataclass(frozen=True)
class ActionEvent:
    ts_utc: datetime
    source: str
    outputs: dict


@dataclass(frozen=True)
class StatusEvent:
    ts_utc: datetime
    source: str
    state: str
    severity: Optional[str]
    payload: dict
