from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .models import Message, RhythmBounds, RhythmConfig, TargetEmission, as_number

logger = logging.getLogger(__name__)

EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)
SUMMER_SOLSTICE_DAY = 172
# The calendar repeats every 400 Gregorian years; keeps fast time scales inside datetime range
GREGORIAN_CYCLE = timedelta(days=146097)
AWAITING_BOUNDS = "awaiting bounds"


def simulated_time(now: datetime, time_scale: float) -> datetime:
    return EPOCH + ((now - EPOCH) * time_scale) % GREGORIAN_CYCLE


def day_of_year(dt: datetime) -> int:
    return dt.astimezone(timezone.utc).timetuple().tm_yday


def seasonal_factor(dt: datetime, cfg: RhythmConfig) -> float:
    return math.cos(2 * math.pi * (day_of_year(dt) - SUMMER_SOLSTICE_DAY) / cfg.orbital_period_days)


def hours_from_solar_noon(dt: datetime, cfg: RhythmConfig) -> float:
    utc = dt.astimezone(timezone.utc)
    hours = utc.hour + utc.minute / 60 + utc.second / 3600
    solar_noon = 12 + cfg.longitude / 15 - cfg.timezone_offset_hours
    h = hours - solar_noon
    if h > 12:
        h -= 24
    if h < -12:
        h += 24
    return h


def diurnal_factor(dt: datetime, cfg: RhythmConfig) -> float:
    angle = 2 * math.pi * hours_from_solar_noon(dt, cfg) / cfg.rotational_period_hours
    return math.cos(angle + math.radians(cfg.phase_shift))


def rhythm_target(dt: datetime, absolute_min: float, absolute_max: float, cfg: RhythmConfig) -> float:
    """Interpolate between the bounds using the weighted seasonal/diurnal cycles."""
    total = cfg.seasonal_swing + cfg.diurnal_swing
    if total == 0:
        return (absolute_min + absolute_max) / 2
    combined = (
        seasonal_factor(dt, cfg) * cfg.seasonal_swing
        + diurnal_factor(dt, cfg) * cfg.diurnal_swing
    ) / total
    factor = (combined + 1) / 2
    return absolute_min + (absolute_max - absolute_min) * factor


@dataclass
class RhythmState:
    next_tick_at: Optional[datetime] = None
    last_target: Optional[float] = None
    last_simulated_time: Optional[datetime] = None


class RhythmGenerator:
    def __init__(self, config: RhythmConfig, name: str = "rhythm") -> None:
        self.config = config
        self.name = name
        self.bounds = RhythmBounds()
        self.state = RhythmState()

    def tick(self, now: datetime) -> Optional[TargetEmission]:
        b = self.bounds
        if not b.complete:
            return None
        sim = simulated_time(now, self.config.time_scale)
        value = round(rhythm_target(sim, b.absolute_min, b.absolute_max, self.config), self.config.decimals)
        # Rounding must never push the target outside the envelope
        lo, hi = sorted((b.absolute_min, b.absolute_max))
        value = min(max(value, lo), hi)
        return TargetEmission(target=value, simulated_time=sim)

    def start(self, now: datetime) -> list[Message]:
        self._schedule_tick(now)
        if not self.bounds.complete:
            return [self._awaiting()]
        return self._emit(now)

    def close(self) -> None:
        self.state.next_tick_at = None

    def handle(self, msg: Message, now: datetime) -> list[Message]:
        if msg.topic in ("absoluteMin", "absoluteMax"):
            value = as_number(msg.payload)
            if value is None:
                logger.debug("%s: ignoring non-numeric %s=%r", self.name, msg.topic, msg.payload)
                return []
            if msg.topic == "absoluteMin":
                self.bounds.absolute_min = value
            else:
                self.bounds.absolute_max = value
            logger.info("%s: %s updated to %s", self.name, msg.topic, value)
        elif isinstance(msg.payload, dict):
            lo = as_number(msg.payload.get("min"))
            hi = as_number(msg.payload.get("max"))
            if lo is None or hi is None:
                logger.debug("%s: ignoring malformed bounds %r", self.name, msg.payload)
                return []
            self.bounds.absolute_min = lo
            self.bounds.absolute_max = hi
            logger.info("%s: bounds updated min=%s max=%s", self.name, lo, hi)
        else:
            logger.debug("%s: unsupported message topic=%r", self.name, msg.topic)
            return []

        if not self.bounds.complete:
            return [self._awaiting()]
        # A bound change restarts the tick cadence
        self._schedule_tick(now)
        return self._emit(now)

    def set_bounds(self, now: datetime, absolute_min: Any = None, absolute_max: Any = None) -> list[Message]:
        if absolute_min is not None and absolute_max is not None:
            # one emission for a combined update
            return self.handle(Message("bounds", {"min": absolute_min, "max": absolute_max}), now)
        if absolute_min is not None:
            return self.handle(Message("absoluteMin", absolute_min), now)
        if absolute_max is not None:
            return self.handle(Message("absoluteMax", absolute_max), now)
        return []

    def poll(self, now: datetime) -> list[Message]:
        due = self.state.next_tick_at
        if due is None or now < due:
            return []
        self._schedule_tick(now)
        if not self.bounds.complete:
            return []
        return self._emit(now)

    def _schedule_tick(self, now: datetime) -> None:
        self.state.next_tick_at = now + timedelta(seconds=self.config.tick_interval_seconds)

    def _awaiting(self) -> Message:
        return Message("status", {"state": AWAITING_BOUNDS})

    def _emit(self, now: datetime) -> list[Message]:
        emission = self.tick(now)
        if emission is None:
            return []
        self.state.last_target = emission.target
        self.state.last_simulated_time = emission.simulated_time
        return [
            Message("target", emission.target),
            Message("status", {
                "target": emission.target,
                "simulatedTime": emission.simulated_time.isoformat(),
                "timeScale": self.config.time_scale,
            }),
        ]
