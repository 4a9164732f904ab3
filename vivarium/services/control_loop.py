from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from ..core.timeutil import now_utc
from ..domain.interfaces import ActuatorBank, Controller, Repository
from ..domain.models import ActionEvent, Message, Reading, StatusEvent
from ..domain.rhythm import RhythmGenerator
from ..sensors.base import Sensor


logger = logging.getLogger(__name__)


@dataclass
class LiveState:
    mode: str = "sim"
    readings: dict[str, Reading] = field(default_factory=dict)
    targets: dict[str, float] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    statuses: dict[str, dict] = field(default_factory=dict)
    efforts: dict[str, float] = field(default_factory=dict)
    night: Optional[bool] = None


class ControlLoopService:
    """Single driving loop of the habitat.

    Every reaction (sensor sample, rhythm tick, watchdog or pump deadline,
    API request) holds one lock from evaluation until its actuator writes
    have been applied, so reactions never interleave.
    """

    def __init__(
        self,
        sensors: list[Sensor],
        actuators: ActuatorBank,
        repo: Repository,
        rhythms: dict[str, RhythmGenerator],
        controllers: dict[str, Controller],
        loop_seconds: float = 1.0,
        sample_seconds: float = 10.0,
        night_from_lighting: bool = False,
        mode: str = "sim",
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._sensors = sensors
        self._actuators = actuators
        self._repo = repo
        self.rhythms = rhythms
        self.controllers = controllers
        self._loop_seconds = loop_seconds
        self._sample_interval = timedelta(seconds=sample_seconds)
        self._night_from_lighting = night_from_lighting
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._next_sample_at: Optional[datetime] = None

        self.live = LiveState(mode=mode)

    async def start(self) -> None:
        await self.open()
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="control_loop")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None
        await self.close()

    async def open(self) -> None:
        async with self._lock:
            now = self._clock()
            for name, ctrl in self.controllers.items():
                await self._dispatch(name, ctrl.start(now), now)
            for channel, gen in self.rhythms.items():
                await self._dispatch_rhythm(channel, gen.start(now), now)

    async def close(self) -> None:
        """Release every timer and drive all actuators to their safe state."""
        async with self._lock:
            now = self._clock()
            for gen in self.rhythms.values():
                gen.close()
            for name, ctrl in self.controllers.items():
                await self._dispatch(name, ctrl.close(now), now)
        logger.info("All controllers closed")

    async def _run(self) -> None:
        logger.info(
            "Control loop started (loop_seconds=%s sample_seconds=%s)",
            self._loop_seconds,
            self._sample_interval.total_seconds(),
        )

        while not self._stop.is_set():
            try:
                now = self._clock()
                if self._next_sample_at is None or now >= self._next_sample_at:
                    self._next_sample_at = now + self._sample_interval
                    await self.sample(now)
                await self.step(self._clock())
            except Exception as e:
                logger.exception("Control loop error: %s", e)

            # sleep with cancellation awareness
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._loop_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Control loop stopped")

    async def sample(self, now: datetime) -> None:
        loop = asyncio.get_running_loop()
        for sensor in self._sensors:
            try:
                # sync driver call, run in thread to avoid blocking the loop
                value = await loop.run_in_executor(None, sensor.read)
                reading = Reading(
                    ts_utc=now, sensor_id=sensor.sensor_id, quantity=sensor.quantity,
                    value=float(value), unit=sensor.unit,
                )
                logger.debug("Sensor read OK: %s=%.2f", sensor.quantity, value)
            except Exception as e:
                # No reading reaches the controller; its watchdog keeps counting
                reading = Reading(
                    ts_utc=now, sensor_id=sensor.sensor_id, quantity=sensor.quantity,
                    value=None, unit=sensor.unit, ok=False, error=str(e),
                )
                logger.warning("Sensor read FAILED (%s): %s", sensor.sensor_id, e)

            self.live.readings[sensor.quantity] = reading
            async with self._lock:
                await self._persist(self._repo.insert_reading(reading))
                ctrl = self.controllers.get(sensor.quantity)
                if reading.ok and ctrl is not None:
                    await self._dispatch(sensor.quantity, ctrl.handle(Message("sensor", reading.value), now), now)

    async def step(self, now: datetime) -> None:
        async with self._lock:
            # watchdogs first, so a rhythm tick never evaluates a stale reading
            for name, ctrl in self.controllers.items():
                await self._dispatch(name, ctrl.poll(now), now)
            for channel, gen in self.rhythms.items():
                await self._dispatch_rhythm(channel, gen.poll(now), now)

    async def set_bounds(self, channel: str, absolute_min: Optional[float], absolute_max: Optional[float]) -> None:
        gen = self.rhythms.get(channel)
        if gen is None:
            raise KeyError(channel)
        async with self._lock:
            now = self._clock()
            await self._dispatch_rhythm(channel, gen.set_bounds(now, absolute_min, absolute_max), now)

    async def send(self, name: str, msg: Message) -> None:
        if name not in self.controllers:
            raise KeyError(name)
        async with self._lock:
            await self._send(name, msg, self._clock())

    async def _send(self, name: str, msg: Message, now: datetime) -> None:
        await self._dispatch(name, self.controllers[name].handle(msg, now), now)

    async def _dispatch_rhythm(self, channel: str, messages: list[Message], now: datetime) -> None:
        source = f"{channel}_rhythm"
        for msg in messages:
            if msg.topic == "target":
                self.live.targets[channel] = msg.payload
                ctrl = self.controllers.get(channel)
                if ctrl is not None:
                    await self._dispatch(channel, ctrl.handle(Message("target", msg.payload), now), now)
            elif msg.topic == "status":
                await self._record_status(source, msg.payload, now)

    async def _dispatch(self, source: str, messages: list[Message], now: datetime) -> None:
        for msg in messages:
            if msg.topic == "actuators":
                await self._apply(source, msg.payload, now)
            elif msg.topic == "status":
                await self._record_status(source, msg.payload, now)
            elif msg.topic == "control":
                self.live.efforts[source] = msg.payload.get("effort", 0.0)
            else:
                logger.debug("Unrouted message from %s: %s", source, msg.topic)

    async def _apply(self, source: str, outputs: dict, now: datetime) -> None:
        changed = {k: v for k, v in outputs.items() if self.live.outputs.get(k) != v}
        for key, value in outputs.items():
            try:
                await self._actuators.set_output(key, value, reason=source)
            except Exception:
                logger.exception("Actuator %s=%s failed (source=%s)", key, value, source)
        self.live.outputs.update(outputs)
        if changed:
            await self._persist(self._repo.insert_action(ActionEvent(ts_utc=now, source=source, outputs=changed)))

        if self._night_from_lighting and source == "lighting" and "precipitation" in self.controllers:
            value = next(iter(outputs.values()), None)
            night = value in (0, 0.0, "off")
            if night != self.live.night:
                self.live.night = night
                await self._send("precipitation", Message("night", night), now)

    async def _record_status(self, source: str, payload: dict, now: datetime) -> None:
        self.live.statuses[source] = payload
        state = payload.get("state")
        if state is None:
            # rhythm emissions carry a target instead of a state
            state = "target" if "target" in payload else "unknown"
        event = StatusEvent(ts_utc=now, source=source, state=state, severity=payload.get("severity"), payload=payload)
        await self._persist(self._repo.insert_status(event))

    async def _persist(self, coro) -> None:
        try:
            await coro
        except Exception as e:
            logger.exception("History write failed: %s", e)
