# tests/unit/services/test_control_loop.py
"""Tests for ControlLoopService wiring.

Drives sample()/step() directly with a manual clock; one test runs the
background task end to end.
"""

import asyncio

import pytest

from vivarium.domain.deadband import DeadbandController
from vivarium.domain.lighting import ShapingController
from vivarium.domain.models import (
    OPEN_LOOP,
    TEMPERATURE_PAIR,
    LightingConfig,
    Message,
    PulseConfig,
)
from vivarium.domain.precipitation import PulseController
from vivarium.domain.rhythm import RhythmGenerator
from vivarium.drivers.actuators_sim import SimulatedActuatorBank
from vivarium.sensors.simulated import SimulatedSensor
from vivarium.services.control_loop import ControlLoopService


class FailingActuatorBank(SimulatedActuatorBank):
    async def set_output(self, key, value, reason):
        raise ConnectionError("relay unreachable")


class RecordingActuatorBank(SimulatedActuatorBank):
    def __init__(self):
        super().__init__()
        self.writes = []

    async def set_output(self, key, value, reason):
        self.writes.append((key, value))
        await super().set_output(key, value, reason)


class SlowActuatorBank(SimulatedActuatorBank):
    """Holds "on" writes until released, like a relay behind a slow network."""

    def __init__(self):
        super().__init__()
        self.writing = asyncio.Event()
        self.release = asyncio.Event()

    async def set_output(self, key, value, reason):
        if value == "on":
            self.writing.set()
            await self.release.wait()
        await super().set_output(key, value, reason)


@pytest.fixture
def sensor():
    return SimulatedSensor("temperature", unit="°C", manual_value=23.0)


@pytest.fixture
def bank():
    return SimulatedActuatorBank()


@pytest.fixture
def rhythm(flat_rhythm):
    gen = RhythmGenerator(flat_rhythm, name="temperature_rhythm")
    gen.bounds.absolute_min = 24.0
    gen.bounds.absolute_max = 26.0
    return gen


@pytest.fixture
def service(sensor, bank, rhythm, scenario_config, fake_repo, clock):
    return ControlLoopService(
        sensors=[sensor],
        actuators=bank,
        repo=fake_repo,
        rhythms={"temperature": rhythm},
        controllers={"temperature": DeadbandController(scenario_config, TEMPERATURE_PAIR)},
        loop_seconds=0.01,
        sample_seconds=10,
        clock=clock,
    )


# ================================================================
# OPEN / SAMPLE / STEP
# ================================================================
@pytest.mark.asyncio
async def test_open_routes_rhythm_target_to_controller(service):
    await service.open()
    assert service.live.targets["temperature"] == 25.0
    assert service.controllers["temperature"].state.target == 25.0
    assert service.live.statuses["temperature_rhythm"]["target"] == 25.0
    assert service.live.statuses["temperature"]["state"] == "awaiting inputs"


@pytest.mark.asyncio
async def test_sample_drives_actuators_and_records_history(service, bank, fake_repo, clock):
    await service.open()
    await service.sample(clock())

    assert bank.snapshot() == {"heater": "on", "cooler": "off"}
    assert service.live.outputs == {"heater": "on", "cooler": "off"}
    assert fake_repo.readings[-1].value == 23.0
    assert fake_repo.actions[-1].source == "temperature"
    assert fake_repo.actions[-1].outputs == {"heater": "on", "cooler": "off"}
    assert service.live.statuses["temperature"]["state"] == "heating"


@pytest.mark.asyncio
async def test_unchanged_outputs_are_not_persisted_again(service, fake_repo, clock):
    await service.open()
    await service.sample(clock())
    await service.sample(clock.advance(10))
    assert len(fake_repo.actions) == 1


@pytest.mark.asyncio
async def test_failed_sensor_trips_watchdog(service, sensor, bank, fake_repo, clock):
    await service.open()
    await service.sample(clock())
    sensor.disable()

    now = clock.advance(61)
    await service.sample(now)
    assert fake_repo.readings[-1].ok is False
    assert "disabled" in fake_repo.readings[-1].error

    await service.step(now)
    assert bank.snapshot() == {"heater": "off", "cooler": "off"}
    assert service.live.statuses["temperature"]["state"] == OPEN_LOOP
    trips = [e for e in fake_repo.statuses if e.state == OPEN_LOOP]
    assert len(trips) == 1
    assert trips[0].severity == "warning"

    # a further step does not trip again
    await service.step(clock.advance(10))
    assert len([e for e in fake_repo.statuses if e.state == OPEN_LOOP]) == 1

    sensor.enable()
    await service.sample(clock.advance(10))
    assert bank.snapshot() == {"heater": "on", "cooler": "off"}


@pytest.mark.asyncio
async def test_step_emits_rhythm_ticks(service, clock):
    await service.open()
    await service.step(clock.advance(30))
    before = service.live.statuses["temperature_rhythm"]
    await service.step(clock.advance(30))
    assert service.live.statuses["temperature_rhythm"] is not before


# ================================================================
# EXTERNAL INPUT
# ================================================================
@pytest.mark.asyncio
async def test_set_bounds_emits_new_target(service):
    await service.open()
    await service.set_bounds("temperature", 30.0, 40.0)
    assert service.live.targets["temperature"] == 35.0


@pytest.mark.asyncio
async def test_unknown_channel_and_controller_raise(service):
    with pytest.raises(KeyError):
        await service.set_bounds("co2", 1.0, 2.0)
    with pytest.raises(KeyError):
        await service.send("co2", Message("sensor", 1.0))


@pytest.mark.asyncio
async def test_dark_lighting_pauses_precipitation(bank, fake_repo, clock):
    service = ControlLoopService(
        sensors=[],
        actuators=bank,
        repo=fake_repo,
        rhythms={},
        controllers={
            "lighting": ShapingController(LightingConfig()),
            "precipitation": PulseController(PulseConfig(night_disable=True)),
        },
        night_from_lighting=True,
        clock=clock,
    )
    await service.open()

    await service.send("lighting", Message("target", 0.0))
    assert service.live.night is True
    assert service.controllers["precipitation"].state.night is True

    await service.send("lighting", Message("target", 60.0))
    assert service.live.night is False
    assert service.controllers["precipitation"].state.night is False


@pytest.mark.asyncio
async def test_actuator_failures_do_not_break_the_loop(sensor, rhythm, scenario_config, fake_repo, clock):
    service = ControlLoopService(
        sensors=[sensor],
        actuators=FailingActuatorBank(),
        repo=fake_repo,
        rhythms={"temperature": rhythm},
        controllers={"temperature": DeadbandController(scenario_config, TEMPERATURE_PAIR)},
        clock=clock,
    )
    await service.open()
    await service.sample(clock())
    assert service.live.statuses["temperature"]["state"] == "heating"


# ================================================================
# LIFECYCLE
# ================================================================
@pytest.mark.asyncio
async def test_start_and_stop_leave_actuators_safe(service, bank):
    await service.start()
    await asyncio.sleep(0.05)
    assert bank.snapshot()["heater"] == "on"

    await service.stop()
    assert bank.snapshot() == {"heater": "off", "cooler": "off"}
    assert service.rhythms["temperature"].state.next_tick_at is None


# ================================================================
# STALE FEEDBACK
# ================================================================
@pytest.mark.asyncio
async def test_watchdog_trip_waits_for_in_flight_command(sensor, flat_rhythm, scenario_config, fake_repo, clock):
    bank = SlowActuatorBank()
    service = ControlLoopService(
        sensors=[sensor],
        actuators=bank,
        repo=fake_repo,
        rhythms={"temperature": RhythmGenerator(flat_rhythm, name="temperature_rhythm")},
        controllers={"temperature": DeadbandController(scenario_config, TEMPERATURE_PAIR)},
        clock=clock,
    )
    await service.open()
    await service.sample(clock())  # reading 23, no target yet
    sensor.disable()

    clock.advance(30)
    bounds = asyncio.create_task(service.set_bounds("temperature", 24.0, 26.0))
    await bank.writing.wait()  # "heater on" is in flight

    step = asyncio.create_task(service.step(clock.advance(31)))
    await asyncio.sleep(0)
    bank.release.set()
    await asyncio.gather(bounds, step)

    assert service.controllers["temperature"].state.open_loop
    assert bank.snapshot() == {"heater": "off", "cooler": "off"}
    assert service.live.outputs == {"heater": "off", "cooler": "off"}


@pytest.mark.asyncio
async def test_rhythm_tick_at_deadline_never_drives_stale_reading(sensor, flat_rhythm, scenario_config, fake_repo, clock):
    bank = RecordingActuatorBank()
    gen = RhythmGenerator(flat_rhythm, name="temperature_rhythm")
    gen.bounds.absolute_min = 24.0
    gen.bounds.absolute_max = 26.0
    service = ControlLoopService(
        sensors=[sensor],
        actuators=bank,
        repo=fake_repo,
        rhythms={"temperature": gen},
        controllers={"temperature": DeadbandController(scenario_config, TEMPERATURE_PAIR)},
        clock=clock,
    )
    sensor.set_manual(25.0)
    await service.open()
    await service.sample(clock())  # on target: idle
    sensor.disable()

    # the next tick would ask for 35 while the reading is already stale
    gen.bounds.absolute_min = 30.0
    gen.bounds.absolute_max = 40.0
    await service.step(clock.advance(60))

    assert ("heater", "on") not in bank.writes
    assert service.live.statuses["temperature"]["state"] == OPEN_LOOP
    assert service.live.targets["temperature"] == 35.0
