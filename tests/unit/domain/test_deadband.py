# tests/unit/domain/test_deadband.py
"""Tests for DeadbandController - the shared temperature/humidity engine.

Tests:
- Dual deadband state machine with ride-to-target dwell
- Safety limit overrides
- Watchdog trip into open-loop mode and recovery
- Edge-triggered versus every-evaluation status
- Input validation and shutdown
"""

from datetime import timedelta

import pytest

from vivarium.domain.deadband import DeadbandController
from vivarium.domain.models import (
    DRIVE_HIGH,
    DRIVE_LOW,
    HUMIDITY_PAIR,
    IDLE,
    OPEN_LOOP,
    TEMPERATURE_PAIR,
    ActuatorCommand,
    ControllerConfig,
    Message,
)


def _topics(messages):
    return [m.topic for m in messages]


def _actuators(messages):
    return next(m.payload for m in messages if m.topic == "actuators")


def _status(messages):
    return next((m.payload for m in messages if m.topic == "status"), None)


@pytest.fixture
def controller(scenario_config):
    return DeadbandController(scenario_config, TEMPERATURE_PAIR)


# ================================================================
# STATE MACHINE
# ================================================================
def test_scenario_sequence(controller):
    states = [controller.evaluate(r, 25.0).state for r in [24, 23.5, 23, 25.5, 26]]
    assert states == [IDLE, DRIVE_LOW, DRIVE_LOW, IDLE, IDLE]


def test_rides_low_until_target_is_reached(controller):
    assert controller.evaluate(23.0, 25.0).state == DRIVE_LOW
    # back inside the deadband but still below target
    assert controller.evaluate(24.5, 25.0).state == DRIVE_LOW
    assert controller.evaluate(24.99, 25.0).state == DRIVE_LOW
    assert controller.evaluate(25.0, 25.0).state == IDLE


def test_rides_high_until_target_is_reached(controller):
    assert controller.evaluate(27.0, 25.0).state == DRIVE_HIGH
    assert controller.evaluate(25.5, 25.0).state == DRIVE_HIGH
    assert controller.evaluate(25.0, 25.0).state == IDLE


def test_inside_deadband_from_idle_stays_idle(controller):
    assert controller.evaluate(24.2, 25.0).state == IDLE
    assert controller.evaluate(25.8, 25.0).state == IDLE


def test_driving_low_switches_directly_to_high_when_overshooting(controller):
    controller.evaluate(23.0, 25.0)
    assert controller.evaluate(26.5, 25.0).state == DRIVE_HIGH


def test_command_outputs_follow_mode(controller):
    assert controller.evaluate(23.0, 25.0) == ActuatorCommand(True, False, DRIVE_LOW)
    assert controller.evaluate(27.0, 25.0) == ActuatorCommand(False, True, DRIVE_HIGH)


# ================================================================
# SAFETY OVERRIDES
# ================================================================
@pytest.mark.parametrize("target", [None, 4.0, 25.0, 60.0])
def test_minimum_limit_always_drives_low(controller, target):
    controller.evaluate(40.0, 25.0)  # prior state driving high
    cmd = controller.evaluate(5.0, target)
    assert cmd == ActuatorCommand(True, False, DRIVE_LOW, "minimum temperature")
    assert controller.state.safety_override == "min"
    assert controller.state.mode == DRIVE_LOW


@pytest.mark.parametrize("target", [None, 25.0, 70.0])
def test_maximum_limit_always_drives_high(controller, target):
    cmd = controller.evaluate(60.0, target)
    assert cmd == ActuatorCommand(False, True, DRIVE_HIGH, "maximum temperature")
    assert controller.state.safety_override == "max"


def test_override_clears_back_inside_limits(controller):
    controller.evaluate(5.0, 25.0)
    cmd = controller.evaluate(25.0, 25.0)
    assert cmd.state == IDLE
    assert cmd.override is None
    assert controller.state.safety_override is None


def test_reading_without_target_is_idle(controller):
    assert controller.evaluate(30.0, None).state == IDLE


# ================================================================
# MESSAGES AND STATUS
# ================================================================
def test_sensor_update_emits_actuators_and_status(controller, t0):
    controller.update_target(25.0, t0)
    out = controller.handle(Message("sensor", 23.0), t0)

    assert _topics(out) == ["actuators", "status"]
    assert _actuators(out) == {"heater": "on", "cooler": "off"}
    status = _status(out)
    assert status["state"] == "heating"
    assert status["target"] == 25.0
    assert status["reading"] == 23.0
    assert status["deadband"] == 1.0
    assert status["safetyOverride"] is None
    assert status["timestamp"] == t0.isoformat()


def test_status_is_edge_triggered(controller, t0):
    controller.update_target(25.0, t0)
    controller.update_reading(23.0, t0)
    out = controller.update_reading(23.5, t0 + timedelta(seconds=10))
    assert _topics(out) == ["actuators"]

    out = controller.update_reading(25.5, t0 + timedelta(seconds=20))
    assert _status(out)["state"] == IDLE


def test_legacy_mode_emits_status_every_evaluation(scenario_config, t0):
    ctrl = DeadbandController(scenario_config, TEMPERATURE_PAIR, edge_triggered=False)
    ctrl.update_target(25.0, t0)
    ctrl.update_reading(23.0, t0)
    out = ctrl.update_reading(23.5, t0)
    assert _topics(out) == ["actuators", "status"]


def test_safety_override_is_reported(controller, t0):
    controller.update_target(25.0, t0)
    out = controller.update_reading(55.0, t0)
    assert _actuators(out) == {"heater": "off", "cooler": "on"}
    assert _status(out)["safetyOverride"] == "maximum temperature"


def test_humidity_pair_names_outputs(scenario_config, t0):
    ctrl = DeadbandController(scenario_config, HUMIDITY_PAIR)
    assert ctrl.name == "humidity_controller"
    ctrl.update_target(30.0, t0)
    out = ctrl.update_reading(20.0, t0)
    assert _actuators(out) == {"humidifier": "on", "dehumidifier": "off"}
    assert _status(out)["state"] == "humidifying"


def test_target_update_runs_loop_only_with_a_reading(controller, t0):
    assert controller.update_target(25.0, t0) == []
    controller.update_reading(25.0, t0)
    out = controller.handle(Message("target", 30.0), t0)
    assert _actuators(out) == {"heater": "on", "cooler": "off"}


@pytest.mark.parametrize("payload", ["23", None, True, float("inf"), {"value": 1}])
def test_malformed_inputs_leave_state_untouched(controller, t0, payload):
    controller.start(t0)
    controller.update_target(25.0, t0)
    controller.update_reading(23.0, t0)
    deadline = controller.watchdog.deadline

    later = t0 + timedelta(seconds=30)
    assert controller.handle(Message("sensor", payload), later) == []
    assert controller.handle(Message("target", payload), later) == []
    assert controller.state.reading == 23.0
    assert controller.state.target == 25.0
    assert controller.state.mode == DRIVE_LOW
    # the watchdog keeps counting from the last good reading
    assert controller.watchdog.deadline == deadline


def test_unknown_topic_is_ignored(controller, t0):
    assert controller.handle(Message("absoluteMin", 10), t0) == []


# ================================================================
# WATCHDOG
# ================================================================
def test_watchdog_trips_once_after_timeout(controller, t0):
    controller.start(t0)
    controller.update_target(25.0, t0)
    controller.update_reading(23.0, t0)

    assert controller.poll(t0 + timedelta(seconds=59)) == []

    tripped = controller.poll(t0 + timedelta(seconds=61))
    assert _topics(tripped) == ["actuators", "status"]
    assert _actuators(tripped) == {"heater": "off", "cooler": "off"}
    status = _status(tripped)
    assert status["state"] == OPEN_LOOP
    assert status["severity"] == "warning"
    assert "60" in status["message"]
    assert controller.state.open_loop

    # exactly one trip
    assert controller.poll(t0 + timedelta(seconds=62)) == []
    assert controller.poll(t0 + timedelta(seconds=600)) == []


def test_watchdog_trips_when_no_reading_ever_arrives(controller, t0):
    controller.start(t0)
    tripped = controller.poll(t0 + timedelta(seconds=60))
    assert _status(tripped)["state"] == OPEN_LOOP


def test_target_after_deadline_trips_instead_of_driving(controller, t0):
    controller.start(t0)
    controller.update_reading(23.0, t0)

    out = controller.update_target(25.0, t0 + timedelta(seconds=61))
    assert _actuators(out) == {"heater": "off", "cooler": "off"}
    assert _status(out)["state"] == OPEN_LOOP
    assert controller.state.open_loop
    # the trip already happened; polling does not repeat it
    assert controller.poll(t0 + timedelta(seconds=62)) == []


def test_open_loop_short_circuits_evaluation(controller, t0):
    controller.start(t0)
    controller.update_target(25.0, t0)
    controller.update_reading(5.0, t0)
    controller.poll(t0 + timedelta(seconds=61))

    assert controller.evaluate(5.0, 25.0) == ActuatorCommand(False, False, OPEN_LOOP)
    assert controller.update_target(30.0, t0 + timedelta(seconds=70)) == []


def test_next_reading_restores_feedback(controller, t0):
    controller.start(t0)
    controller.update_target(25.0, t0)
    controller.update_reading(23.0, t0)
    controller.poll(t0 + timedelta(seconds=61))

    restored_at = t0 + timedelta(seconds=80)
    out = controller.update_reading(23.0, restored_at)
    assert not controller.state.open_loop
    assert _actuators(out) == {"heater": "on", "cooler": "off"}
    assert _status(out)["state"] == "heating"
    assert controller.watchdog.deadline == restored_at + timedelta(seconds=60)


def test_error_severity_is_configurable(t0):
    ctrl = DeadbandController(ControllerConfig(watchdog_severity="error"), TEMPERATURE_PAIR)
    ctrl.start(t0)
    assert _status(ctrl.poll(t0 + timedelta(seconds=60)))["severity"] == "error"


# ================================================================
# CONFIG AND SHUTDOWN
# ================================================================
@pytest.mark.parametrize(
    "kwargs",
    [
        {"deadband": 0},
        {"watchdog_timeout_seconds": 0},
        {"watchdog_severity": "fatal"},
        {"minimum_limit": 50, "maximum_limit": 10},
    ],
)
def test_invalid_controller_config_is_rejected(kwargs):
    with pytest.raises(ValueError):
        ControllerConfig(**kwargs)


def test_close_forces_outputs_off_and_disarms_watchdog(controller, t0):
    controller.start(t0)
    controller.update_target(25.0, t0)
    controller.update_reading(23.0, t0)

    out = controller.close(t0)
    assert out == [Message("actuators", {"heater": "off", "cooler": "off"})]
    assert not controller.watchdog.armed
    assert controller.poll(t0 + timedelta(hours=1)) == []
