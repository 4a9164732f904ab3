from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .core.config import Settings, settings
from .core.log import configure_logging
from .core.timeutil import local_tz

from .api.routes import router as api_router
import vivarium.api.routes as routes_module

from .domain.deadband import DeadbandController
from .domain.interfaces import ActuatorBank, Controller
from .domain.lighting import ShapingController
from .domain.models import (
    HUMIDITY_PAIR,
    TEMPERATURE_PAIR,
    ControllerConfig,
    LightingConfig,
    ProportionalConfig,
    PulseConfig,
    RhythmConfig,
    parse_utc_offset,
)
from .domain.precipitation import PulseController
from .domain.proportional import ProportionalController
from .domain.rhythm import RhythmGenerator
from .domain.schedule import parse_hhmm
from .drivers.actuator_rs485 import RS485RelayBank
from .drivers.actuator_sonoff import SonoffActuatorBank, SonoffRelay
from .drivers.actuators_sim import SimulatedActuatorBank
from .drivers.rs485_modbus import RS485ModbusRTU, ModbusRtuConfig
from .sensors.base import Sensor
from .sensors.rs485_climate_sensor import RegisterSpec, RS485ClimateSensor
from .sensors.simulated import PlantModel, SimulatedSensor
from .services.control_loop import ControlLoopService
from .storage.sqlite_repo import SQLiteRepository


logger = logging.getLogger(__name__)

RHYTHM_CHANNELS = ("temperature", "humidity", "lighting")

rs485_driver: RS485ModbusRTU | None = None
sim_sensors: dict[str, SimulatedSensor] = {}


def _rs485(cfg: Settings) -> RS485ModbusRTU:
    global rs485_driver
    if rs485_driver is None:
        rs485_driver = RS485ModbusRTU(ModbusRtuConfig(port=cfg.rs485_port, baudrate=cfg.rs485_baudrate))
    return rs485_driver


def build_rhythm_config(cfg: Settings, channel: str) -> RhythmConfig:
    return RhythmConfig(
        latitude=cfg.latitude,
        longitude=cfg.longitude,
        timezone_offset_hours=parse_utc_offset(cfg.location_timezone),
        axial_tilt=cfg.axial_tilt,
        orbital_period_days=cfg.orbital_period_days,
        rotational_period_hours=cfg.rotational_period_hours,
        time_scale=cfg.time_scale,
        phase_shift=getattr(cfg, f"{channel}_phase_shift"),
        diurnal_swing=getattr(cfg, f"{channel}_diurnal_swing"),
        seasonal_swing=getattr(cfg, f"{channel}_seasonal_swing"),
        tick_interval_seconds=cfg.rhythm_tick_seconds,
        decimals=cfg.rhythm_decimals,
    )


def build_rhythms(cfg: Settings) -> dict[str, RhythmGenerator]:
    rhythms = {}
    for channel in RHYTHM_CHANNELS:
        gen = RhythmGenerator(build_rhythm_config(cfg, channel), name=f"{channel}_rhythm")
        # Configured bounds are applied before start(); None waits for the API
        gen.bounds.absolute_min = getattr(cfg, f"{channel}_min")
        gen.bounds.absolute_max = getattr(cfg, f"{channel}_max")
        rhythms[channel] = gen
    return rhythms


def build_controllers(cfg: Settings) -> dict[str, Controller]:
    edge = not cfg.legacy_status_every_evaluation
    controllers: dict[str, Controller] = {}

    if cfg.temperature_control_mode == "proportional":
        controllers["temperature"] = ProportionalController(
            ProportionalConfig(
                proportional_gain=cfg.temperature_kp,
                watchdog_timeout_seconds=cfg.watchdog_timeout_seconds,
                watchdog_severity=cfg.watchdog_severity,
            ),
            TEMPERATURE_PAIR,
        )
    else:
        controllers["temperature"] = DeadbandController(
            ControllerConfig(
                deadband=cfg.temperature_deadband,
                minimum_limit=cfg.temperature_minimum_limit,
                maximum_limit=cfg.temperature_maximum_limit,
                watchdog_timeout_seconds=cfg.watchdog_timeout_seconds,
                watchdog_severity=cfg.watchdog_severity,
            ),
            TEMPERATURE_PAIR,
            edge_triggered=edge,
        )

    controllers["humidity"] = DeadbandController(
        ControllerConfig(
            deadband=cfg.humidity_deadband,
            minimum_limit=cfg.humidity_minimum_limit,
            maximum_limit=cfg.humidity_maximum_limit,
            watchdog_timeout_seconds=cfg.watchdog_timeout_seconds,
            watchdog_severity=cfg.watchdog_severity,
        ),
        HUMIDITY_PAIR,
        edge_triggered=edge,
    )

    scheduled = cfg.lighting_schedule_mode != "none"
    controllers["lighting"] = ShapingController(
        LightingConfig(
            gain=cfg.lighting_gain,
            bottom_cutoff=cfg.lighting_bottom_cutoff,
            mode=cfg.lighting_mode,
            schedule_time1=parse_hhmm(cfg.lighting_schedule_time1) if scheduled else None,
            schedule_time2=parse_hhmm(cfg.lighting_schedule_time2) if scheduled else None,
            schedule_mode=cfg.lighting_schedule_mode,
        ),
        tz=local_tz(),
    )

    if cfg.precipitation_enabled:
        controllers["precipitation"] = PulseController(
            PulseConfig(
                interval_seconds=cfg.precipitation_interval_minutes * 60,
                duration_seconds=cfg.precipitation_duration_seconds,
                tick_interval_seconds=cfg.precipitation_tick_seconds,
                night_disable=cfg.precipitation_night_disable,
            )
        )
    return controllers


def build_actuators(cfg: Settings) -> ActuatorBank:
    mode = cfg.actuator_mode.lower()
    if mode == "sonoff":
        relays = {key: SonoffRelay.parse(spec) for key, spec in cfg.sonoff_relays.items()}
        return SonoffActuatorBank(relays, timeout=cfg.sonoff_timeout_seconds)
    if mode == "rs485":
        return RS485RelayBank(_rs485(cfg), cfg.relay_coils, slave_id=cfg.relay_slave_id)
    return SimulatedActuatorBank()


def build_sensors(cfg: Settings, actuators: ActuatorBank) -> list[Sensor]:
    if cfg.sensor_mode.lower() == "rs485":
        driver = _rs485(cfg)
        return [
            RS485ClimateSensor(
                driver, "temperature",
                RegisterSpec(functioncode=cfg.sensor_functioncode, address=cfg.temperature_register, scale=cfg.temperature_scale),
                slave_id=cfg.rs485_slave_id, unit="°C",
            ),
            RS485ClimateSensor(
                driver, "humidity",
                RegisterSpec(functioncode=cfg.sensor_functioncode, address=cfg.humidity_register,
                             scale=cfg.humidity_scale, signed=False),
                slave_id=cfg.rs485_slave_id, unit="%",
            ),
        ]

    # default to sim
    temperature = SimulatedSensor("temperature", unit="°C", manual_value=24.0)
    humidity = SimulatedSensor("humidity", unit="%", manual_value=75.0)
    if isinstance(actuators, SimulatedActuatorBank):
        # close the loop: simulated enclosure reacts to its own actuators
        temperature.set_plant(PlantModel("heater", "cooler", 0.01, ambient=20.0), actuators.snapshot)
        humidity.set_plant(PlantModel("humidifier", "dehumidifier", 0.05, ambient=60.0), actuators.snapshot)
    sim_sensors.update({"temperature": temperature, "humidity": humidity})
    return [temperature, humidity]


# --- Singletons ---
actuators = build_actuators(settings)
sensors = build_sensors(settings, actuators)
repo = SQLiteRepository(settings.sqlite_path)
service: ControlLoopService | None = None


def get_service() -> ControlLoopService:
    assert service is not None
    return service


def get_repo() -> SQLiteRepository:
    return repo


def get_sim_sensors() -> dict[str, SimulatedSensor]:
    return sim_sensors


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (mode=%s)", settings.app_name, settings.mode)

    await repo.init()

    global service
    service = ControlLoopService(
        sensors=sensors,
        actuators=actuators,
        repo=repo,
        rhythms=build_rhythms(settings),
        controllers=build_controllers(settings),
        loop_seconds=settings.loop_seconds,
        sample_seconds=settings.sample_seconds,
        night_from_lighting=settings.night_from_lighting,
        mode=settings.mode,
    )
    await service.start()

    try:
        yield
    finally:
        # stop() drives every actuator off before releasing timers
        if service:
            await service.stop()

        if rs485_driver is not None:
            rs485_driver.close()

        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_service] = get_service
app.dependency_overrides[routes_module.get_repo] = get_repo
app.dependency_overrides[routes_module.get_sim_sensors] = get_sim_sensors

app.include_router(api_router, prefix="/api")
