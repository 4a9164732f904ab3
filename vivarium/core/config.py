from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Vivarium Climate Control"
    timezone: str = "Europe/Brussels"

    # Loop cadence
    loop_seconds: float = Field(default=1.0, gt=0)
    sample_seconds: float = Field(default=10.0, gt=0)

    # Location / rhythm
    latitude: float = 50.98
    longitude: float = 4.32
    location_timezone: str = "UTC+1"      # UTC offset used for solar noon
    axial_tilt: float = 23.44
    orbital_period_days: float = Field(default=365.25, gt=0)
    rotational_period_hours: float = Field(default=24.0, gt=0)
    time_scale: float = Field(default=1.0, gt=0)
    rhythm_tick_seconds: float = Field(default=60.0, gt=0)
    rhythm_decimals: int = Field(default=1, ge=0)

    # Per-channel rhythm: bounds (None => wait for API), swings, phase
    temperature_min: Optional[float] = 22.0
    temperature_max: Optional[float] = 28.0
    temperature_diurnal_swing: float = Field(default=1.0, ge=0)
    temperature_seasonal_swing: float = Field(default=0.5, ge=0)
    temperature_phase_shift: float = 0.0

    humidity_min: Optional[float] = 70.0
    humidity_max: Optional[float] = 90.0
    humidity_diurnal_swing: float = Field(default=1.0, ge=0)
    humidity_seasonal_swing: float = Field(default=0.5, ge=0)
    humidity_phase_shift: float = 180.0   # wetter at night

    lighting_min: Optional[float] = -60.0  # negative swing is clipped to dark by the shaper
    lighting_max: Optional[float] = 100.0
    lighting_diurnal_swing: float = Field(default=1.0, ge=0)
    lighting_seasonal_swing: float = Field(default=0.2, ge=0)
    lighting_phase_shift: float = 0.0

    # Deadband controllers
    temperature_control_mode: Literal["deadband", "proportional"] = "deadband"
    temperature_deadband: float = Field(default=0.5, gt=0)
    temperature_minimum_limit: float = 15.0
    temperature_maximum_limit: float = 35.0
    temperature_kp: float = 10.0
    humidity_deadband: float = Field(default=2.0, gt=0)
    humidity_minimum_limit: float = 40.0
    humidity_maximum_limit: float = 98.0
    watchdog_timeout_seconds: float = Field(default=60.0, gt=0)
    watchdog_severity: Literal["warning", "error"] = "warning"
    legacy_status_every_evaluation: bool = False

    # Lighting
    lighting_gain: float = Field(default=1.0, ge=0)
    lighting_bottom_cutoff: float = Field(default=0.0, ge=0, le=100)
    lighting_mode: Literal["analog", "digital"] = "analog"
    lighting_schedule_mode: Literal["none", "allowed", "guaranteed"] = "none"
    lighting_schedule_time1: str = "08:00"
    lighting_schedule_time2: str = "20:00"

    # Precipitation
    precipitation_enabled: bool = True
    precipitation_interval_minutes: float = Field(default=60.0, gt=0)
    precipitation_duration_seconds: float = Field(default=30.0, gt=0)
    precipitation_tick_seconds: float = Field(default=60.0, gt=0)
    precipitation_night_disable: bool = True
    night_from_lighting: bool = True      # lighting output 0 => night

    # Storage
    sqlite_path: str = Field(default="vivarium.db")

    # Mode: "sim" for development; "real" on the habitat
    mode: str = Field(default="sim")

    # Sensor mode: "sim" or "rs485"
    sensor_mode: str = "sim"
    # Actuator mode: "sim", "sonoff" or "rs485"
    actuator_mode: str = "sim"

    # RS485 / Modbus RTU
    rs485_port: str = "/dev/ttyUSB0"      # Windows example: "COM3"
    rs485_baudrate: int = 9600
    rs485_slave_id: int = 1
    relay_slave_id: int = 2

    # Climate sensor registers (SHT20-style RS485 probe)
    sensor_functioncode: int = 4          # 3=holding, 4=input
    temperature_register: int = 1
    temperature_scale: float = 0.1
    humidity_register: int = 2
    humidity_scale: float = 0.1

    # Relay board coils, actuator key -> coil address
    relay_coils: dict[str, int] = {
        "heater": 0, "cooler": 1, "humidifier": 2,
        "dehumidifier": 3, "lighting": 4, "pump": 5,
    }

    # Sonoff DIY relays, actuator key -> "ip:port/device_id"
    sonoff_relays: dict[str, str] = {}
    sonoff_timeout_seconds: float = 5.0



settings = Settings()
