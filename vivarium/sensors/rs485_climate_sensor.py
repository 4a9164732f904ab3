from __future__ import annotations

from dataclasses import dataclass
import logging

from .base import Sensor
from ..drivers.rs485_modbus import RS485ModbusRTU

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisterSpec:
    functioncode: int = 4   # 3=holding, 4=input
    address: int = 1
    scale: float = 0.1      # SHT20-style probes report tenths
    signed: bool = True     # temperatures below zero arrive as two's complement


class RS485ClimateSensor(Sensor):
    """One quantity (temperature or humidity) of an RS485 Modbus climate probe."""

    def __init__(
        self,
        driver: RS485ModbusRTU,
        quantity: str,
        spec: RegisterSpec,
        slave_id: int = 1,
        unit: str = "",
    ):
        self._driver = driver
        self._quantity = quantity
        self._spec = spec
        self._slave_id = slave_id
        self._unit = unit

    @property
    def sensor_id(self) -> str:
        return f"{self._quantity}_rs485_{self._slave_id}"

    @property
    def quantity(self) -> str:
        return self._quantity

    @property
    def unit(self) -> str:
        return self._unit

    def read(self) -> float:
        regs = self._driver.read_registers(self._slave_id, self._spec.functioncode, self._spec.address, 1)
        if not regs:
            raise RuntimeError("No registers returned")

        raw = regs[0]
        if self._spec.signed and raw >= 0x8000:
            raw -= 0x10000
        value = float(raw) * float(self._spec.scale)
        logger.debug("RS485 %s: raw=%d scale=%s value=%.2f", self._quantity, raw, self._spec.scale, value)
        return value
