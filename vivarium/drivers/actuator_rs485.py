from __future__ import annotations

import asyncio
import logging
from typing import Union

from .rs485_modbus import RS485ModbusRTU

logger = logging.getLogger(__name__)


class RS485RelayBank:
    """Modbus RTU relay board; each actuator key maps to one coil."""

    def __init__(self, driver: RS485ModbusRTU, coils: dict[str, int], slave_id: int = 2) -> None:
        self._driver = driver
        self._coils = coils
        self._slave_id = slave_id
        self._state: dict[str, str] = {}

    async def get_outputs(self) -> dict[str, Union[str, float]]:
        return dict(self._state)

    async def set_output(self, key: str, value: Union[str, float], reason: str) -> None:
        coil = self._coils.get(key)
        if coil is None:
            logger.debug("No relay coil configured for %s", key)
            return
        on = value == "on" if isinstance(value, str) else value > 0
        switch_val = "on" if on else "off"
        if self._state.get(key) == switch_val:
            return

        # serial I/O is blocking; keep it off the event loop
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._driver.write_coil, self._slave_id, coil, on)
        except Exception:
            logger.warning("Relay %s (coil %d) set %s failed, reason=%s", key, coil, switch_val, reason, exc_info=True)
            return
        self._state[key] = switch_val
        logger.info("Relay %s=%s reason=%s", key, switch_val, reason)
