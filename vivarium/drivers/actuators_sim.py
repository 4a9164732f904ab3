from __future__ import annotations
import logging
from typing import Union

logger = logging.getLogger(__name__)


class SimulatedActuatorBank:
    """In-memory outputs keyed by actuator name ("heater", "lighting", ...)."""

    def __init__(self) -> None:
        self._outputs: dict[str, Union[str, float]] = {}

    def snapshot(self) -> dict[str, Union[str, float]]:
        return dict(self._outputs)

    async def get_outputs(self) -> dict[str, Union[str, float]]:
        return self.snapshot()

    async def set_output(self, key: str, value: Union[str, float], reason: str) -> None:
        if self._outputs.get(key) == value:
            return
        self._outputs[key] = value
        logger.info("ACTUATOR %s=%s reason=%s", key, value, reason)
