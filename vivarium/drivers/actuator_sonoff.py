from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SonoffRelay:
    ip: str
    port: int = 8081
    device_id: str = ""

    @classmethod
    def parse(cls, spec: str) -> "SonoffRelay":
        """Parse "ip:port/device_id" (port optional)."""
        address, _, device_id = spec.partition("/")
        ip, _, port = address.partition(":")
        return cls(ip=ip, port=int(port) if port else 8081, device_id=device_id)

    @property
    def base_url(self) -> str:
        return f"http://{self.ip}:{self.port}"


class SonoffActuatorBank:
    """Actuator bank of Sonoff BASICR3 relays in eWeLink DIY mode, one relay per actuator key.

    Relays are on/off only: an analog level switches the relay on when above zero.
    """

    def __init__(self, relays: dict[str, SonoffRelay], timeout: float = 5.0) -> None:
        self._relays = relays
        self._timeout = timeout
        self._last_known: dict[str, Union[str, float]] = {}

    async def get_outputs(self) -> dict[str, Union[str, float]]:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            for key, relay in self._relays.items():
                try:
                    resp = await client.post(
                        f"{relay.base_url}/zeroconf/info",
                        json={"deviceid": relay.device_id, "data": {}},
                    )
                    resp.raise_for_status()
                    self._last_known[key] = resp.json()["data"]["switch"]
                except Exception:
                    logger.warning(
                        "Sonoff %s get_state failed, keeping last known state: %s",
                        key,
                        self._last_known.get(key),
                        exc_info=True,
                    )
        return dict(self._last_known)

    async def set_output(self, key: str, value: Union[str, float], reason: str) -> None:
        relay = self._relays.get(key)
        if relay is None:
            logger.debug("No Sonoff relay configured for %s", key)
            return
        switch_val = _switch_value(value)
        if self._last_known.get(key) == switch_val:
            return
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    f"{relay.base_url}/zeroconf/switch",
                    json={
                        "deviceid": relay.device_id,
                        "data": {"switch": switch_val},
                    },
                )
                resp.raise_for_status()
                self._last_known[key] = switch_val
                logger.info("Sonoff %s=%s reason=%s", key, switch_val, reason)
        except Exception:
            logger.warning(
                "Sonoff set %s=%s failed, reason=%s",
                key,
                switch_val,
                reason,
                exc_info=True,
            )


def _switch_value(value: Union[str, float]) -> str:
    if isinstance(value, str):
        return "on" if value == "on" else "off"
    return "on" if value > 0 else "off"
