from __future__ import annotations

from abc import ABC, abstractmethod


class Sensor(ABC):
    """Domain-facing sensor abstraction for one measured quantity."""

    @property
    @abstractmethod
    def sensor_id(self) -> str:
        ...

    @property
    @abstractmethod
    def quantity(self) -> str:
        """Controlled quantity this sensor feeds, e.g. "temperature"."""
        ...

    @property
    def unit(self) -> str:
        return ""

    @abstractmethod
    def read(self) -> float:
        """Return a scalar reading. Raise on failure."""
        ...
