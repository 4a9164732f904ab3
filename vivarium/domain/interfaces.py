from __future__ import annotations
from datetime import datetime
from typing import Protocol, Union, runtime_checkable
from .models import ActionEvent, Message, Reading, StatusEvent


OutputValue = Union[str, float]


@runtime_checkable
class Controller(Protocol):
    name: str

    def start(self, now: datetime) -> list[Message]:
        ...

    def handle(self, msg: Message, now: datetime) -> list[Message]:
        ...

    def poll(self, now: datetime) -> list[Message]:
        ...

    def close(self, now: datetime) -> list[Message]:
        ...


@runtime_checkable
class ActuatorBank(Protocol):
    async def get_outputs(self) -> dict[str, OutputValue]:
        ...

    async def set_output(self, key: str, value: OutputValue, reason: str) -> None:
        ...


@runtime_checkable
class Repository(Protocol):
    async def init(self) -> None:
        ...

    async def insert_reading(self, reading: Reading) -> None:
        ...

    async def insert_action(self, action: ActionEvent) -> None:
        ...

    async def insert_status(self, event: StatusEvent) -> None:
        ...

    async def query_readings(self, start_ts: str, end_ts: str, limit: int) -> list[Reading]:
        ...

    async def query_actions(self, start_ts: str, end_ts: str, limit: int) -> list[ActionEvent]:
        ...

    async def query_status(self, start_ts: str, end_ts: str, limit: int) -> list[StatusEvent]:
        ...
