from __future__ import annotations
from typing import Optional

from .models import Message


class StatusReporter:
    """Status side-channel of a controller.

    In edge-triggered mode a status goes out only when its ``state`` differs
    from the last one sent. ``edge_triggered=False`` reproduces the legacy
    behaviour of emitting on every evaluation.
    """

    def __init__(self, edge_triggered: bool = True) -> None:
        self.edge_triggered = edge_triggered
        self.last_state: Optional[str] = None

    def report(self, payload: dict) -> Optional[Message]:
        state = payload.get("state")
        if self.edge_triggered and state == self.last_state:
            return None
        self.last_state = state
        return Message("status", payload)

    def force(self, payload: dict) -> Message:
        self.last_state = payload.get("state")
        return Message("status", payload)
