from __future__ import annotations
from pydantic import BaseModel, Field, model_validator
from typing import Optional, Literal


class BoundsRequest(BaseModel):
    absolute_min: Optional[float] = None
    absolute_max: Optional[float] = None

    @model_validator(mode="after")
    def _at_least_one(self) -> "BoundsRequest":
        if self.absolute_min is None and self.absolute_max is None:
            raise ValueError("absolute_min or absolute_max is required")
        return self


class NightRequest(BaseModel):
    night: bool


class PulseTimingRequest(BaseModel):
    interval_s: Optional[float] = Field(default=None, gt=0)
    duration_s: Optional[float] = Field(default=None, gt=0)


class SimManualRequest(BaseModel):
    value: float


class SimPatternRequest(BaseModel):
    type: Literal["sine", "step", "ramp", "random"]
    baseline: float = 25.0
    amplitude: float = 3.0
    period_s: float = Field(default=600, gt=0)
    noise: float = Field(default=0.1, ge=0)
    step_low: float = 22.0
    step_high: float = 28.0
    step_period_s: float = Field(default=120, gt=0)
    ramp_min: float = 20.0
    ramp_max: float = 30.0
    ramp_period_s: float = Field(default=600, gt=0)
