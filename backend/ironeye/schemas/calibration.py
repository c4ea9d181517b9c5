"""Calibration schemas."""

from typing import Optional
from pydantic import BaseModel, Field, model_validator

from ironeye.config import INCHES_TO_METERS


class CalibrationRequest(BaseModel):
    """Height entered by the user. Exactly one unit must be given."""
    height_m: Optional[float] = Field(default=None, gt=0, le=3.0)
    height_inches: Optional[float] = Field(default=None, gt=0, le=120.0)

    @model_validator(mode="after")
    def check_one_unit(self) -> "CalibrationRequest":
        if (self.height_m is None) == (self.height_inches is None):
            raise ValueError("Provide exactly one of height_m or height_inches")
        return self

    @property
    def meters(self) -> float:
        if self.height_m is not None:
            return self.height_m
        return self.height_inches * INCHES_TO_METERS


class CalibrationResponse(BaseModel):
    """Outcome of a calibration attempt."""
    accepted: bool
    units_per_meter: Optional[float] = None
    quality: str = "none"
    message: Optional[str] = None
