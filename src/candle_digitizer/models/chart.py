from __future__ import annotations

import math
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

ScaleType = Literal["linear", "logarithmic"]


class PixelCoordinate(BaseModel):
    x: int
    y: int


class RGBColor(BaseModel):
    model_config = ConfigDict(frozen=True)

    r: int = Field(ge=0, le=255)
    g: int = Field(ge=0, le=255)
    b: int = Field(ge=0, le=255)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)

    @classmethod
    def from_sequence(cls, values) -> RGBColor:
        r, g, b = (int(round(float(v))) for v in values[:3])
        return cls(r=min(max(r, 0), 255), g=min(max(g, 0), 255), b=min(max(b, 0), 255))


class PlotAreaBounds(BaseModel):
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    confidence: float = Field(ge=0.0, le=1.0)
    method: Literal["automatic", "manual"]

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def fits(self, image_width: int, image_height: int) -> bool:
        return self.right <= image_width and self.bottom <= image_height


class OcrToken(BaseModel):
    """A piece of recognized axis text and the pixel row/column it sits at."""

    pixel_coordinate: int
    recognized_text: str
    confidence: float = Field(ge=0.0, le=1.0)


class YAxisLabel(BaseModel):
    pixel_y: int
    value: float
    confidence: float = Field(ge=0.0, le=1.0)


class XAxisLabel(BaseModel):
    pixel_x: int
    timestamp: str
    confidence: float = Field(ge=0.0, le=1.0)


class AxisMapping(BaseModel):
    """Monotonic pixel <-> value mapping anchored on the extreme calibration labels.

    Both directions clamp to the calibrated range: pixels outside
    [pixel_min, pixel_max] map to the boundary values and values outside the
    domain map to the boundary pixels.
    """

    model_config = ConfigDict(frozen=True)

    scale_type: ScaleType
    confidence: float = Field(ge=0.0, le=1.0)
    pixel_min: float
    pixel_max: float
    value_at_pixel_min: float
    value_at_pixel_max: float

    @model_validator(mode="after")
    def _check_anchors(self) -> AxisMapping:
        if not self.pixel_max > self.pixel_min:
            raise ValueError("pixel_max must be greater than pixel_min")
        if self.value_at_pixel_min == self.value_at_pixel_max:
            raise ValueError("anchor values must differ")
        if self.scale_type == "logarithmic" and min(
            self.value_at_pixel_min, self.value_at_pixel_max
        ) <= 0:
            raise ValueError("logarithmic mapping requires positive values")
        return self

    @computed_field
    @property
    def domain_min(self) -> float:
        return min(self.value_at_pixel_min, self.value_at_pixel_max)

    @computed_field
    @property
    def domain_max(self) -> float:
        return max(self.value_at_pixel_min, self.value_at_pixel_max)

    def _scaled(self, value: float) -> float:
        return math.log10(value) if self.scale_type == "logarithmic" else value

    def _unscaled(self, value: float) -> float:
        return 10.0**value if self.scale_type == "logarithmic" else value

    def pixel_to_value(self, pixel: float) -> float:
        p = min(max(float(pixel), self.pixel_min), self.pixel_max)
        t = (p - self.pixel_min) / (self.pixel_max - self.pixel_min)
        lo = self._scaled(self.value_at_pixel_min)
        hi = self._scaled(self.value_at_pixel_max)
        return self._unscaled(lo + t * (hi - lo))

    def value_to_pixel(self, value: float) -> float:
        v = min(max(float(value), self.domain_min), self.domain_max)
        lo = self._scaled(self.value_at_pixel_min)
        hi = self._scaled(self.value_at_pixel_max)
        t = (self._scaled(v) - lo) / (hi - lo)
        return self.pixel_min + t * (self.pixel_max - self.pixel_min)


class ManualXCalibration(BaseModel):
    first_timestamp: str
    last_timestamp: str
    pixel_first: int
    pixel_last: int


class FallbackTimeframe(BaseModel):
    timeframe: str
    first_timestamp: str
    last_timestamp: str


class XLabelOptions(BaseModel):
    """How to obtain X-axis labels when OCR yields none, and the date bare times belong to."""

    manual_calibration: ManualXCalibration | None = None
    fallback_timeframe: FallbackTimeframe | None = None
    reference_date: str | None = None
