from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from .chart import PixelCoordinate, RGBColor


class CandlePixelCoords(BaseModel):
    open: PixelCoordinate
    high: PixelCoordinate
    low: PixelCoordinate
    close: PixelCoordinate


class OHLCCandle(BaseModel):
    open: float
    high: float
    low: float
    close: float
    confidence: float = Field(ge=0.0, le=1.0)
    pixel_coords: CandlePixelCoords
    timestamp: str | None = None
    # Set only when the body color told us which way the candle moved.
    direction: Literal["up", "down"] | None = None


class TimestampAssignment(BaseModel):
    candle_index: int
    pixel_x: int
    timestamp: str
    confidence: float = Field(ge=0.0, le=1.0)
    method: Literal["ocr", "estimated"]


class TimestampAssignmentResult(BaseModel):
    assignments: list[TimestampAssignment]
    method: Literal["ocr", "estimated"]
    overall_confidence: float = Field(ge=0.0, le=1.0)
    timeframe: str
    anchor_timestamp: str | None = None


class CandleRole(str, Enum):
    BULLISH_FILL = "bullish_fill"
    BEARISH_FILL = "bearish_fill"
    BULLISH_STROKE = "bullish_stroke"
    BEARISH_STROKE = "bearish_stroke"
    WICK = "wick"
    BACKGROUND = "background"


class ColorCluster(BaseModel):
    color: RGBColor
    pixel_count: int = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0)
    role: CandleRole


class CandleColorProfile(BaseModel):
    colors: dict[CandleRole, RGBColor | None] = Field(
        default_factory=lambda: {role: None for role in CandleRole}
    )
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    clusters: list[ColorCluster] = []
    method: Literal["hybrid"] = "hybrid"

    def color_for(self, role: CandleRole) -> RGBColor | None:
        return self.colors.get(role)
