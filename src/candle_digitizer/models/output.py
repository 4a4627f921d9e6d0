from enum import Enum
from typing import Any

from pydantic import BaseModel

from .candles import CandleColorProfile, OHLCCandle, TimestampAssignmentResult
from .chart import AxisMapping, PlotAreaBounds


class ProcessingStage(str, Enum):
    INPUT = "input"
    PLOT_AREA = "plot_area"
    CALIBRATE = "calibrate"
    COLORS = "colors"
    EXTRACT = "extract"
    TIMESTAMPS = "timestamps"


class ProcessingError(BaseModel):
    stage: ProcessingStage
    error_type: str
    recoverable: bool
    message: str
    details: dict[str, Any] = {}


class FieldErrors(BaseModel):
    """Error statistics for one OHLC field, as percentages of the mean actual value."""

    mae: float = 0.0
    rmse: float = 0.0
    max_error: float = 0.0
    p50: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


class ErrorAnalysis(BaseModel):
    open: FieldErrors = FieldErrors()
    high: FieldErrors = FieldErrors()
    low: FieldErrors = FieldErrors()
    close: FieldErrors = FieldErrors()
    overall: FieldErrors = FieldErrors()
    success_rate: float = 0.0
    average_confidence: float = 0.0
    compared_candles: int = 0


class ExtractionOutput(BaseModel):
    plot_area: PlotAreaBounds
    y_mapping: AxisMapping
    candles: list[OHLCCandle]
    color_profile: CandleColorProfile | None = None
    timestamps: TimestampAssignmentResult | None = None
    warnings: list[str] = []
    confidence_score: float = 1.0
    errors: list[ProcessingError] = []
    partial_results: bool = False
