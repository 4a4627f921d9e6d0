from .candles import (
    CandleColorProfile,
    CandlePixelCoords,
    CandleRole,
    ColorCluster,
    OHLCCandle,
    TimestampAssignment,
    TimestampAssignmentResult,
)
from .chart import (
    AxisMapping,
    FallbackTimeframe,
    ManualXCalibration,
    OcrToken,
    PixelCoordinate,
    PlotAreaBounds,
    RGBColor,
    ScaleType,
    XAxisLabel,
    XLabelOptions,
    YAxisLabel,
)
from .errors import (
    CalibrationError,
    ChartDigitizerError,
    ImageAccessError,
    InsufficientDataError,
    InvalidTimeframeError,
)
from .output import (
    ErrorAnalysis,
    ExtractionOutput,
    FieldErrors,
    ProcessingError,
    ProcessingStage,
)
from .params import ContourParams, HistogramParams, KMeansParams
from .state import OcrTokens, PipelineConfig, PipelineState

__all__ = [
    "AxisMapping",
    "CalibrationError",
    "CandleColorProfile",
    "CandlePixelCoords",
    "CandleRole",
    "ChartDigitizerError",
    "ColorCluster",
    "ContourParams",
    "ErrorAnalysis",
    "ExtractionOutput",
    "FallbackTimeframe",
    "FieldErrors",
    "HistogramParams",
    "ImageAccessError",
    "InsufficientDataError",
    "InvalidTimeframeError",
    "KMeansParams",
    "ManualXCalibration",
    "OHLCCandle",
    "OcrToken",
    "OcrTokens",
    "PipelineConfig",
    "PipelineState",
    "PixelCoordinate",
    "PlotAreaBounds",
    "ProcessingError",
    "ProcessingStage",
    "RGBColor",
    "ScaleType",
    "TimestampAssignment",
    "TimestampAssignmentResult",
    "XAxisLabel",
    "XLabelOptions",
    "YAxisLabel",
]
