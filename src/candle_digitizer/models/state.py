from pydantic import BaseModel

from candle_digitizer import config

from .candles import CandleColorProfile, OHLCCandle, TimestampAssignmentResult
from .chart import (
    AxisMapping,
    OcrToken,
    PixelCoordinate,
    PlotAreaBounds,
    XAxisLabel,
    XLabelOptions,
)
from .output import ExtractionOutput, ProcessingError


class PipelineConfig(BaseModel):
    # Plot area detection
    min_contour_area: float = config.MIN_CONTOUR_AREA
    max_contour_area_ratio: float = config.MAX_CONTOUR_AREA_RATIO
    aspect_ratio_min: float = config.ASPECT_RATIO_MIN
    aspect_ratio_max: float = config.ASPECT_RATIO_MAX

    # Candle colors
    kmeans_k: int = config.KMEANS_K
    kmeans_max_iterations: int = config.KMEANS_MAX_ITERATIONS
    kmeans_tolerance: float = config.KMEANS_TOLERANCE
    kmeans_seed: int = config.KMEANS_SEED
    histogram_bin_size: int = config.HISTOGRAM_BIN_SIZE
    histogram_min_frequency: float = config.HISTOGRAM_MIN_FREQUENCY
    mask_max_color_distance: float = config.MASK_MAX_COLOR_DISTANCE

    # Extraction
    max_workers: int = config.DEFAULT_MAX_WORKERS
    orient_by_color: bool = True

    min_confidence_output: float = config.MIN_CONFIDENCE_OUTPUT


class OcrTokens(BaseModel):
    y_axis: list[OcrToken] = []
    x_axis: list[OcrToken] = []


class PipelineState(BaseModel):
    image_path: str
    timeframe: str
    config: PipelineConfig = PipelineConfig()

    ocr_tokens: OcrTokens = OcrTokens()
    x_label_options: XLabelOptions = XLabelOptions()
    anchor_timestamp: str | None = None
    # top-left, top-right, bottom-left
    manual_corners: tuple[PixelCoordinate, PixelCoordinate, PixelCoordinate] | None = None
    # Optional externally produced per-pixel class map (PNG of PixelClass ids)
    segmentation_mask_path: str | None = None

    image_size: tuple[int, int] | None = None
    plot_area: PlotAreaBounds | None = None
    y_mapping: AxisMapping | None = None
    x_labels: list[XAxisLabel] | None = None
    color_profile: CandleColorProfile | None = None
    candles: list[OHLCCandle] | None = None
    timestamps: TimestampAssignmentResult | None = None

    output: ExtractionOutput | None = None

    warnings: list[str] = []
    errors: list[ProcessingError] = []
