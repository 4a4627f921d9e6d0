from pydantic import BaseModel, Field

from candle_digitizer import config


class ContourParams(BaseModel):
    min_area: float = config.MIN_CONTOUR_AREA
    # Fraction of the image area; resolved against the image at detection time
    max_area_ratio: float = Field(default=config.MAX_CONTOUR_AREA_RATIO, gt=0.0, le=1.0)
    aspect_ratio_min: float = config.ASPECT_RATIO_MIN
    aspect_ratio_max: float = config.ASPECT_RATIO_MAX
    min_points: int = config.MIN_CONTOUR_POINTS


class KMeansParams(BaseModel):
    k: int = Field(default=config.KMEANS_K, ge=0)
    max_iterations: int = Field(default=config.KMEANS_MAX_ITERATIONS, ge=1)
    tolerance: float = config.KMEANS_TOLERANCE
    seed: int = config.KMEANS_SEED
    sample_bin_size: int = Field(default=config.KMEANS_SAMPLE_BIN_SIZE, ge=1)


class HistogramParams(BaseModel):
    bin_size: int = Field(default=config.HISTOGRAM_BIN_SIZE, ge=1)
    min_frequency: float = Field(default=config.HISTOGRAM_MIN_FREQUENCY, ge=0.0, le=1.0)
