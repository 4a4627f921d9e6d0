"""
Candle color detection.

Finds the handful of colors a chart is drawn with (OpenCV k-means over
binned pixel colors plus a coarse RGB histogram), labels each with a candle
role by distance to reference color bands, and merges near-duplicates into a
CandleColorProfile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np
from numpy.typing import NDArray

from candle_digitizer import config
from candle_digitizer.models import (
    CandleColorProfile,
    CandleRole,
    ColorCluster,
    HistogramParams,
    ImageAccessError,
    KMeansParams,
    PipelineState,
    ProcessingError,
    ProcessingStage,
    RGBColor,
)
from candle_digitizer.utils.cv_utils import PixelBuffer, load_image
from candle_digitizer.utils.scoring import clamp_confidence, weighted_mean

logger = logging.getLogger(__name__)

# Reference color centers per role (RGB)
REFERENCE_BANDS: dict[CandleRole, tuple[tuple[int, int, int], ...]] = {
    CandleRole.BULLISH_FILL: ((0, 128, 0),),
    CandleRole.BEARISH_FILL: ((160, 0, 0),),
    CandleRole.BULLISH_STROKE: ((200, 255, 200),),
    CandleRole.BEARISH_STROKE: ((255, 200, 200),),
    CandleRole.WICK: ((0, 0, 200),),
    CandleRole.BACKGROUND: ((128, 128, 128), (255, 255, 255), (20, 20, 30)),
}


@dataclass(frozen=True)
class KMeansResult:
    centroids: NDArray[np.float64]  # (k, 3)
    assignments: NDArray[np.int64]  # cluster index per input color
    counts: NDArray[np.int64]  # pixels per cluster, all > 0


@dataclass(frozen=True)
class HistogramBin:
    color: tuple[int, int, int]
    frequency: float
    count: int


# =============================================================================
# COLOR PRIMITIVES
# =============================================================================


def color_distance(a: tuple[int, int, int] | RGBColor, b: tuple[int, int, int] | RGBColor) -> float:
    """Euclidean RGB distance."""
    ta = a.as_tuple() if isinstance(a, RGBColor) else a
    tb = b.as_tuple() if isinstance(b, RGBColor) else b
    return float(np.linalg.norm(np.subtract(ta, tb, dtype=np.float64)))


def classify_color(color: tuple[int, int, int] | RGBColor) -> tuple[CandleRole, float]:
    """
    Role of a color and how sure we are.

    Confidence falls linearly with distance to the nearest reference center,
    reaching zero at COLOR_BAND_RADIUS.
    """
    best_role = CandleRole.BACKGROUND
    best_distance = float("inf")
    for role, centers in REFERENCE_BANDS.items():
        for center in centers:
            distance = color_distance(color, center)
            if distance < best_distance:
                best_role, best_distance = role, distance
    return best_role, clamp_confidence(1.0 - best_distance / config.COLOR_BAND_RADIUS)


def extract_unique_colors(
    colors: NDArray[np.uint8],
    bin_size: int,
) -> tuple[NDArray[np.int64], NDArray[np.int64]]:
    """
    Quantize colors to bin floors and count each distinct result.

    Args:
        colors: (N, 3) RGB array
        bin_size: Quantization step per channel

    Returns:
        (unique_colors (M, 3), counts (M,)), ordered lexicographically
    """
    if len(colors) == 0:
        return np.empty((0, 3), dtype=np.int64), np.empty(0, dtype=np.int64)
    binned = (np.asarray(colors, dtype=np.int64) // bin_size) * bin_size
    unique, counts = np.unique(binned.reshape(-1, 3), axis=0, return_counts=True)
    return unique, counts.astype(np.int64)


# =============================================================================
# K-MEANS
# =============================================================================


def kmeans(
    colors: NDArray,
    k: int,
    max_iterations: int = config.KMEANS_MAX_ITERATIONS,
    tolerance: float = config.KMEANS_TOLERANCE,
    weights: NDArray | None = None,
    seed: int = config.KMEANS_SEED,
) -> KMeansResult:
    """
    Cluster RGB colors with OpenCV k-means (k-means++ seeding).

    k is capped at the number of distinct colors. Final centroids are the
    weight-averaged members of each cluster, and empty clusters are dropped,
    so every returned count is positive.

    Args:
        colors: (N, 3) colors
        k: Requested number of clusters
        max_iterations: Iteration cap
        tolerance: Stop once centroids move less than this
        weights: Pixel count per color (defaults to 1 each)
        seed: Seed for OpenCV's RNG, making the result deterministic

    Returns:
        KMeansResult; empty arrays for empty input or k <= 0
    """
    samples = np.asarray(colors, dtype=np.float32).reshape(-1, 3)
    if len(samples) == 0 or k <= 0:
        return KMeansResult(
            centroids=np.empty((0, 3)),
            assignments=np.empty(0, dtype=np.int64),
            counts=np.empty(0, dtype=np.int64),
        )
    w = np.ones(len(samples)) if weights is None else np.asarray(weights, dtype=np.float64)
    n_clusters = min(k, len(np.unique(samples, axis=0)))

    cv2.setRNGSeed(seed)
    criteria = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, max_iterations, tolerance)
    _, labels, _ = cv2.kmeans(
        samples,
        K=n_clusters,
        bestLabels=None,
        criteria=criteria,
        attempts=1,
        flags=cv2.KMEANS_PP_CENTERS,
    )
    labels = labels.reshape(-1).astype(np.int64)

    points = samples.astype(np.float64)
    keep = [c for c in range(n_clusters) if w[labels == c].sum() > 0]
    centroids = np.array(
        [np.average(points[labels == c], axis=0, weights=w[labels == c]) for c in keep],
        dtype=np.float64,
    ).reshape(-1, 3)
    counts = np.array([int(round(w[labels == c].sum())) for c in keep], dtype=np.int64)

    remap = -np.ones(n_clusters, dtype=np.int64)
    remap[keep] = np.arange(len(keep))
    return KMeansResult(centroids=centroids, assignments=remap[labels], counts=counts)


# =============================================================================
# HISTOGRAM
# =============================================================================


def analyze_histogram(
    colors: NDArray[np.uint8],
    bin_size: int = config.HISTOGRAM_BIN_SIZE,
    min_frequency: float = config.HISTOGRAM_MIN_FREQUENCY,
) -> list[HistogramBin]:
    """Binned colors whose share of all pixels exceeds min_frequency, most frequent first."""
    unique, counts = extract_unique_colors(colors, bin_size)
    total = int(counts.sum())
    if total == 0:
        return []
    bins = [
        HistogramBin(color=(int(c[0]), int(c[1]), int(c[2])), frequency=n / total, count=int(n))
        for c, n in zip(unique, counts)
        if n / total > min_frequency
    ]
    return sorted(bins, key=lambda b: (-b.count, b.color))


# =============================================================================
# PROFILE
# =============================================================================


def _cluster(color, count: int) -> ColorCluster:
    rgb = RGBColor.from_sequence(color)
    role, confidence = classify_color(rgb)
    return ColorCluster(color=rgb, pixel_count=count, confidence=confidence, role=role)


def merge_clusters(
    clusters: list[ColorCluster],
    max_distance: float = config.CLUSTER_MERGE_DISTANCE,
) -> list[ColorCluster]:
    """
    Fold clusters closer than max_distance into the largest nearby one.

    Pixel counts are summed, confidence is the maximum, and the role is the
    one carrying the most pixels among the merged clusters.
    """
    groups: list[tuple[ColorCluster, list[ColorCluster]]] = []
    for cluster in sorted(clusters, key=lambda c: (-c.pixel_count, c.color.as_tuple())):
        for lead, members in groups:
            if color_distance(lead.color, cluster.color) < max_distance:
                members.append(cluster)
                break
        else:
            groups.append((cluster, [cluster]))

    merged = []
    for lead, members in groups:
        role_pixels: dict[CandleRole, int] = {}
        for m in members:
            role_pixels[m.role] = role_pixels.get(m.role, 0) + m.pixel_count
        role = max(role_pixels, key=lambda r: (role_pixels[r], r == lead.role))
        merged.append(
            ColorCluster(
                color=lead.color,
                pixel_count=sum(m.pixel_count for m in members),
                confidence=max(m.confidence for m in members),
                role=role,
            )
        )
    return merged


def profile_confidence(clusters: list[ColorCluster]) -> float:
    """Pixel-count weighted mean of cluster confidences."""
    return weighted_mean([c.confidence for c in clusters], [c.pixel_count for c in clusters])


def detect_candle_colors(
    buffer: PixelBuffer | None,
    kmeans_params: KMeansParams | None = None,
    histogram_params: HistogramParams | None = None,
) -> CandleColorProfile:
    """
    Build the candle color profile of a chart image.

    Never raises: a missing or empty buffer gives an empty profile at
    confidence 0. Deterministic for a given buffer and params.

    Args:
        buffer: Chart image (ideally cropped to the plot area)
        kmeans_params: k-means settings
        histogram_params: Histogram binning settings

    Returns:
        CandleColorProfile with the dominant color for each role
    """
    if buffer is None or buffer.is_empty:
        return CandleColorProfile()

    kmeans_params = kmeans_params or KMeansParams()
    histogram_params = histogram_params or HistogramParams()
    pixels = buffer.flat_colors()

    unique, counts = extract_unique_colors(pixels, kmeans_params.sample_bin_size)
    km = kmeans(
        unique,
        kmeans_params.k,
        max_iterations=kmeans_params.max_iterations,
        tolerance=kmeans_params.tolerance,
        weights=counts,
        seed=kmeans_params.seed,
    )
    candidates = [_cluster(c, int(n)) for c, n in zip(km.centroids, km.counts)]
    candidates += [
        _cluster(b.color, b.count)
        for b in analyze_histogram(pixels, histogram_params.bin_size, histogram_params.min_frequency)
    ]

    clusters = merge_clusters(candidates)
    colors: dict[CandleRole, RGBColor | None] = {}
    for role in CandleRole:
        matching = [c for c in clusters if c.role == role]
        colors[role] = max(matching, key=lambda c: c.pixel_count).color if matching else None

    profile = CandleColorProfile(
        colors=colors,
        overall_confidence=profile_confidence(clusters),
        clusters=clusters,
    )
    logger.debug(
        "Color profile: %s (confidence %.2f)",
        {role.value: (c.as_tuple() if c else None) for role, c in colors.items()},
        profile.overall_confidence,
    )
    return profile


def detect_colors(state: PipelineState) -> PipelineState:
    """Pipeline node: build the color profile of the plot area."""
    try:
        buffer = load_image(state.image_path)
    except ImageAccessError as e:
        err = ProcessingError(
            stage=ProcessingStage.COLORS,
            error_type="image_access",
            recoverable=False,
            message=str(e),
        )
        return state.model_copy(update={"errors": state.errors + [err]})

    cfg = state.config
    region = buffer.crop(state.plot_area) if state.plot_area is not None else buffer
    profile = detect_candle_colors(
        region,
        KMeansParams(
            k=cfg.kmeans_k,
            max_iterations=cfg.kmeans_max_iterations,
            tolerance=cfg.kmeans_tolerance,
            seed=cfg.kmeans_seed,
        ),
        HistogramParams(bin_size=cfg.histogram_bin_size, min_frequency=cfg.histogram_min_frequency),
    )

    warnings = list(state.warnings)
    missing = [
        role.value
        for role in (CandleRole.BULLISH_FILL, CandleRole.BEARISH_FILL)
        if profile.color_for(role) is None
    ]
    if missing:
        logger.warning("No %s color found in plot area", ", ".join(missing))
        warnings.append("W_COLOR_PROFILE_INCOMPLETE")
    return state.model_copy(update={"color_profile": profile, "warnings": warnings})
