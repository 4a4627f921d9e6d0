"""Plot area detection from edge contours, plus manual corner calibration."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from candle_digitizer import config
from candle_digitizer.models import (
    CalibrationError,
    ContourParams,
    ImageAccessError,
    PipelineState,
    PixelCoordinate,
    PlotAreaBounds,
    ProcessingError,
    ProcessingStage,
)
from candle_digitizer.utils.cv_utils import (
    GrayImage,
    PixelBuffer,
    detect_edges,
    fit_axis_lines,
    load_image,
)
from candle_digitizer.utils.scoring import band_score, clamp_confidence

logger = logging.getLogger(__name__)

_NEIGHBORS = ((-1, -1), (0, -1), (1, -1), (-1, 0), (1, 0), (-1, 1), (0, 1), (1, 1))


@dataclass(frozen=True)
class Contour:
    """An 8-connected group of edge pixels, points as (x, y) rows in visit order."""

    points: NDArray[np.int64]

    @property
    def bounding_box(self) -> tuple[int, int, int, int]:
        xs, ys = self.points[:, 0], self.points[:, 1]
        min_x, min_y = int(xs.min()), int(ys.min())
        return min_x, min_y, int(xs.max()) - min_x, int(ys.max()) - min_y

    @property
    def aspect_ratio(self) -> float:
        _, _, w, h = self.bounding_box
        return w / h if h > 0 else math.inf

    @property
    def area(self) -> float:
        return polygon_area(self.points)


def polygon_area(points: NDArray[np.int64]) -> float:
    """
    Shoelace area of a contour's point set.

    Flood-fill order does not trace the outline, so points are ordered by
    angle around their centroid before applying the formula.

    Args:
        points: (N, 2) array of (x, y) pixel positions

    Returns:
        Enclosed area in square pixels (0 for fewer than 3 points)
    """
    if len(points) < 3:
        return 0.0
    pts = points.astype(np.float64)
    center = pts.mean(axis=0)
    order = np.argsort(np.arctan2(pts[:, 1] - center[1], pts[:, 0] - center[0]), kind="stable")
    x = pts[order, 0]
    y = pts[order, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def trace_contour(
    edges_on: NDArray[np.bool_],
    visited: NDArray[np.bool_],
    start: tuple[int, int],
) -> Contour:
    """
    Collect the 8-connected edge pixels reachable from start.

    Uses an explicit stack, so arbitrarily large contours cannot overflow the
    interpreter's recursion limit. Marks every collected pixel in visited,
    which the caller owns and shares across traces.

    Args:
        edges_on: Boolean edge map (True = edge pixel)
        visited: Boolean array of the same shape, mutated in place
        start: (x, y) seed pixel

    Returns:
        Contour of all reached pixels
    """
    height, width = edges_on.shape
    points: list[tuple[int, int]] = []
    stack = [start]
    visited[start[1], start[0]] = True
    while stack:
        x, y = stack.pop()
        points.append((x, y))
        for dx, dy in _NEIGHBORS:
            nx, ny = x + dx, y + dy
            if 0 <= nx < width and 0 <= ny < height and edges_on[ny, nx] and not visited[ny, nx]:
                visited[ny, nx] = True
                stack.append((nx, ny))
    return Contour(np.asarray(points, dtype=np.int64))


def find_contours(edges: GrayImage, min_points: int = config.MIN_CONTOUR_POINTS) -> list[Contour]:
    """All contours of an edge map with more than min_points pixels, in raster order of their seeds."""
    edges_on = np.asarray(edges) > config.EDGE_ON_THRESHOLD
    visited = np.zeros(edges_on.shape, dtype=bool)
    contours: list[Contour] = []
    for flat in np.flatnonzero(edges_on):
        y, x = divmod(int(flat), edges_on.shape[1])
        if visited[y, x]:
            continue
        contour = trace_contour(edges_on, visited, (x, y))
        if len(contour.points) > min_points:
            contours.append(contour)
    return contours


def fallback_bounds(width: int, height: int) -> PlotAreaBounds:
    """Central 80% of the image at minimal confidence."""
    margin = config.PLOT_AREA_FALLBACK_MARGIN
    return PlotAreaBounds(
        x=int(math.floor(width * margin)),
        y=int(math.floor(height * margin)),
        width=max(int(math.floor(width * (1 - 2 * margin))), 1),
        height=max(int(math.floor(height * (1 - 2 * margin))), 1),
        confidence=config.PLOT_AREA_FALLBACK_CONFIDENCE,
        method="automatic",
    )


def plot_area_confidence(bounds_area: float, image_area: float, aspect_ratio: float) -> float:
    ratio = bounds_area / image_area if image_area > 0 else 0.0
    score = band_score(ratio, config.PLOT_AREA_BANDS, config.PLOT_AREA_DEFAULT_SCORE)
    low, high = config.PLOT_AREA_SQUARE_RANGE
    if low <= aspect_ratio <= high:
        score += config.PLOT_AREA_SQUARE_BONUS
    return clamp_confidence(score)


def detect_automatic(edges: GrayImage, params: ContourParams | None = None) -> PlotAreaBounds:
    """
    Locate the plot area as the largest plausibly-shaped edge contour.

    Never raises: when no contour passes the area and aspect filters the
    central 80% of the image is returned at confidence 0.1, and callers may
    retry with relaxed params.

    Args:
        edges: Edge map (values > 128 count as edges)
        params: Contour filters; defaults from config

    Returns:
        PlotAreaBounds with method "automatic"
    """
    params = params or ContourParams()
    height, width = np.asarray(edges).shape[:2]
    image_area = float(width * height)
    max_area = image_area * params.max_area_ratio

    best: Contour | None = None
    best_area = -1.0
    for contour in find_contours(edges, params.min_points):
        area = contour.area
        if not params.min_area <= area <= max_area:
            continue
        if not params.aspect_ratio_min <= contour.aspect_ratio <= params.aspect_ratio_max:
            continue
        if area > best_area:
            best, best_area = contour, area

    if best is None:
        logger.warning("No plot-area contour in %dx%d edge map; using fallback", width, height)
        return fallback_bounds(width, height)

    x, y, w, h = best.bounding_box
    bounds = PlotAreaBounds(
        x=x,
        y=y,
        width=w,
        height=h,
        confidence=plot_area_confidence(w * h, image_area, best.aspect_ratio),
        method="automatic",
    )
    logger.debug("Plot area detected at %s", bounds)
    return bounds


def find_plot_area(buffer: PixelBuffer, params: ContourParams | None = None) -> PlotAreaBounds:
    """Edge-detect a chart image and run automatic plot-area detection."""
    return detect_automatic(detect_edges(buffer), params)


def detect_from_axis_lines(edges: GrayImage) -> PlotAreaBounds | None:
    """
    Bounds spanned by the outermost long horizontal and vertical lines.

    Used as a second opinion when contour detection falls back; returns None
    unless at least two lines of each orientation are found.
    """
    rows, cols = fit_axis_lines(edges)
    if len(rows) < 2 or len(cols) < 2:
        return None
    height, width = np.asarray(edges).shape[:2]
    x, y = cols[0], rows[0]
    w, h = cols[-1] - x, rows[-1] - y
    if w <= 0 or h <= 0:
        return None
    aspect = w / h
    confidence = plot_area_confidence(w * h, float(width * height), aspect) * 0.75
    return PlotAreaBounds(
        x=x, y=y, width=w, height=h, confidence=clamp_confidence(confidence), method="automatic"
    )


def calibrate_manual(
    image_width: int,
    image_height: int,
    top_left: PixelCoordinate,
    top_right: PixelCoordinate,
    bottom_left: PixelCoordinate,
) -> PlotAreaBounds:
    """
    Plot area from three user-supplied corners.

    Raises:
        CalibrationError: If the corners give non-positive size or fall
            outside the image
    """
    x = min(top_left.x, bottom_left.x)
    y = min(top_left.y, top_right.y)
    width = max(top_right.x, bottom_left.x) - x
    height = max(bottom_left.y, top_right.y) - y

    if width <= 0 or height <= 0:
        raise CalibrationError(
            f"Manual corners give a non-positive plot area ({width}x{height})"
        )
    if x < 0 or y < 0 or x + width > image_width or y + height > image_height:
        raise CalibrationError(
            f"Manual plot area ({x},{y},{width},{height}) lies outside the "
            f"{image_width}x{image_height} image"
        )

    return PlotAreaBounds(
        x=x,
        y=y,
        width=width,
        height=height,
        confidence=config.MANUAL_CALIBRATION_CONFIDENCE,
        method="manual",
    )


def locate_plot_area(state: PipelineState) -> PipelineState:
    """Pipeline node: find (or take from manual corners) the plot area."""
    try:
        buffer = load_image(state.image_path)
    except ImageAccessError as e:
        err = ProcessingError(
            stage=ProcessingStage.INPUT,
            error_type="image_access",
            recoverable=False,
            message=str(e),
            details={"path": state.image_path},
        )
        return state.model_copy(update={"errors": state.errors + [err]})

    image_size = (buffer.width, buffer.height)
    warnings = list(state.warnings)

    if state.manual_corners is not None:
        try:
            bounds = calibrate_manual(buffer.width, buffer.height, *state.manual_corners)
        except CalibrationError as e:
            err = ProcessingError(
                stage=ProcessingStage.PLOT_AREA,
                error_type="calibration_failed",
                recoverable=False,
                message=str(e),
                details={"corners": [c.model_dump() for c in state.manual_corners]},
            )
            return state.model_copy(update={"image_size": image_size, "errors": state.errors + [err]})
        return state.model_copy(update={"image_size": image_size, "plot_area": bounds})

    cfg = state.config
    params = ContourParams(
        min_area=cfg.min_contour_area,
        max_area_ratio=cfg.max_contour_area_ratio,
        aspect_ratio_min=cfg.aspect_ratio_min,
        aspect_ratio_max=cfg.aspect_ratio_max,
    )
    edges = detect_edges(buffer)
    bounds = detect_automatic(edges, params)
    if bounds.confidence <= config.PLOT_AREA_FALLBACK_CONFIDENCE:
        warnings.append("W_PLOT_AREA_FALLBACK")
        from_lines = detect_from_axis_lines(edges)
        if from_lines is not None:
            logger.info("Plot area recovered from axis lines: %s", from_lines)
            warnings.append("W_PLOT_AREA_FROM_AXIS_LINES")
            bounds = from_lines

    return state.model_copy(
        update={"image_size": image_size, "plot_area": bounds, "warnings": warnings}
    )
