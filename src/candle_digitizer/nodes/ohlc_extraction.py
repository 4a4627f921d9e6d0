"""OHLC extraction from segmented candle pixels."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import IntEnum
from typing import Literal

import numpy as np
from numpy.typing import NDArray

from candle_digitizer import config
from candle_digitizer.models import (
    AxisMapping,
    CandleColorProfile,
    CandlePixelCoords,
    CandleRole,
    ImageAccessError,
    OHLCCandle,
    PipelineState,
    PixelCoordinate,
    ProcessingError,
    ProcessingStage,
    TimestampAssignmentResult,
)
from candle_digitizer.utils.cv_utils import PixelBuffer, load_class_mask, load_image
from candle_digitizer.utils.scoring import clamp_confidence, combine

logger = logging.getLogger(__name__)


class PixelClass(IntEnum):
    """Class ids of a per-pixel segmentation mask."""

    BACKGROUND = 0
    CANDLE_BODY_UP = 1
    CANDLE_BODY_DOWN = 2
    CANDLE_WICK = 3
    GRID_LINE = 4
    AXIS_LABEL = 5
    CHART_AREA = 6


class RowTag(IntEnum):
    OTHER = 0
    BODY = 1
    WICK = 2


_BODY_CLASSES = (PixelClass.CANDLE_BODY_UP, PixelClass.CANDLE_BODY_DOWN)

_ROLE_CLASSES = {
    CandleRole.BULLISH_FILL: PixelClass.CANDLE_BODY_UP,
    CandleRole.BULLISH_STROKE: PixelClass.CANDLE_BODY_UP,
    CandleRole.BEARISH_FILL: PixelClass.CANDLE_BODY_DOWN,
    CandleRole.BEARISH_STROKE: PixelClass.CANDLE_BODY_DOWN,
    CandleRole.WICK: PixelClass.CANDLE_WICK,
    CandleRole.BACKGROUND: PixelClass.BACKGROUND,
}


@dataclass(frozen=True)
class ColumnMask:
    """Per-row body/wick tags of one candle column, top to bottom."""

    tags: NDArray[np.int8]
    center_x: int
    # Image row of tags[0]
    row_offset: int = 0

    @property
    def height(self) -> int:
        return int(len(self.tags))

    @classmethod
    def from_tags(cls, tags, center_x: int, row_offset: int = 0) -> ColumnMask:
        return cls(np.asarray(tags, dtype=np.int8), center_x, row_offset)

    @classmethod
    def from_region(cls, region: NDArray, center_x: int | None = None, row_offset: int = 0) -> ColumnMask:
        """
        Tag rows of a binary candle region (H x W, nonzero = candle ink).

        Rows whose ink is at least half as wide as the widest row are body,
        narrower inked rows are wick.
        """
        ink = np.asarray(region)
        if ink.ndim == 3:
            ink = ink.any(axis=2)
        widths = (ink != 0).sum(axis=1)
        tags = np.zeros(len(widths), dtype=np.int8)
        widest = int(widths.max()) if len(widths) else 0
        if widest > 0:
            tags[widths > 0] = RowTag.WICK
            tags[widths >= widest * config.BODY_ROW_WIDTH_RATIO] = RowTag.BODY
        cx = ink.shape[1] // 2 if center_x is None else center_x
        return cls(tags, cx, row_offset)


@dataclass(frozen=True)
class CandleColumn:
    """Horizontal extent of one candle in a class mask."""

    start: int
    end: int  # inclusive

    @property
    def center_x(self) -> int:
        return self.start + (self.end - self.start + 1) // 2


# =============================================================================
# MASKS
# =============================================================================


def build_pixel_class_mask(
    buffer: PixelBuffer,
    profile: CandleColorProfile,
    max_distance: float = config.MASK_MAX_COLOR_DISTANCE,
) -> NDArray[np.uint8]:
    """
    Segment an image by nearest profile color.

    Pixels further than max_distance from every known role color stay
    BACKGROUND.

    Returns:
        H x W uint8 array of PixelClass ids
    """
    mask = np.full((buffer.height, buffer.width), PixelClass.BACKGROUND, dtype=np.uint8)
    roles = [(role, color) for role, color in profile.colors.items() if color is not None]
    if not roles or buffer.is_empty:
        return mask

    # One H x W distance plane at a time; squared distances avoid the sqrt
    pixels = buffer.pixels.astype(np.float32)
    best = np.full(mask.shape, np.inf, dtype=np.float32)
    for role, color in roles:
        d2 = ((pixels - np.asarray(color.as_tuple(), dtype=np.float32)) ** 2).sum(axis=2)
        closer = d2 < best
        best[closer] = d2[closer]
        mask[closer] = _ROLE_CLASSES[role]

    mask[best > max_distance**2] = PixelClass.BACKGROUND
    return mask


def column_mask(mask: NDArray, x: int, row_offset: int = 0) -> ColumnMask:
    """Tag each row of mask column x as body, wick or other."""
    column = np.asarray(mask)[:, x]
    tags = np.zeros(len(column), dtype=np.int8)
    tags[np.isin(column, _BODY_CLASSES)] = RowTag.BODY
    tags[column == PixelClass.CANDLE_WICK] = RowTag.WICK
    return ColumnMask(tags, x, row_offset)


def find_candle_columns(mask: NDArray) -> list[CandleColumn]:
    """Runs of adjacent x columns that contain any body or wick pixel."""
    candle = np.isin(np.asarray(mask), (*_BODY_CLASSES, PixelClass.CANDLE_WICK))
    occupied = candle.any(axis=0)
    columns = []
    start: int | None = None
    for x, hit in enumerate(occupied):
        if hit and start is None:
            start = x
        elif not hit and start is not None:
            columns.append(CandleColumn(start, x - 1))
            start = None
    if start is not None:
        columns.append(CandleColumn(start, len(occupied) - 1))
    return columns


def _candle_column_mask(mask: NDArray, column: CandleColumn, x_offset: int, y_offset: int) -> ColumnMask:
    # A row counts as body if any pixel across the candle's width is body
    region = np.asarray(mask)[:, column.start : column.end + 1]
    tags = np.zeros(region.shape[0], dtype=np.int8)
    tags[np.isin(region, (PixelClass.CANDLE_WICK,)).any(axis=1)] = RowTag.WICK
    tags[np.isin(region, _BODY_CLASSES).any(axis=1)] = RowTag.BODY
    return ColumnMask(tags, column.center_x + x_offset, y_offset)


def body_direction(mask: NDArray, column: CandleColumn) -> Literal["up", "down"] | None:
    """Direction implied by the majority body class of a candle, if any."""
    region = np.asarray(mask)[:, column.start : column.end + 1]
    up = int((region == PixelClass.CANDLE_BODY_UP).sum())
    down = int((region == PixelClass.CANDLE_BODY_DOWN).sum())
    if up == down:
        return None
    return "up" if up > down else "down"


# =============================================================================
# EXTRACTION
# =============================================================================


def _structure_confidence(body_rows: int, has_wick: bool) -> float:
    if body_rows == 0:
        return config.WICK_ONLY_CONFIDENCE if has_wick else config.EMPTY_COLUMN_CONFIDENCE
    if body_rows <= config.DOJI_MAX_BODY_ROWS:
        return config.DOJI_CONFIDENCE
    return config.CLEAR_CANDLE_CONFIDENCE if has_wick else config.BODY_ONLY_CONFIDENCE


def extract_from_column(column: ColumnMask, y_mapping: AxisMapping) -> OHLCCandle:
    """
    Read one candle's prices off its column.

    open/close come from the top/bottom body rows and high/low from the
    top/bottom wick rows, falling back to the body rows when the column has
    no wick. A column with no body uses its inked extent for open/close. An
    empty column spans row 0 to row `height` (the boundary just below its
    last row). Prices are never reordered to satisfy
    high >= max(open, close) >= min(open, close) >= low; a violation lowers
    confidence instead.
    """
    tags = column.tags
    body = np.flatnonzero(tags == RowTag.BODY)
    wick = np.flatnonzero(tags == RowTag.WICK)
    inked = np.flatnonzero(tags != RowTag.OTHER)

    if len(inked) == 0:
        body_top, body_bottom = 0, column.height
    elif len(body):
        body_top, body_bottom = int(body[0]), int(body[-1])
    else:
        body_top, body_bottom = int(inked[0]), int(inked[-1])

    if len(wick):
        wick_top, wick_bottom = int(wick[0]), int(wick[-1])
    else:
        wick_top, wick_bottom = body_top, body_bottom

    def price(row: int) -> float:
        return y_mapping.pixel_to_value(column.row_offset + row)

    def coord(row: int) -> PixelCoordinate:
        return PixelCoordinate(x=column.center_x, y=column.row_offset + row)

    open_, close = price(body_top), price(body_bottom)
    high, low = price(wick_top), price(wick_bottom)

    body_rows = int(body_bottom - body_top + 1) if len(body) else 0
    confidence = _structure_confidence(body_rows, len(wick) > 0)
    if high < max(open_, close) or low > min(open_, close):
        confidence *= config.OHLC_ORDER_VIOLATION_FACTOR

    return OHLCCandle(
        open=open_,
        high=high,
        low=low,
        close=close,
        confidence=clamp_confidence(confidence),
        pixel_coords=CandlePixelCoords(
            open=coord(body_top),
            high=coord(wick_top),
            low=coord(wick_bottom),
            close=coord(body_bottom),
        ),
    )


def extract_candles(
    mask: NDArray,
    y_mapping: AxisMapping,
    max_workers: int = config.DEFAULT_MAX_WORKERS,
    x_offset: int = 0,
    y_offset: int = 0,
    orient: bool = False,
) -> list[OHLCCandle]:
    """
    Extract every candle in a class mask, ordered left to right.

    Columns are independent, so they are extracted on a thread pool sharing
    the read-only mask and mapping.

    Args:
        mask: H x W PixelClass ids (may be cropped to the plot area)
        y_mapping: Price mapping in full-image pixel rows
        max_workers: Thread pool size
        x_offset: Image column of mask[:, 0]
        y_offset: Image row of mask[0, :]
        orient: Swap open/close of candles whose body color says they rose

    Returns:
        One OHLCCandle per detected candle column
    """
    columns = find_candle_columns(mask)
    if not columns:
        return []

    def work(column: CandleColumn) -> OHLCCandle:
        candle = extract_from_column(_candle_column_mask(mask, column, x_offset, y_offset), y_mapping)
        if orient:
            direction = body_direction(mask, column)
            if direction is not None:
                candle = orient_candle(candle, direction)
        return candle

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        candles = list(pool.map(work, columns))
    logger.info("Extracted %d candles", len(candles))
    return candles


# =============================================================================
# POST-PROCESSING
# =============================================================================


def orient_candle(candle: OHLCCandle, direction: Literal["up", "down"]) -> OHLCCandle:
    """
    Record a candle's direction.

    Extraction reads open from the top of the body; for a rising candle the
    top of the body is the close, so open and close (with their pixels) swap.
    """
    if direction == "up" and candle.open > candle.close:
        coords = candle.pixel_coords.model_copy(
            update={"open": candle.pixel_coords.close, "close": candle.pixel_coords.open}
        )
        return candle.model_copy(
            update={"open": candle.close, "close": candle.open, "pixel_coords": coords, "direction": "up"}
        )
    return candle.model_copy(update={"direction": direction})


def is_bullish(candle: OHLCCandle) -> bool:
    if candle.direction is not None:
        return candle.direction == "up"
    return candle.close > candle.open


def validate_candle(candle: OHLCCandle) -> list[str]:
    """Warning codes for OHLC ordering violations; the candle is left untouched."""
    warnings = []
    if candle.high < max(candle.open, candle.close):
        warnings.append("W_HIGH_BELOW_BODY")
    if candle.low > min(candle.open, candle.close):
        warnings.append("W_LOW_ABOVE_BODY")
    return warnings


def attach_timestamps(
    candles: list[OHLCCandle],
    result: TimestampAssignmentResult,
) -> list[OHLCCandle]:
    """
    Join timestamp assignments onto candles by center pixel x.

    Candle confidence becomes the combination of extraction and timestamp
    confidence; candles without an assignment keep theirs.
    """
    by_x = {a.pixel_x: a for a in result.assignments}
    attached = []
    for candle in candles:
        assignment = by_x.get(candle.pixel_coords.open.x)
        if assignment is None:
            attached.append(candle)
            continue
        attached.append(
            candle.model_copy(
                update={
                    "timestamp": assignment.timestamp,
                    "confidence": combine([candle.confidence, assignment.confidence]),
                }
            )
        )
    return attached


def _plot_mask(state: PipelineState) -> NDArray:
    bounds = state.plot_area
    if state.segmentation_mask_path is not None:
        mask = load_class_mask(state.segmentation_mask_path)
        return mask[bounds.y : bounds.bottom, bounds.x : bounds.right]
    region = load_image(state.image_path).crop(bounds)
    return build_pixel_class_mask(region, state.color_profile, state.config.mask_max_color_distance)


def extract(state: PipelineState) -> PipelineState:
    """Pipeline node: segment the plot area and read every candle."""
    try:
        mask = _plot_mask(state)
    except ImageAccessError as e:
        err = ProcessingError(
            stage=ProcessingStage.EXTRACT,
            error_type="image_access",
            recoverable=False,
            message=str(e),
        )
        return state.model_copy(update={"errors": state.errors + [err]})

    candles = extract_candles(
        mask,
        state.y_mapping,
        max_workers=state.config.max_workers,
        x_offset=state.plot_area.x,
        y_offset=state.plot_area.y,
        orient=state.config.orient_by_color,
    )
    if not candles:
        err = ProcessingError(
            stage=ProcessingStage.EXTRACT,
            error_type="no_candles",
            recoverable=False,
            message="No candle pixels found in the plot area",
            details={"plot_area": state.plot_area.model_dump()},
        )
        return state.model_copy(update={"candles": [], "errors": state.errors + [err]})

    warnings = list(state.warnings)
    for code in sorted({code for candle in candles for code in validate_candle(candle)}):
        warnings.append(code)
    return state.model_copy(update={"candles": candles, "warnings": warnings})
