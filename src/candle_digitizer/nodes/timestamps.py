"""Assign timestamps to candle pixel columns from X-axis labels and the timeframe."""

from __future__ import annotations

import bisect
import logging
from datetime import datetime, timezone

import numpy as np

from candle_digitizer import config
from candle_digitizer.models import (
    ExtractionOutput,
    InsufficientDataError,
    InvalidTimeframeError,
    PipelineState,
    ProcessingError,
    ProcessingStage,
    TimestampAssignment,
    TimestampAssignmentResult,
    XAxisLabel,
)
from candle_digitizer.nodes.ocr_labels import format_timestamp, to_datetime
from candle_digitizer.nodes.ohlc_extraction import attach_timestamps
from candle_digitizer.utils.scoring import clamp_confidence, mean_confidence

logger = logging.getLogger(__name__)


def timeframe_seconds(timeframe: str) -> int:
    try:
        return config.TIMEFRAMES[timeframe]
    except KeyError:
        raise InvalidTimeframeError(timeframe) from None


def _epoch(text: str) -> float:
    dt = to_datetime(text)
    if dt is None:
        raise InsufficientDataError(f"Unparseable timestamp: {text}")
    return dt.timestamp()


def _iso(seconds: float) -> str:
    return format_timestamp(datetime.fromtimestamp(round(seconds, 3), tz=timezone.utc))


def _distinct_by_pixel(labels: list[XAxisLabel]) -> list[XAxisLabel]:
    ordered: list[XAxisLabel] = []
    for label in sorted(labels, key=lambda lb: (lb.pixel_x, -lb.confidence)):
        if ordered and ordered[-1].pixel_x == label.pixel_x:
            continue
        ordered.append(label)
    return ordered


def _interpolate(
    centers: list[int],
    labels: list[XAxisLabel],
) -> list[TimestampAssignment]:
    xs = [label.pixel_x for label in labels]
    times = [_epoch(label.timestamp) for label in labels]
    assignments = []
    for index, x in enumerate(centers):
        # Bracketing pair; the outermost pair extrapolates beyond the labels
        i = min(max(bisect.bisect_right(xs, x) - 1, 0), len(xs) - 2)
        slope = (times[i + 1] - times[i]) / (xs[i + 1] - xs[i])
        seconds = times[i] + (x - xs[i]) * slope
        confidence = min(
            config.OCR_TIMESTAMP_CONFIDENCE_CAP,
            (labels[i].confidence + labels[i + 1].confidence) / 2,
        )
        assignments.append(
            TimestampAssignment(
                candle_index=index,
                pixel_x=x,
                timestamp=_iso(seconds),
                confidence=clamp_confidence(confidence),
                method="ocr",
            )
        )
    return assignments


def _from_single_label(
    centers: list[int],
    label: XAxisLabel,
    step: int,
    anchor_timestamp: str | None,
) -> list[TimestampAssignment]:
    anchor_index = int(np.argmin([abs(x - label.pixel_x) for x in centers]))
    label_seconds = _epoch(label.timestamp)
    base = min(config.OCR_TIMESTAMP_CONFIDENCE_CAP, label.confidence) * config.SINGLE_LABEL_FACTOR

    if anchor_timestamp is not None:
        first_seconds = label_seconds - anchor_index * step
        if abs(first_seconds - _epoch(anchor_timestamp)) > step / 2:
            logger.info("Anchor timestamp disagrees with the OCR label; lowering confidence")
            base *= config.ANCHOR_MISMATCH_FACTOR

    assignments = []
    for index, x in enumerate(centers):
        distance = abs(index - anchor_index)
        confidence = max(
            config.SINGLE_LABEL_FLOOR * base,
            base * (1.0 - config.SINGLE_LABEL_DECAY_PER_CANDLE * distance),
        )
        assignments.append(
            TimestampAssignment(
                candle_index=index,
                pixel_x=x,
                timestamp=_iso(label_seconds + (index - anchor_index) * step),
                confidence=clamp_confidence(confidence),
                method="ocr",
            )
        )
    return assignments


def _from_anchor(centers: list[int], anchor_timestamp: str, step: int) -> list[TimestampAssignment]:
    start = _epoch(anchor_timestamp)
    return [
        TimestampAssignment(
            candle_index=index,
            pixel_x=x,
            timestamp=_iso(start + index * step),
            confidence=config.ESTIMATED_TIMESTAMP_CONFIDENCE,
            method="estimated",
        )
        for index, x in enumerate(centers)
    ]


def assign_timestamps(
    candle_centers: list[int],
    labels: list[XAxisLabel],
    timeframe: str,
    anchor_timestamp: str | None = None,
) -> TimestampAssignmentResult:
    """
    Give every candle center a timestamp.

    - Two or more labels: piecewise-linear interpolation between the
      bracketing labels, extrapolating with the outermost pair's slope.
    - One label: step outward from the candle nearest the label by the
      timeframe duration, with confidence decaying away from it.
    - No labels: step forward from the anchor timestamp at fixed 0.4
      confidence.

    Args:
        candle_centers: Candle center x pixels, in any order
        labels: Parsed X-axis labels
        timeframe: Key of config.TIMEFRAMES, e.g. "1h"
        anchor_timestamp: ISO timestamp of the first candle, if known

    Returns:
        Assignments ordered by pixel x

    Raises:
        InvalidTimeframeError: Unknown timeframe
        InsufficientDataError: No labels and no anchor
    """
    step = timeframe_seconds(timeframe)
    if not labels and anchor_timestamp is None:
        raise InsufficientDataError(
            "Insufficient data for timestamp assignment: "
            "need at least 1 OCR label or anchor timestamp"
        )

    centers = sorted(candle_centers)
    if not labels:
        return TimestampAssignmentResult(
            assignments=_from_anchor(centers, anchor_timestamp, step),
            method="estimated",
            overall_confidence=config.ESTIMATED_TIMESTAMP_CONFIDENCE,
            timeframe=timeframe,
            anchor_timestamp=anchor_timestamp,
        )

    if not centers:
        assignments: list[TimestampAssignment] = []
    else:
        distinct = _distinct_by_pixel(labels)
        if len(distinct) >= 2:
            assignments = _interpolate(centers, distinct)
        else:
            assignments = _from_single_label(centers, distinct[0], step, anchor_timestamp)

    overall = float(np.mean([a.confidence for a in assignments])) if assignments else 0.0
    return TimestampAssignmentResult(
        assignments=assignments,
        method="ocr",
        overall_confidence=clamp_confidence(overall),
        timeframe=timeframe,
        anchor_timestamp=anchor_timestamp,
    )


def _output_confidence(state: PipelineState, candles) -> float:
    stages = [state.plot_area.confidence, state.y_mapping.confidence]
    if state.color_profile is not None and state.segmentation_mask_path is None:
        stages.append(state.color_profile.overall_confidence)
    stages.append(mean_confidence([c.confidence for c in candles]))
    return mean_confidence(stages)


def assign(state: PipelineState) -> PipelineState:
    """Pipeline node: timestamp the extracted candles and assemble the output."""
    candles = state.candles or []
    errors = list(state.errors)
    warnings = list(state.warnings)
    result: TimestampAssignmentResult | None = None

    try:
        result = assign_timestamps(
            [c.pixel_coords.open.x for c in candles],
            state.x_labels or [],
            state.timeframe,
            state.anchor_timestamp,
        )
    except InvalidTimeframeError as e:
        errors.append(
            ProcessingError(
                stage=ProcessingStage.TIMESTAMPS,
                error_type="invalid_timeframe",
                recoverable=False,
                message=str(e),
                details={"timeframe": e.timeframe, "known": sorted(config.TIMEFRAMES)},
            )
        )
    except InsufficientDataError as e:
        errors.append(
            ProcessingError(
                stage=ProcessingStage.TIMESTAMPS,
                error_type="insufficient_time_labels",
                recoverable=True,
                message=str(e),
            )
        )

    if result is not None:
        candles = attach_timestamps(candles, result)
        if result.method == "estimated":
            warnings.append("W_TIMESTAMPS_ESTIMATED")
    else:
        warnings.append("W_NO_TIMESTAMPS")

    low = sum(1 for c in candles if c.confidence < state.config.min_confidence_output)
    if low:
        logger.info(
            "%d of %d candles below confidence %.2f",
            low,
            len(candles),
            state.config.min_confidence_output,
        )
        warnings.append("W_LOW_CONFIDENCE_CANDLES")

    output = ExtractionOutput(
        plot_area=state.plot_area,
        y_mapping=state.y_mapping,
        candles=candles,
        color_profile=state.color_profile,
        timestamps=result,
        warnings=warnings,
        confidence_score=_output_confidence(state, candles),
        errors=errors,
        partial_results=result is None,
    )
    return state.model_copy(
        update={
            "candles": candles,
            "timestamps": result,
            "output": output,
            "warnings": warnings,
            "errors": errors,
        }
    )
