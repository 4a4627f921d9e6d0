"""Price axis calibration from OCR'd tick labels."""

from __future__ import annotations

import logging
import math

import numpy as np

from candle_digitizer import config
from candle_digitizer.models import (
    AxisMapping,
    InsufficientDataError,
    PipelineState,
    ProcessingError,
    ProcessingStage,
    ScaleType,
    YAxisLabel,
)
from candle_digitizer.nodes.ocr_labels import read_x_axis_labels, read_y_axis_labels
from candle_digitizer.utils.scoring import clamp_confidence, coefficient_of_variation, combine

logger = logging.getLogger(__name__)


def detect_scale_type(labels: list[YAxisLabel]) -> ScaleType:
    """
    Decide between linear and logarithmic price axes.

    Compares how constant the per-pixel slope is in value space versus
    log-value space across consecutive labels. Needs at least three labels
    and strictly positive values to call an axis logarithmic; ties go linear.
    """
    if len(labels) < config.LOG_SCALE_MIN_LABELS:
        return "linear"
    values = [label.value for label in labels]
    if min(values) <= 0:
        return "linear"

    linear_slopes = []
    log_slopes = []
    for a, b in zip(labels, labels[1:]):
        dp = b.pixel_y - a.pixel_y
        if dp == 0:
            continue
        linear_slopes.append((b.value - a.value) / dp)
        log_slopes.append((math.log10(b.value) - math.log10(a.value)) / dp)

    if len(linear_slopes) < 2:
        return "linear"
    linear_cv = coefficient_of_variation(linear_slopes)
    log_cv = coefficient_of_variation(log_slopes)
    if linear_cv > config.LOG_SCALE_MIN_LINEAR_CV and log_cv < linear_cv:
        return "logarithmic"
    return "linear"


def mapping_confidence(labels: list[YAxisLabel]) -> float:
    """Mean OCR confidence, scaled up with label count and down for uneven spacing."""
    ocr = float(np.mean([label.confidence for label in labels]))
    count = min(1.0, config.Y_COUNT_BASE + config.Y_COUNT_STEP * (len(labels) - 2))
    gaps = [b.pixel_y - a.pixel_y for a, b in zip(labels, labels[1:])]
    gap_cv = coefficient_of_variation(gaps)
    spacing = max(config.Y_GAP_FLOOR, 1.0 - config.Y_GAP_PENALTY * gap_cv)
    return clamp_confidence(combine([ocr, count, spacing]))


def compute_y_mapping(labels: list[YAxisLabel]) -> AxisMapping:
    """
    Fit a pixel-row <-> price mapping from Y-axis labels.

    Labels may arrive in any order. The fit is anchored on the labels at the
    topmost and bottommost pixel rows; in between the mapping interpolates
    linearly (in log space for logarithmic axes) and both directions clamp
    outside the labelled range.

    Args:
        labels: Parsed Y-axis labels

    Returns:
        AxisMapping with scale type and confidence

    Raises:
        InsufficientDataError: Fewer than two labels, or labels that do not
            span two distinct rows and two distinct values
    """
    if len(labels) < config.MIN_Y_LABELS:
        raise InsufficientDataError("At least 2 label pairs are required for Y-axis mapping")

    ordered = sorted(labels, key=lambda label: (label.pixel_y, label.value))
    top, bottom = ordered[0], ordered[-1]
    if top.pixel_y == bottom.pixel_y:
        raise InsufficientDataError("Y-axis labels must span at least two distinct pixel rows")
    if top.value == bottom.value:
        raise InsufficientDataError("Y-axis labels must span at least two distinct values")

    scale_type = detect_scale_type(ordered)
    if scale_type == "logarithmic" and min(top.value, bottom.value) <= 0:
        scale_type = "linear"

    mapping = AxisMapping(
        scale_type=scale_type,
        confidence=mapping_confidence(ordered),
        pixel_min=float(top.pixel_y),
        pixel_max=float(bottom.pixel_y),
        value_at_pixel_min=top.value,
        value_at_pixel_max=bottom.value,
    )
    logger.debug(
        "Y mapping %s over rows %d..%d, values %s..%s, confidence %.2f",
        scale_type,
        top.pixel_y,
        bottom.pixel_y,
        top.value,
        bottom.value,
        mapping.confidence,
    )
    return mapping


def calibrate(state: PipelineState) -> PipelineState:
    """Pipeline node: parse axis labels and fit the price mapping."""
    y_labels = read_y_axis_labels(state.ocr_tokens.y_axis, state.plot_area)
    try:
        y_mapping = compute_y_mapping(y_labels)
    except InsufficientDataError as e:
        err = ProcessingError(
            stage=ProcessingStage.CALIBRATE,
            error_type="insufficient_y_labels",
            recoverable=False,
            message=str(e),
            details={
                "tokens": len(state.ocr_tokens.y_axis),
                "parsed_labels": len(y_labels),
            },
        )
        return state.model_copy(update={"errors": state.errors + [err]})

    warnings = list(state.warnings)
    if y_mapping.confidence < state.config.min_confidence_output:
        warnings.append("W_LOW_Y_MAPPING_CONFIDENCE")

    x_labels = read_x_axis_labels(state.ocr_tokens.x_axis, state.plot_area, state.x_label_options)
    if not x_labels:
        warnings.append("W_NO_X_LABELS")

    return state.model_copy(
        update={"y_mapping": y_mapping, "x_labels": x_labels, "warnings": warnings}
    )
