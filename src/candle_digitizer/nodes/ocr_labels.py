"""Turn raw OCR tokens into numeric Y-axis and timestamped X-axis labels."""

from __future__ import annotations

import logging
import re
from datetime import datetime, time, timezone

from candle_digitizer import config
from candle_digitizer.models import (
    FallbackTimeframe,
    ManualXCalibration,
    OcrToken,
    PlotAreaBounds,
    XAxisLabel,
    XLabelOptions,
    YAxisLabel,
)
from candle_digitizer.utils.scoring import clamp_confidence

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_THOUSANDS_RE = re.compile(r"^[+-]?\d{1,3}(?:,\d{3})+(?:\.\d*)?$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_EPOCH_DATE = datetime(1970, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# PARSING
# =============================================================================


def parse_numeric_value(text: str) -> float | None:
    """
    Parse an axis price label.

    Accepts signed decimals, scientific notation and comma thousands
    separators; surrounding whitespace is ignored. Anything with trailing
    garbage ("123abc") is rejected rather than partially parsed.
    """
    if text is None:
        return None
    cleaned = text.strip().replace("−", "-")
    if not cleaned:
        return None
    if _THOUSANDS_RE.match(cleaned):
        cleaned = cleaned.replace(",", "")
    if not _NUMBER_RE.match(cleaned):
        return None
    return float(cleaned)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_datetime(text: str) -> datetime | None:
    """Parse an ISO-8601 datetime or date into an aware UTC datetime."""
    cleaned = text.strip()
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2025-01-01T10:00:00.000Z."""
    dt = _as_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_timestamp(text: str, reference_date: str | None = None) -> str | None:
    """
    Parse a time-axis label into an ISO-8601 UTC timestamp.

    Args:
        text: OCR text, either a full ISO datetime/date or a bare HH:MM[:SS]
        reference_date: Date that bare times are bound to (1970-01-01 UTC
            when omitted)

    Returns:
        Formatted timestamp, or None when the text is not a time
    """
    if text is None or not text.strip():
        return None

    match = _TIME_RE.match(text.strip())
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        second = int(match.group(3) or 0)
        if hour > 23 or minute > 59 or second > 59:
            return None
        day = to_datetime(reference_date) if reference_date else _EPOCH_DATE
        if day is None:
            return None
        dt = datetime.combine(day.date(), time(hour, minute, second), tzinfo=timezone.utc)
        return format_timestamp(dt)

    dt = to_datetime(text)
    return format_timestamp(dt) if dt is not None else None


# =============================================================================
# LABEL READERS
# =============================================================================


def read_y_axis_labels(
    tokens: list[OcrToken],
    bounds: PlotAreaBounds | None = None,
) -> list[YAxisLabel]:
    """Numeric labels sorted by pixel row; unparseable or out-of-plot tokens are skipped."""
    labels: list[YAxisLabel] = []
    margin = config.LABEL_BOUNDS_MARGIN
    for token in tokens:
        if bounds is not None and not (
            bounds.y - margin <= token.pixel_coordinate <= bounds.bottom + margin
        ):
            continue
        value = parse_numeric_value(token.recognized_text)
        if value is None:
            logger.debug("Skipping non-numeric Y label %r", token.recognized_text)
            continue
        labels.append(
            YAxisLabel(
                pixel_y=token.pixel_coordinate,
                value=value,
                confidence=clamp_confidence(token.confidence),
            )
        )
    return sorted(labels, key=lambda label: label.pixel_y)


def read_x_axis_labels(
    tokens: list[OcrToken],
    bounds: PlotAreaBounds | None = None,
    options: XLabelOptions | None = None,
) -> list[XAxisLabel]:
    """
    Timestamp labels sorted by pixel column.

    When no token yields a timestamp, falls back to manual calibration
    (two labels at confidence 1.0), then to a known timeframe (evenly spaced
    labels across the plot width at confidence 0.8), then to nothing.
    """
    options = options or XLabelOptions()
    margin = config.LABEL_BOUNDS_MARGIN
    labels: list[XAxisLabel] = []
    for token in tokens:
        if bounds is not None and not (
            bounds.x - margin <= token.pixel_coordinate <= bounds.right + margin
        ):
            continue
        timestamp = parse_timestamp(token.recognized_text, options.reference_date)
        if timestamp is None:
            logger.debug("Skipping non-time X label %r", token.recognized_text)
            continue
        labels.append(
            XAxisLabel(
                pixel_x=token.pixel_coordinate,
                timestamp=timestamp,
                confidence=clamp_confidence(token.confidence),
            )
        )
    if labels:
        return sorted(labels, key=lambda label: label.pixel_x)

    if options.manual_calibration is not None:
        return _manual_x_labels(options.manual_calibration)
    if options.fallback_timeframe is not None:
        return _fallback_x_labels(options.fallback_timeframe, bounds)
    return []


def _manual_x_labels(manual: ManualXCalibration) -> list[XAxisLabel]:
    labels = []
    for pixel, text in (
        (manual.pixel_first, manual.first_timestamp),
        (manual.pixel_last, manual.last_timestamp),
    ):
        timestamp = parse_timestamp(text)
        if timestamp is None:
            logger.warning("Manual X calibration timestamp %r is not parseable", text)
            return []
        labels.append(
            XAxisLabel(pixel_x=pixel, timestamp=timestamp, confidence=config.MANUAL_X_LABEL_CONFIDENCE)
        )
    return sorted(labels, key=lambda label: label.pixel_x)


def _fallback_x_labels(
    fallback: FallbackTimeframe,
    bounds: PlotAreaBounds | None,
) -> list[XAxisLabel]:
    step = config.TIMEFRAMES.get(fallback.timeframe)
    first = to_datetime(fallback.first_timestamp)
    last = to_datetime(fallback.last_timestamp)
    if step is None or first is None or last is None or last <= first:
        logger.warning("Fallback timeframe %s cannot synthesize labels", fallback.timeframe)
        return []

    count = int((last - first).total_seconds() // step) + 1
    left = bounds.x if bounds is not None else 0
    right = bounds.right if bounds is not None else max(count - 1, 1)
    spacing = (right - left) / max(count - 1, 1)

    labels = []
    for i in range(count):
        dt = datetime.fromtimestamp(first.timestamp() + i * step, tz=timezone.utc)
        labels.append(
            XAxisLabel(
                pixel_x=int(round(left + i * spacing)),
                timestamp=format_timestamp(dt),
                confidence=config.FALLBACK_X_LABEL_CONFIDENCE,
            )
        )
    return labels
