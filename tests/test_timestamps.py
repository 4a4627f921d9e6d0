from datetime import datetime

import pytest

from candle_digitizer.models import InsufficientDataError, InvalidTimeframeError, XAxisLabel
from candle_digitizer.nodes.timestamps import assign_timestamps

CENTERS = [100, 150, 200, 250, 300]


def _ts(text: str) -> datetime:
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def _label(x: int, timestamp: str, confidence: float) -> XAxisLabel:
    return XAxisLabel(pixel_x=x, timestamp=timestamp, confidence=confidence)


def test_interpolates_between_multiple_labels():
    labels = [
        _label(50, "2025-01-01T09:00:00.000Z", 0.9),
        _label(200, "2025-01-01T10:00:00.000Z", 0.8),
        _label(350, "2025-01-01T11:00:00.000Z", 0.85),
    ]
    result = assign_timestamps(CENTERS, labels, "1h")
    assert result.method == "ocr"
    assert result.overall_confidence >= 0.8
    first = result.assignments[0]
    assert first.method == "ocr"
    assert first.confidence > 0.8
    assert _ts("2025-01-01T09:00:00Z") < _ts(first.timestamp) < _ts("2025-01-01T10:00:00Z")
    assert result.assignments[2].timestamp == "2025-01-01T10:00:00.000Z"


def test_two_labels():
    labels = [
        _label(100, "2025-01-01T09:00:00.000Z", 0.9),
        _label(300, "2025-01-01T11:00:00.000Z", 0.85),
    ]
    result = assign_timestamps(CENTERS, labels, "1h")
    assert result.overall_confidence >= 0.8
    assert [a.timestamp[11:16] for a in result.assignments] == [
        "09:00",
        "09:30",
        "10:00",
        "10:30",
        "11:00",
    ]


def test_extrapolates_outside_labels():
    labels = [
        _label(150, "2025-01-01T10:00:00.000Z", 0.9),
        _label(200, "2025-01-01T11:00:00.000Z", 0.9),
    ]
    result = assign_timestamps(CENTERS, labels, "1h")
    assert result.assignments[0].timestamp == "2025-01-01T09:00:00.000Z"
    assert result.assignments[-1].timestamp == "2025-01-01T13:00:00.000Z"


def test_single_label_steps_by_timeframe():
    labels = [_label(200, "2025-01-01T10:00:00.000Z", 1.0)]
    result = assign_timestamps(CENTERS, labels, "1h", anchor_timestamp="2025-01-01T09:00:00.000Z")
    assert result.method == "ocr"
    assert result.anchor_timestamp == "2025-01-01T09:00:00.000Z"
    assert all(a.method == "ocr" for a in result.assignments)
    assert result.assignments[2].timestamp == "2025-01-01T10:00:00.000Z"
    times = [_ts(a.timestamp) for a in result.assignments]
    assert all((b - a).total_seconds() == 3600 for a, b in zip(times, times[1:]))
    assert result.overall_confidence <= 0.8
    assert all(a.confidence <= 0.9 for a in result.assignments)


def test_single_label_confidence_decays_away_from_label():
    labels = [_label(100, "2025-01-01T10:00:00.000Z", 0.9)]
    result = assign_timestamps(CENTERS, labels, "1h")
    confidences = [a.confidence for a in result.assignments]
    assert confidences == sorted(confidences, reverse=True)


def test_anchor_only_estimates_at_fixed_confidence():
    result = assign_timestamps(CENTERS, [], "5m", anchor_timestamp="2025-01-01T09:00:00.000Z")
    assert result.method == "estimated"
    assert result.overall_confidence == 0.4
    assert all(a.confidence == 0.4 for a in result.assignments)
    assert all(a.method == "estimated" for a in result.assignments)
    times = [_ts(a.timestamp) for a in result.assignments]
    assert all((b - a).total_seconds() == 300 for a, b in zip(times, times[1:]))
    assert result.assignments[0].timestamp == "2025-01-01T09:00:00.000Z"


def test_requires_label_or_anchor():
    with pytest.raises(InsufficientDataError, match="need at least 1 OCR label or anchor timestamp"):
        assign_timestamps(CENTERS, [], "1h")


def test_rejects_unknown_timeframe():
    labels = [_label(200, "2025-01-01T10:00:00.000Z", 0.9)]
    with pytest.raises(InvalidTimeframeError, match="Invalid timeframe: invalid"):
        assign_timestamps(CENTERS, labels, "invalid")


def test_empty_candles():
    labels = [_label(200, "2025-01-01T10:00:00.000Z", 0.9)]
    result = assign_timestamps([], labels, "1h")
    assert result.assignments == []
    assert result.method == "ocr"


def test_output_sorted_by_pixel_x():
    labels = [
        _label(100, "2025-01-01T09:00:00.000Z", 0.9),
        _label(300, "2025-01-01T11:00:00.000Z", 0.9),
    ]
    result = assign_timestamps([300, 100, 200], labels, "1h")
    assert [a.pixel_x for a in result.assignments] == [100, 200, 300]
    assert [a.candle_index for a in result.assignments] == [0, 1, 2]


@pytest.mark.parametrize("timeframe", ["1m", "5m", "15m", "1h", "4h", "1d"])
def test_timestamps_increase_for_each_timeframe(timeframe):
    labels = [
        _label(100, "2025-01-01T00:00:00.000Z", 0.8),
        _label(200, "2025-01-02T00:00:00.000Z", 0.8),
    ]
    result = assign_timestamps(CENTERS, labels, timeframe)
    assert result.method == "ocr"
    times = [_ts(a.timestamp) for a in result.assignments]
    assert times == sorted(times) and len(set(times)) == len(times)
