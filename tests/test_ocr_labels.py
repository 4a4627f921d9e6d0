import pytest

from candle_digitizer.models import (
    FallbackTimeframe,
    ManualXCalibration,
    OcrToken,
    PlotAreaBounds,
    XLabelOptions,
)
from candle_digitizer.nodes.ocr_labels import (
    parse_numeric_value,
    parse_timestamp,
    read_x_axis_labels,
    read_y_axis_labels,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("123", 123.0),
        ("123.45", 123.45),
        ("-123.45", -123.45),
        ("+123.45", 123.45),
        ("1.23E+2", 123.0),
        ("1.23e-2", 0.0123),
        ("  123  ", 123.0),
        ("1,234.5", 1234.5),
        (".5", 0.5),
    ],
)
def test_parse_numeric_value(text, expected):
    assert parse_numeric_value(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["abc", "", "123abc", "1,23", "--5", "   "])
def test_parse_numeric_value_rejects_garbage(text):
    assert parse_numeric_value(text) is None


def test_parse_timestamp_iso():
    assert parse_timestamp("2025-01-01T10:00:00Z") == "2025-01-01T10:00:00.000Z"
    assert parse_timestamp("2025-01-01T12:00:00+02:00") == "2025-01-01T10:00:00.000Z"
    assert parse_timestamp("2025-03-04") == "2025-03-04T00:00:00.000Z"


def test_parse_timestamp_binds_bare_times_to_reference_date():
    assert parse_timestamp("09:30", "2025-01-01") == "2025-01-01T09:30:00.000Z"
    assert parse_timestamp("09:30:15") == "1970-01-01T09:30:15.000Z"


@pytest.mark.parametrize("text", ["", "noon", "25:00", "12:75", "Jan"])
def test_parse_timestamp_rejects_non_times(text):
    assert parse_timestamp(text) is None


def test_read_y_axis_labels_sorted_and_filtered():
    tokens = [
        OcrToken(pixel_coordinate=300, recognized_text="90.5", confidence=0.9),
        OcrToken(pixel_coordinate=100, recognized_text="110", confidence=0.8),
        OcrToken(pixel_coordinate=200, recognized_text="USD", confidence=0.99),
        OcrToken(pixel_coordinate=900, recognized_text="50", confidence=0.9),
    ]
    bounds = PlotAreaBounds(x=0, y=50, width=400, height=400, confidence=0.8, method="automatic")
    labels = read_y_axis_labels(tokens, bounds)
    assert [(lb.pixel_y, lb.value) for lb in labels] == [(100, 110.0), (300, 90.5)]


def test_read_x_axis_labels_from_tokens():
    tokens = [
        OcrToken(pixel_coordinate=300, recognized_text="11:00", confidence=0.85),
        OcrToken(pixel_coordinate=100, recognized_text="09:00", confidence=0.9),
        OcrToken(pixel_coordinate=200, recognized_text="Vol", confidence=0.9),
    ]
    labels = read_x_axis_labels(tokens, options=XLabelOptions(reference_date="2025-01-01"))
    assert [lb.pixel_x for lb in labels] == [100, 300]
    assert labels[0].timestamp == "2025-01-01T09:00:00.000Z"


def test_read_x_axis_labels_manual_calibration():
    options = XLabelOptions(
        manual_calibration=ManualXCalibration(
            first_timestamp="2025-01-01T09:00:00Z",
            last_timestamp="2025-01-01T17:00:00Z",
            pixel_first=100,
            pixel_last=500,
        )
    )
    labels = read_x_axis_labels([], options=options)
    assert len(labels) == 2
    assert all(lb.confidence == 1.0 for lb in labels)
    assert labels[1].timestamp == "2025-01-01T17:00:00.000Z"


def test_read_x_axis_labels_fallback_timeframe():
    bounds = PlotAreaBounds(x=100, y=0, width=400, height=300, confidence=0.8, method="automatic")
    options = XLabelOptions(
        fallback_timeframe=FallbackTimeframe(
            timeframe="1h",
            first_timestamp="2025-01-01T09:00:00Z",
            last_timestamp="2025-01-01T13:00:00Z",
        )
    )
    labels = read_x_axis_labels([], bounds, options)
    assert [lb.pixel_x for lb in labels] == [100, 200, 300, 400, 500]
    assert all(lb.confidence == 0.8 for lb in labels)
    assert labels[-1].timestamp == "2025-01-01T13:00:00.000Z"


def test_read_x_axis_labels_without_options_is_empty():
    assert read_x_axis_labels([]) == []
