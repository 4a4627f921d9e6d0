import csv
import json

import pytest
from click.testing import CliRunner

from candle_digitizer.cli import main
from candle_digitizer.models import OcrTokens, ProcessingStage
from candle_digitizer.pipeline import run_pipeline
from candle_digitizer.utils.metrics import compare_candles
from tests.synthetic import generate_test_case, render_chart


@pytest.fixture(scope="module")
def rendered(tmp_path_factory):
    chart = render_chart(generate_test_case("pipeline", seed=7))
    chart.save(tmp_path_factory.mktemp("charts") / "chart.png")
    return chart


def _tokens(chart):
    return OcrTokens(y_axis=chart.y_tokens, x_axis=chart.x_tokens)


def test_pipeline_recovers_synthetic_chart(rendered):
    state = run_pipeline(str(rendered.image_path), _tokens(rendered), "1h")

    assert not [e for e in state.errors if not e.recoverable]
    output = state.output
    assert output is not None
    assert not output.partial_results
    assert len(output.candles) == len(rendered.case.candles)

    tolerance = 0.02 * (rendered.case.price_max - rendered.case.price_min)
    for got, want in zip(output.candles, rendered.case.candles):
        assert got.open == pytest.approx(want.open, abs=tolerance)
        assert got.high == pytest.approx(want.high, abs=tolerance)
        assert got.low == pytest.approx(want.low, abs=tolerance)
        assert got.close == pytest.approx(want.close, abs=tolerance)
        assert got.timestamp == want.timestamp
        assert got.direction == ("up" if want.bullish else "down")

    assert output.timestamps.method == "ocr"
    assert [c.pixel_coords.open.x for c in output.candles] == rendered.candle_centers
    assert "W_HIGH_BELOW_BODY" not in output.warnings
    assert output.confidence_score > 0.6

    analysis = compare_candles(rendered.case.candles, output.candles)
    assert analysis.success_rate == 1.0
    assert analysis.overall.mae < 1.0


def test_pipeline_estimates_timestamps_from_anchor(rendered):
    tokens = OcrTokens(y_axis=rendered.y_tokens, x_axis=[])
    anchor = rendered.case.candles[0].timestamp
    state = run_pipeline(str(rendered.image_path), tokens, "1h", anchor_timestamp=anchor)

    assert state.output.timestamps.method == "estimated"
    assert "W_TIMESTAMPS_ESTIMATED" in state.output.warnings
    assert [c.timestamp for c in state.output.candles] == [c.timestamp for c in rendered.case.candles]


def test_pipeline_without_time_information_is_partial(rendered):
    tokens = OcrTokens(y_axis=rendered.y_tokens, x_axis=[])
    state = run_pipeline(str(rendered.image_path), tokens, "1h")

    assert state.output.partial_results
    assert "W_NO_TIMESTAMPS" in state.output.warnings
    assert all(c.timestamp is None for c in state.output.candles)
    assert any(e.stage == ProcessingStage.TIMESTAMPS and e.recoverable for e in state.errors)


def test_pipeline_stops_without_y_labels(rendered):
    tokens = OcrTokens(y_axis=rendered.y_tokens[:1], x_axis=rendered.x_tokens)
    state = run_pipeline(str(rendered.image_path), tokens, "1h")

    assert state.output is None
    assert state.candles is None
    assert any(e.stage == ProcessingStage.CALIBRATE and not e.recoverable for e in state.errors)


def test_pipeline_reports_missing_image(tmp_path):
    state = run_pipeline(str(tmp_path / "missing.png"), OcrTokens(), "1h")
    assert state.output is None
    assert state.errors
    assert not state.errors[0].recoverable


def _labels_file(chart, path):
    payload = {
        "y_axis": [t.model_dump() for t in chart.y_tokens],
        "x_axis": [t.model_dump() for t in chart.x_tokens],
    }
    path.write_text(json.dumps(payload))
    return path


def test_cli_writes_json_and_csv(rendered, tmp_path):
    labels = _labels_file(rendered, tmp_path / "labels.json")
    out_json = tmp_path / "out.json"
    out_csv = tmp_path / "out.csv"

    result = CliRunner().invoke(
        main,
        [
            str(rendered.image_path),
            "--labels",
            str(labels),
            "--timeframe",
            "1h",
            "-o",
            str(out_json),
            "--csv",
            str(out_csv),
        ],
    )
    assert result.exit_code == 0, result.output

    data = json.loads(out_json.read_text())
    assert len(data["candles"]) == len(rendered.case.candles)
    assert data["timestamps"]["method"] == "ocr"

    with out_csv.open() as f:
        rows = list(csv.reader(f))
    assert rows[0] == ["timestamp_ISO", "open", "high", "low", "close", "confidence"]
    assert len(rows) == len(rendered.case.candles) + 1
    assert rows[1][0] == rendered.case.candles[0].timestamp


def test_cli_rejects_bad_corners(rendered, tmp_path):
    labels = _labels_file(rendered, tmp_path / "labels.json")
    result = CliRunner().invoke(
        main,
        [str(rendered.image_path), "--labels", str(labels), "--timeframe", "1h", "--corners", "1,2 3,4"],
    )
    assert result.exit_code == 1


def test_cli_fails_without_y_labels(rendered, tmp_path):
    labels = tmp_path / "labels.json"
    labels.write_text(json.dumps({"y_axis": [], "x_axis": []}))
    result = CliRunner().invoke(
        main,
        [str(rendered.image_path), "--labels", str(labels), "--timeframe", "1h", "-o", str(tmp_path / "o.json")],
    )
    assert result.exit_code == 1
    assert not (tmp_path / "o.json").exists()
