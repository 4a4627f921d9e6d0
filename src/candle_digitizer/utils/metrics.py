"""Accuracy metrics for extracted candles against ground truth."""

import math
from collections.abc import Sequence

import numpy as np

from candle_digitizer.models import ErrorAnalysis, FieldErrors, OHLCCandle

FIELDS = ("open", "high", "low", "close")
PERCENTILES = (50, 90, 95, 99)


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of an ascending sequence (0 when empty)."""
    if not sorted_values:
        return 0.0
    index = max(0, min(len(sorted_values) - 1, math.ceil(p / 100 * len(sorted_values)) - 1))
    return float(sorted_values[index])


def field_errors(actual: Sequence[float], predicted: Sequence[float]) -> FieldErrors:
    """
    Error statistics for one OHLC field.

    Args:
        actual: Ground-truth values
        predicted: Extracted values, aligned by index with actual

    Returns:
        FieldErrors expressed as percentages of the mean actual value
    """
    if not actual:
        return FieldErrors()
    a = np.asarray(actual, dtype=np.float64)
    p = np.asarray(predicted, dtype=np.float64)
    scale = abs(float(np.mean(a))) or 1.0
    errors = np.abs(p - a) / scale * 100.0
    ordered = sorted(float(e) for e in errors)
    pct = {q: percentile(ordered, q) for q in PERCENTILES}
    return FieldErrors(
        mae=float(np.mean(errors)),
        rmse=float(np.sqrt(np.mean(errors**2))),
        max_error=float(np.max(errors)),
        p50=pct[50],
        p90=pct[90],
        p95=pct[95],
        p99=pct[99],
    )


def _mean_field_errors(per_field: list[FieldErrors]) -> FieldErrors:
    return FieldErrors(
        **{
            name: float(np.mean([getattr(fe, name) for fe in per_field]))
            for name in FieldErrors.model_fields
        }
    )


def compare_candles(ground_truth: Sequence[OHLCCandle], predicted: Sequence[OHLCCandle]) -> ErrorAnalysis:
    """
    Compare extracted candles with ground truth, aligned by index.

    Only the first min(len) candles are compared; the success rate is the
    share of the longer list that could be aligned.
    """
    n = min(len(ground_truth), len(predicted))
    if n == 0:
        return ErrorAnalysis()

    gt = ground_truth[:n]
    pr = predicted[:n]
    per_field = {
        name: field_errors([getattr(c, name) for c in gt], [getattr(c, name) for c in pr])
        for name in FIELDS
    }
    return ErrorAnalysis(
        **per_field,
        overall=_mean_field_errors(list(per_field.values())),
        success_rate=n / max(len(ground_truth), len(predicted)),
        average_confidence=float(np.mean([c.confidence for c in pr])),
        compared_candles=n,
    )


def passes_thresholds(
    analysis: ErrorAnalysis,
    max_mae: float,
    max_rmse: float,
    min_confidence: float,
) -> bool:
    return (
        analysis.compared_candles > 0
        and analysis.overall.mae <= max_mae
        and analysis.overall.rmse <= max_rmse
        and analysis.average_confidence >= min_confidence
    )
