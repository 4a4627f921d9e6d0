"""Confidence scoring helpers shared by every pipeline stage.

Each stage produces a score in [0, 1]. These helpers keep the band lookups and
the way scores are combined across stages in one place.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np


def clamp_confidence(value: float) -> float:
    """Clamp a score into [0, 1]; NaN becomes 0."""
    if value != value:
        return 0.0
    return float(min(max(value, 0.0), 1.0))


def band_score(
    value: float,
    bands: Sequence[tuple[tuple[float, float], float]],
    default: float,
) -> float:
    """
    Score a value by the first inclusive band it falls into.

    Args:
        value: Quantity being scored (e.g. an area ratio)
        bands: ((low, high), score) pairs, checked in order
        default: Score when no band contains the value

    Returns:
        Score of the matching band, or default
    """
    for (low, high), score in bands:
        if low <= value <= high:
            return score
    return default


def combine(scores: Iterable[float]) -> float:
    """Product-style combination: any weak stage drags the result down."""
    result = 1.0
    for score in scores:
        result *= clamp_confidence(score)
    return result


def weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    """Weighted average of scores; 0 when the weights sum to zero."""
    if not values:
        return 0.0
    w = np.asarray(weights, dtype=np.float64)
    total = float(w.sum())
    if total <= 0:
        return 0.0
    return clamp_confidence(float(np.dot(np.asarray(values, dtype=np.float64), w) / total))


def mean_confidence(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return clamp_confidence(float(np.mean(values)))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Std / |mean| of a sequence; 0 for fewer than two values or zero mean."""
    if len(values) < 2:
        return 0.0
    arr = np.asarray(values, dtype=np.float64)
    mean = float(np.mean(arr))
    if mean == 0:
        return 0.0
    return float(np.std(arr) / abs(mean))
