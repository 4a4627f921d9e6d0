"""Synthetic candlestick chart test harness.

Generate chart images with known ground truth for detector, color and
extraction tests.

Usage:
    from tests.synthetic import generate_test_case, render_chart

    case = generate_test_case("walk", seed=7)
    chart = render_chart(case)
    chart.save(tmp_path / "chart.png")
"""

from .data_gen import SyntheticCandle, SyntheticChartCase, generate_ohlc, generate_test_case
from .renderer import ChartGeometry, RenderedChart, render_chart

__all__ = [
    "ChartGeometry",
    "RenderedChart",
    "SyntheticCandle",
    "SyntheticChartCase",
    "generate_ohlc",
    "generate_test_case",
    "render_chart",
]
