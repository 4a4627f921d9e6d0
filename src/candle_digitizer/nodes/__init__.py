"""Pipeline nodes for candle chart digitization.

This module intentionally uses lazy imports so that importing the package does
not pull in OpenCV until a node actually runs.
"""

from __future__ import annotations

from candle_digitizer.models import PipelineState


def locate_plot_area(state: PipelineState) -> PipelineState:
    from candle_digitizer.nodes.plot_area import locate_plot_area as _locate_plot_area

    return _locate_plot_area(state)


def calibrate(state: PipelineState) -> PipelineState:
    from candle_digitizer.nodes.axis_calibration import calibrate as _calibrate

    return _calibrate(state)


def detect_colors(state: PipelineState) -> PipelineState:
    from candle_digitizer.nodes.candle_colors import detect_colors as _detect_colors

    return _detect_colors(state)


def extract(state: PipelineState) -> PipelineState:
    from candle_digitizer.nodes.ohlc_extraction import extract as _extract

    return _extract(state)


def assign_timestamps(state: PipelineState) -> PipelineState:
    from candle_digitizer.nodes.timestamps import assign as _assign

    return _assign(state)


__all__ = [
    "assign_timestamps",
    "calibrate",
    "detect_colors",
    "extract",
    "locate_plot_area",
]
