"""Utility modules for candle-digitizer."""

from candle_digitizer.utils.cv_utils import (
    # Type aliases
    GrayImage,
    Image,
    # Buffer
    PixelBuffer,
    # Edges and lines
    detect_edges,
    fit_axis_lines,
    # Image I/O
    load_class_mask,
    load_image,
    save_image,
    # Helpers
    to_grayscale,
)
from candle_digitizer.utils.metrics import compare_candles, passes_thresholds

__all__ = [
    # Type aliases
    "Image",
    "GrayImage",
    # Buffer
    "PixelBuffer",
    # Image I/O
    "load_image",
    "load_class_mask",
    "save_image",
    # Edges and lines
    "detect_edges",
    "fit_axis_lines",
    # Helpers
    "to_grayscale",
    # Evaluation
    "compare_candles",
    "passes_thresholds",
]
