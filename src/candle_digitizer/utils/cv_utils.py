"""
OpenCV utility functions for the candle digitization pipeline.

This module provides the image primitives the pipeline stages share:
- PixelBuffer, an immutable RGB view of a decoded chart screenshot
- Image I/O with validation
- Edge detection feeding plot-area detection
- Cropping to a plot area
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeAlias

import cv2
import numpy as np
from numpy.typing import NDArray

from candle_digitizer import config
from candle_digitizer.models import ImageAccessError, PlotAreaBounds

# =============================================================================
# TYPE ALIASES
# =============================================================================

# Use Any for dtype to avoid MatLike compatibility issues with OpenCV
Image: TypeAlias = NDArray[Any]  # BGR image as returned by cv2
GrayImage: TypeAlias = NDArray[Any]  # Single channel


# =============================================================================
# PIXEL BUFFER
# =============================================================================


@dataclass(frozen=True)
class PixelBuffer:
    """Read-only RGB pixel grid of a chart image (row-major, HxWx3 uint8)."""

    pixels: NDArray[np.uint8]

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 3:
            raise ImageAccessError(
                f"Pixel buffer must be HxWx3, got shape {self.pixels.shape}"
            )
        if self.pixels.flags.writeable:
            frozen = np.array(self.pixels, dtype=np.uint8, copy=True)
            frozen.setflags(write=False)
            object.__setattr__(self, "pixels", frozen)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 3

    @property
    def is_empty(self) -> bool:
        return self.pixels.size == 0

    def pixel(self, x: int, y: int) -> tuple[int, int, int]:
        r, g, b = self.pixels[y, x]
        return int(r), int(g), int(b)

    def flat_colors(self) -> NDArray[np.uint8]:
        """All pixels as an (N, 3) array of RGB triples."""
        return self.pixels.reshape(-1, 3)

    @classmethod
    def from_raw(cls, width: int, height: int, channels: int, data: bytes) -> PixelBuffer:
        """
        Build a buffer from a raw interleaved byte string.

        Args:
            width: Image width in pixels
            height: Image height in pixels
            channels: 1 (gray), 3 (RGB) or 4 (RGBA; alpha is dropped)
            data: width * height * channels bytes, row-major

        Returns:
            PixelBuffer holding RGB pixels

        Raises:
            ImageAccessError: On unsupported channel count or size mismatch
        """
        if channels not in (1, 3, 4):
            raise ImageAccessError(f"Unsupported channel count: {channels}")
        expected = width * height * channels
        if width <= 0 or height <= 0 or len(data) != expected:
            raise ImageAccessError(
                f"Raw buffer has {len(data)} bytes, expected {expected} "
                f"for {width}x{height}x{channels}"
            )
        arr = np.frombuffer(data, dtype=np.uint8).reshape(height, width, channels)
        if channels == 1:
            arr = np.repeat(arr, 3, axis=2)
        elif channels == 4:
            arr = arr[:, :, :3]
        return cls(np.ascontiguousarray(arr))

    @classmethod
    def from_bgr(cls, image: Image) -> PixelBuffer:
        return cls(cv2.cvtColor(ensure_bgr(image), cv2.COLOR_BGR2RGB))

    def to_bgr(self) -> Image:
        return cv2.cvtColor(self.pixels, cv2.COLOR_RGB2BGR)

    def crop(self, bounds: PlotAreaBounds) -> PixelBuffer:
        """Sub-buffer covering the plot area, clipped to the image."""
        x0 = min(max(bounds.x, 0), self.width)
        y0 = min(max(bounds.y, 0), self.height)
        x1 = min(bounds.right, self.width)
        y1 = min(bounds.bottom, self.height)
        return PixelBuffer(self.pixels[y0:y1, x0:x1])


# =============================================================================
# SECTION 1: IMAGE I/O
# =============================================================================


def load_image(path: str | Path) -> PixelBuffer:
    """
    Load a chart screenshot from disk.

    Handles:
    - Missing files and undecodable images
    - Grayscale images (replicated to three channels)
    - Alpha channels (dropped)

    Args:
        path: Path to image file

    Returns:
        PixelBuffer in RGB order

    Raises:
        ImageAccessError: If the file is missing or cannot be decoded
    """
    path = Path(path)

    if not path.exists():
        raise ImageAccessError(f"Image file not found: {path}")

    # cv2.imread returns None on failure
    img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if img is None or img.size == 0:
        raise ImageAccessError(f"Failed to read image (may be corrupted): {path}")

    return PixelBuffer.from_bgr(img)


def load_class_mask(path: str | Path) -> NDArray[np.uint8]:
    """Load a single-channel per-pixel class map written as a PNG."""
    path = Path(path)
    if not path.exists():
        raise ImageAccessError(f"Segmentation mask not found: {path}")
    mask = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
    if mask is None:
        raise ImageAccessError(f"Failed to read segmentation mask: {path}")
    return mask


def save_image(buffer: PixelBuffer, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), buffer.to_bgr()):
        raise ImageAccessError(f"Failed to write image: {path}")


# =============================================================================
# SECTION 2: EDGES AND LINES
# =============================================================================


def to_grayscale(buffer: PixelBuffer) -> GrayImage:
    return cv2.cvtColor(buffer.pixels, cv2.COLOR_RGB2GRAY)


def detect_edges(
    buffer: PixelBuffer,
    low_threshold: int = config.CANNY_LOW_THRESHOLD,
    high_threshold: int = config.CANNY_HIGH_THRESHOLD,
) -> GrayImage:
    """
    Canny edge map of a buffer.

    Args:
        buffer: Source image
        low_threshold: Canny hysteresis low threshold
        high_threshold: Canny hysteresis high threshold

    Returns:
        uint8 image where edge pixels are 255 and everything else is 0
    """
    if buffer.is_empty:
        return np.zeros((buffer.height, buffer.width), dtype=np.uint8)
    gray = to_grayscale(buffer)
    return cv2.Canny(gray, low_threshold, high_threshold)


def fit_axis_lines(
    edges: GrayImage,
    min_length_ratio: float = 0.5,
) -> tuple[list[int], list[int]]:
    """
    Find long horizontal and vertical line segments in an edge map.

    Args:
        edges: Binary edge image
        min_length_ratio: Minimum segment length as a fraction of the
            image dimension it runs along

    Returns:
        (horizontal_rows, vertical_cols) with duplicates removed, sorted
    """
    h, w = edges.shape[:2]
    min_len = int(min(h, w) * min_length_ratio)
    if min_len <= 0:
        return [], []

    lines = cv2.HoughLinesP(
        edges,
        rho=1,
        theta=np.pi / 180,
        threshold=max(min_len // 2, 1),
        minLineLength=min_len,
        maxLineGap=5,
    )
    if lines is None:
        return [], []

    rows: set[int] = set()
    cols: set[int] = set()
    for x1, y1, x2, y2 in lines[:, 0]:
        if abs(int(y1) - int(y2)) <= 2 and abs(int(x2) - int(x1)) >= w * min_length_ratio:
            rows.add(int(round((y1 + y2) / 2)))
        elif abs(int(x1) - int(x2)) <= 2 and abs(int(y2) - int(y1)) >= h * min_length_ratio:
            cols.add(int(round((x1 + x2) / 2)))
    return sorted(rows), sorted(cols)


# =============================================================================
# HELPERS
# =============================================================================


def ensure_bgr(image: Image) -> Image:
    """Ensure image is three-channel BGR."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image
