"""Normalized in-memory raster frames.

Every input (live screenshot, decoded video frame, image file) is converted
to a `Frame` before it enters the pipeline: a read-only, C-contiguous
uint8 array of shape (height, width, channels).
"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Optional, Tuple


@dataclass(frozen=True)
class Frame:
    """Immutable raster snapshot.

    Attributes:
        pixels: uint8 array (H, W, C), never written after construction.
        index: Sequence number in capture order.
        timestamp: Capture time (seconds, monotonic or wall clock).
    """

    pixels: "np.ndarray"
    index: int = 0
    timestamp: float = 0.0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)."""
        return self.width, self.height

    def rows(self, start: int, stop: int) -> "np.ndarray":
        """Return a read-only view of rows [start, stop)."""
        return self.pixels[start:stop]


def _normalize_pixels(pixels) -> "np.ndarray":
    import numpy as np  # type: ignore

    arr = np.asarray(pixels)
    if arr.ndim == 2:
        arr = arr[..., None]
    if arr.ndim != 3:
        raise ValueError(f"Expected a 2D or 3D raster, got shape {arr.shape}.")
    if arr.shape[0] < 1 or arr.shape[1] < 1:
        raise ValueError(f"Frame must be at least 1x1, got shape {arr.shape}.")
    if arr.dtype != np.uint8:
        # Float rasters in [0, 1] are scaled; anything else is clipped.
        if np.issubdtype(arr.dtype, np.floating) and arr.size and float(arr.max()) <= 1.0:
            arr = arr * 255.0
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    arr = np.ascontiguousarray(arr).copy()
    arr.setflags(write=False)
    return arr


def as_frame(
    pixels,
    index: int = 0,
    timestamp: Optional[float] = None,
) -> Frame:
    """Wrap any array-like raster into a `Frame`.

    Gray rasters gain a trailing channel axis; the buffer is copied so later
    mutation of the caller's array cannot leak into the pipeline.
    """
    if isinstance(pixels, Frame):
        return pixels
    if timestamp is None:
        timestamp = time.time()
    return Frame(pixels=_normalize_pixels(pixels), index=int(index), timestamp=float(timestamp))


def replace_pixels(frame: Frame, pixels) -> Frame:
    """New frame with the same identity (index, timestamp) and new pixels."""
    return Frame(pixels=_normalize_pixels(pixels), index=frame.index, timestamp=frame.timestamp)
