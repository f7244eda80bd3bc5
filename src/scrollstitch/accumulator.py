"""Incremental canvas for vertical stitching."""

from __future__ import annotations

import logging
from typing import List, Optional

from scrollstitch.aligner import AlignmentResult, Classification
from scrollstitch.frame import Frame


logger = logging.getLogger(__name__)


class StitchAccumulator:
    """Growing output canvas for one capture session.

    The canvas is seeded with the full first frame. Each advance appends only
    the bottom `offset` rows of the new frame, so the canvas height grows by
    exactly `offset` and no output row is written twice. Slices are kept as a
    list and concatenated once in `finalize()`.
    """

    def __init__(self) -> None:
        self._slices: List["np.ndarray"] = []
        self._width: Optional[int] = None
        self._channels: Optional[int] = None
        self._height = 0
        self._seams: List[int] = []
        self._finalized = False

    @property
    def height(self) -> int:
        return self._height

    @property
    def width(self) -> Optional[int]:
        return self._width

    @property
    def seeded(self) -> bool:
        return self._width is not None

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def seams(self) -> List[int]:
        """Canvas y coordinate where each appended slice starts."""
        return list(self._seams)

    def _check_open(self) -> None:
        if self._finalized:
            raise RuntimeError("Canvas already finalized.")

    def seed(self, frame: Frame) -> None:
        """Start the canvas from the full first frame."""
        self._check_open()
        if self.seeded:
            raise RuntimeError("Canvas already seeded.")
        self._slices.append(frame.pixels)
        self._width = frame.width
        self._channels = frame.channels
        self._height = frame.height
        logger.info("canvas seeded from frame %s (%sx%s)", frame.index, frame.width, frame.height)

    def append(self, frame: Frame, offset: int) -> None:
        """Append the bottom `offset` rows of `frame`.

        Raises:
            RuntimeError: Canvas not seeded or already finalized.
            ValueError: Offset out of range or frame shape incompatible.
        """
        self._check_open()
        if not self.seeded:
            raise RuntimeError("Canvas must be seeded before appending.")
        offset = int(offset)
        if offset < 1 or offset > frame.height:
            raise ValueError(f"offset must be in [1, {frame.height}], got {offset}")
        if frame.width != self._width or frame.channels != self._channels:
            raise ValueError(
                f"Frame {frame.index} shape {frame.width}x{frame.channels} does not match "
                f"canvas {self._width}x{self._channels}"
            )
        self._seams.append(self._height)
        self._slices.append(frame.rows(frame.height - offset, frame.height))
        self._height += offset

    def apply(self, frame: Frame, result: AlignmentResult) -> bool:
        """Act on one classification; returns True if accumulation continues."""
        if result.classification is Classification.ADVANCE:
            self.append(frame, result.offset)
            return True
        if result.classification is Classification.DUPLICATE:
            return True
        return False

    def finalize(self) -> "np.ndarray":
        """Concatenate all slices into a read-only (H, W, C) uint8 image.

        The canvas is discarded afterwards; further seeding or appending
        raises.
        """
        import numpy as np  # type: ignore

        self._check_open()
        if not self.seeded:
            raise RuntimeError("Cannot finalize an empty canvas.")
        image = np.concatenate(self._slices, axis=0)
        if image.shape[0] != self._height:
            raise RuntimeError(f"Canvas height mismatch: {image.shape[0]} != {self._height}")
        image.setflags(write=False)
        self._slices = []
        self._finalized = True
        logger.info("canvas finalized: %sx%s (%s seams)", image.shape[1], image.shape[0], len(self._seams))
        return image
