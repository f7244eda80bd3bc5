"""Error taxonomy for scroll capture sessions.

Only `InvalidRegion` (and its subclass) and `CaptureError` with zero captured
frames end a session without output. Alignment that finds no overlap and
repeated duplicates are normal terminations reported through the result,
not exceptions.
"""

from __future__ import annotations


class InvalidRegion(ValueError):
    """Crop geometry does not fit the frames it is applied to."""


class FrameSizeMismatch(InvalidRegion):
    """Consecutive frames disagree in width and cannot be aligned row-for-row."""


class CaptureError(RuntimeError):
    """A frame source or scroll driver failed during a session."""

