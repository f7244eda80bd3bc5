"""Vertical overlap alignment between consecutive frames.

For a candidate scroll offset `d`, frame `curr` is assumed to show the rows
of `prev` starting at `d`. The two are compared row-for-row over their
common span:

    prev[d : d + n]  vs  curr[0 : n],   n = min(H_prev - d, H_curr)

Dissimilarity is the mean absolute pixel difference over every
`sample_stride`-th column, normalized to [0, 1]. Offsets are searched in
`[0, overlap_pixels]`. When an offset below `min_offset` wins, the pair is
never an advance, so a noisy still frame cannot re-append known rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Optional

from scrollstitch.errors import FrameSizeMismatch
from scrollstitch.frame import Frame


logger = logging.getLogger(__name__)

DEFAULT_OVERLAP_PIXELS = 125
DEFAULT_MIN_OFFSET = 1
DEFAULT_SAMPLE_STRIDE = 2
DEFAULT_DUPLICATE_THRESHOLD = 0.05
DEFAULT_MAX_DISSIMILARITY = 0.05


class Classification(str, Enum):
    ADVANCE = "advance"
    DUPLICATE = "duplicate"
    NO_OVERLAP = "no_overlap"


@dataclass(frozen=True)
class AlignmentResult:
    """Outcome for one consecutive frame pair.

    `offset` is the scroll distance to apply (0 unless ADVANCE, or the
    near-zero winner for DUPLICATE). `candidate_offset` is the best-scoring
    offset regardless of classification, kept for diagnostics.
    """

    offset: int
    confidence: float
    classification: Classification
    score: float
    zero_score: float
    candidate_offset: int
    search_max: int

    def as_dict(self) -> dict:
        return {
            "offset": self.offset,
            "confidence": round(self.confidence, 6),
            "classification": self.classification.value,
            "score": round(self.score, 6),
            "zero_score": round(self.zero_score, 6),
            "candidate_offset": self.candidate_offset,
            "search_max": self.search_max,
        }


class OverlapAligner:
    """Scores candidate offsets and classifies frame pairs.

    Args:
        overlap_pixels: Largest scroll offset searched (the overlap window).
        min_offset: Smallest offset accepted as an advance; smaller winners
            count as zero motion.
        sample_stride: Horizontal sampling step for the difference metric.
        duplicate_threshold: Score at or below which a near-zero winner is a
            duplicate; a near-zero winner above it is no overlap. Capture
            noise on a still view scores around 0.007.
        max_dissimilarity: Normalized score above which no offset is accepted.
        warning_handler: Optional callback for explicit warning reporting.
    """

    def __init__(
        self,
        overlap_pixels: int = DEFAULT_OVERLAP_PIXELS,
        min_offset: int = DEFAULT_MIN_OFFSET,
        sample_stride: int = DEFAULT_SAMPLE_STRIDE,
        duplicate_threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
        max_dissimilarity: float = DEFAULT_MAX_DISSIMILARITY,
        warning_handler: Optional[Callable[[str], None]] = None,
    ):
        if int(overlap_pixels) < 1:
            raise ValueError(f"overlap_pixels must be >= 1, got {overlap_pixels}")
        if int(min_offset) < 1:
            raise ValueError(f"min_offset must be >= 1, got {min_offset}")
        if int(sample_stride) < 1:
            raise ValueError(f"sample_stride must be >= 1, got {sample_stride}")
        if not 0.0 <= float(duplicate_threshold) <= float(max_dissimilarity) <= 1.0:
            raise ValueError(
                "Thresholds must satisfy 0 <= duplicate_threshold <= max_dissimilarity <= 1, "
                f"got {duplicate_threshold} / {max_dissimilarity}"
            )
        self.overlap_pixels = int(overlap_pixels)
        self.min_offset = int(min_offset)
        self.sample_stride = int(sample_stride)
        self.duplicate_threshold = float(duplicate_threshold)
        self.max_dissimilarity = float(max_dissimilarity)
        self.warning_handler = warning_handler
        self._clamp_warned = False

    def reset(self) -> None:
        """Re-arm once-per-session warnings for a new session."""
        self._clamp_warned = False

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if self.warning_handler is not None:
            self.warning_handler(message)

    def search_max(self, prev_height: int, curr_height: int) -> int:
        """Largest offset searched for frames of the given heights.

        At least one row must remain in common, so an overlap window that
        reaches the shorter frame's height is clamped (and reported once).
        """
        available = min(int(prev_height), int(curr_height))
        if self.overlap_pixels >= available:
            if not self._clamp_warned:
                self._clamp_warned = True
                self._warn(
                    f"overlap_pixels={self.overlap_pixels} >= frame height {available}; "
                    f"clamping search window to {available - 1}"
                )
            return max(0, available - 1)
        return self.overlap_pixels

    def score_offsets(self, prev: Frame, curr: Frame, max_offset: int) -> "np.ndarray":
        """Normalized dissimilarity for every offset in [0, max_offset]."""
        import numpy as np  # type: ignore

        step = self.sample_stride
        a = prev.pixels[:, ::step].astype(np.int16)
        b = curr.pixels[:, ::step].astype(np.int16)
        scores = np.empty(max_offset + 1, dtype=np.float64)
        for d in range(max_offset + 1):
            n = min(prev.height - d, curr.height)
            diff = np.abs(a[d : d + n] - b[:n])
            scores[d] = float(diff.mean()) / 255.0
        return scores

    def align(self, prev: Frame, curr: Frame) -> AlignmentResult:
        """Classify `curr` relative to the previously accepted frame `prev`.

        Raises:
            FrameSizeMismatch: Widths (or channel counts) differ.
        """
        import numpy as np  # type: ignore

        if prev.width != curr.width or prev.channels != curr.channels:
            raise FrameSizeMismatch(
                f"Cannot align frames of different shape: "
                f"{prev.width}x{prev.height}x{prev.channels} vs "
                f"{curr.width}x{curr.height}x{curr.channels}"
            )

        max_offset = self.search_max(prev.height, curr.height)
        scores = self.score_offsets(prev, curr, max_offset)
        zero_score = float(scores[0])

        # argmin returns the first minimum, so ties go to the smaller offset.
        winner = int(np.argmin(scores))
        winner_score = float(scores[winner])
        if winner < self.min_offset:
            # Zero motion matched best: advancing to any other offset would
            # re-append rows the canvas already holds.
            if winner_score <= self.duplicate_threshold:
                classification = Classification.DUPLICATE
                offset = winner
            else:
                classification = Classification.NO_OVERLAP
                offset = 0
        elif winner_score <= self.max_dissimilarity:
            classification = Classification.ADVANCE
            offset = winner
        else:
            classification = Classification.NO_OVERLAP
            offset = 0

        result = AlignmentResult(
            offset=offset,
            confidence=1.0 - winner_score,
            classification=classification,
            score=winner_score,
            zero_score=zero_score,
            candidate_offset=winner,
            search_max=max_offset,
        )
        logger.debug("align prev=%s curr=%s -> %s", prev.index, curr.index, result.as_dict())
        return result
