"""State containers for one capture session."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from scrollstitch.accumulator import StitchAccumulator
from scrollstitch.aligner import AlignmentResult
from scrollstitch.config import SessionConfig
from scrollstitch.frame import Frame


class CaptureState(str, Enum):
    IDLE = "idle"
    PRIMING = "priming"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"
    DONE = "done"
    ABORTED = "aborted"


class CaptureStatus(str, Enum):
    COMPLETED = "completed"
    STALLED = "stalled"
    ABORTED = "aborted"


class StopReason(str, Enum):
    END_OF_CONTENT = "end_of_content"
    END_OF_INPUT = "end_of_input"
    SCROLL_BUDGET = "scroll_budget"
    TIME_BUDGET = "time_budget"
    STOPPED = "stopped"
    STALLED = "stalled"
    CAPTURE_ERROR = "capture_error"


@dataclass
class CaptureSession:
    """Everything one invocation owns; the orchestrator is the sole writer.

    `previous` is the last *accepted* frame (the alignment reference);
    duplicates never replace it.
    """

    config: SessionConfig
    accumulator: StitchAccumulator = field(default_factory=StitchAccumulator)
    state: CaptureState = CaptureState.IDLE
    previous: Optional[Frame] = None
    alignments: List[AlignmentResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    frames_captured: int = 0
    frames_accepted: int = 0
    scrolls: int = 0
    consecutive_duplicates: int = 0
    started_at: Optional[float] = None
    stop_reason: Optional[StopReason] = None
    error: Optional[str] = None


@dataclass
class CaptureResult:
    """Best-effort output plus how the session ended.

    The image is never annotated; completion state lives only here.
    """

    image: Optional["np.ndarray"]
    status: CaptureStatus
    stop_reason: StopReason
    alignments: List[AlignmentResult] = field(default_factory=list)
    frames_captured: int = 0
    frames_accepted: int = 0
    seams: List[int] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    runtime_ms: Optional[int] = None

    @property
    def size(self) -> Optional[tuple]:
        if self.image is None:
            return None
        return int(self.image.shape[1]), int(self.image.shape[0])

    @property
    def classifications(self) -> List[str]:
        return [a.classification.value for a in self.alignments]

    def as_dict(self) -> Dict[str, Any]:
        size = self.size
        return {
            "status": self.status.value,
            "stop_reason": self.stop_reason.value,
            "width": size[0] if size else None,
            "height": size[1] if size else None,
            "frames_captured": self.frames_captured,
            "frames_accepted": self.frames_accepted,
            "seams": list(self.seams),
            "alignments": [a.as_dict() for a in self.alignments],
            "warnings": list(self.warnings),
            "error": self.error,
            "runtime_ms": self.runtime_ms,
        }
