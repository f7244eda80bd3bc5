"""Capability interfaces consumed by the capture core, plus file adapters.

The core only sees two narrow interfaces:
- `FrameSource.next_frame()` -> Frame, or None at end of input; raises on failure.
- `ScrollDriver.step(key)` -> None; raises on failure.

Adapters in this module cover pre-recorded input:
- in-memory frame lists (tests, embedding)
- pre-extracted frame files (png/jpg) via OpenCV
- screen recordings via OpenCV VideoCapture, optionally subsampled
Live screen capture and key simulation belong to the front end.
"""

from __future__ import annotations

import glob
import logging
import os
from pathlib import Path
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from scrollstitch.frame import Frame, as_frame


logger = logging.getLogger(__name__)


# --- Frame source abstraction ---

class FrameSource:
    """Abstract frame source interface.

    Contract:
    - next_frame() returns the next Frame in capture order, or None when the
      input is exhausted. Failures raise.
    - length() returns total frames if known, else None.
    - fps()/resolution() return metadata when available.
    - close() releases resources.
    """

    def next_frame(self) -> Optional[Frame]:
        raise NotImplementedError

    def length(self) -> Optional[int]:
        return None

    def fps(self) -> Optional[float]:
        return None

    def resolution(self) -> Optional[Tuple[int, int]]:
        return None

    def close(self) -> None:
        return None

    def __enter__(self) -> "FrameSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ScrollDriver:
    """Abstract scroll driver: advances the view by one unit per call."""

    def step(self, key: str) -> None:
        raise NotImplementedError


class NullScrollDriver(ScrollDriver):
    """Driver for pre-recorded input, where scrolling already happened."""

    def __init__(self) -> None:
        self.steps = 0

    def step(self, key: str) -> None:
        self.steps += 1


class CallbackScrollDriver(ScrollDriver):
    """Delegates each step to `callback(key)` (e.g. a key-press library)."""

    def __init__(self, callback: Callable[[str], Any]) -> None:
        self._callback = callback

    def step(self, key: str) -> None:
        self._callback(key)


# --- Frame source implementations ---

class ArrayFrameSource(FrameSource):
    """Frame source over an in-memory sequence of arrays or Frames."""

    def __init__(self, frames: Iterable[Any], fps: Optional[float] = None) -> None:
        self._frames = list(frames)
        self._idx = 0
        self._fps = fps

    def next_frame(self) -> Optional[Frame]:
        if self._idx >= len(self._frames):
            return None
        item = self._frames[self._idx]
        timestamp = self._idx / self._fps if self._fps else None
        frame = as_frame(item, index=self._idx, timestamp=timestamp)
        self._idx += 1
        return frame

    def length(self) -> Optional[int]:
        return len(self._frames)

    def fps(self) -> Optional[float]:
        return self._fps

    def resolution(self) -> Optional[Tuple[int, int]]:
        if not self._frames:
            return None
        first = as_frame(self._frames[0])
        return first.size


class FramesSource(FrameSource):
    """Frame source backed by an explicit list of image file paths.

    Ordering is the list order, so callers must pass paths already sorted
    in capture order (see `list_frame_paths`).
    """

    def __init__(self, frame_paths: List[Path], fps: Optional[float] = None) -> None:
        _require_cv2()
        if not frame_paths:
            raise FileNotFoundError("No frames found for frames source.")
        self._paths = [Path(p) for p in frame_paths]
        self._idx = 0
        self._fps = fps

        import cv2  # type: ignore

        # Probe the first frame to fail fast on unreadable input.
        first = cv2.imread(str(self._paths[0]), cv2.IMREAD_UNCHANGED)
        if first is None:
            raise ValueError(f"Failed to read first frame: {self._paths[0]}")
        self._resolution = (int(first.shape[1]), int(first.shape[0]))

    def next_frame(self) -> Optional[Frame]:
        import cv2  # type: ignore

        if self._idx >= len(self._paths):
            return None
        path = self._paths[self._idx]
        pixels = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if pixels is None:
            raise ValueError(f"Failed to read frame: {path}")
        timestamp = self._idx / self._fps if self._fps else None
        frame = as_frame(pixels, index=self._idx, timestamp=timestamp)
        self._idx += 1
        return frame

    def length(self) -> Optional[int]:
        return len(self._paths)

    def fps(self) -> Optional[float]:
        return self._fps

    def resolution(self) -> Optional[Tuple[int, int]]:
        return self._resolution


class VideoSource(FrameSource):
    """Frame source backed by OpenCV VideoCapture.

    With `sample_fps`, only every round(video_fps / sample_fps)-th frame is
    returned; skipped frames are grabbed without decoding.
    """

    def __init__(self, video_path: Path, sample_fps: Optional[float] = None) -> None:
        _require_cv2()
        if sample_fps is not None and sample_fps <= 0:
            raise ValueError(f"sample_fps must be > 0, got {sample_fps}")
        import cv2  # type: ignore

        self._cap = cv2.VideoCapture(str(video_path))
        if not self._cap.isOpened():
            raise ValueError(f"Failed to open video: {video_path}")
        self._fps = self._cap.get(cv2.CAP_PROP_FPS)
        if self._fps is not None and self._fps <= 0:
            self._fps = None
        self._frame_count = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT))
        if self._frame_count <= 0:
            self._frame_count = None
        width = self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)
        height = self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
        if width and height:
            self._resolution = (int(width), int(height))
        else:
            self._resolution = None

        self._step = 1
        if sample_fps is not None:
            if self._fps is None:
                logger.warning("Video fps unknown; sample_fps=%s ignored.", sample_fps)
            else:
                self._step = max(1, int(round(self._fps / float(sample_fps))))
        self._idx = 0
        logger.info(
            "VideoSource %s fps=%s frames=%s res=%s sampling every %s frame(s)",
            video_path,
            self._fps,
            self._frame_count,
            self._resolution,
            self._step,
        )

    def next_frame(self) -> Optional[Frame]:
        import cv2  # type: ignore

        if self._idx > 0:
            for _ in range(self._step - 1):
                if not self._cap.grab():
                    return None
        ok, pixels = self._cap.read()
        if not ok or pixels is None:
            return None
        timestamp = self._cap.get(cv2.CAP_PROP_POS_MSEC) / 1000.0
        frame = as_frame(pixels, index=self._idx, timestamp=timestamp)
        self._idx += 1
        return frame

    def length(self) -> Optional[int]:
        if self._frame_count is None:
            return None
        return -(-self._frame_count // self._step)

    def fps(self) -> Optional[float]:
        if self._fps is None:
            return None
        return self._fps / self._step

    def resolution(self) -> Optional[Tuple[int, int]]:
        return self._resolution

    def close(self) -> None:
        self._cap.release()


def _require_cv2() -> None:
    try:
        import cv2  # noqa: F401
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "OpenCV (cv2) is required to read frames. Install it first."
        ) from exc


# --- Source factory ---

def open_source(source_cfg: Dict[str, Any], root_dir: Optional[Path] = None) -> FrameSource:
    """Open a video or a frames directory as a FrameSource.

    Args:
        source_cfg: Dict with keys: input_type ("video" | "frames"), path,
            and optionally frame_pattern, fps, sample_fps.
        root_dir: Base for relative paths (current directory if None).

    Returns:
        FrameSource instance (VideoSource or FramesSource).

    Raises:
        FileNotFoundError: If the path is missing or holds no frames.
        ValueError: If input_type is unsupported or required fields missing.

    Example:
        src = open_source({"input_type": "frames", "path": "captures/article"})
    """
    if root_dir is None:
        root_dir = Path.cwd()

    input_type = source_cfg.get("input_type")
    path = source_cfg.get("path")
    if not input_type or not path:
        raise ValueError("source_cfg requires input_type and path.")

    source_path = (Path(root_dir) / path).resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Source path not found: {path}")

    if input_type == "video":
        return VideoSource(source_path, sample_fps=source_cfg.get("sample_fps"))

    if input_type == "frames":
        frame_paths = list_frame_paths(source_path, source_cfg.get("frame_pattern"))
        return FramesSource(frame_paths, fps=source_cfg.get("fps"))

    raise ValueError(f"Unsupported input_type: {input_type}")


# --- Frame path resolution ---

def list_frame_paths(frame_dir: os.PathLike, frame_pattern: Optional[str] = None) -> List[Path]:
    """List image files in `frame_dir` in capture order.

    Files sort by the numbers in their names (frame_2 before frame_10),
    falling back to lexicographic order for names without digits.
    """
    frame_dir = Path(frame_dir)
    if frame_pattern:
        frame_paths = [Path(p) for p in glob.glob(str(frame_dir / frame_pattern))]
    else:
        frame_paths = []
        for ext in ("*.png", "*.jpg", "*.jpeg", "*.bmp", "*.webp"):
            frame_paths.extend(Path(p) for p in glob.glob(str(frame_dir / ext)))

    if not frame_paths:
        raise FileNotFoundError(f"No frames found in directory: {frame_dir}")
    return sorted(frame_paths, key=_frame_sort_key)


def _frame_sort_key(path: Path):
    numbers = _extract_numbers(path.name)
    if numbers:
        return (0, numbers, path.name)
    return (1, [], path.name)


def _extract_numbers(name: str) -> List[int]:
    return [int(n) for n in re.findall(r"\d+", name)]
