"""Session configuration: tunables, YAML loading and crop presets."""

from __future__ import annotations

from dataclasses import dataclass, fields
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from scrollstitch.aligner import (
    DEFAULT_DUPLICATE_THRESHOLD,
    DEFAULT_MAX_DISSIMILARITY,
    DEFAULT_MIN_OFFSET,
    DEFAULT_OVERLAP_PIXELS,
    DEFAULT_SAMPLE_STRIDE,
    OverlapAligner,
)
from scrollstitch.cropper import CropRegion, parse_crop_region
from scrollstitch.errors import InvalidRegion


logger = logging.getLogger(__name__)

SCROLL_KEYS = ("space", "down", "pagedown")

# Read-only; user presets are kept by the front end, not here.
BUILTIN_PRESETS: Dict[str, str] = {
    "1080p": "0,0,1920,1080",
    "720p": "0,0,1280,720",
    "4k": "0,0,3840,2160",
    "naver-series": "607,23,690,1007",
    "vm-small": "100,100,1024,768",
    "vm-medium": "100,100,1280,800",
    "vm-large": "100,100,1920,1080",
}


@dataclass
class SessionConfig:
    """All inputs of one capture session, validated once at creation.

    Defaults follow the original command-line tool: 125px overlap window,
    3s initial delay, 200ms settle delay after each scroll, space bar, no
    scroll limit. `duplicate_retry_limit=None` disables stall detection,
    which suits recordings that hold each scroll position for many frames.
    """

    crop: Optional[CropRegion] = None
    overlap_pixels: int = DEFAULT_OVERLAP_PIXELS
    min_offset: int = DEFAULT_MIN_OFFSET
    sample_stride: int = DEFAULT_SAMPLE_STRIDE
    duplicate_threshold: float = DEFAULT_DUPLICATE_THRESHOLD
    max_dissimilarity: float = DEFAULT_MAX_DISSIMILARITY
    scroll_key: str = "space"
    initial_delay_s: float = 3.0
    scroll_delay_ms: int = 200
    max_scrolls: Optional[int] = None
    max_duration_s: Optional[float] = None
    duplicate_retry_limit: Optional[int] = 3
    prefetch: bool = False

    def validate(self) -> "SessionConfig":
        """Check every field; returns self so calls can be chained.

        Raises:
            ValueError: Any field is out of range.
            InvalidRegion: `crop` is not a CropRegion.
        """
        if self.crop is not None and not isinstance(self.crop, CropRegion):
            raise InvalidRegion(f"crop must be a CropRegion, got {type(self.crop).__name__}")
        self.scroll_key = str(self.scroll_key).lower().strip()
        if self.scroll_key not in SCROLL_KEYS:
            raise ValueError(f"Unsupported scroll_key: {self.scroll_key} (use one of {SCROLL_KEYS})")
        if self.initial_delay_s < 0:
            raise ValueError(f"initial_delay_s must be >= 0, got {self.initial_delay_s}")
        if self.scroll_delay_ms < 0:
            raise ValueError(f"scroll_delay_ms must be >= 0, got {self.scroll_delay_ms}")
        if self.max_scrolls is not None and self.max_scrolls < 0:
            raise ValueError(f"max_scrolls must be >= 0, got {self.max_scrolls}")
        if self.max_duration_s is not None and self.max_duration_s <= 0:
            raise ValueError(f"max_duration_s must be > 0, got {self.max_duration_s}")
        if self.duplicate_retry_limit is not None and self.duplicate_retry_limit < 0:
            raise ValueError(f"duplicate_retry_limit must be >= 0, got {self.duplicate_retry_limit}")
        # The aligner owns the range checks for its own tunables.
        self.build_aligner()
        return self

    def build_aligner(self, warning_handler=None) -> OverlapAligner:
        return OverlapAligner(
            overlap_pixels=self.overlap_pixels,
            min_offset=self.min_offset,
            sample_stride=self.sample_stride,
            duplicate_threshold=self.duplicate_threshold,
            max_dissimilarity=self.max_dissimilarity,
            warning_handler=warning_handler,
        )

    def as_dict(self) -> Dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        out["crop"] = self.crop.as_string() if self.crop is not None else None
        return out


def resolve_crop(value: Union[None, str, Sequence[int], CropRegion]) -> Optional[CropRegion]:
    """Turn a preset name, crop string, 4-sequence or CropRegion into a region.

    Example:
        resolve_crop("vm-small")          # CropRegion(100, 100, 1024, 768)
        resolve_crop("0, 0, 800, 600")
    """
    if value is None or isinstance(value, CropRegion):
        return value
    if isinstance(value, str):
        name = value.strip()
        if name in BUILTIN_PRESETS:
            logger.info("Using crop preset '%s': %s", name, BUILTIN_PRESETS[name])
            return parse_crop_region(BUILTIN_PRESETS[name])
        return parse_crop_region(name)
    return CropRegion.from_sequence(list(value))


def config_from_mapping(data: Dict[str, Any]) -> SessionConfig:
    """Build and validate a SessionConfig from a plain mapping.

    Raises:
        ValueError: Unknown keys or invalid values.
    """
    known = {f.name for f in fields(SessionConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown session config keys: {unknown}")
    values = dict(data)
    if "crop" in values:
        values["crop"] = resolve_crop(values["crop"])
    return SessionConfig(**values).validate()


def load_session_config(path: Union[str, os.PathLike]) -> SessionConfig:
    """Load a YAML session config.

    Args:
        path: YAML file whose root is a mapping of SessionConfig fields.

    Returns:
        Validated SessionConfig.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML root is not a mapping or values are invalid.

    Example:
        cfg = load_session_config("configs/article.yaml")
    """
    import yaml  # type: ignore

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Session config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Session config YAML root must be a mapping.")
    return config_from_mapping(data)
