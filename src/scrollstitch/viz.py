"""Output helpers: format checks, image writing and seam overlays."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence, Tuple

SUPPORTED_FORMATS = ("png", "jpg", "jpeg", "bmp", "tiff", "tif", "webp")


def validate_format(fmt: str) -> str:
    """Return the normalized format name or raise ValueError."""
    norm = str(fmt).lower().lstrip(".")
    if norm not in SUPPORTED_FORMATS:
        raise ValueError(
            f"Unsupported format '{fmt}'. Supported: {', '.join(SUPPORTED_FORMATS)}"
        )
    return norm


def build_output_path(output: str, fmt: str) -> Path:
    """Append `.fmt` to `output` unless it already carries that extension."""
    fmt = validate_format(fmt)
    path = Path(output)
    if path.suffix.lower().lstrip(".") == fmt:
        return path
    return path.with_name(f"{path.name}.{fmt}")


def save_image(path: Path, image) -> None:
    """Save a BGR(A)/gray image to disk, creating parent directories if needed."""

    import cv2  # type: ignore

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), image):
        raise OSError(f"Failed to encode image to {path}")


def draw_seams(image, seams: Sequence[int], color: Tuple[int, int, int] = (0, 0, 255), size: int = 1):
    """Return a copy of `image` with a horizontal line at every seam row."""

    import cv2  # type: ignore
    import numpy as np  # type: ignore

    out = np.array(image, copy=True)
    if out.ndim == 2 or out.shape[2] == 1:
        out = cv2.cvtColor(out.reshape(out.shape[0], out.shape[1]), cv2.COLOR_GRAY2BGR)
    elif out.shape[2] == 4:
        out = cv2.cvtColor(out, cv2.COLOR_BGRA2BGR)
    width = out.shape[1]
    for y in seams:
        cv2.line(out, (0, int(y)), (width - 1, int(y)), color, int(size))
    return out
