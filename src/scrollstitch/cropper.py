"""Region cropping applied to every frame before alignment.

This is the single place where crop geometry is checked against frame
bounds. A region that does not fit is a configuration error and raises
`InvalidRegion`; it is never clamped, since a silently shrunk region would
produce a capture of the wrong area.

Coordinate-system notes:
- `CropRegion` is expressed in source-frame pixels, origin top-left.
- `x2`/`y2` are exclusive, so a region fits iff `x2 <= width` and
  `y2 <= height`.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Optional, Sequence, Tuple

from scrollstitch.errors import InvalidRegion
from scrollstitch.frame import Frame, replace_pixels


@dataclass(frozen=True)
class CropRegion:
    """Axis-aligned crop rectangle in integer pixel coordinates."""

    x: int
    y: int
    w: int
    h: int

    def __post_init__(self) -> None:
        for name in ("x", "y", "w", "h"):
            value = getattr(self, name)
            if isinstance(value, bool) or int(value) != value:
                raise InvalidRegion(f"Crop {name} must be an integer, got {value!r}.")
        if self.w <= 0 or self.h <= 0:
            raise InvalidRegion(f"Crop width/height must be positive, got {self.w}x{self.h}.")
        if self.x < 0 or self.y < 0:
            raise InvalidRegion(f"Crop origin must be non-negative, got ({self.x}, {self.y}).")

    @classmethod
    def from_sequence(cls, values: Sequence[int]) -> "CropRegion":
        if len(values) != 4:
            raise InvalidRegion(f"Crop region needs 4 values (x, y, w, h), got {len(values)}.")
        return cls(*(int(v) for v in values))

    @property
    def area(self) -> int:
        return int(self.w * self.h)

    @property
    def corner(self) -> Tuple[int, int]:
        return int(self.x), int(self.y)

    @property
    def size(self) -> Tuple[int, int]:
        return int(self.w), int(self.h)

    @property
    def x2(self) -> int:
        return int(self.x + self.w)

    @property
    def y2(self) -> int:
        return int(self.y + self.h)

    def fits(self, width: int, height: int) -> bool:
        """True if the region lies fully inside a width x height frame."""
        return self.x2 <= int(width) and self.y2 <= int(height)

    def as_string(self) -> str:
        return f"{self.x},{self.y},{self.w},{self.h}"


def parse_crop_region(crop_str: str) -> CropRegion:
    """Parse `"x,y,width,height"` (`,` `:` or whitespace separated).

    Raises:
        InvalidRegion: Wrong number of fields, non-integers, or empty size.

    Example:
        parse_crop_region("100,50,1920,1080")
    """
    parts = [p for p in re.split(r"[,:\s]+", str(crop_str).strip()) if p]
    try:
        values = [int(p) for p in parts]
    except ValueError as exc:
        raise InvalidRegion(
            f"Invalid crop region {crop_str!r}; use x,y,width,height (e.g. '100,50,1920,1080')."
        ) from exc
    if len(values) != 4:
        raise InvalidRegion(
            f"Invalid crop region {crop_str!r}; use x,y,width,height (e.g. '100,50,1920,1080')."
        )
    return CropRegion.from_sequence(values)


def crop(frame: Frame, region: Optional[CropRegion]) -> Frame:
    """Apply `region` to `frame` and return a new frame.

    `region=None` means full frame and returns the input unchanged.

    Raises:
        InvalidRegion: If the region exceeds the frame bounds.
    """
    if region is None:
        return frame
    if not region.fits(frame.width, frame.height):
        raise InvalidRegion(
            f"Crop region {region.as_string()} exceeds frame {frame.width}x{frame.height} "
            f"(frame index {frame.index})."
        )
    return replace_pixels(frame, frame.pixels[region.y : region.y2, region.x : region.x2])
