from dataclasses import dataclass

import numpy as np

from .raster import RasterImage, round_half_up

PAD_RATIO = 0.02


@dataclass(frozen=True)
class BoundingBox:
    """Inclusive pixel bounds. Invalid (top > bottom or left > right) means empty."""

    top: int
    bottom: int
    left: int
    right: int

    @property
    def is_valid(self) -> bool:
        return self.top <= self.bottom and self.left <= self.right

    @property
    def width(self) -> int:
        return self.right - self.left + 1

    @property
    def height(self) -> int:
        return self.bottom - self.top + 1


def find_bounding_box(raster: RasterImage) -> BoundingBox:
    """Minimal box enclosing every pixel with alpha > 0."""
    opaque = raster.alpha > 0
    rows = np.flatnonzero(opaque.any(axis=1))
    cols = np.flatnonzero(opaque.any(axis=0))
    if rows.size == 0:
        return BoundingBox(top=raster.height, bottom=0, left=raster.width, right=0)
    return BoundingBox(top=int(rows[0]), bottom=int(rows[-1]), left=int(cols[0]), right=int(cols[-1]))


def pad_box(box: BoundingBox, width: int, height: int, ratio: float = PAD_RATIO) -> BoundingBox:
    """Grow ``box`` by ``ratio`` of its span on each side, clamped to the image."""
    pad_x = round_half_up((box.right - box.left) * ratio)
    pad_y = round_half_up((box.bottom - box.top) * ratio)
    return BoundingBox(
        top=max(0, box.top - pad_y),
        bottom=min(height - 1, box.bottom + pad_y),
        left=max(0, box.left - pad_x),
        right=min(width - 1, box.right + pad_x),
    )


def auto_crop(raster: RasterImage) -> RasterImage:
    """Trim transparent margins, keeping a 2% pad. All-transparent input is returned as is."""
    box = find_bounding_box(raster)
    if not box.is_valid:
        return raster
    box = pad_box(box, raster.width, raster.height)
    return RasterImage(raster.pixels[box.top:box.bottom + 1, box.left:box.right + 1].copy())
