import math
from typing import Union

import cv2
import numpy as np

from .raster import Color, RasterImage, draw_over, parse_color


def stroke_steps(width: int) -> int:
    return max(24, width * 4)


def dilate_alpha(alpha: np.ndarray, width: int, pad: int) -> np.ndarray:
    """Accumulate ``alpha`` stamped around a circle of radius ``width``.

    Angular sampling, not exact morphology: very wide strokes can show
    faint gaps between samples.
    """
    h, w = alpha.shape
    out_size = (w + 2 * pad, h + 2 * pad)
    src = alpha.astype(np.float32) / 255.0
    acc = np.zeros((out_size[1], out_size[0]), dtype=np.float32)

    steps = stroke_steps(width)
    for i in range(steps):
        angle = 2 * math.pi * i / steps
        dx = math.cos(angle) * width
        dy = math.sin(angle) * width
        m = np.float64([[1.0, 0.0, pad + dx], [0.0, 1.0, pad + dy]])
        shifted = cv2.warpAffine(
            src, m, out_size,
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=0,
        )
        # source-over on alpha alone
        acc = shifted + acc * (1.0 - shifted)
    return acc


def apply_stroke(raster: RasterImage, width: int, color: Union[str, Color]) -> RasterImage:
    """Outline opaque pixels with ``color``; the canvas grows by 2*width on every side."""
    if width < 0:
        raise ValueError(f"stroke width must be >= 0, got {width}")
    if width == 0:
        return raster
    rgba = parse_color(color) if isinstance(color, str) else color
    if rgba is None:
        raise ValueError("stroke color is required")

    pad = width * 2
    acc = dilate_alpha(raster.alpha, width, pad)

    # keep the ring's alpha, paint it with the stroke color
    ring = np.zeros(acc.shape + (4,), dtype=np.uint8)
    ring[..., 3] = np.clip(np.rint(acc * rgba[3]), 0, 255).astype(np.uint8)
    ring[ring[..., 3] > 0, :3] = rgba[:3]

    out = RasterImage(ring)
    return draw_over(out, raster, pad, pad)
