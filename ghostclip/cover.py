from typing import Tuple

import cv2
import numpy as np

from .raster import RasterImage, draw_over


def cover_rect(src_w: int, src_h: int, dst_w: int, dst_h: int) -> Tuple[float, float, float, float]:
    """Source rectangle (sx, sy, sw, sh) that fills dst_w x dst_h without distortion."""
    if min(src_w, src_h, dst_w, dst_h) <= 0:
        raise ValueError("cover-fit needs positive source and destination sizes")
    src_ratio = src_w / src_h
    dst_ratio = dst_w / dst_h
    if src_ratio > dst_ratio:
        sh = float(src_h)
        sw = src_h * dst_ratio
        return (src_w - sw) / 2, 0.0, sw, sh
    sw = float(src_w)
    sh = src_w / dst_ratio
    return 0.0, (src_h - sh) / 2, sw, sh


def draw_cover(dst: RasterImage, scene: RasterImage) -> RasterImage:
    """Scale the cover rectangle of ``scene`` onto the whole of ``dst`` (object-fit: cover)."""
    w, h = dst.size
    sx, sy, sw, sh = cover_rect(scene.width, scene.height, w, h)
    kx, ky = sw / w, sh / h
    # dst pixel centre (u + .5) maps to src sx + (u + .5) * kx
    m = np.float64([
        [kx, 0.0, sx + 0.5 * kx - 0.5],
        [0.0, ky, sy + 0.5 * ky - 0.5],
    ])
    scaled = cv2.warpAffine(
        scene.pixels, m, (w, h),
        flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP,
        borderMode=cv2.BORDER_REPLICATE,
    )
    return draw_over(dst, RasterImage(scaled))
