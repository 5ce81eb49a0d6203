import asyncio

import numpy as np

from ghostclip.raster import RasterImage, decode_image, encode_image

BLUE = (0, 0, 255, 255)
RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
WHITE = (255, 255, 255, 255)


def solid(width, height, color=BLUE):
    return RasterImage.filled(width, height, color)


def blob(width, height, box, color=GREEN):
    """Transparent canvas with an opaque rectangle; box = (top, bottom, left, right) inclusive."""
    img = RasterImage.blank(width, height)
    top, bottom, left, right = box
    img.pixels[top:bottom + 1, left:right + 1] = color
    return img


def gradient(width, height):
    """Opaque image whose red channel encodes x and green encodes y."""
    px = np.zeros((height, width, 4), dtype=np.uint8)
    px[..., 0] = np.linspace(0, 255, width, dtype=np.uint8)[None, :]
    px[..., 1] = np.linspace(0, 255, height, dtype=np.uint8)[:, None]
    px[..., 3] = 255
    return RasterImage(px)


def png(raster):
    return encode_image(raster, "png")


class FakeSegmenter:
    """Treats the input bytes as an already segmented matte."""

    def __init__(self, fail_marker=b"FAIL"):
        self.fail_marker = fail_marker
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def segment(self, data, progress=None):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if progress:
                progress("compute:inference", None, None)
            if data.startswith(self.fail_marker):
                raise RuntimeError("segmentation failed")
            return decode_image(data)
        finally:
            self.active -= 1
