import math
from typing import Optional, Tuple

import cv2
import numpy as np

from .errors import DecodeError, RasterTransferredError

Color = Tuple[int, int, int, int]


class RasterImage:
    """RGBA8 pixels, straight alpha, shape ``(height, width, 4)``.

    A raster has exactly one owner. ``transfer()`` moves the buffer into a new
    instance and leaves this one unusable; ``copy()`` duplicates it.
    """

    __slots__ = ("_pixels",)

    def __init__(self, pixels: np.ndarray):
        if pixels.dtype != np.uint8 or pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"expected (h, w, 4) uint8 pixels, got {pixels.shape} {pixels.dtype}")
        self._pixels = np.ascontiguousarray(pixels)

    @classmethod
    def blank(cls, width: int, height: int) -> "RasterImage":
        return cls(np.zeros((height, width, 4), dtype=np.uint8))

    @classmethod
    def filled(cls, width: int, height: int, color: Color) -> "RasterImage":
        out = cls.blank(width, height)
        out.pixels[...] = color
        return out

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise RasterTransferredError("raster was transferred and can no longer be read")
        return self._pixels

    @property
    def transferred(self) -> bool:
        return self._pixels is None

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    def copy(self) -> "RasterImage":
        return RasterImage(self.pixels.copy())

    def transfer(self) -> "RasterImage":
        moved = RasterImage(self.pixels)
        self._pixels = None
        return moved

    def __repr__(self) -> str:
        if self._pixels is None:
            return "RasterImage(<transferred>)"
        return f"RasterImage({self.width}x{self.height})"


# --- COLORS ---

def parse_color(value: Optional[str]) -> Optional[Color]:
    """Parse '#rgb', '#rrggbb', '#rrggbbaa' or 'R,G,B' into RGBA, or None."""
    if not value:
        return None
    value = value.strip()
    if "," in value:
        parts = [p.strip() for p in value.split(",")]
        if len(parts) != 3:
            raise ValueError("solid must be 'R,G,B' (e.g., '255,255,255').")
        r, g, b = map(int, parts)
        for v in (r, g, b):
            if v < 0 or v > 255:
                raise ValueError("solid RGB values must be in 0..255.")
        return (r, g, b, 255)

    hex_str = value[1:] if value.startswith("#") else value
    if len(hex_str) == 3:
        hex_str = "".join(c * 2 for c in hex_str)
    if len(hex_str) == 6:
        hex_str += "ff"
    if len(hex_str) != 8:
        raise ValueError(f"Unrecognised color {value!r}; use '#rrggbb' or 'R,G,B'.")
    try:
        channels = bytes.fromhex(hex_str)
    except ValueError as exc:
        raise ValueError(f"Unrecognised color {value!r}; use '#rrggbb' or 'R,G,B'.") from exc
    return tuple(channels)


# --- DECODE / ENCODE ---

def decode_image(data: bytes) -> RasterImage:
    """Decode PNG/JPG/WebP bytes into an RGBA raster."""
    if not data:
        raise DecodeError("Empty image upload.")
    arr = np.frombuffer(data, np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise DecodeError("Unable to decode image. Ensure it's a valid JPG/PNG.")
    if img.dtype == np.uint16:
        img = (img >> 8).astype(np.uint8)

    if img.ndim == 2:
        rgba = cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    elif img.shape[2] == 3:
        rgba = cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
    else:
        rgba = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    return RasterImage(rgba)


def encode_image(raster: RasterImage, fmt: str = "png", quality: Optional[int] = None) -> bytes:
    """Encode a raster. PNG and WebP keep alpha; JPG drops it."""
    fmt = fmt.lower().lstrip(".")
    if fmt == "jpeg":
        fmt = "jpg"
    if fmt == "jpg":
        img = cv2.cvtColor(raster.pixels, cv2.COLOR_RGBA2BGR)
        params = [cv2.IMWRITE_JPEG_QUALITY, quality] if quality else []
    elif fmt in ("png", "webp"):
        img = cv2.cvtColor(raster.pixels, cv2.COLOR_RGBA2BGRA)
        params = [cv2.IMWRITE_WEBP_QUALITY, quality] if fmt == "webp" and quality else []
    else:
        raise ValueError(f"Unsupported output format {fmt!r}.")
    try:
        ok, buf = cv2.imencode(f".{fmt}", img, params)
    except cv2.error as exc:
        raise ValueError(f"Failed to encode {fmt.upper()}: {exc}") from exc
    if not ok:
        raise ValueError(f"Failed to encode {fmt.upper()}.")
    return buf.tobytes()


# --- ALPHA ALGEBRA ---

def blend_over(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Straight-alpha source-over of float RGBA arrays in [0, 1]; returns uint8."""
    sa = src[..., 3:4]
    da = dst[..., 3:4]
    out_a = sa + da * (1.0 - sa)
    rgb = src[..., :3] * sa + dst[..., :3] * da * (1.0 - sa)
    out_rgb = np.divide(rgb, out_a, out=np.zeros_like(rgb), where=out_a > 0)
    out = np.concatenate([out_rgb, out_a], axis=-1)
    return np.clip(np.rint(out * 255.0), 0, 255).astype(np.uint8)


def draw_over(dst: RasterImage, src: RasterImage, x: int = 0, y: int = 0) -> RasterImage:
    """Draw ``src`` onto ``dst`` at integer offset (x, y), clipped. Mutates ``dst``."""
    d = dst.pixels
    s = src.pixels
    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + s.shape[1], d.shape[1]), min(y + s.shape[0], d.shape[0])
    if x0 >= x1 or y0 >= y1:
        return dst

    s_reg = s[y0 - y:y1 - y, x0 - x:x1 - x].astype(np.float32) / 255.0
    d_reg = d[y0:y1, x0:x1].astype(np.float32) / 255.0
    d[y0:y1, x0:x1] = blend_over(s_reg, d_reg)
    return dst


def resize(raster: RasterImage, width: int, height: int) -> RasterImage:
    """Resample in premultiplied space so transparent pixels don't bleed color."""
    if (width, height) == raster.size:
        return raster.copy()
    px = raster.pixels.astype(np.float32)
    a = px[..., 3:4] / 255.0
    premul = np.concatenate([px[..., :3] * a, px[..., 3:4]], axis=-1)
    shrinking = width < raster.width or height < raster.height
    interp = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
    scaled = cv2.resize(premul, (width, height), interpolation=interp)

    out_a = scaled[..., 3:4] / 255.0
    rgb = np.divide(scaled[..., :3], out_a, out=np.zeros_like(scaled[..., :3]), where=out_a > 0)
    out = np.concatenate([rgb, scaled[..., 3:4]], axis=-1)
    return RasterImage(np.clip(np.rint(out), 0, 255).astype(np.uint8))


def round_half_up(value: float) -> int:
    """Round half up (0.5 -> 1), unlike the builtin round()."""
    return int(math.floor(value + 0.5))
