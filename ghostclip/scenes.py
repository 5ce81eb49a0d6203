from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .raster import RasterImage, parse_color

SCENE_SIZE = (1920, 1080)

Stops = Sequence[Tuple[float, str]]


def _ramp(t: np.ndarray, stops: Stops) -> np.ndarray:
    positions = [p for p, _ in stops]
    colors = np.array([parse_color(c)[:3] for _, c in stops], dtype=np.float32)
    out = np.empty(t.shape + (4,), dtype=np.uint8)
    for ch in range(3):
        out[..., ch] = np.rint(np.interp(t, positions, colors[:, ch]))
    out[..., 3] = 255
    return out


def linear_gradient(width: int, height: int, x1: float, y1: float, stops: Stops) -> RasterImage:
    """Gradient along the vector (0, 0) -> (x1, y1)."""
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float32) + 0.5
    t = (xs * x1 + ys * y1) / (x1 * x1 + y1 * y1)
    return RasterImage(_ramp(np.clip(t, 0, 1), stops))


def radial_gradient(width: int, height: int, stops: Stops, reach: float = 0.7) -> RasterImage:
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float32) + 0.5
    r = np.hypot(xs - width / 2, ys - height / 2) / (max(width, height) * reach)
    return RasterImage(_ramp(np.clip(r, 0, 1), stops))


def _studio(w, h):
    return radial_gradient(w, h, [(0, "#e0e0e0"), (1, "#808080")])


def _nature(w, h):
    return linear_gradient(w, h, 0, h, [(0, "#87ceeb"), (0.5, "#90ee90"), (1, "#228b22")])


def _office(w, h):
    return linear_gradient(w, h, w, h, [(0, "#2c3e50"), (0.5, "#34495e"), (1, "#1a252f")])


def _gradient(w, h):
    return linear_gradient(w, h, w, h, [(0, "#7c5cff"), (0.5, "#c084fc"), (1, "#f472b6")])


PRESETS: Dict[str, object] = {
    "studio": _studio,
    "nature": _nature,
    "office": _office,
    "gradient": _gradient,
}


def scene_preset(name: str, size: Tuple[int, int] = SCENE_SIZE) -> Optional[RasterImage]:
    """Render a named background scene; 'none' (or empty) means no scene."""
    if not name or name == "none":
        return None
    try:
        painter = PRESETS[name]
    except KeyError:
        raise ValueError(f"unknown scene {name!r}; choose from {', '.join(PRESETS)}") from None
    return painter(*size)
