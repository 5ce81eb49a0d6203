from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple, Union

from . import config
from .cover import draw_cover
from .geometry import auto_crop
from .logger import get_logger
from .raster import RasterImage, decode_image, draw_over, encode_image, parse_color, resize, round_half_up
from .stroke import apply_stroke

log = get_logger("pipeline")


class CropMode(str, Enum):
    FULL = "full"
    TIGHT = "tight"

    @classmethod
    def parse(cls, value: Union[None, str, "CropMode"]) -> "CropMode":
        if not value:
            return cls.FULL
        try:
            return cls(value.lower() if isinstance(value, str) else value)
        except ValueError as exc:
            raise ValueError(f"crop must be 'full' or 'tight', got {value!r}") from exc


@dataclass(frozen=True)
class StrokeSpec:
    width: int = 0
    color: str = config.DEFAULT_STROKE_COLOR

    def __post_init__(self):
        if self.width < 0:
            raise ValueError(f"stroke width must be >= 0, got {self.width}")
        if self.width and parse_color(self.color) is None:
            raise ValueError("stroke color is required when width > 0")


@dataclass(frozen=True)
class SolidColor:
    color: str

    def __post_init__(self):
        parse_color(self.color)


@dataclass(frozen=True)
class Scene:
    image: RasterImage


Background = Union[None, SolidColor, Scene]


def make_background(color: Optional[str] = None, scene: Optional[RasterImage] = None) -> Background:
    """Scene takes precedence over a solid color."""
    if scene is not None:
        return Scene(scene)
    if color:
        return SolidColor(color)
    return None


Source = Union[bytes, RasterImage]


@dataclass(frozen=True)
class CompositionRequest:
    """One pipeline run: the matte (encoded or decoded) plus the transforms."""

    source: Source
    crop: CropMode = CropMode.FULL
    stroke: StrokeSpec = field(default_factory=StrokeSpec)
    background: Background = None


@dataclass(frozen=True)
class CompositionOptions:
    """The user's current transform selection, reusable across many sources."""

    background_color: Optional[str] = None
    scene: Optional[RasterImage] = None
    crop: CropMode = CropMode.FULL
    stroke: StrokeSpec = field(default_factory=StrokeSpec)

    def with_changes(self, **changes) -> "CompositionOptions":
        return replace(self, **changes)

    def request(self, source: Source) -> CompositionRequest:
        return CompositionRequest(
            source=source,
            crop=self.crop,
            stroke=self.stroke,
            background=make_background(self.background_color, self.scene),
        )


def load_source(source: Source) -> RasterImage:
    if isinstance(source, RasterImage):
        return source
    return decode_image(source)


def compose(request: CompositionRequest) -> RasterImage:
    """crop -> stroke -> background, always in that order."""
    canvas = load_source(request.source)

    if request.crop is CropMode.TIGHT:
        canvas = auto_crop(canvas)

    if request.stroke.width > 0:
        canvas = apply_stroke(canvas, request.stroke.width, request.stroke.color)

    background = request.background
    if isinstance(background, Scene):
        final = RasterImage.blank(canvas.width, canvas.height)
        draw_cover(final, background.image)
        canvas = draw_over(final, canvas)
    elif isinstance(background, SolidColor):
        final = RasterImage.filled(canvas.width, canvas.height, parse_color(background.color))
        canvas = draw_over(final, canvas)

    return canvas


def build_final(request: CompositionRequest, fmt: str = "png") -> bytes:
    """Compose and encode. PNG unless ``fmt`` says otherwise."""
    return encode_image(compose(request), fmt)


# --- STICKER ---

def fit_within(width: int, height: int, max_size: int) -> Tuple[int, int]:
    scale = min(max_size / width, max_size / height, 1.0)
    return round_half_up(width * scale), round_half_up(height * scale)


def compose_sticker(source: Source, stroke: StrokeSpec, size: int = config.STICKER_SIZE) -> RasterImage:
    """Tight crop, stroke (5px white by default), centered on a square transparent canvas."""
    canvas = auto_crop(load_source(source))
    width = stroke.width if stroke.width > 0 else config.STICKER_STROKE_WIDTH
    canvas = apply_stroke(canvas, width, stroke.color or config.DEFAULT_STROKE_COLOR)

    out_w, out_h = fit_within(canvas.width, canvas.height, size)
    scaled = resize(canvas, max(out_w, 1), max(out_h, 1))

    final = RasterImage.blank(size, size)
    return draw_over(final, scaled, round_half_up((size - out_w) / 2), round_half_up((size - out_h) / 2))


def build_sticker(source: Source, stroke: StrokeSpec) -> Tuple[bytes, str]:
    """Returns (bytes, extension): WebP when the encoder is available, else PNG."""
    sticker = compose_sticker(source, stroke)
    try:
        return encode_image(sticker, "webp", quality=config.STICKER_WEBP_QUALITY), "webp"
    except ValueError as exc:
        log.info("WebP encode unavailable (%s); falling back to PNG", exc)
        return encode_image(sticker, "png"), "png"
