"""Programmatic entry point.

    from ghostclip.sdk import GhostClip

    gc = GhostClip()
    png = asyncio.run(gc.remove_background("photo.jpg", background_color="#ffffff"))
"""
import os
from typing import Dict, Optional, Union

import requests

from . import config
from .embed import decode_data_url
from .pipeline import CompositionOptions, CropMode, StrokeSpec, build_final
from .raster import RasterImage, encode_image
from .segmentation import Segmenter

SourceLike = Union[bytes, str, os.PathLike, RasterImage]


class GhostClip:
    def __init__(self, model: str = config.MODEL_NAME, segmenter: Optional[Segmenter] = None):
        self.model = model
        self.segmenter = segmenter or Segmenter(model)
        self._by_device: Dict[str, Segmenter] = {}

    def segmenter_for(self, device: Optional[str] = None) -> Segmenter:
        """The default segmenter, or one pinned to ``device`` ('cpu' / 'gpu')."""
        if device is None:
            return self.segmenter
        if device not in self._by_device:
            self._by_device[device] = Segmenter(self.model, device=device)
        return self._by_device[device]

    async def remove_background(
        self,
        source: SourceLike,
        background_color: Optional[str] = None,
        background_image: Optional[RasterImage] = None,
        crop: str = "full",
        stroke: Optional[dict] = None,
        device: Optional[str] = None,
    ) -> bytes:
        """Segment ``source`` and return the composed PNG.

        ``stroke`` is ``{"width": int, "color": "#rrggbb"}``; omit for none.
        ``device`` forces 'cpu' or 'gpu'; by default it is detected.
        Composition runs inline, on the caller's thread.
        """
        segmenter = self.segmenter_for(device)
        data = self._to_bytes(source)
        matte = await segmenter.segment(data)

        stroke = stroke or {}
        options = CompositionOptions(
            background_color=background_color or None,
            scene=background_image,
            crop=CropMode.parse(crop),
            stroke=StrokeSpec(stroke.get("width") or 0, stroke.get("color") or config.DEFAULT_STROKE_COLOR),
        )
        return build_final(options.request(matte))

    def _to_bytes(self, source: SourceLike) -> bytes:
        if isinstance(source, (bytes, bytearray)):
            return bytes(source)
        if isinstance(source, RasterImage):
            return encode_image(source, "png")
        if isinstance(source, str) and source.startswith(("http://", "https://")):
            response = requests.get(source, timeout=30)
            response.raise_for_status()
            return response.content
        if isinstance(source, str) and source.startswith("data:"):
            return decode_data_url(source)
        if isinstance(source, (str, os.PathLike)):
            with open(source, "rb") as f:
                return f.read()
        raise TypeError("Unsupported source type. Provide bytes, a RasterImage, a path or a URL.")
