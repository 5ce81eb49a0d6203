"""Offloaded composition worker.

Runs in its own process. Requests arrive on one queue, replies leave on
another, and each reply carries the ``id`` of the request it answers.

Request::

    {"id", "src", "bgColor", "cropMode", "scene", "strokeWidth", "strokeColor"}

``src`` is encoded bytes or an (h, w, 4) uint8 array; ``scene`` is an array
or None. Reply: ``{"id", "image": png bytes}`` or ``{"id", "error": str}``.
"""
from typing import Any, Dict, Optional

import numpy as np

from .logger import get_logger
from .pipeline import CompositionRequest, CropMode, Source, StrokeSpec, build_final, make_background
from .raster import RasterImage

log = get_logger("worker")

STOP = None


def to_message(call_id: int, request: CompositionRequest) -> Dict[str, Any]:
    """Serialise ``request``. The caller has already moved the source and copied the scene."""
    background = request.background
    scene = getattr(background, "image", None)
    src = request.source.pixels if isinstance(request.source, RasterImage) else request.source
    return {
        "id": call_id,
        "src": src,
        "bgColor": getattr(background, "color", None),
        "cropMode": request.crop.value,
        "scene": scene.pixels if scene is not None else None,
        "strokeWidth": request.stroke.width,
        "strokeColor": request.stroke.color,
    }


def from_message(message: Dict[str, Any]) -> CompositionRequest:
    src = message["src"]
    source: Source = RasterImage(src) if isinstance(src, np.ndarray) else src
    scene_px: Optional[np.ndarray] = message.get("scene")
    return CompositionRequest(
        source=source,
        crop=CropMode.parse(message.get("cropMode")),
        stroke=StrokeSpec(int(message.get("strokeWidth") or 0), message.get("strokeColor") or ""),
        background=make_background(
            message.get("bgColor"),
            RasterImage(scene_px) if scene_px is not None else None,
        ),
    )


def handle_message(message: Dict[str, Any]) -> Dict[str, Any]:
    call_id = message.get("id")
    try:
        return {"id": call_id, "image": build_final(from_message(message))}
    except Exception as e:
        log.exception("Composition %s failed", call_id)
        return {"id": call_id, "error": str(e)}


def worker_main(requests, replies) -> None:
    """Process entry point: serve requests until the STOP sentinel arrives."""
    log.debug("Compositor worker started")
    while True:
        message = requests.get()
        if message is STOP:
            break
        replies.put(handle_message(message))
    log.debug("Compositor worker stopped")
