import asyncio
from typing import Callable, List, Optional

import numpy as np
import onnxruntime as ort
from rembg import new_session, remove

from . import config
from .logger import get_logger
from .raster import RasterImage, decode_image

log = get_logger("segmentation")

# progress(key, current, total); keys: "fetch:model", "compute:inference"
ProgressCallback = Callable[[str, Optional[int], Optional[int]], None]

_GPU_PROVIDERS = (
    "CUDAExecutionProvider",
    "ROCMExecutionProvider",
    "DmlExecutionProvider",
    "CoreMLExecutionProvider",
)


def detect_device() -> str:
    """'gpu' when onnxruntime exposes an accelerated provider, else 'cpu'."""
    available = set(ort.get_available_providers())
    for provider in _GPU_PROVIDERS:
        if provider in available:
            log.info("Accelerated provider %s available, using GPU", provider)
            return "gpu"
    log.info("No accelerated provider available, using CPU")
    return "cpu"


def providers_for(device: str) -> List[str]:
    """onnxruntime providers for a device hint, CPU always last."""
    if device == "gpu":
        available = set(ort.get_available_providers())
        return [p for p in _GPU_PROVIDERS if p in available] + ["CPUExecutionProvider"]
    return ["CPUExecutionProvider"]


class Segmenter:
    """rembg session wrapper. Device and session are resolved once, on first use."""

    def __init__(self, model_name: str = config.MODEL_NAME, device: Optional[str] = None):
        if device not in (None, "cpu", "gpu"):
            raise ValueError(f"device must be 'cpu' or 'gpu', got {device!r}")
        self.model_name = model_name
        self._device = device
        self._session = None

    @property
    def device(self) -> str:
        if self._device is None:
            self._device = detect_device()
        return self._device

    def get_session(self, progress: Optional[ProgressCallback] = None):
        if self._session is None:
            if progress:
                progress("fetch:model", None, None)
            log.info("Loading %s on %s", self.model_name, self.device)
            self._session = new_session(self.model_name, providers=providers_for(self.device))
        return self._session

    def remove_background(self, data: bytes, progress: Optional[ProgressCallback] = None) -> RasterImage:
        """Blocking: decode ``data`` and return its matte (alpha = foreground)."""
        img_rgb = decode_image(data).pixels[..., :3]
        session = self.get_session(progress)
        if progress:
            progress("compute:inference", None, None)
        rgba = remove(img_rgb, session=session, post_process_mask=True)
        return RasterImage(np.array(rgba, dtype=np.uint8))

    async def segment(self, data: bytes, progress: Optional[ProgressCallback] = None) -> RasterImage:
        """Run ``remove_background`` off the event loop; progress ticks come back on the loop."""
        relay = None
        if progress is not None:
            loop = asyncio.get_running_loop()

            def relay(key, current, total):
                loop.call_soon_threadsafe(progress, key, current, total)

        return await asyncio.to_thread(self.remove_background, data, relay)
