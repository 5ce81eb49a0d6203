from typing import Callable, Optional, Tuple

from . import config
from .epochs import PREVIEW, PROCESS, EpochTracker
from .errors import OversizeInputError
from .logger import get_logger
from .pipeline import CompositionOptions, CropMode, StrokeSpec, build_sticker
from .raster import RasterImage
from .scenes import scene_preset

log = get_logger("studio")

ResultSink = Callable[[bytes], None]
MessageSink = Callable[[str], None]


class Studio:
    """Single-image session: segment once, then re-compose as options change.

    Each ``process`` or ``update_preview`` call starts a new epoch of its kind;
    a call whose epoch has been superseded drops its result without touching
    the sinks.
    """

    def __init__(
        self,
        segmenter,
        router,
        tracker: Optional[EpochTracker] = None,
        max_bytes: int = config.MAX_UPLOAD_BYTES,
        on_result: Optional[ResultSink] = None,
        on_error: Optional[MessageSink] = None,
        on_status: Optional[MessageSink] = None,
    ):
        self.segmenter = segmenter
        self.router = router
        self.tracker = tracker or EpochTracker()
        self.max_bytes = max_bytes
        self.on_result = on_result
        self.on_error = on_error
        self.on_status = on_status
        self.options = CompositionOptions()
        self.matte: Optional[RasterImage] = None
        self.result: Optional[bytes] = None

    # --- option setters ---

    def set_background(self, color: Optional[str]) -> None:
        if color and not color.startswith("#") and "," not in color:
            color = "#" + color
        self.options = self.options.with_changes(background_color=color or None)

    def set_crop(self, crop) -> None:
        self.options = self.options.with_changes(crop=CropMode.parse(crop))

    def set_stroke(self, width: int, color: Optional[str] = None) -> None:
        color = color or self.options.stroke.color
        self.options = self.options.with_changes(stroke=StrokeSpec(width, color))

    def set_scene(self, scene: Optional[RasterImage]) -> None:
        self.options = self.options.with_changes(scene=scene)

    def select_scene(self, name: str) -> None:
        self.set_scene(scene_preset(name))

    # --- operations ---

    def _status(self, text: str) -> None:
        if self.on_status:
            self.on_status(text)

    def _publish(self, data: bytes) -> None:
        self.result = data
        if self.on_result:
            self.on_result(data)

    async def process(self, data: bytes) -> Optional[bytes]:
        """Segment ``data`` and compose it with the current options.

        Returns the composed PNG, or None when a newer ``process`` call
        superseded this one or the request failed.
        """
        if len(data) > self.max_bytes:
            raise OversizeInputError(len(data), self.max_bytes)

        epoch = self.tracker.begin(PROCESS)
        self._status("Removing background")

        def progress(key, current, total):
            if epoch.is_stale():
                return
            if key == "compute:inference":
                self._status("Removing background")
            elif key.startswith("fetch:"):
                if current is not None and total:
                    self._status(f"Loading AI model (first time only) {round(current / total * 100)}%")
                else:
                    self._status("Loading AI model (first time only)")

        try:
            matte = await self.segmenter.segment(data, progress)
            if epoch.is_stale():
                return None
            self.matte = matte

            final = await self.router.build_final(self.options.request(matte.copy()))
            if epoch.is_stale():
                return None
        except Exception as e:
            if epoch.is_stale():
                return None
            log.error("Background removal failed: %s", e)
            if self.on_error:
                self.on_error("Something went wrong. Check the logs for details.")
            self.reset()
            return None

        self._publish(final)
        return final

    async def update_preview(self) -> Optional[bytes]:
        """Re-compose the cached matte; only the newest call's result is applied."""
        if self.matte is None:
            return None
        epoch = self.tracker.begin(PREVIEW)
        try:
            final = await self.router.build_final(self.options.request(self.matte.copy()))
        except Exception as e:
            if epoch.is_stale():
                return None
            log.error("Preview update failed: %s", e)
            if self.on_error:
                self.on_error("Something went wrong. Check the logs for details.")
            return None
        if epoch.is_stale():
            return None
        self._publish(final)
        return final

    async def download(self) -> Optional[bytes]:
        if self.matte is None:
            return None
        return await self.router.build_final(self.options.request(self.matte.copy()))

    def sticker(self) -> Optional[Tuple[bytes, str]]:
        """512x512 sticker of the cached matte as (bytes, extension)."""
        if self.matte is None:
            return None
        return build_sticker(self.matte, self.options.stroke)

    def reset(self) -> None:
        self.matte = None
        self.result = None
