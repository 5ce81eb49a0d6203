import base64
import binascii
from typing import Any, Dict, Optional

from . import config
from .logger import get_logger
from .pipeline import CropMode

log = get_logger("embed")

PROCESS_TYPE = "ghostclip:process"
RESULT_TYPE = "ghostclip:result"


def decode_data_url(value: str) -> bytes:
    """Bytes from a ``data:...;base64,`` URL or a bare base64 string."""
    payload = value.split(",", 1)[1] if value.startswith("data:") else value
    try:
        return base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("image is not valid base64") from exc


def to_data_url(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('utf-8')}"


class EmbedBridge:
    """Host-page messaging: accepts process commands from one trusted origin."""

    def __init__(self, studio, origin: str = config.EMBED_ORIGIN):
        self.studio = studio
        self.origin = origin or "*"
        if self.origin == "*":
            log.warning(
                "Embed mode without an explicit origin; accepting messages from any origin. "
                "Set GHOSTCLIP_EMBED_ORIGIN=https://your-domain.com to restrict it."
            )

    def accepts(self, origin: Optional[str]) -> bool:
        return self.origin == "*" or origin == self.origin

    @staticmethod
    def is_process_message(message: Any) -> bool:
        if not isinstance(message, dict):
            return False
        return message.get("type") == PROCESS_TYPE or message.get("command") == "process"

    async def handle(self, message: Any, origin: Optional[str]) -> Optional[Dict[str, Any]]:
        """Reply for ``message``, or None when it is ignored (wrong origin/type, no image)."""
        if not self.accepts(origin):
            log.debug("Dropping embed message from untrusted origin %r", origin)
            return None
        if not self.is_process_message(message):
            return None
        image = message.get("dataUrl") or message.get("image")
        if not isinstance(image, str):
            return None

        try:
            data = decode_data_url(image)
            matte = await self.studio.segmenter.segment(data)
            options = self.studio.options
            bg = message.get("backgroundColor") or options.background_color
            crop = CropMode.parse(message.get("crop") or options.crop)
            final = await self.studio.router.build_final(
                options.with_changes(background_color=bg, crop=crop).request(matte)
            )
        except Exception as e:
            log.error("Embed request failed: %s", e)
            return {"type": RESULT_TYPE, "status": "error", "error": str(e)}

        return {"type": RESULT_TYPE, "status": "done", "dataUrl": to_data_url(final)}
