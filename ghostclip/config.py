import os

# --- MODEL ---
MODEL_NAME = os.getenv("GHOSTCLIP_MODEL", "isnet-general-use")
U2NET_HOME = os.getenv("U2NET_HOME", os.path.expanduser(os.path.join("~", ".u2net")))

# --- LIMITS ---
MAX_UPLOAD_BYTES = int(os.getenv("GHOSTCLIP_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
BATCH_LIMIT = int(os.getenv("GHOSTCLIP_BATCH_LIMIT", "50"))

# --- EMBED ---
# "*" keeps host messaging open to any origin; set an explicit origin in prod
EMBED_ORIGIN = os.getenv("GHOSTCLIP_EMBED_ORIGIN", "*")

# --- OFFLOAD WORKER ---
OFFLOAD_ENABLED = os.getenv("GHOSTCLIP_OFFLOAD", "1").strip().lower() not in ("0", "false", "no")
WORKER_TIMEOUT = float(os.getenv("GHOSTCLIP_WORKER_TIMEOUT", "60"))

# --- COMPOSITION DEFAULTS ---
DEFAULT_STROKE_COLOR = "#ffffff"
STICKER_SIZE = 512
STICKER_STROKE_WIDTH = 5
STICKER_WEBP_QUALITY = 90
