import logging
import os
import sys
from typing import Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class _CategoryFilter(logging.Filter):
    """Only pass records whose last logger-name segment is in ``allowed``."""

    def __init__(self, allowed):
        super().__init__()
        self.allowed = allowed

    def filter(self, record: logging.LogRecord) -> bool:
        # record.name like: ghostclip.router, ghostclip.batch
        suffix = (record.name or "").split(".")[-1]
        return suffix in self.allowed


def setup_logger(level: int = logging.INFO, name: str = "ghostclip") -> logging.Logger:
    """Create or update the project logger.

    - Respects GHOSTCLIP_LOG_LEVEL / GHOSTCLIP_LOG_CATS on every call.
    - Keeps exactly one stderr StreamHandler on the base logger.
    """
    logger = logging.getLogger(name)

    env_level = (os.getenv("GHOSTCLIP_LOG_LEVEL") or "").strip().lower()
    if env_level:
        level = _LEVELS.get(env_level, level)
    logger.setLevel(level)

    stream_handler: Optional[logging.StreamHandler] = None
    for h in logger.handlers:
        if type(h) is logging.StreamHandler:
            stream_handler = h
            break

    if stream_handler is None:
        stream_handler = logging.StreamHandler(stream=sys.stderr)
        logger.addHandler(stream_handler)
    else:
        # sys.stderr may have been swapped since the handler was made
        stream_handler.stream = sys.stderr

    stream_handler.setFormatter(
        logging.Formatter(fmt="[%(asctime)s] %(levelname)s: %(message)s", datefmt="%H:%M:%S")
    )

    stream_handler.filters.clear()
    cats = (os.getenv("GHOSTCLIP_LOG_CATS") or "").strip()
    if cats:
        stream_handler.addFilter(_CategoryFilter({c.strip() for c in cats.split(",") if c.strip()}))

    logger.propagate = False
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    base = setup_logger()
    return base if not name else base.getChild(name)
