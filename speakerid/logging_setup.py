"""Logging setup from LOG_LEVEL / LOG_FILE settings."""
from __future__ import annotations

import logging
from pathlib import Path

from speakerid.config import Settings, get_settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings | None = None) -> logging.Logger:
    """
    Configure the "speakerid" logger: console always, file when LOG_FILE is set.
    Safe to call more than once (handlers are replaced, not stacked).
    """
    settings = settings or get_settings()
    level = getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO)

    logger = logging.getLogger("speakerid")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if settings.LOG_FILE:
        path = Path(settings.LOG_FILE)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
