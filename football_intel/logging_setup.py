"""Logging setup for scripts that embed the engine."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Apply the standard format to the root logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # Per-request logs from httpx are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
