"""Logging setup for the CLI and web server."""

import logging
from typing import Optional

from segoverlay.config import Config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(log_level: str = Config.LOG_LEVEL, log_file: Optional[str] = None) -> None:
    """Configure the root logger.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path of a file that receives the same records.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
