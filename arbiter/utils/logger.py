"""Root logger setup for the arbiter CLI and monitor."""

import logging
import sys
from pathlib import Path
from typing import Optional

from arbiter.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(
    name: str = "arbiter",
    log_file: Optional[str] = None,
    log_level: Optional[str] = None,
) -> logging.Logger:
    """Configure the ``arbiter`` logger that every module logger propagates to.

    Calling it again replaces the handlers, so the CLI can switch to verbose
    mode after start-up.

    Args:
        name: Logger to configure
        log_file: Extra file to log to at DEBUG. Defaults to ``log_file`` from settings.
        log_level: Level name. Defaults to ``log_level`` from settings.

    Returns:
        The configured logger
    """
    settings = get_settings()
    log_file = log_file or settings.log_file
    log_level = log_level or settings.log_level

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    # DEBUG records only reach the file handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
