"""Loguru sink configuration for loader runs."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from csvgraph.utils.config import LoggingConfig

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
)


def configure_logging(config: LoggingConfig, *, verbose: bool = False) -> None:
    """Replace the default handler with a console sink and an optional rotating file."""
    level = "DEBUG" if verbose else config.level

    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level)

    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            rotation=config.rotation,
            retention=config.retention,
            level="DEBUG",
        )
