"""
Logging setup.

Library modules only do ``from loguru import logger``; sinks are installed
once by the entry point (CLI, app server, tests) via configure_logging().
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from config import Settings, get_settings


def configure_logging(settings: Settings | None = None) -> None:
    """Replace loguru's default sink with stderr + optional rotating file."""
    settings = settings or get_settings()

    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            level=settings.log_level,
            rotation="10 MB",
            retention=5,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
        )
