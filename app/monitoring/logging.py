"""Logging configuration module."""

from __future__ import annotations

import logging

from app.config.settings import get_settings


def configure_logging() -> None:
    """Configure the root logger once, using the level from settings."""

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # httpx logs every request at INFO; keep weather polling quiet.
    logging.getLogger("httpx").setLevel(logging.WARNING)
