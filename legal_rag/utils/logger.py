"""Loguru sinks for the CLI and the API server."""
from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from legal_rag.config import LoggingSettings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} - {message}"


def setup_logger(settings: LoggingSettings | None = None) -> None:
    """
    Replace loguru's default sink with a coloured stderr sink and, when
    `settings.file` is set, a rotating zip-compressed file sink.
    """
    cfg = settings or LoggingSettings()
    level = cfg.level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if cfg.file:
        Path(cfg.file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            cfg.file,
            level=level,
            format=FILE_FORMAT,
            rotation=cfg.rotation,
            retention=cfg.retention,
            compression="zip",
            enqueue=True,
        )

    logger.debug(f"[Logger] level={level} | file={cfg.file or '-'}")
