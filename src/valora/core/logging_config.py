"""
Valora Logging Configuration
============================
Centralized logging configuration using loguru.

Usage:
    from valora.core.logging_config import configure_logging

    # At application startup:
    configure_logging(level="INFO", json_format=False)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from loguru import logger


def configure_logging(
    level: Optional[str] = "INFO",
    json_format: Optional[bool] = None,
    *,
    sink: Optional[str] = None,
) -> None:
    """
    Configure loguru logging for Valora.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: If True, emit serialized JSON records. If None, check LOG_FORMAT env var.
        sink: Optional file path for log output. If None, logs to stderr.
    """
    if json_format is None:
        json_format = os.environ.get("LOG_FORMAT", "").lower() == "json"

    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")

    logger.remove()

    log_sink = sink if sink else sys.stderr

    if json_format:
        logger.add(log_sink, level=level.upper(), serialize=True, backtrace=True)
    else:
        logger.add(
            log_sink,
            level=level.upper(),
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>"
            ),
            colorize=sink is None,
            backtrace=True,
            diagnose=False,
        )

    _intercept_standard_logging(level)

    logger.debug(f"Logging configured: level={level}, json_format={json_format}")


def _intercept_standard_logging(level: str) -> None:
    """Route stdlib logging (uvicorn, aiohttp) into loguru."""

    class InterceptHandler(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            try:
                log_level = logger.level(record.levelname).name
            except ValueError:
                log_level = record.levelno

            frame, depth = logging.currentframe(), 2
            while frame and frame.f_code.co_filename == logging.__file__:
                frame = frame.f_back
                depth += 1

            logger.opt(depth=depth, exception=record.exc_info).log(
                log_level, record.getMessage()
            )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access", "aiohttp.client"]:
        logging.getLogger(logger_name).setLevel(level.upper())


__all__ = ["configure_logging", "logger"]
