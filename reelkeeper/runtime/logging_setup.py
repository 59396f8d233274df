"""Logging setup for structured JSON logs and rotation.

Provides `setup_logging(AppConfig)` which configures root logging, a JSON
formatter for stdout, and a rotating file handler with size and backup count
driven by environment configuration.
"""

from __future__ import annotations

import logging
import logging.handlers
import os

from pythonjsonlogger import jsonlogger

from .config import AppConfig


def setup_logging(config: AppConfig) -> None:
    """Configure global logging with JSON formatter and rotation.

    Args:
        config: Application configuration to source levels and rotation limits.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers (avoid duplicates on reload)
    for h in list(root_logger.handlers):
        root_logger.removeHandler(h)

    stdout_handler = logging.StreamHandler()
    json_formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level"},
    )
    stdout_handler.setFormatter(json_formatter)
    root_logger.addHandler(stdout_handler)

    # httpx logs every Bot API request at INFO, including the token in the URL
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        os.makedirs(config.logs_dir, exist_ok=True)
    except OSError as e:
        logging.getLogger("reelkeeper").warning(
            "log directory unavailable, file logging disabled",
            extra={"logs_dir": config.logs_dir, "error": str(e)},
        )
        return

    file_handler = logging.handlers.RotatingFileHandler(
        filename=os.path.join(config.logs_dir, "reelkeeper.log"),
        maxBytes=config.log_rotate_max_bytes,
        backupCount=config.log_rotate_backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(json_formatter)
    root_logger.addHandler(file_handler)

    logging.getLogger("reelkeeper").info(
        "logging configured",
        extra={
            "level": config.log_level,
            "rotate_max_bytes": config.log_rotate_max_bytes,
            "rotate_backup_count": config.log_rotate_backup_count,
        },
    )
