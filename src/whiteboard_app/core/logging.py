"""Logging setup for the application."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

APP_LOGGER = "whiteboard_app"


def _level(value: Any) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(str(value).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {value!r}")
    return resolved


def setup_logging(
    log_dir: str = "logs",
    level: int | str = logging.INFO,
    filename: str = "whiteboard.log",
) -> logging.Logger:
    """
    Attach a rotating file handler and a console handler to the application
    logger. Safe to call repeatedly: handlers are only added once, the level
    is updated every time.
    """
    logger = logging.getLogger(APP_LOGGER)
    logger.setLevel(_level(level))

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_path / filename, maxBytes=2_000_000, backupCount=3)
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(handler)

    # RotatingFileHandler is itself a StreamHandler subclass.
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(console)

    return logger


def setup_from_config(cfg: Dict[str, Any]) -> logging.Logger:
    log_cfg = cfg.get("logging", {}) or {}
    return setup_logging(
        log_dir=str(log_cfg.get("dir", "logs")),
        level=log_cfg.get("level", "INFO"),
        filename=str(log_cfg.get("file", "whiteboard.log")),
    )


def get_logger(name: str) -> logging.Logger:
    """Child logger under the application namespace, without touching handlers."""
    return logging.getLogger(f"{APP_LOGGER}.{name}")
