"""Loguru setup for the bridge process: stderr only, optional rotating file."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from rfcbridge.config.loader import get_data_dir

_SINK_IDS: dict[str, int] = {}


def configure_logging(level: str = "INFO", file: str | None = None) -> None:
    """Route all log output to stderr so stdout carries envelopes alone."""
    logger.remove()
    _SINK_IDS.clear()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="{time:HH:mm:ss} | {level: <8} | {name}:{line} - {message}",
        backtrace=False,
        diagnose=False,
    )
    if file:
        ensure_rotating_log_file(file, level=level.upper())


def ensure_rotating_log_file(name: str, level: str = "INFO") -> Path:
    """Ensure a rotating log sink for the given name under ~/.rfcbridge/logs."""
    log_dir = get_data_dir() / "logs"
    log_path = log_dir / f"{name}.log"
    if name in _SINK_IDS:
        return log_path
    log_dir.mkdir(parents=True, exist_ok=True)
    sink_id = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    _SINK_IDS[name] = sink_id
    return log_path
