"""Shared logging configuration helpers for terminal sessions."""

from __future__ import annotations

import logging
from pathlib import Path

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_NOISY_LOGGERS = ("aiosqlite", "sqlalchemy.engine")


def resolve_log_level(level: str) -> int:
    """Map a level name to a logging constant, falling back to INFO."""

    normalized_level = level.strip().upper() if level.strip() else "INFO"
    resolved = getattr(logging, normalized_level, logging.INFO)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(*, level: str, log_file: str | None = None) -> None:
    """Configure process logging with consistent format and runtime level.

    Interactive sessions usually pass ``log_file`` so records do not interleave
    with prompts; without it records go to stderr.
    """

    resolved_level = resolve_log_level(level)
    handlers: list[logging.Handler] = []
    if log_file is not None:
        handlers.append(logging.FileHandler(Path(log_file), encoding="utf-8"))
    else:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(
        level=resolved_level,
        format=_LOG_FORMAT,
        handlers=handlers,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))
