"""Logging helpers for the redis-ttl CLI."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DDTHH:mm:ss.SSSZ}</green> <level>{level: <8}</level> "
    "<cyan>[{extra[shard]}]</cyan> {message}"
)


def init_logging(log_file: Optional[Path] = None, level: str = "INFO") -> None:
    """Configure loguru for console + optional file logging."""

    logger.remove()
    logger.configure(extra={"shard": "-"})
    logger.add(
        lambda msg: print(msg, end="", file=sys.stderr),
        format=_CONSOLE_FORMAT,
        colorize=True,
        level=level.upper(),
        enqueue=True,
    )

    target = log_file or _default_log_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    logger.add(target, level=level.upper(), rotation="10 MB", retention="7 days", enqueue=True)


def _default_log_path() -> Path:
    workspace = os.environ.get("REDIS_TTL_WORKSPACE", "target")
    return Path(workspace).expanduser().resolve() / "logs" / "redis-ttl.log"
