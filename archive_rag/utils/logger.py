"""Loguru sinks for the CLI and the API server."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


def setup_logger(
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/pipeline.log",
    structured: bool = False,
) -> None:
    """
    Route pipeline logs to stderr and, optionally, a rotating file.

    Args:
        log_level:  Minimum level for both sinks.
        log_file:   Rotating file sink (10 MB, 7 days, zipped). None disables it.
        structured: Write the file sink as one JSON object per line.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level,
        colorize=True,
        format="<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> <level>{message}</level>",
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=log_level,
            serialize=structured,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            enqueue=True,
        )

    logger.debug(f"[Logger] level={log_level} file={log_file or '-'} structured={structured}")
