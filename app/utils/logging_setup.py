"""
Logging setup for the fsync client.

Replaces loguru's default handler with a console sink and, optionally,
a rotating file sink.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level> | {extra}"
)

FILE_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level: <8} | {name}:{function}:{line} - {message} | {extra}"


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    rotation: str = "10 MB",
    retention: int = 5,
    compression: Optional[str] = None,
) -> None:
    """
    Configure loguru sinks for the process.

    Args:
        level: Minimum level for every sink
        log_file: Optional file to write logs to, parents are created
        rotation: Size or interval at which the log file rotates
        retention: Number of rotated files to keep
        compression: Optional compression format for rotated files (e.g. "gz")
    """
    level = level.upper()

    logger.remove()
    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=level)

    if log_file is not None:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            format=FILE_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            enqueue=True,
        )
