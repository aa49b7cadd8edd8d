"""
Logging setup using Loguru.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"


def setup_loguru(
    log_file: Optional[Path] = None,
    level: str = "INFO",
    console_output: bool = True,
) -> None:
    """
    Configure loguru sinks for the relay server and CLI.

    Args:
        log_file: Path to log file, or None for no file sink
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        console_output: Also log to stderr
    """
    # Remove default handler
    logger.remove()

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="10 MB",
            retention=5,  # Keep 5 backup files
            level=level,
            format=LOG_FORMAT,
            enqueue=False,
        )

    if console_output:
        logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    logger.info(f"Loguru initialized: file={log_file} (level={level})")


def setup_from_config(config) -> None:
    """Configure logging from a loaded Config object."""
    log_file = Path(config.logging.log_file) if config.logging.log_file else None
    setup_loguru(
        log_file,
        level=config.logging.level,
        console_output=config.logging.console_output,
    )
