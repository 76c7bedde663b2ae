"""Loguru sinks for the supervisor process.

Every module logs through the shared ``loguru.logger``; this module only
decides where records go. Both sinks are queued (``enqueue=True``) so the
event loop never blocks on disk I/O, which means the service has to
``await logger.complete()`` before it exits.
"""

import sys
from pathlib import Path

from loguru import logger

from .paths import get_logs_dir

LOG_FILE_NAME = "supervisor.log"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def _interactive_console() -> bool:
    return sys.stdout is not None and sys.stdout.isatty()


def setup_logging(
    log_level: str | None = None,
    console: bool = True,
    file: bool = True,
    log_dir: Path | None = None,
    serialize_file: bool = False,
    service_mode: bool = False,
) -> Path | None:
    """Replace all loguru sinks with the supervisor's console and file sinks.

    Args:
        log_level: Minimum level for both sinks, ``INFO`` when omitted.
        console: Log to stderr.
        file: Log to ``supervisor.log`` under ``log_dir``.
        log_dir: Target directory; defaults to ``paths.get_logs_dir()``.
        serialize_file: Write the file sink as JSON lines.
        service_mode: Drop the console sink when there is no terminal
            attached, as under systemd where stderr already goes to the journal.

    Returns:
        The log file path, or None when file logging is off.
    """
    level = log_level or "INFO"
    logger.remove()

    if console and (_interactive_console() or not service_mode):
        logger.add(
            sys.stderr,
            level=level,
            format=CONSOLE_FORMAT,
            colorize=True,
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

    if not file:
        return None

    directory = Path(log_dir) if log_dir is not None else get_logs_dir()
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / LOG_FILE_NAME

    logger.add(
        str(log_file),
        level=level,
        format=FILE_FORMAT,
        serialize=serialize_file,
        rotation="10 MB",
        retention="7 days",
        compression="gz",
        backtrace=True,
        diagnose=False,
        enqueue=True,
    )
    return log_file
