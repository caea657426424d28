"""
Logging for the SMS gateway.

Loguru writes to stdout from import time; ``setup_logger`` applies the
configured level and adds the rotating file sink once settings are
loaded. Bearer tokens and Telegram bot tokens are masked before any
sink sees a message.

Usage:
    from smsgateway.utils import logger

    logger.info("Polling pending messages...")
"""

import re
import sys
from pathlib import Path

from loguru import logger


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}"

# httpx errors quote the request URL, which carries the bot token
_SECRETS = re.compile(r"(Bearer\s+|/bot)[^\s/'\"]+")


def mask_secrets(text: str) -> str:
    return _SECRETS.sub(r"\1***", text)


def _patch_record(record) -> None:
    record["message"] = mask_secrets(record["message"])


def setup_logger(
    level: str = "INFO",
    log_dir: str | Path | None = None,
    log_file: str = "gateway.log",
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """
    Configure the stdout sink and, when ``log_dir`` is given, a rotating file.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the log file; None logs to stdout only
        log_file: Log file name
        rotation: Rotation condition, e.g. "10 MB" or "00:00"
        retention: How long rotated files are kept, e.g. "7 days"
    """
    logger.remove()
    logger.configure(patcher=_patch_record)

    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=level, colorize=True, diagnose=False)

    if log_dir is not None:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        logger.add(
            path / log_file,
            format=FILE_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            diagnose=False,
            enqueue=True,  # Thread-safe logging
        )

    logger.debug(f"Logging at {level}" + (f" to {log_dir}/{log_file}" if log_dir else ""))


setup_logger(level="DEBUG")


__all__ = ["logger", "setup_logger", "mask_secrets"]
