import re
import sys

from loguru import logger

SENSITIVE_KEYS = re.compile(r"(password|token|secret)", re.IGNORECASE)


def sanitize_dict(data: dict) -> dict:
    """Copy of a flat payload with credential-looking fields masked."""
    return {k: "***REDACTED***" if SENSITIVE_KEYS.search(k) else v for k, v in data.items()}


def setup_logger(debug: bool = False, log_file: str | None = None) -> None:
    """Configure loguru with a console sink and an optional rotated file sink."""
    logger.remove()

    log_level = "DEBUG" if debug else "INFO"

    logger.add(
        sys.stderr,
        level=log_level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    if log_file:
        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation="10 MB",
            retention="30 days",
            compression="gz",
            enqueue=True,
        )
