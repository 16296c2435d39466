"""
Central logging configuration for smartcal.

Keeps smartcal's own loggers at the requested verbosity while holding noisy
third-party libraries (HTTP client, event loop, iCalendar parser) at WARNING.
"""

import logging
import os
from typing import Optional

# Third-party loggers that flood DEBUG output during fetch/parse cycles
NOISY_LOGGERS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.WARNING,
    "charset_normalizer": logging.WARNING,
}

PACKAGE_LOGGERS = (
    "smartcal",
    "smartcal.fetcher",
    "smartcal.fetch_orchestrator",
    "smartcal.rrule_expander",
    "smartcal.refresh_service",
)


def configure_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    default_level: str = "INFO",
) -> None:
    """
    Configure logging levels for smartcal.

    Args:
        debug_mode: Whether to enable debug logging for smartcal modules
        force_debug: Override debug mode setting (None to use env var detection)
        default_level: Level name used when debug logging is off

    Environment Variables:
        SMARTCAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        SMARTCAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("SMARTCAL_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("SMARTCAL_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    base_level = logging.getLevelName(default_level.upper())
    if not isinstance(base_level, int):
        base_level = logging.INFO

    root_level = logging.DEBUG if final_debug else base_level
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    for handler in root_logger.handlers:
        handler.setLevel(root_level)

    for logger_name, level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)

    package_level = logging.DEBUG if final_debug else base_level
    for module in PACKAGE_LOGGERS:
        logging.getLogger(module).setLevel(package_level)

    if final_debug:
        root_logger.debug("Debug logging enabled for smartcal modules")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("smartcal", "httpx", "asyncio", "icalendar"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
