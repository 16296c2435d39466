"""smartcal.config_loader

Config loader for smartcal.

- Reads YAML (PyYAML ``safe_load``); JSON files are valid YAML and load too.
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override (or the ``SMARTCAL_CONFIG`` environment variable).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .models import (
    DEFAULT_CALENDAR_COLOR,
    HOLIDAY_CALENDAR_COLOR,
    HOLIDAY_CALENDAR_NAME,
    HOLIDAY_ICAL_URL,
    CalendarSource,
)

logger = logging.getLogger(__name__)

CALENDAR_PALETTE = (
    DEFAULT_CALENDAR_COLOR,  # blue-400
    "#22c55e",  # green-500
    "#f97316",  # orange-500
    "#a855f7",  # purple-500
    "#ec4899",  # pink-500
)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "smartcal" / "config.yaml"


def normalize_calendars(data: dict[str, Any]) -> list[CalendarSource]:
    """Build the ordered calendar list from raw configuration.

    - ``calendars`` entries with blank URLs are dropped; missing colors come
      from the palette by position; blank names are omitted.
    - Without ``calendars``, legacy ``icalUrls`` / ``icalUrl`` are used.
    - The public holiday feed is appended when not already present.
    """
    calendars: list[CalendarSource] = []
    raw_calendars = data.get("calendars")

    if isinstance(raw_calendars, list) and raw_calendars:
        for idx, entry in enumerate(raw_calendars):
            if isinstance(entry, str):
                entry = {"url": entry}
            if not isinstance(entry, dict):
                logger.warning("Ignoring calendar entry %d: not a mapping (%r)", idx, entry)
                continue
            url = str(entry.get("url") or "").strip()
            if not url:
                continue
            color = str(entry.get("color") or CALENDAR_PALETTE[idx % len(CALENDAR_PALETTE)])
            name = str(entry.get("name") or "").strip()
            calendars.append(CalendarSource(url=url, color=color, name=name or None))
    else:
        legacy = data.get("icalUrls") or ([data["icalUrl"]] if data.get("icalUrl") else [])
        if not isinstance(legacy, (list, tuple)):
            legacy = [legacy]
        urls = [str(u or "").strip() for u in legacy]
        for idx, url in enumerate(u for u in urls if u):
            calendars.append(CalendarSource(url=url, color=CALENDAR_PALETTE[idx % len(CALENDAR_PALETTE)]))

    if not any(c.url == HOLIDAY_ICAL_URL for c in calendars):
        calendars.append(
            CalendarSource(url=HOLIDAY_ICAL_URL, color=HOLIDAY_CALENDAR_COLOR, name=HOLIDAY_CALENDAR_NAME)
        )
    return calendars


@dataclass
class Config:
    """Typed configuration for smartcal.

    Fields:
        calendars: ordered calendar sources (holiday feed always included)
        refresh_interval_minutes: minutes between refreshes (1..60)
        timezone: IANA name of the display timezone (None: host timezone)
        fetch_concurrency: calendars fetched at once (1..8)
        request_timeout: HTTP read timeout in seconds
        max_retries: retries after timeouts or network errors
        proxy_url: optional fetch proxy receiving the feed URL as ``?url=``
        log_level: logging level name
    """

    calendars: list[CalendarSource] = field(default_factory=list)
    refresh_interval_minutes: int = 5
    timezone: str | None = None
    fetch_concurrency: int = 4
    request_timeout: float = 30.0
    max_retries: int = 2
    proxy_url: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced, out-of-range values are clamped with
        a warning, and calendars are normalized by `normalize_calendars`.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, low: int, high: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < low:
                logger.warning("%s %d below minimum; coercing to %d", key, value, low)
                return low
            if value > high:
                logger.warning("%s %d above maximum; coercing to %d", key, value, high)
                return high
            return value

        def _optional_str(key: str) -> str | None:
            raw = data.get(key)
            if raw is None:
                return None
            value = str(raw).strip()
            return value or None

        raw_timeout = data.get("request_timeout", 30.0)
        try:
            request_timeout = float(raw_timeout)
        except (TypeError, ValueError):
            logger.warning("Config request_timeout=%r is not a number; using 30", raw_timeout)
            request_timeout = 30.0

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        return cls(
            calendars=normalize_calendars(data),
            refresh_interval_minutes=_coerce_int("refresh_interval_minutes", 5, 1, 60),
            timezone=_optional_str("timezone"),
            fetch_concurrency=_coerce_int("fetch_concurrency", 4, 1, 8),
            request_timeout=request_timeout,
            max_retries=_coerce_int("max_retries", 2, 0, 5),
            proxy_url=_optional_str("proxy_url"),
            log_level=log_level,
        )


def _load_mapping(path: Path) -> Any:
    """Load a YAML or JSON document; empty files load as an empty mapping."""
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Unable to parse config {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Unable to read config {path}: {exc}") from exc
    return {} if loaded is None else loaded


def load_config(path: str | None = None) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. Falls back to the
              ``SMARTCAL_CONFIG`` environment variable, then to
              ~/.config/smartcal/config.yaml.

    Returns:
        Config dataclass instance with values from file (or defaults).

    Behavior:
    - If file is missing: returns defaults (holiday feed only).
    - If file exists but top-level is not a mapping: raises ConfigError.
    """
    env_path = os.environ.get("SMARTCAL_CONFIG")
    p = Path(path) if path else Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config.from_dict({})

    raw = _load_mapping(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ConfigError("Config file must contain a mapping at top level")
    cfg = Config.from_dict(raw)
    logger.info("Loaded configuration from %s (%d calendars)", p, len(cfg.calendars))
    logger.debug("Configuration values: %s", cfg)
    return cfg
