"""
weatherfresh/core/config.py
═══════════════════════════════════════════════════════════════════════════════
Runtime configuration.

  OWM_API_KEY              → OpenWeatherMap key (env only, never hardcoded)
  WEATHER_MODE             → "on_demand" (default) or "polling"
  WEATHER_CACHE_SIZE       → max resident cities            (default 10)
  WEATHER_CACHE_TTL_S      → entry freshness window, seconds (default 600)
  WEATHER_API_TIMEOUT_S    → per-request HTTP timeout        (default 10)
  WEATHER_POLLING_INTERVAL_S → background refresh period     (default 120)
  WEATHER_SHUTDOWN_GRACE_S → wait for in-flight refresh      (default 5)
  WEATHER_LOG_LEVEL        → package log level               (default WARNING)

Invalid values never fall back silently: they raise ConfigError when the
config object is built.
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from weatherfresh.core.errors import ConfigError

log = logging.getLogger("config")

# ── OpenWeatherMap ────────────────────────────────────────────────────────────
OWM_BASE_URL = "https://api.openweathermap.org/data/2.5/weather"
OWM_UNITS    = "metric"

# SECURITY: set OWM_API_KEY in the environment, never commit it.
OWM_API_KEY = os.environ.get("OWM_API_KEY", "")
if not OWM_API_KEY:
    log.warning("OWM_API_KEY env var not set — /weather requests will fail until a key is provided")


class WeatherMode(str, Enum):
    ON_DEMAND = "on_demand"
    POLLING   = "polling"


WEATHER_MODE = os.environ.get("WEATHER_MODE", WeatherMode.ON_DEMAND.value)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Loggers owned by the package. Their level is process-wide, so it is set once
# by the process owner (main.py), never per client.
PACKAGE_LOGGERS = ("cache", "scheduler", "refresh", "fetcher", "client", "registry", "weather_router")


@dataclass(frozen=True)
class WeatherConfig:
    cache_size:         int   = 10
    cache_ttl_s:        float = 600
    api_timeout_s:      float = 10.0
    polling_interval_s: float = 120.0
    shutdown_grace_s:   float = 5.0
    log_level:          str   = "WARNING"

    def __post_init__(self) -> None:
        if not isinstance(self.cache_size, int) or isinstance(self.cache_size, bool):
            raise ConfigError(f"cache_size must be an integer, got {self.cache_size!r}")
        for name in ("cache_size", "cache_ttl_s", "api_timeout_s",
                     "polling_interval_s", "shutdown_grace_s"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ConfigError(f"{name} must be a number, got {value!r}")
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value!r}")
        if str(self.log_level).upper() not in _LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {_LOG_LEVELS}, got {self.log_level!r}")
        object.__setattr__(self, "log_level", str(self.log_level).upper())

    @property
    def log_level_no(self) -> int:
        return logging.getLevelName(self.log_level)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WeatherConfig":
        env = os.environ if environ is None else environ
        kwargs: dict = {}
        _read(env, kwargs, "WEATHER_CACHE_SIZE",         "cache_size",         int)
        _read(env, kwargs, "WEATHER_CACHE_TTL_S",        "cache_ttl_s",        float)
        _read(env, kwargs, "WEATHER_API_TIMEOUT_S",      "api_timeout_s",      float)
        _read(env, kwargs, "WEATHER_POLLING_INTERVAL_S", "polling_interval_s", float)
        _read(env, kwargs, "WEATHER_SHUTDOWN_GRACE_S",   "shutdown_grace_s",   float)
        if env.get("WEATHER_LOG_LEVEL"):
            kwargs["log_level"] = env["WEATHER_LOG_LEVEL"]
        return cls(**kwargs)


def parse_mode(raw: str) -> WeatherMode:
    try:
        return WeatherMode((raw or "").strip().lower())
    except ValueError:
        raise ConfigError(f"unknown weather mode {raw!r}") from None


def _read(env: Mapping[str, str], out: dict, var: str, field: str, cast) -> None:
    raw = env.get(var)
    if raw is None or raw.strip() == "":
        return
    try:
        out[field] = cast(raw.strip())
    except ValueError:
        raise ConfigError(f"{var} is not a valid {cast.__name__}: {raw!r}") from None


def apply_log_level(config: "WeatherConfig") -> None:
    for name in PACKAGE_LOGGERS:
        logging.getLogger(name).setLevel(config.log_level_no)
