"""
weatherfresh/core/errors.py
═══════════════════════════════════════════════════════════════════════════════
Error taxonomy.

  • ConfigError  → raised at construction time (bad capacity, TTL, api key…)
  • ParseError   → raised by WeatherData.from_json, turned into a result
                   by the fetcher before it leaves the fetch boundary
  • Everything a fetch can fail with travels as a FetchResult carrying a
    WeatherError with one of four kinds: network / remote / parse / config.
    Callers branch on result.ok instead of catching.
═══════════════════════════════════════════════════════════════════════════════
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class WeatherSdkError(Exception):
    """Base class for every exception raised by weatherfresh."""


class ConfigError(WeatherSdkError):
    """Invalid construction-time configuration."""


class ParseError(WeatherSdkError):
    """Weather payload could not be parsed."""


class ErrorKind(str, Enum):
    NETWORK = "network"
    REMOTE  = "remote"
    PARSE   = "parse"
    CONFIG  = "config"


@dataclass(frozen=True)
class WeatherError:
    kind:        ErrorKind
    message:     str
    status_code: Optional[int] = None

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.kind.value} error (HTTP {self.status_code}): {self.message}"
        return f"{self.kind.value} error: {self.message}"


@dataclass(frozen=True)
class FetchResult:
    """Either `data` is set (success) or `error` is set (failure), never both."""

    data:  Any = None
    error: Optional[WeatherError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any) -> "FetchResult":
        return cls(data=data)

    @classmethod
    def failure(
        cls, kind: ErrorKind, message: str, status_code: Optional[int] = None
    ) -> "FetchResult":
        return cls(error=WeatherError(kind, message, status_code))
