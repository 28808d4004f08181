"""
weatherfresh/core/client.py
One client per OpenWeatherMap API key.

  get_weather(city) → cache hit? return it : fetch, store on success, return
  ON_DEMAND mode    → cache only fills on reads
  POLLING mode      → plus a RefreshScheduler keeping resident cities fresh

Get instances through ClientRegistry so a key never gets two clients.
"""

import asyncio
import logging
from typing import Optional

from weatherfresh.core.cache import BoundedFreshCache, normalize
from weatherfresh.core.config import WeatherConfig, WeatherMode
from weatherfresh.core.errors import ConfigError, FetchResult
from weatherfresh.core.scheduler import ErrorReporter, Fetcher, RefreshScheduler
from weatherfresh.fetchers.openweather import WeatherFetcher

log = logging.getLogger("client")


class WeatherClient:
    def __init__(
        self,
        api_key: str,
        mode: WeatherMode = WeatherMode.ON_DEMAND,
        config: Optional[WeatherConfig] = None,
        fetcher: Optional[Fetcher] = None,
        reporter: Optional[ErrorReporter] = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ConfigError("api_key must not be blank")
        if mode is None:
            raise ConfigError("mode must not be None")
        self.api_key = api_key
        self.mode    = WeatherMode(mode)
        self.config  = config or WeatherConfig()

        self.cache   = BoundedFreshCache(self.config.cache_size, self.config.cache_ttl_s)
        self.fetcher = fetcher or WeatherFetcher(api_key, timeout_s=self.config.api_timeout_s)
        self.scheduler: Optional[RefreshScheduler] = None
        if self.mode is WeatherMode.POLLING:
            self.scheduler = RefreshScheduler(
                self.cache,
                self.fetcher,
                interval_s=self.config.polling_interval_s,
                reporter=reporter,
                grace_s=self.config.shutdown_grace_s,
            )

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Starts background refresh in POLLING mode on `loop` (default: running loop); no-op otherwise."""
        if self.scheduler is not None:
            self.scheduler.start(loop)

    async def get_weather(self, city: str) -> FetchResult:
        if normalize(city) is None:
            raise ValueError("city must not be blank")

        cached = self.cache.get(city)
        if cached is not None:
            log.debug(f"Cache hit for '{city}'")
            return FetchResult.success(cached)

        result = await self.fetcher.fetch(city)
        if result.ok:
            self.cache.put(city, result.data)
        else:
            log.info(f"Lookup for '{city}' failed: {result.error}")
        return result

    async def shutdown(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        aclose = getattr(self.fetcher, "aclose", None)
        if aclose is not None:
            await aclose()
