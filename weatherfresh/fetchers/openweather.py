"""
weatherfresh/fetchers/openweather.py
═══════════════════════════════════════════════════════════════════════════════
OpenWeatherMap current-weather fetcher.

  GET {OWM_BASE_URL}?q={city}&appid={key}&units=metric

Never raises for a failed lookup — every outcome comes back as a FetchResult:
  • transport error / timeout   → ErrorKind.NETWORK
  • any non-200 status          → ErrorKind.REMOTE (status code kept)
  • invalid JSON / wrong shape  → ErrorKind.PARSE
The cache is never touched here; callers decide what to store.
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
from typing import Optional

import httpx

from weatherfresh.core.config import OWM_BASE_URL, OWM_UNITS
from weatherfresh.core.errors import ConfigError, ErrorKind, FetchResult, ParseError
from weatherfresh.core.http_client import owm_client
from weatherfresh.core.models import WeatherData

log = logging.getLogger("fetcher")

_BODY_PREVIEW = 200


class WeatherFetcher:
    def __init__(
        self,
        api_key: str,
        timeout_s: float = 10.0,
        base_url: str = OWM_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ConfigError("api_key must not be blank")
        self._api_key  = api_key
        self._base_url = base_url
        self._client   = client or owm_client(timeout_s)

    async def fetch(self, city: str) -> FetchResult:
        params = {"q": city, "appid": self._api_key, "units": OWM_UNITS}
        try:
            resp = await self._client.get(self._base_url, params=params)
        except httpx.HTTPError as ex:
            log.warning(f"OWM request failed for '{city}': {ex!r}")
            return FetchResult.failure(
                ErrorKind.NETWORK, f"network or I/O error while fetching weather for {city}: {ex!r}"
            )

        if resp.status_code != 200:
            log.warning(f"OWM HTTP {resp.status_code} for '{city}'")
            return FetchResult.failure(
                ErrorKind.REMOTE,
                f"OpenWeather returned status {resp.status_code} for city {city}: "
                f"{resp.text[:_BODY_PREVIEW]}",
                status_code=resp.status_code,
            )

        try:
            data = WeatherData.from_json(resp.json())
        except ValueError as ex:
            log.warning(f"OWM returned invalid JSON for '{city}': {ex}")
            return FetchResult.failure(ErrorKind.PARSE, f"invalid JSON for city {city}: {ex}")
        except ParseError as ex:
            log.warning(f"OWM payload for '{city}' could not be parsed: {ex}")
            return FetchResult.failure(ErrorKind.PARSE, f"failed to parse weather for city {city}: {ex}")

        log.debug(f"Fetched '{city}' → {data.name}: {data.weather.main}, {data.temperature.temp}°C")
        return FetchResult.success(data)

    async def aclose(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()
