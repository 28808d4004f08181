"""
weatherfresh/routers/weather.py
Endpoints:
  GET /weather/{city}   → current weather (cache first, OpenWeatherMap on miss)

Fetch failures map to HTTP status codes:
  remote 404 → 404 (unknown city)     remote other → 502
  network    → 504                    parse        → 502
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from weatherfresh.core.client import WeatherClient
from weatherfresh.core.errors import ErrorKind, WeatherError

log    = logging.getLogger("weather_router")
router = APIRouter(prefix="/weather", tags=["weather"])


def _client(request: Request) -> WeatherClient:
    client = getattr(request.app.state, "client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="OWM_API_KEY is not configured")
    return client


def _status_for(error: WeatherError) -> int:
    if error.kind is ErrorKind.NETWORK:
        return 504
    if error.kind is ErrorKind.REMOTE and error.status_code == 404:
        return 404
    return 502


@router.get("/{city}")
async def get_weather(city: str, request: Request):
    client = _client(request)
    if not city.strip():
        raise HTTPException(status_code=400, detail="city must not be blank")

    result = await client.get_weather(city)
    if not result.ok:
        status = _status_for(result.error)
        log.warning(f"GET /weather/{city} → {status}: {result.error}")
        raise HTTPException(status_code=status, detail=str(result.error))

    data = result.data
    return {**data.to_dict(), "local_time": data.local_time()}
