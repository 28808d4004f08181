"""Shared fixtures: controllable clock, scripted fetcher, sample payloads."""

import asyncio
from typing import Any, Optional

import pytest

from weatherfresh.core.errors import ErrorKind, FetchResult
from weatherfresh.core.models import WeatherData


def owm_payload(name: str = "London", temp: float = 11.5) -> dict:
    return {
        "weather": [{"id": 803, "main": "Clouds", "description": "broken clouds"}],
        "main": {"temp": temp, "feels_like": temp - 1.2, "humidity": 81},
        "visibility": 10000,
        "wind": {"speed": 4.1, "deg": 240},
        "dt": 1760878200,
        "sys": {"country": "GB", "sunrise": 1760855000, "sunset": 1760893000},
        "timezone": 3600,
        "name": name,
    }


def weather(name: str = "London", temp: float = 11.5) -> WeatherData:
    return WeatherData.from_json(owm_payload(name, temp))


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """
    Scripted fetcher. `responses` maps normalized city → WeatherData,
    FetchResult, or an exception instance to raise. Unknown cities return a
    remote 404. `gate`, when set, makes every fetch wait on it.
    """

    def __init__(self, responses: Optional[dict] = None) -> None:
        self.responses: dict[str, Any] = responses or {}
        self.calls: list[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.entered: Optional[asyncio.Event] = None
        self.closed = False

    async def fetch(self, key: str) -> FetchResult:
        self.calls.append(key)
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.responses.get(key.lower())
        if outcome is None:
            return FetchResult.failure(ErrorKind.REMOTE, f"city not found: {key}", status_code=404)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, FetchResult):
            return outcome
        return FetchResult.success(outcome)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()
