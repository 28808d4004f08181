"""
weatherfresh/core/models.py
Typed view of an OpenWeatherMap /data/2.5/weather payload.

Only the fields we serve are kept. `weather[0]`, `main` and `sys` are
required; everything else falls back to a neutral default so a partial
payload still parses.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

import pytz

from weatherfresh.core.errors import ParseError


@dataclass(frozen=True)
class Weather:
    main:        str
    description: str


@dataclass(frozen=True)
class Temperature:
    temp:       float
    feels_like: float


@dataclass(frozen=True)
class Wind:
    speed: float


@dataclass(frozen=True)
class Sys:
    sunrise: int
    sunset:  int


@dataclass(frozen=True)
class WeatherData:
    weather:     Weather
    temperature: Temperature
    visibility:  int
    wind:        Wind
    datetime:    int
    sys:         Sys
    timezone:    int
    name:        str

    @classmethod
    def from_json(cls, payload: Any) -> "WeatherData":
        if not isinstance(payload, dict):
            raise ParseError(f"expected a JSON object, got {type(payload).__name__}")
        try:
            w    = payload["weather"][0]
            main = payload["main"]
            sys_ = payload["sys"]
            wind = payload.get("wind") or {}
            return cls(
                weather=Weather(str(w["main"]), str(w["description"])),
                temperature=Temperature(float(main["temp"]), float(main["feels_like"])),
                visibility=int(payload.get("visibility", 0)),
                wind=Wind(float(wind.get("speed", 0.0))),
                datetime=int(payload.get("dt", 0)),
                sys=Sys(int(sys_["sunrise"]), int(sys_["sunset"])),
                timezone=int(payload.get("timezone", 0)),
                name=str(payload.get("name", "Unknown")),
            )
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as ex:
            raise ParseError(f"malformed weather payload: {ex!r}") from ex

    def to_dict(self) -> dict:
        return asdict(self)

    def local_time(self) -> str:
        """Observation time in the city's own UTC offset, e.g. '19 Oct • 02:30 PM'."""
        tz = pytz.FixedOffset(self.timezone // 60)
        return datetime.fromtimestamp(self.datetime, tz).strftime("%d %b • %I:%M %p")
