"""
weatherfresh/main.py  — weatherfresh API
Startup: builds the client registry and the default client for OWM_API_KEY
(polling mode starts background refresh). Shutdown: stops refresh, closes
HTTP clients.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from weatherfresh.core.config import (
    OWM_API_KEY, WEATHER_MODE, WeatherConfig, apply_log_level, parse_mode,
)
from weatherfresh.core.http_client import close_all
from weatherfresh.core.registry import ClientRegistry
from weatherfresh.routers import weather

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("main")

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("weatherfresh API starting...")
    registry = ClientRegistry()
    app.state.registry = registry
    app.state.client = None
    if OWM_API_KEY:
        config = WeatherConfig.from_env()
        apply_log_level(config)
        app.state.client = registry.get_client(OWM_API_KEY, parse_mode(WEATHER_MODE), config)
    yield
    log.info("Shutting down...")
    await registry.close_all()
    await close_all()


app = FastAPI(
    title="weatherfresh",
    description=(
        "Cache-first OpenWeatherMap proxy. Recent lookups are served from a "
        "bounded TTL/LRU cache; polling mode refreshes resident cities in the "
        "background."
    ),
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(weather.router)


@app.get("/", tags=["meta"])
async def root():
    return {
        "status":  "online",
        "version": VERSION,
        "source":  "OpenWeatherMap current weather (/data/2.5/weather)",
        "endpoints": {
            "weather": "/weather/{city}",
            "health":  "/health",
            "docs":    "/docs",
        },
    }


@app.get("/health", tags=["meta"])
async def health():
    """Cache metadata only. Never triggers an upstream call."""
    client = getattr(app.state, "client", None)
    if client is None:
        return {"status": "unconfigured", "clients": 0}

    cache = client.cache
    scheduler = client.scheduler
    return {
        "status":  "healthy" if len(cache) else "warming_up",
        "mode":    client.mode.value,
        "clients": len(app.state.registry.clients()),
        "cache": {
            "size":     len(cache),
            "capacity": cache.capacity,
            "ttl_s":    cache.ttl,
            "entries":  cache.summary(),
        },
        "refresh": {
            "state":      scheduler.state.value,
            "interval_s": scheduler.interval_s,
            "passes":     scheduler.passes,
        } if scheduler else None,
    }
