"""
weatherfresh/core/http_client.py
Async httpx clients for OpenWeatherMap.
  • owm_client(timeout_s) → one pooled client per fetcher (per API key)
  • close_all()           → closes every client handed out, used at shutdown
"""

import httpx

_LIMITS  = httpx.Limits(max_connections=10, max_keepalive_connections=5)
_HEADERS = {
    "User-Agent": "weatherfresh/1.0 (+https://openweathermap.org/api)",
    "Accept":     "application/json",
}

_clients: list[httpx.AsyncClient] = []


def owm_client(timeout_s: float) -> httpx.AsyncClient:
    client = httpx.AsyncClient(
        headers=_HEADERS,
        timeout=httpx.Timeout(timeout_s, connect=min(timeout_s, 15.0)),
        follow_redirects=True,
        limits=_LIMITS,
    )
    # Fetchers close their own client on shutdown; forget those.
    _clients[:] = [c for c in _clients if not c.is_closed]
    _clients.append(client)
    return client


async def close_all() -> None:
    for c in list(_clients):
        if not c.is_closed:
            await c.aclose()
    _clients.clear()
