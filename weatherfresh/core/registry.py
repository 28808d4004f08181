"""
weatherfresh/core/registry.py
Owns the WeatherClient instances of one process, keyed by API key.

The registry is a plain object held by whoever owns the process lifecycle
(the FastAPI lifespan in main.py), not a module-level global. get_client()
is an atomic get-or-create: two threads asking for the same key at the same
time end up with the same client and only one is ever constructed.

The registry remembers the event loop it was built on (or the one passed
in). POLLING clients requested from other threads start their refresh task on
that loop. A registry built with no loop at all registers POLLING clients
unstarted; call client.start() once a loop is running.
"""

import asyncio
import logging
import threading
from typing import Callable, Optional

from weatherfresh.core.client import WeatherClient
from weatherfresh.core.config import WeatherConfig, WeatherMode
from weatherfresh.core.scheduler import running_loop

log = logging.getLogger("registry")

ClientFactory = Callable[[str, WeatherMode, WeatherConfig], WeatherClient]


class ClientRegistry:
    def __init__(
        self,
        factory: Optional[ClientFactory] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._factory = factory or WeatherClient
        self._loop    = loop or running_loop()
        self._clients: dict[str, WeatherClient] = {}
        self._lock = threading.Lock()

    def get_client(
        self,
        api_key: str,
        mode: WeatherMode = WeatherMode.ON_DEMAND,
        config: Optional[WeatherConfig] = None,
    ) -> WeatherClient:
        """
        Existing client for api_key, or a new started one.
        mode/config only apply when the client is created; they are ignored
        for a key that already has a client.
        """
        with self._lock:
            client = self._clients.get(api_key)
            if client is not None:
                return client
            client = self._factory(api_key, mode, config or WeatherConfig())
            client.start(self._loop)
            self._clients[api_key] = client
        log.info(f"Created {client.mode.value} client (clients: {len(self._clients)})")
        return client

    async def delete_client(self, api_key: str) -> bool:
        with self._lock:
            client = self._clients.pop(api_key, None)
        if client is None:
            return False
        await client.shutdown()
        log.info(f"Deleted client (clients: {len(self._clients)})")
        return True

    def clients(self) -> list[WeatherClient]:
        with self._lock:
            return list(self._clients.values())

    async def close_all(self) -> None:
        with self._lock:
            clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            try:
                await client.shutdown()
            except Exception as ex:
                log.error(f"Client shutdown error: {ex!r}")
