"""Online/offline tracking."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_CHECK_URL = "https://www.googleapis.com/generate_204"

Listener = Callable[[bool], Awaitable[None]]


class ConnectivityMonitor:
    """Tracks whether the network is reachable and notifies listeners on change.

    State is driven either by :meth:`set_online` (from a platform hook or a
    test) or by periodically requesting ``check_url``.
    """

    def __init__(
        self,
        check_url: str = DEFAULT_CHECK_URL,
        client: httpx.AsyncClient | None = None,
        interval_seconds: float = 15.0,
        online: bool = True,
    ):
        self.check_url = check_url
        self.client = client
        self.interval_seconds = interval_seconds
        self._online = online
        self._listeners: list[Listener] = []
        self._task: asyncio.Task | None = None

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Network is back online" if online else "Network went offline")
        for listener in list(self._listeners):
            await listener(online)

    async def check(self) -> bool:
        """Check the network once and update the state."""
        try:
            if self.client is not None:
                response = await self.client.head(self.check_url, timeout=5)
            else:
                async with httpx.AsyncClient(timeout=5) as client:
                    response = await client.head(self.check_url)
            online = response.status_code < 500
        except httpx.HTTPError as e:
            logger.debug(f"Connectivity check failed: {e}")
            online = False

        await self.set_online(online)
        return online

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._poll())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _poll(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.interval_seconds)
