"""socket.io link to the Volumio player."""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import socketio

logger = logging.getLogger(__name__)


class VolumioClient:
    """Receives ``pushState`` events and asks for the current state on connect."""

    def __init__(self, url: str,
                 on_state: Callable[[dict], Awaitable[Any]],
                 on_connection: Callable[[bool], None],
                 reconnect_delay: float = 5.0,
                 sio: socketio.AsyncClient | None = None):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self._on_state = on_state
        self._on_connection = on_connection
        self.sio = sio or socketio.AsyncClient(logger=False, engineio_logger=False)
        self.sio.on("connect", self._handle_connect)
        self.sio.on("disconnect", self._handle_disconnect)
        self.sio.on("pushState", self._handle_push_state)

    async def _handle_connect(self) -> None:
        logger.info(f"Connected to {self.url}")
        self._on_connection(True)
        await self.sio.emit("getState")

    async def _handle_disconnect(self, reason: Any = None) -> None:
        logger.warning(f"Disconnected from {self.url} ({reason or 'no reason given'})")
        self._on_connection(False)

    async def _handle_push_state(self, data: Any) -> None:
        if not isinstance(data, dict):
            logger.warning(f"Ignoring pushState payload of type {type(data).__name__}")
            return
        await self._on_state(data)

    async def run(self) -> None:
        """Connect and stay connected; socket.io handles reconnects once up."""
        while True:
            try:
                await self.sio.connect(self.url, transports=["websocket"])
            except socketio.exceptions.ConnectionError as e:
                logger.warning(f"Cannot connect to {self.url}: {e}, retrying in {self.reconnect_delay:.0f}s")
                await asyncio.sleep(self.reconnect_delay)
                continue
            await self.sio.wait()

    async def close(self) -> None:
        if self.sio.connected:
            await self.sio.disconnect()
