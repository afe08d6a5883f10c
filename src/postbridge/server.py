"""WebSocket server running one bridge per connection."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Self

from aiohttp import web

from postbridge.bridge import Bridge, BridgeConfig
from postbridge.transports import WebSocketChannel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerConfig:
    """Configuration for a BridgeServer."""

    host: str = "127.0.0.1"
    # 0 binds a free port, read it back from BridgeServer.port
    port: int = 8080
    path: str = "/bridge"
    bridge: BridgeConfig = field(default_factory=BridgeConfig)


class BridgeServer:
    """Accepts WebSocket connections and bridges each one to a local target.

    Every connection gets its own `Bridge`, built around a fresh local object
    from `local_factory`. The server side is a full peer: `on_connect` receives
    the bridge, so the server can call methods on the connected client too.

    Example:
        ```python
        class Calculator(BridgeTarget):
            def add(self, a: int, b: int) -> int:
                return a + b

        async with BridgeServer(ServerConfig(port=8080), Calculator):
            await asyncio.Event().wait()
        ```
    """

    def __init__(
        self,
        config: ServerConfig,
        local_factory: Callable[[], Any],
        on_connect: Callable[[Bridge], None] | None = None,
    ) -> None:
        self.config = config
        self._local_factory = local_factory
        self._on_connect = on_connect
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._channels: set[WebSocketChannel] = set()
        self._bridges: set[Bridge] = set()

    async def __aenter__(self) -> Self:
        """Enter async context manager - starts the server."""
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context manager - stops the server."""
        await self.stop()

    @property
    def port(self) -> int:
        """Get the actual bound port (useful when port=0 for dynamic allocation)."""
        if self._site is None:
            return self.config.port
        # Get the first server socket from the site
        if self._site._server:
            return self._site._server.sockets[0].getsockname()[1]  # type: ignore[union-attr]
        return self.config.port

    @property
    def url(self) -> str:
        """WebSocket URL clients connect to."""
        return f"ws://{self.config.host}:{self.port}{self.config.path}"

    @property
    def bridges(self) -> list[Bridge]:
        """Bridges of the currently open connections."""
        return list(self._bridges)

    async def start(self) -> None:
        """Start the server."""
        self._app = web.Application()
        self._app.router.add_get(self.config.path, self._handle_websocket)

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()

        logger.info("Bridge server listening on %s", self.url)

    async def stop(self) -> None:
        """Stop the server, closing every open connection."""
        for channel in list(self._channels):
            await channel.close()

        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        self._site = None
        self._app = None

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Serve one WebSocket connection until it closes."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        channel = WebSocketChannel(ws)
        bridge = Bridge(
            self._local_factory(),
            channel.post_message,
            channel.add_message_listener,
            self.config.bridge,
        )
        self._channels.add(channel)
        self._bridges.add(bridge)
        logger.debug("Bridge connection opened from %s", request.remote)

        try:
            if self._on_connect is not None:
                self._on_connect(bridge)
            await channel.run()
        finally:
            self._channels.discard(channel)
            self._bridges.discard(bridge)
            await bridge.aclose("Connection closed")
            logger.debug("Bridge connection closed from %s", request.remote)

        return ws
