"""Channel implementations for postbridge.

A bridge only needs two primitives from its channel: a way to send a string
and a way to register a listener for incoming strings. This module provides
channels exposing exactly those two methods:

- `LocalChannel`: in-memory endpoints, see `create_channel_pair()`
- `WebSocketChannel`: an aiohttp WebSocket, client or server side
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Self

import aiohttp
from aiohttp import web

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


class _ListenerSet:
    """Listeners of one channel endpoint."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def add(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispatch(self, message: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Channel listener failed")

    def __len__(self) -> int:
        return len(self._listeners)


class LocalChannel:
    """One endpoint of an in-memory channel.

    Posting delivers the message to the peer's listeners on a later turn of
    the event loop, never synchronously, like a browser's postMessage.
    """

    def __init__(self) -> None:
        self._listeners = _ListenerSet()
        self._peer: LocalChannel | None = None
        self._closed = False

    def connect(self, peer: LocalChannel) -> None:
        """Link this endpoint with another one, both ways."""
        self._peer = peer
        peer._peer = self

    def post_message(self, message: str) -> None:
        """Send a message to the peer endpoint.

        Raises:
            RuntimeError: If the channel is closed or has no peer
        """
        if self._closed or self._peer is None or self._peer._closed:
            msg = "Channel not connected"
            raise RuntimeError(msg)
        peer = self._peer
        asyncio.get_running_loop().call_soon(peer._deliver, message)

    def add_message_listener(self, listener: Listener) -> None:
        """Register a listener for messages sent by the peer."""
        self._listeners.add(listener)

    def remove_message_listener(self, listener: Listener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        self._listeners.remove(listener)

    def _deliver(self, message: str) -> None:
        if self._closed:
            return
        self._listeners.dispatch(message)

    def close(self) -> None:
        """Close this endpoint. Messages still in flight to it are dropped."""
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


def create_channel_pair() -> tuple[LocalChannel, LocalChannel]:
    """Create two connected in-memory channel endpoints."""
    left = LocalChannel()
    right = LocalChannel()
    left.connect(right)
    return left, right


class WebSocketChannel:
    """Channel over an aiohttp WebSocket.

    Wraps either a client `aiohttp.ClientWebSocketResponse` or a server
    `aiohttp.web.WebSocketResponse`. Text frames are handed to listeners by
    `run()`; binary frames are ignored since bridge messages are strings.

    Example:
        ```python
        async with WebSocketChannel.connect("ws://localhost:8080/bridge") as channel:
            remote = create_bridge(
                local,
                post_message=channel.post_message,
                add_message_listener=channel.add_message_listener,
            )
            reader = asyncio.create_task(channel.run())
            print(await remote.add(2, 3))
        ```
    """

    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse | web.WebSocketResponse | None = None,
        session: aiohttp.ClientSession | None = None,
        url: str | None = None,
    ) -> None:
        """Initialize the channel.

        Args:
            ws: An already open WebSocket, or None when opening via `url`
            session: Client session owned by this channel, closed with it
            url: WebSocket URL to open on entering the context manager
        """
        self.url = url
        self._ws = ws
        self._session = session
        self._listeners = _ListenerSet()

    @classmethod
    def connect(cls, url: str) -> WebSocketChannel:
        """Create a client channel that opens `url` when entered."""
        return cls(url=url)

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        if self._ws is None:
            if self.url is None:
                msg = "WebSocketChannel needs a WebSocket or a URL"
                raise RuntimeError(msg)
            self._session = aiohttp.ClientSession()
            self._ws = await self._session.ws_connect(self.url)
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    async def post_message(self, message: str) -> None:
        """Send a message as a text frame.

        Raises:
            RuntimeError: If the WebSocket is not connected
        """
        if self._ws is None or self._ws.closed:
            msg = "WebSocket not connected"
            raise RuntimeError(msg)
        await self._ws.send_str(message)

    def add_message_listener(self, listener: Listener) -> None:
        """Register a listener for incoming text frames."""
        self._listeners.add(listener)

    def remove_message_listener(self, listener: Listener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        self._listeners.remove(listener)

    async def receive(self) -> str | None:
        """Receive the next text frame.

        Returns:
            The frame text, or None for a binary frame

        Raises:
            RuntimeError: If the WebSocket is not connected
            ConnectionError: If the WebSocket is closed or failed
        """
        ws = self._ws
        if ws is None:
            msg = "WebSocket not connected"
            raise RuntimeError(msg)

        frame = await ws.receive()

        if frame.type == aiohttp.WSMsgType.TEXT:
            return frame.data
        if frame.type == aiohttp.WSMsgType.BINARY:
            return None
        if frame.type in (
            aiohttp.WSMsgType.CLOSE,
            aiohttp.WSMsgType.CLOSING,
            aiohttp.WSMsgType.CLOSED,
        ):
            msg = "WebSocket closed"
            raise ConnectionError(msg)
        if frame.type == aiohttp.WSMsgType.ERROR:
            msg = f"WebSocket error: {ws.exception()}"
            raise ConnectionError(msg)
        msg = f"Unexpected message type: {frame.type}"
        raise ValueError(msg)

    async def run(self) -> None:
        """Pump incoming text frames to listeners until the socket closes."""
        logger.debug("WebSocket channel reader started")
        while self._ws is not None:
            try:
                message = await self.receive()
            except ConnectionError as e:
                logger.debug("WebSocket channel reader stopped: %s", e)
                return
            if message is not None:
                self._listeners.dispatch(message)

    async def close(self) -> None:
        """Close the WebSocket and any session owned by this channel."""
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        session, self._session = self._session, None
        if session is not None:
            await session.close()

    @property
    def closed(self) -> bool:
        return self._ws is None or self._ws.closed

