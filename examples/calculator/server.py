"""Calculator server - answers arithmetic over a WebSocket bridge.

Usage:
    python server.py [port]
"""

import asyncio
import logging
import sys

from postbridge import Bridge, BridgeServer, BridgeTarget, ServerConfig
from postbridge.stubs import RemoteProxy


class Calculator(BridgeTarget):
    """Calculator exposed to every connected client.

    Public methods are automatically callable from the other end.
    """

    def __init__(self) -> None:
        self.client: RemoteProxy | None = None

    def add(self, a: float, b: float) -> float:
        """Add two numbers."""
        return a + b

    def subtract(self, a: float, b: float) -> float:
        """Subtract b from a."""
        return a - b

    async def divide(self, a: float, b: float) -> float:
        """Divide a by b."""
        if b == 0:
            msg = "division by zero"
            raise ZeroDivisionError(msg)
        return a / b

    async def welcome(self) -> str:
        """Greet the caller by asking the caller for its name."""
        assert self.client is not None
        name = await self.client.name()
        return f"Welcome, {name}!"


def on_connect(bridge: Bridge) -> None:
    # Let the calculator call back into the client that connected
    bridge.target.client = bridge.remote


async def main() -> None:
    port = int(sys.argv[1]) if len(sys.argv) > 1 else 8080
    config = ServerConfig(host="127.0.0.1", port=port)

    async with BridgeServer(config, Calculator, on_connect=on_connect) as server:
        print(f"Calculator server listening on {server.url}")

        # Keep running
        await asyncio.Event().wait()


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutting down...")
