# ruff: noqa: S311
"""Calculator client - calls the calculator server and answers its callbacks.

Usage:
    python client.py [url] [count]
"""

import asyncio
import contextlib
import random
import sys

from postbridge import Bridge, BridgeError, BridgeTarget, WebSocketChannel


class Client(BridgeTarget):
    """Methods the server may call on us."""

    def name(self) -> str:
        return "calculator client"


async def main() -> None:
    url = sys.argv[1] if len(sys.argv) > 1 else "ws://127.0.0.1:8080/bridge"
    count = int(sys.argv[2]) if len(sys.argv) > 2 else 5

    async with WebSocketChannel.connect(url) as channel:
        bridge = Bridge(Client(), channel.post_message, channel.add_message_listener)
        reader = asyncio.create_task(channel.run())

        try:
            print(await bridge.remote.welcome())

            for _ in range(count):
                x = random.randint(0, 100)
                y = random.randint(0, 100)
                result = await bridge.remote.add(x, y)
                print(f"{x} + {y} = {result}")

            try:
                await bridge.remote.divide(1, 0)
            except BridgeError as e:
                print(f"1 / 0 failed: {e}")
        finally:
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
            await bridge.aclose()


if __name__ == "__main__":
    asyncio.run(main())
