#!/usr/bin/env python3
"""Alice and Bob - two peers in one process, joined by an in-memory channel.

There is no client and no server: both sides run the same Bridge and call
each other. The channel also carries unrelated messages, which the bridges
leave alone.

Usage:
    python main.py
"""

import asyncio

from postbridge import BridgeError, create_bridge, create_channel_pair
from postbridge.stubs import RemoteProxy
from postbridge.wire import is_bridge_message


class Peer:
    """A chat peer. Plain objects work too: public methods are exposed."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.message_count = 0
        self.other: RemoteProxy | None = None

    def greet(self) -> str:
        return f"Hello! I'm {self.name}."

    def chat(self, message: str) -> str:
        self.message_count += 1
        print(f"{self.name} received: {message}")
        return f"{self.name} says: thanks for message #{self.message_count}!"

    async def introduce(self) -> str:
        # Answering this call requires calling the other peer first
        assert self.other is not None
        other_greeting = await self.other.greet()
        return f"{self.name} met someone who said: {other_greeting}"

    def get_stats(self) -> dict:
        return {"name": self.name, "messages_received": self.message_count}


def log_other_traffic(message: str) -> None:
    if not is_bridge_message(message):
        print(f"Bob's channel also carried: {message}")


async def main() -> None:
    alice_end, bob_end = create_channel_pair()

    bob_end.add_message_listener(log_other_traffic)

    alice, bob = Peer("Alice"), Peer("Bob")
    alice.other = create_bridge(
        alice,
        post_message=alice_end.post_message,
        add_message_listener=alice_end.add_message_listener,
    )
    bob.other = create_bridge(
        bob,
        post_message=bob_end.post_message,
        add_message_listener=bob_end.add_message_listener,
        timeout_ms=2000,
    )

    alice_end.post_message("plain text from some other library")

    print(await alice.other.greet())
    print(await bob.other.greet())
    print(await alice.other.chat("Hi Bob!"))
    print(await bob.other.chat("Hi Alice!"))
    print(await alice.other.introduce())
    print(f"Bob's stats: {await alice.other.get_stats()}")

    try:
        await alice.other.fly()
    except BridgeError as e:
        print(f"Expected failure: {e}")

    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
