"""Test bidirectional communication - two bridges acting as peers.

Both ends run the same Bridge over an in-memory channel pair. Either side
can call the other, including from inside a call it is currently answering.
"""

import asyncio
from typing import Any

import pytest

from postbridge import Bridge, BridgeConfig, BridgeError, BridgeTarget, ErrorCode, create_channel_pair
from postbridge.stubs import RemoteProxy


class Alice(BridgeTarget):
    """Alice's methods - can greet and ask Bob questions."""

    def __init__(self) -> None:
        self.name = "Alice"
        self.bob: RemoteProxy | None = None

    def greet(self) -> str:
        return f"Hello from {self.name}!"

    async def ask_bob(self, question: str) -> str:
        # Alice calls Bob while answering Bob's call
        if self.bob is None:
            msg = "Bob not connected"
            raise RuntimeError(msg)
        answer = await self.bob.answer(question)
        return f"Bob says: {answer}"


class Bob(BridgeTarget):
    """Bob's methods - can answer questions and call Alice."""

    def __init__(self) -> None:
        self.name = "Bob"
        self.alice: RemoteProxy | None = None

    def answer(self, question: str) -> str:
        return f"{self.name} thinks '{question}' is a good question"

    async def relay_greeting(self) -> str:
        if self.alice is None:
            msg = "Alice not connected"
            raise RuntimeError(msg)
        return await self.alice.greet()

    async def countdown(self, n: int) -> list[int]:
        # Ping-pong recursion through the other side
        if n <= 0:
            return []
        assert self.alice is not None
        rest = await self.alice.countdown(n - 1)
        return [n, *rest]


class AliceWithCountdown(Alice):
    async def countdown(self, n: int) -> list[int]:
        if n <= 0:
            return []
        assert self.bob is not None
        rest = await self.bob.countdown(n - 1)
        return [n, *rest]


def connect(alice: Alice, bob: Bob, timeout_ms: int = 2000) -> tuple[Bridge, Bridge]:
    """Wire two targets together over an in-memory channel pair."""
    alice_end, bob_end = create_channel_pair()
    config = BridgeConfig(timeout_ms=timeout_ms)
    alice_bridge = Bridge(alice, alice_end.post_message, alice_end.add_message_listener, config)
    bob_bridge = Bridge(bob, bob_end.post_message, bob_end.add_message_listener, config)
    alice.bob = alice_bridge.remote
    bob.alice = bob_bridge.remote
    return alice_bridge, bob_bridge


@pytest.mark.asyncio
class TestBidirectional:
    """Test both peers calling each other."""

    async def test_each_side_calls_the_other(self) -> None:
        """Test plain calls in both directions."""
        alice, bob = Alice(), Bob()
        alice_bridge, bob_bridge = connect(alice, bob)

        assert await bob_bridge.remote.greet() == "Hello from Alice!"
        assert await alice_bridge.remote.answer("why?") == "Bob thinks 'why?' is a good question"

    async def test_nested_call(self) -> None:
        """Test Alice calling Bob while answering Bob."""
        alice, bob = Alice(), Bob()
        _, bob_bridge = connect(alice, bob)

        result = await bob_bridge.remote.ask_bob("ready?")

        assert result == "Bob says: Bob thinks 'ready?' is a good question"

    async def test_relay(self) -> None:
        """Test Bob answering Alice by calling Alice."""
        alice, bob = Alice(), Bob()
        alice_bridge, _ = connect(alice, bob)

        assert await alice_bridge.remote.relay_greeting() == "Hello from Alice!"

    async def test_deep_ping_pong(self) -> None:
        """Test calls bouncing back and forth several levels deep."""
        alice, bob = AliceWithCountdown(), Bob()
        alice_bridge, _ = connect(alice, bob)

        assert await alice_bridge.remote.countdown(6) == [6, 5, 4, 3, 2, 1]

    async def test_concurrent_calls_both_ways(self) -> None:
        """Test many overlapping calls keep their results apart."""
        alice, bob = Alice(), Bob()
        alice_bridge, bob_bridge = connect(alice, bob)

        questions = [f"q{i}" for i in range(20)]
        results = await asyncio.gather(
            *(alice_bridge.remote.answer(q) for q in questions),
            *(bob_bridge.remote.greet() for _ in range(20)),
        )

        assert results[:20] == [f"Bob thinks '{q}' is a good question" for q in questions]
        assert results[20:] == ["Hello from Alice!"] * 20
        assert alice_bridge.pending_count == 0
        assert bob_bridge.pending_count == 0

    async def test_remote_errors_cross_the_channel(self) -> None:
        """Test failures on one side reject the caller on the other."""
        alice, bob = Alice(), Bob()
        _, bob_bridge = connect(alice, bob)
        alice.bob = None

        with pytest.raises(BridgeError) as exc_info:
            await bob_bridge.remote.ask_bob("anyone?")
        assert exc_info.value.code is ErrorCode.REMOTE_RUNTIME_ERROR
        assert exc_info.value.message == "[RuntimeError]: Bob not connected"

        with pytest.raises(BridgeError) as exc_info:
            await bob_bridge.remote.ghost()
        assert exc_info.value.code is ErrorCode.INVALID_METHOD
        assert exc_info.value.message == "Invalid method ghost"

    async def test_timeout_when_peer_goes_away(self) -> None:
        """Test calls time out once the other end stops answering."""
        alice, bob = Alice(), Bob()
        alice_bridge, bob_bridge = connect(alice, bob, timeout_ms=50)
        bob_bridge.close()

        with pytest.raises(BridgeError) as exc_info:
            await alice_bridge.remote.answer("hello?")
        assert exc_info.value.code is ErrorCode.REMOTE_TIMEOUT

    async def test_shared_channel_with_other_traffic(self) -> None:
        """Test foreign messages on the same channel do not disturb calls."""
        alice_end, bob_end = create_channel_pair()
        foreign: list[Any] = []
        bob_end.add_message_listener(foreign.append)
        Bridge(Bob(), bob_end.post_message, bob_end.add_message_listener)
        alice_bridge = Bridge(Alice(), alice_end.post_message, alice_end.add_message_listener)

        alice_end.post_message("not for the bridge")
        answer = await alice_bridge.remote.answer("still there?")

        assert answer == "Bob thinks 'still there?' is a good question"
        assert foreign[0] == "not for the bridge"
