"""Core type definitions for postbridge."""

from __future__ import annotations

from abc import ABC
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from postbridge.error import BridgeError

Handler = Callable[..., Any]


class BridgeTarget(ABC):
    """Base class for objects exposed to the remote side of a bridge.

    Public methods defined on subclasses automatically become callable from
    the remote side. Methods starting with underscore are private and are
    never exposed.

    Example:
        class Calculator(BridgeTarget):
            def add(self, a: int, b: int) -> int:
                return a + b

            async def slow_add(self, a: int, b: int) -> int:
                await asyncio.sleep(1)
                return a + b

    Override `resolve()` to implement custom lookup logic.
    """

    def resolve(self, method: str) -> Handler:
        """Find the handler for a method name.

        Raises:
            BridgeError: INVALID_METHOD if there is no such public method
        """
        if method.startswith("_") or method in _RESERVED:
            raise BridgeError.invalid_method(f"Invalid method {method}")

        handler = getattr(self, method, None)
        if handler is None or not callable(handler):
            raise BridgeError.invalid_method(f"Invalid method {method}")
        return handler


# resolve() is BridgeTarget API, not an exposed method
_RESERVED = frozenset({"resolve"})


class MethodRegistry(BridgeTarget):
    """Explicit mapping from method names to handlers.

    Example:
        registry = MethodRegistry()
        registry.register("add", lambda a, b: a + b)

        @registry.method
        async def greet(name: str) -> str:
            return f"Hello, {name}"
    """

    def __init__(self, handlers: Mapping[str, Handler] | None = None) -> None:
        self._handlers: dict[str, Handler] = {}
        for name, handler in (handlers or {}).items():
            self.register(name, handler)

    def register(self, name: str, handler: Handler) -> None:
        """Register a handler under a method name."""
        if not callable(handler):
            msg = f"Handler for {name!r} is not callable"
            raise TypeError(msg)
        self._handlers[name] = handler

    def method(self, func: Handler) -> Handler:
        """Decorator registering a function under its own name."""
        self.register(func.__name__, func)
        return func

    def unregister(self, name: str) -> None:
        """Remove a method. Unknown names are ignored."""
        self._handlers.pop(name, None)

    def names(self) -> list[str]:
        """Registered method names."""
        return list(self._handlers)

    def resolve(self, method: str) -> Handler:
        handler = self._handlers.get(method)
        if handler is None:
            raise BridgeError.invalid_method(f"Invalid method {method}")
        return handler


class ObjectTarget(BridgeTarget):
    """Exposes the public methods of an arbitrary object."""

    def __init__(self, obj: Any) -> None:
        self._obj = obj

    def resolve(self, method: str) -> Handler:
        if method.startswith("_"):
            raise BridgeError.invalid_method(f"Invalid method {method}")
        handler = getattr(self._obj, method, None)
        if handler is None or not callable(handler):
            raise BridgeError.invalid_method(f"Invalid method {method}")
        return handler


def as_target(local: Any) -> BridgeTarget:
    """Wrap a local object so the bridge can dispatch to it."""
    if isinstance(local, BridgeTarget):
        return local
    if isinstance(local, Mapping):
        return MethodRegistry(local)
    if local is None:
        return MethodRegistry()
    return ObjectTarget(local)


class MessageSender(Protocol):
    """Send primitive of a channel. May return an awaitable."""

    def __call__(self, message: str) -> Awaitable[None] | None: ...


class ListenerRegistrar(Protocol):
    """Listener registration primitive of a channel."""

    def __call__(self, listener: Callable[[str], None]) -> None: ...
