"""User-facing remote proxy classes.

`RemoteProxy` treats any public attribute as a method on the remote side.
Calling it sends an invocation across the channel and returns an awaitable
for the reply.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from postbridge.bridge import Bridge


class RemoteMethod:
    """A callable forwarding to one method on the remote side."""

    def __init__(self, bridge: Bridge, name: str) -> None:
        self._bridge = bridge
        self._name = name

    @property
    def name(self) -> str:
        """The remote method name."""
        return self._name

    def __call__(self, *args: Any, **kwargs: Any) -> asyncio.Future[Any]:
        """Invoke the remote method.

        Returns:
            A future resolving to the remote return value, or failing with
            BridgeError
        """
        if kwargs:
            msg = "Keyword arguments are not supported in bridge calls"
            raise TypeError(msg)
        return self._bridge.invoke_remote(self._name, list(args))

    def __repr__(self) -> str:
        return f"RemoteMethod({self._name!r})"


class RemoteProxy:
    """Proxy for every method exposed by the remote side.

    Example:
        ```python
        remote = create_bridge(local, post_message=..., add_message_listener=...)

        total = await remote.add(2, 3)

        # Same thing, for dynamic names or a remote method called "call"
        total = await remote.call("add", 2, 3)
        ```
    """

    def __init__(self, bridge: Bridge) -> None:
        # Use object.__setattr__ to avoid triggering __setattr__
        object.__setattr__(self, "_bridge", bridge)

    def __getattr__(self, name: str) -> RemoteMethod:
        if name.startswith("_"):
            # Private and dunder lookups must never turn into remote calls
            msg = f"'{type(self).__name__}' object has no attribute '{name}'"
            raise AttributeError(msg)
        return RemoteMethod(self._bridge, name)

    def __setattr__(self, name: str, value: Any) -> None:
        msg = f"'{type(self).__name__}' object is read-only"
        raise AttributeError(msg)

    def call(self, method: str, *args: Any) -> asyncio.Future[Any]:
        """Invoke a remote method by name."""
        return self._bridge.invoke_remote(method, list(args))

    def __repr__(self) -> str:
        return f"RemoteProxy({self._bridge!r})"
