"""postbridge - symmetric RPC over a string message channel

Two contexts joined only by a channel that carries strings call each other's
methods through a proxy, getting back futures that resolve with the remote
return value or fail with a `BridgeError`.
"""

from postbridge.bridge import Bridge, BridgeConfig, create_bridge
from postbridge.error import BridgeError, ErrorCode
from postbridge.server import BridgeServer, ServerConfig
from postbridge.stubs import RemoteMethod, RemoteProxy
from postbridge.transports import LocalChannel, WebSocketChannel, create_channel_pair
from postbridge.types import BridgeTarget, MethodRegistry

__version__ = "0.1.0"

__all__ = [
    # Bridge
    "Bridge",
    "BridgeConfig",
    "create_bridge",
    # Core types
    "BridgeTarget",
    "MethodRegistry",
    "RemoteProxy",
    "RemoteMethod",
    # Channels
    "LocalChannel",
    "WebSocketChannel",
    "create_channel_pair",
    # Server
    "BridgeServer",
    "ServerConfig",
    # Errors
    "BridgeError",
    "ErrorCode",
]
