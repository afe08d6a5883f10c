"""Wire protocol implementation for postbridge.

Every bridge message is a string made of a fixed prefix marker followed by a
JSON object. The object is one of three envelopes, told apart by which fields
are present:

- Invocation: {"method": str, "args": [...], "key": int}
- SuccessReply: {"result": any, "key": int}
- ErrorReply: {"errorCode": str, "errorMessage": str, "key": int}

Messages without the prefix belong to someone else sharing the channel and are
left alone.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from postbridge.error import BridgeError, ErrorCode

BRIDGE_PREFIX = "@@BRIDGE::"

JsonValue = None | bool | int | float | str | list[Any] | dict[str, Any]


class WireFormatError(ValueError):
    """Raised when a prefixed message does not hold a valid envelope."""


def _check_key(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"Envelope key must be an integer, got {value!r}"
        raise ValueError(msg)
    return value


# Envelopes


@dataclass(frozen=True)
class Invocation:
    """Request to call `method` with `args` on the receiving side."""

    method: str
    args: list[JsonValue]
    key: int

    def to_json(self) -> dict[str, Any]:
        """Convert to JSON object."""
        return {"method": self.method, "args": list(self.args), "key": self.key}

    @staticmethod
    def from_json(obj: dict[str, Any]) -> Invocation:
        """Parse from JSON object."""
        method = obj.get("method")
        if not isinstance(method, str):
            msg = "Invocation requires a string 'method'"
            raise ValueError(msg)
        args = obj.get("args")
        if not isinstance(args, list):
            msg = "Invocation 'args' must be an array"
            raise ValueError(msg)
        return Invocation(method, args, _check_key(obj.get("key")))


@dataclass(frozen=True)
class SuccessReply:
    """Normal return value for the call identified by `key`."""

    result: JsonValue
    key: int

    def to_json(self) -> dict[str, Any]:
        """Convert to JSON object."""
        return {"result": self.result, "key": self.key}

    @staticmethod
    def from_json(obj: dict[str, Any]) -> SuccessReply:
        """Parse from JSON object."""
        return SuccessReply(obj["result"], _check_key(obj.get("key")))


@dataclass(frozen=True)
class ErrorReply:
    """Failure of the call identified by `key`.

    `error_code` is kept as the raw wire string so unknown codes sent by a
    newer peer survive decoding; `code` maps it onto `ErrorCode`.
    """

    error_code: str
    error_message: str
    key: int

    @property
    def code(self) -> ErrorCode:
        """The known error code, REMOTE_RUNTIME_ERROR for unknown ones."""
        return ErrorCode.parse(self.error_code) or ErrorCode.REMOTE_RUNTIME_ERROR

    def to_json(self) -> dict[str, Any]:
        """Convert to JSON object."""
        return {
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "key": self.key,
        }

    @staticmethod
    def from_json(obj: dict[str, Any]) -> ErrorReply:
        """Parse from JSON object."""
        error_message = obj["errorMessage"]
        if not isinstance(error_message, str):
            msg = "ErrorReply 'errorMessage' must be a string"
            raise ValueError(msg)
        error_code = obj.get("errorCode", ErrorCode.REMOTE_RUNTIME_ERROR.value)
        if not isinstance(error_code, str):
            msg = "ErrorReply 'errorCode' must be a string"
            raise ValueError(msg)
        return ErrorReply(error_code, error_message, _check_key(obj.get("key")))


Envelope = Invocation | SuccessReply | ErrorReply


def envelope_from_json(obj: Any) -> Envelope:
    """Classify a decoded JSON object by the fields it carries."""
    if not isinstance(obj, dict):
        msg = "Envelope must be a JSON object"
        raise ValueError(msg)
    if "result" in obj:
        return SuccessReply.from_json(obj)
    if "errorMessage" in obj:
        return ErrorReply.from_json(obj)
    return Invocation.from_json(obj)


# Encoding


def _dumps(obj: dict[str, Any]) -> str:
    # NaN and Infinity are not JSON, refuse them instead of emitting them
    return json.dumps(obj, allow_nan=False, separators=(",", ":"))


def serialize_envelope(envelope: Envelope) -> str:
    """Serialize an envelope to a prefixed wire string.

    Raises:
        TypeError: If a field holds a value JSON cannot represent
        ValueError: If a field holds NaN/Infinity or a circular structure
    """
    return BRIDGE_PREFIX + _dumps(envelope.to_json())


def encode_invocation(method: str, args: list[Any], key: int) -> str:
    """Encode an Invocation envelope."""
    return serialize_envelope(Invocation(method, list(args), key))


def encode_success(result: Any, key: int) -> str:
    """Encode a SuccessReply envelope."""
    return serialize_envelope(SuccessReply(result, key))


def encode_error(error_code: ErrorCode | str, error_message: str, key: int) -> str:
    """Encode an ErrorReply envelope."""
    code = error_code.value if isinstance(error_code, ErrorCode) else error_code
    return serialize_envelope(ErrorReply(code, error_message, key))


# Decoding


def is_bridge_message(message: Any) -> bool:
    """Check whether a channel message carries the bridge prefix."""
    return isinstance(message, str) and message.startswith(BRIDGE_PREFIX)


def decode(message: Any) -> Envelope | None:
    """Decode a channel message.

    Returns:
        The envelope, or None when the message is not a bridge message

    Raises:
        WireFormatError: If the message has the prefix but an invalid body
    """
    if not is_bridge_message(message):
        return None

    body = message[len(BRIDGE_PREFIX) :]
    try:
        return envelope_from_json(json.loads(body))
    except (ValueError, KeyError, TypeError, RecursionError) as e:
        msg = f"Cannot parse message: {body[:200]}"
        raise WireFormatError(msg) from e


# Errors


def describe_error(error: Any) -> str:
    """Render a raised or rejected value as a short transmissible string.

    Never raises.
    """
    try:
        if isinstance(error, BridgeError):
            return f"[{type(error).__name__}]: {error.message}"
        if isinstance(error, BaseException):
            return f"[{type(error).__name__}]: {error}"
        if not error:
            return "[Empty Error]"
        return json.dumps(error, allow_nan=False)
    except Exception:  # noqa: BLE001
        return "[Unknown Error]"
