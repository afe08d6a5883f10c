"""Error types for the postbridge protocol."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Error codes carried by rejected bridge calls."""

    INVALID_METHOD = "INVALID_METHOD"
    INVALID_ARGS = "INVALID_ARGS"
    INVALID_RETURN = "INVALID_RETURN"
    REMOTE_TIMEOUT = "REMOTE_TIMEOUT"
    REMOTE_RUNTIME_ERROR = "REMOTE_RUNTIME_ERROR"

    def __str__(self) -> str:
        return self.value

    @staticmethod
    def parse(value: str) -> ErrorCode | None:
        """Return the code named by a wire string, or None if unknown."""
        try:
            return ErrorCode(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class BridgeError(Exception):
    """Rejection reason of a bridge call."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    @staticmethod
    def invalid_method(message: str) -> BridgeError:
        """Create an INVALID_METHOD error."""
        return BridgeError(ErrorCode.INVALID_METHOD, message)

    @staticmethod
    def invalid_args(message: str) -> BridgeError:
        """Create an INVALID_ARGS error."""
        return BridgeError(ErrorCode.INVALID_ARGS, message)

    @staticmethod
    def invalid_return(message: str) -> BridgeError:
        """Create an INVALID_RETURN error."""
        return BridgeError(ErrorCode.INVALID_RETURN, message)

    @staticmethod
    def remote_timeout(message: str) -> BridgeError:
        """Create a REMOTE_TIMEOUT error."""
        return BridgeError(ErrorCode.REMOTE_TIMEOUT, message)

    @staticmethod
    def remote_runtime_error(message: str) -> BridgeError:
        """Create a REMOTE_RUNTIME_ERROR error."""
        return BridgeError(ErrorCode.REMOTE_RUNTIME_ERROR, message)
