"""Pending call table for postbridge.

Each outbound call gets an integer key and an entry that lives until a reply
with that key arrives or the call times out, whichever happens first. The
loser of that race finds the key gone and does nothing.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from postbridge.error import BridgeError, ErrorCode

logger = logging.getLogger(__name__)

RemoteErrorObserver = Callable[[str, list[Any], ErrorCode, str], None]


@dataclass
class PendingCall:
    """Entry in the pending call table."""

    method: str
    args: list[Any]
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        """Stop the timeout timer if one is running."""
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class PendingCallTable:
    """Correlation table mapping call keys to pending calls.

    Keys are allocated sequentially starting at 0 and are never reused.
    """

    def __init__(self, on_remote_error: RemoteErrorObserver | None = None) -> None:
        self._entries: dict[int, PendingCall] = {}
        self._next_key = 0
        self._on_remote_error = on_remote_error

    def allocate_key(self) -> int:
        """Allocate a new call key."""
        key = self._next_key
        self._next_key += 1
        return key

    def register(self, key: int, entry: PendingCall) -> None:
        """Add an entry for a freshly allocated key."""
        if key in self._entries:
            msg = f"Call key {key} is already pending"
            raise RuntimeError(msg)
        self._entries[key] = entry

    def resolve(self, key: int, value: Any) -> bool:
        """Settle the call with a result. Returns True if an entry was settled."""
        entry = self._entries.pop(key, None)
        if entry is None:
            # Late reply after a timeout, or a key we never issued
            logger.debug("Ignoring result for unknown call key=%s", key)
            return False

        entry.cancel_timer()
        if not entry.future.done():
            entry.future.set_result(value)
        return True

    def reject(self, key: int, error_code: ErrorCode, message: str) -> bool:
        """Fail the call with an error code. Returns True if an entry was settled."""
        entry = self._entries.pop(key, None)
        if entry is None:
            logger.debug("Ignoring %s for unknown call key=%s", error_code, key)
            return False

        entry.cancel_timer()
        try:
            if self._on_remote_error is not None:
                self._on_remote_error(entry.method, entry.args, error_code, message)
        finally:
            if not entry.future.done():
                entry.future.set_exception(BridgeError(error_code, message))
        return True

    def discard(self, key: int) -> PendingCall | None:
        """Remove an entry without settling it."""
        entry = self._entries.pop(key, None)
        if entry is not None:
            entry.cancel_timer()
        return entry

    def reject_all(self, error_code: ErrorCode, message: str) -> int:
        """Fail every pending call. Returns the number of calls rejected."""
        keys = list(self._entries)
        return sum(1 for key in keys if self.reject(key, error_code, message))

    def contains(self, key: int) -> bool:
        """Check if a call key is pending."""
        return key in self._entries

    def get(self, key: int) -> PendingCall | None:
        """Get the entry for a pending key."""
        return self._entries.get(key)

    def keys(self) -> Iterator[int]:
        """Iterate over pending keys."""
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
