"""Bridge engine for postbridge.

A `Bridge` sits on one end of a string message channel. It answers
invocations coming from the other end by calling methods on a local target,
and exposes a `RemoteProxy` whose method calls become invocations sent the
other way. Both ends run the same code; there is no client or server.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Self

from postbridge.error import BridgeError, ErrorCode
from postbridge.stubs import RemoteProxy
from postbridge.tables import PendingCall, PendingCallTable
from postbridge.types import BridgeTarget, ListenerRegistrar, MessageSender, as_target
from postbridge.wire import (
    ErrorReply,
    Invocation,
    SuccessReply,
    decode,
    describe_error,
    encode_error,
    encode_invocation,
    encode_success,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10000


@dataclass(frozen=True)
class BridgeConfig:
    """Configuration for a bridge.

    Observers are plain side-effect hooks; their return values are ignored and
    anything they raise is logged rather than propagated.
    """

    # Calls without a reply after this many milliseconds fail with REMOTE_TIMEOUT
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    on_remote_invoke_local: Callable[[str, list[Any]], None] | None = None
    on_local_invoke_remote: Callable[[str, list[Any]], None] | None = None
    # Universal handler for failed calls, in addition to the rejected future
    on_remote_error: Callable[[str, list[Any], ErrorCode, str], None] | None = None
    # Malformed messages and internal failures that belong to no call
    on_unexpected_error: Callable[[BaseException], None] | None = None

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            msg = f"timeout_ms must be positive, got {self.timeout_ms}"
            raise ValueError(msg)


class Bridge:
    """One end of a symmetric RPC bridge.

    The channel is given as two primitives: `post_message` sends a string to
    the other end (it may be a plain function or return an awaitable), and
    `add_message_listener` is called once with the handler that must receive
    every incoming string.

    All work happens on the running asyncio event loop; `handle_message` and
    the remote proxy must be used from that loop.
    """

    def __init__(
        self,
        local: Any,
        post_message: MessageSender,
        add_message_listener: ListenerRegistrar,
        config: BridgeConfig | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self._target: BridgeTarget = as_target(local)
        self._post_message = post_message
        self._table = PendingCallTable(on_remote_error=self._notify_remote_error)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False
        self.remote = RemoteProxy(self)

        add_message_listener(self.handle_message)

    @property
    def target(self) -> BridgeTarget:
        """The local target answering remote invocations."""
        return self._target

    @property
    def pending_count(self) -> int:
        """Number of outbound calls still waiting for a reply."""
        return len(self._table)

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    # Inbound

    def handle_message(self, message: str) -> None:
        """Listener for every message arriving on the channel.

        Never raises: failures are routed to the unexpected-error observer.
        """
        try:
            envelope = decode(message)
            if envelope is None:
                # Not ours, someone else shares the channel
                return

            if self._closed:
                logger.debug("Bridge closed, dropping message: %s", message[:200])
                return

            logger.debug("Received message: %s", message[:200])

            match envelope:
                case SuccessReply(result=result, key=key):
                    self._table.resolve(key, result)

                case ErrorReply(key=key, error_message=error_message):
                    self._table.reject(key, envelope.code, error_message)

                case Invocation(method=method, args=args):
                    self._notify(self.config.on_remote_invoke_local, method, args)
                    self._spawn(self._execute_invocation(envelope))

        except Exception as e:
            self._report_unexpected(e)

    async def _execute_invocation(self, invocation: Invocation) -> None:
        """Run a remote-requested call and send back exactly one reply."""
        try:
            reply = await self._invoke_local(invocation)
            self._send(reply)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._report_unexpected(e)

    async def _invoke_local(self, invocation: Invocation) -> str:
        """Call the local target and encode the reply envelope."""
        method, args, key = invocation.method, invocation.args, invocation.key

        try:
            handler = self._target.resolve(method)
        except BridgeError as e:
            logger.debug("Rejecting invocation of unknown method %s", method)
            return encode_error(ErrorCode.INVALID_METHOD, e.message, key)
        except Exception as e:
            logger.debug("Lookup of method %s failed: %r", method, e)
            return encode_error(ErrorCode.INVALID_METHOD, f"Invalid method {method}", key)

        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError as e:
            task = asyncio.current_task()
            if self._closed or (task is not None and task.cancelling()):
                raise
            # Raised by the method itself, not a cancellation of this task
            logger.debug("Local method %s raised: %r", method, e)
            return encode_error(ErrorCode.REMOTE_RUNTIME_ERROR, describe_error(e), key)
        except Exception as e:
            logger.debug("Local method %s raised: %r", method, e)
            return encode_error(ErrorCode.REMOTE_RUNTIME_ERROR, describe_error(e), key)

        try:
            return encode_success(result, key)
        except (TypeError, ValueError, RecursionError) as e:
            msg = f"Return value of {method} not serializable: {e}"
            return encode_error(ErrorCode.INVALID_RETURN, msg, key)

    # Outbound

    def invoke_remote(self, method: str, args: list[Any]) -> asyncio.Future[Any]:
        """Send an invocation to the other end.

        Returns:
            A future that resolves to the remote return value, or fails with
            BridgeError carrying INVALID_ARGS, INVALID_METHOD, INVALID_RETURN,
            REMOTE_RUNTIME_ERROR or REMOTE_TIMEOUT
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        if self._closed:
            future.set_exception(BridgeError.remote_runtime_error("Bridge is closed"))
            return future

        self._notify(self.config.on_local_invoke_remote, method, args)
        key = self._table.allocate_key()

        try:
            message = encode_invocation(method, args, key)
        except (TypeError, ValueError, RecursionError) as e:
            logger.debug("Arguments of %s not serializable: %s", method, e)
            error_message = "Args not serializable"
            self._notify_remote_error(method, args, ErrorCode.INVALID_ARGS, error_message)
            future.set_exception(BridgeError.invalid_args(error_message))
            return future

        entry = PendingCall(method=method, args=args, future=future)
        self._table.register(key, entry)
        entry.timer = loop.call_later(
            self.config.timeout_ms / 1000, self._on_timeout, key
        )
        future.add_done_callback(lambda f: self._forget_cancelled(key, f))

        try:
            self._send(message, key=key)
        except Exception as e:
            self._report_unexpected(e)
            self._fail_send(key, e)

        return future

    def _on_timeout(self, key: int) -> None:
        try:
            self._table.reject(
                key,
                ErrorCode.REMOTE_TIMEOUT,
                f"Remote timeout after {self.config.timeout_ms} ms",
            )
        except Exception as e:
            self._report_unexpected(e)

    def _forget_cancelled(self, key: int, future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            self._table.discard(key)

    def _fail_send(self, key: int, error: BaseException) -> None:
        self._table.reject(
            key,
            ErrorCode.INVALID_ARGS,
            f"Failed to send invocation: {describe_error(error)}",
        )

    # Channel helpers

    def _send(self, message: str, key: int | None = None) -> None:
        logger.debug("Sending message: %s", message[:200])
        result = self._post_message(message)
        if inspect.isawaitable(result):
            self._spawn(self._await_send(result, key))

    async def _await_send(self, pending: Awaitable[Any], key: int | None) -> None:
        try:
            await pending
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._report_unexpected(e)
            if key is not None:
                self._fail_send(key, e)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # Observers

    def _notify(self, observer: Callable[..., Any] | None, *args: Any) -> None:
        if observer is None:
            return
        try:
            observer(*args)
        except Exception:
            logger.exception("Bridge observer %r failed", observer)

    def _notify_remote_error(
        self, method: str, args: list[Any], error_code: ErrorCode, message: str
    ) -> None:
        logger.debug("Call %s failed with %s: %s", method, error_code, message)
        self._notify(self.config.on_remote_error, method, args, error_code, message)

    def _report_unexpected(self, error: BaseException) -> None:
        logger.error("Unexpected bridge error: %s", error, exc_info=error)
        self._notify(self.config.on_unexpected_error, error)

    # Lifecycle

    def close(self, reason: str = "Bridge closed") -> None:
        """Stop the bridge.

        Pending outbound calls fail with REMOTE_RUNTIME_ERROR, running local
        invocations are cancelled, and further incoming messages are ignored.
        """
        if self._closed:
            return
        self._closed = True
        for key in list(self._table.keys()):
            try:
                self._table.reject(key, ErrorCode.REMOTE_RUNTIME_ERROR, reason)
            except Exception as e:
                self._report_unexpected(e)
        for task in list(self._tasks):
            task.cancel()

    async def aclose(self, reason: str = "Bridge closed") -> None:
        """Close the bridge and wait for cancelled tasks to finish."""
        self.close(reason)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.aclose()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Bridge({type(self._target).__name__}, {state}, pending={len(self._table)})"


def create_bridge(
    local: Any,
    *,
    post_message: MessageSender,
    add_message_listener: ListenerRegistrar,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    on_remote_invoke_local: Callable[[str, list[Any]], None] | None = None,
    on_local_invoke_remote: Callable[[str, list[Any]], None] | None = None,
    on_remote_error: Callable[[str, list[Any], ErrorCode, str], None] | None = None,
    on_unexpected_error: Callable[[BaseException], None] | None = None,
) -> RemoteProxy:
    """Wire `local` to a channel and return the proxy for the other end.

    Example:
        ```python
        class Api(BridgeTarget):
            def add(self, a: int, b: int) -> int:
                return a + b

        remote = create_bridge(
            Api(),
            post_message=channel.post_message,
            add_message_listener=channel.add_message_listener,
        )
        print(await remote.multiply(4, 5))
        ```
    """
    config = BridgeConfig(
        timeout_ms=timeout_ms,
        on_remote_invoke_local=on_remote_invoke_local,
        on_local_invoke_remote=on_local_invoke_remote,
        on_remote_error=on_remote_error,
        on_unexpected_error=on_unexpected_error,
    )
    return Bridge(local, post_message, add_message_listener, config).remote
