"""Tests for method lookup on local targets.

Methods on BridgeTarget subclasses are exposed automatically, MethodRegistry
exposes an explicit mapping, and plain objects are wrapped in ObjectTarget.
"""

from typing import Any

import pytest

from postbridge.error import BridgeError, ErrorCode
from postbridge.types import BridgeTarget, MethodRegistry, ObjectTarget, as_target


class AutoCalculator(BridgeTarget):
    """Calculator using automatic method dispatch."""

    def __init__(self) -> None:
        self.name = "calculator"

    async def add(self, a: int, b: int) -> int:
        """Add two numbers."""
        return a + b

    def multiply(self, a: int, b: int) -> int:
        """Multiply two numbers (sync method)."""
        return a * b

    def _private_method(self) -> str:
        """Private method - should not be accessible via RPC."""
        return "secret"


class PlainService:
    """Object that knows nothing about bridges."""

    def __init__(self) -> None:
        self.count = 0

    def increment(self) -> int:
        self.count += 1
        return self.count

    def _hidden(self) -> None:
        pass


def assert_invalid(target: BridgeTarget, method: str) -> None:
    with pytest.raises(BridgeError) as exc_info:
        target.resolve(method)
    assert exc_info.value.code is ErrorCode.INVALID_METHOD
    assert exc_info.value.message == f"Invalid method {method}"


class TestBridgeTarget:
    """Tests for BridgeTarget automatic dispatch."""

    def test_resolves_sync_and_async_methods(self) -> None:
        """Test public methods resolve to bound methods."""
        calc = AutoCalculator()
        assert calc.resolve("multiply")(3, 4) == 12
        assert calc.resolve("add").__name__ == "add"

    def test_private_methods_hidden(self) -> None:
        """Test underscore methods are not exposed."""
        calc = AutoCalculator()
        assert_invalid(calc, "_private_method")
        assert_invalid(calc, "__init__")

    def test_non_callable_attribute(self) -> None:
        """Test plain attributes are not methods."""
        assert_invalid(AutoCalculator(), "name")

    def test_missing_method(self) -> None:
        """Test unknown names are invalid."""
        assert_invalid(AutoCalculator(), "ghost")

    def test_resolve_not_exposed(self) -> None:
        """Test the lookup API itself is not callable remotely."""
        assert_invalid(AutoCalculator(), "resolve")


class TestMethodRegistry:
    """Tests for MethodRegistry."""

    def test_register(self) -> None:
        """Test registering handlers by name."""
        registry = MethodRegistry()
        registry.register("add", lambda a, b: a + b)
        assert registry.resolve("add")(2, 3) == 5
        assert registry.names() == ["add"]

    def test_decorator(self) -> None:
        """Test registering with the decorator keeps the function usable."""
        registry = MethodRegistry()

        @registry.method
        def greet(name: str) -> str:
            return f"Hello, {name}"

        assert greet("Ada") == "Hello, Ada"
        assert registry.resolve("greet") is greet

    def test_initial_mapping(self) -> None:
        """Test building a registry from a mapping."""
        registry = MethodRegistry({"ping": lambda: "pong"})
        assert registry.resolve("ping")() == "pong"

    def test_unregister(self) -> None:
        """Test removing a handler."""
        registry = MethodRegistry({"ping": lambda: "pong"})
        registry.unregister("ping")
        registry.unregister("never-registered")
        assert_invalid(registry, "ping")

    def test_registry_api_not_exposed(self) -> None:
        """Test the registry's own methods are not remote methods."""
        registry = MethodRegistry()
        assert_invalid(registry, "register")
        assert_invalid(registry, "names")

    def test_non_callable_rejected(self) -> None:
        """Test registering a non-callable raises TypeError."""
        registry = MethodRegistry()
        with pytest.raises(TypeError):
            registry.register("value", 42)

    def test_any_name_allowed(self) -> None:
        """Test explicit registration may use names a class could not."""
        registry = MethodRegistry({"call": lambda: "called", "with-dash": lambda: 1})
        assert registry.resolve("call")() == "called"
        assert registry.resolve("with-dash")() == 1


class TestAsTarget:
    """Tests for wrapping local objects."""

    def test_target_passthrough(self) -> None:
        """Test BridgeTargets are used as-is."""
        calc = AutoCalculator()
        assert as_target(calc) is calc

    def test_mapping(self) -> None:
        """Test dicts become registries."""
        target = as_target({"ping": lambda: "pong"})
        assert isinstance(target, MethodRegistry)
        assert target.resolve("ping")() == "pong"

    def test_none(self) -> None:
        """Test None exposes nothing."""
        target = as_target(None)
        assert_invalid(target, "anything")

    def test_plain_object(self) -> None:
        """Test plain objects expose their public methods."""
        service = PlainService()
        target: Any = as_target(service)
        assert isinstance(target, ObjectTarget)
        assert target.resolve("increment")() == 1
        assert service.count == 1
        assert_invalid(target, "_hidden")
        assert_invalid(target, "count")
