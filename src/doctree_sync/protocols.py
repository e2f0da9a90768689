"""Protocols for the host collaborators of the synchronization engine."""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class NodeLookupProtocol(Protocol):
    """Resolves a bare node id to a live node."""

    async def find_node(self, node_id: str) -> Any | None:
        """Return the live node for an id, or None if it does not exist."""
        ...


@runtime_checkable
class NodeFactoryProtocol(Protocol):
    """Creates detached nodes that a parent can adopt via ``add_child``."""

    async def create_node(self) -> Any:
        """Return a new, empty node."""
        ...


FocusHandler = Callable[[], Awaitable[None]]


@runtime_checkable
class FocusTrackerProtocol(Protocol):
    """Supplies the focused node and notifies on focus changes."""

    async def get_focused_node(self) -> Any | None:
        """Return the focused node (or its id), None when nothing is focused."""
        ...

    def add_listener(self, handler: FocusHandler) -> Callable[[], None]:
        """Subscribe to focus changes. Returns an unsubscribe callable."""
        ...


@runtime_checkable
class KeyValueStoreProtocol(Protocol):
    """Durable string key-value storage used by the draft store."""

    def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        ...

    def list_keys(self) -> list[str]:
        """Return all stored keys."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        ...


@runtime_checkable
class ApiProtocol(Protocol):
    """Protocol for Dynalist API clients."""

    def call(self, path: str, args: dict[str, Any]) -> dict[str, Any]:
        """Invoke an API endpoint and return the JSON response."""
        ...
