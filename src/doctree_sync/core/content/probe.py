"""Capability probing on opaque host nodes.

Nodes may be arbitrary objects (attributes and methods) or mappings (keys).
Names are probed in the order given, so callers pass both the snake_case and
camelCase spelling of a capability.
"""

import inspect
from collections.abc import Callable, Mapping
from typing import Any

from doctree_sync.protocols import NodeLookupProtocol


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def get_field(node: Any, *names: str) -> Any:
    """Return the first present, non-callable field among names, else MISSING."""
    for name in names:
        if isinstance(node, Mapping):
            value = node.get(name, MISSING)
        else:
            try:
                value = getattr(node, name, MISSING)
            except Exception:
                value = MISSING
        if value is not MISSING and not callable(value):
            return value
    return MISSING


def get_method(node: Any, *names: str) -> Callable[..., Any] | None:
    """Return the first callable member among names, else None."""
    for name in names:
        if isinstance(node, Mapping):
            value = node.get(name)
        else:
            try:
                value = getattr(node, name, None)
            except Exception:
                value = None
        if callable(value):
            return value
    return None


async def call_maybe_async(fn: Callable[..., Any], *args: Any) -> Any:
    """Invoke a host callable and await the result if it is awaitable."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def as_lines(value: Any) -> list[str] | None:
    """Return value as a list of lines if it is a sequence of strings."""
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return list(value)
    return None


def node_id(node: Any) -> str:
    """Stable string id of a node; a bare string is its own id."""
    if isinstance(node, str):
        return node
    value = get_field(node, "id", "_id", "node_id")
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return ""


async def dereference(node: Any, lookup: NodeLookupProtocol | None) -> Any | None:
    """Turn a bare id into a live node via the lookup; other values pass through.

    Returns None when the id does not resolve. Lookup errors propagate.
    """
    if not isinstance(node, str):
        return node
    if lookup is None:
        return None
    return await lookup.find_node(node)
