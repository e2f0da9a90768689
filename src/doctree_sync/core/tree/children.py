"""Enumerate the ordered children of a node."""

from typing import Any

from doctree_sync.core.content.probe import call_maybe_async, get_field, get_method, node_id
from doctree_sync.diagnostics import DiagnosticTrace, trace_step
from doctree_sync.protocols import NodeLookupProtocol

_ACCESSOR_NAMES = ("get_children", "getChildren", "children")


async def _via_accessor(node: Any, trace: DiagnosticTrace | None) -> list[Any] | None:
    fn = get_method(node, *_ACCESSOR_NAMES)
    if fn is None:
        return None
    try:
        result = await call_maybe_async(fn)
    except Exception as e:
        trace_step(trace, "Children accessor failed on {!r}: {!r}", node_id(node), e)
        return None
    if isinstance(result, (list, tuple)):
        return list(result)
    trace_step(trace, "Children accessor returned {}", type(result).__name__)
    return None


def _field_list(node: Any, name: str) -> list[Any] | None:
    value = get_field(node, name)
    if isinstance(value, (list, tuple)):
        return list(value)
    return None


async def list_children(
    node: Any,
    lookup: NodeLookupProtocol | None = None,
    *,
    trace: DiagnosticTrace | None = None,
) -> list[Any]:
    """Return the node's children in host order.

    Elements may be live nodes or bare id strings. Never raises: an empty list
    means either no children or that enumeration failed, and callers cannot
    tell the two apart.
    """
    ident = node_id(node)

    children = await _via_accessor(node, trace)
    if children is not None:
        trace_step(trace, "Children of {!r} via accessor ({})", ident, len(children))
        return children

    children = _field_list(node, "children")
    if children is not None:
        trace_step(trace, "Children of {!r} via children field ({})", ident, len(children))
        return children

    if ident and lookup is not None:
        try:
            fresh = await lookup.find_node(ident)
        except Exception as e:
            trace_step(trace, "Lookup of {!r} failed: {!r}", ident, e)
            fresh = None
        if fresh is not None and fresh is not node:
            children = await _via_accessor(fresh, trace)
            if children is not None:
                trace_step(trace, "Children of {!r} via looked-up node ({})", ident, len(children))
                return children

    children = _field_list(node, "_children")
    if children is not None:
        trace_step(trace, "Children of {!r} via _children field ({})", ident, len(children))
        return children

    trace_step(trace, "No children found for {!r}", ident)
    return []
