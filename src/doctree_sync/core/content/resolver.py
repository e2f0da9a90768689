"""Resolve the canonical text of a node, whatever shape the host gives it."""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from doctree_sync.config import LABEL_MAX_LENGTH, TEXT_UNAVAILABLE
from doctree_sync.core.content.probe import (
    MISSING,
    as_lines,
    call_maybe_async,
    dereference,
    get_field,
    get_method,
    node_id,
)
from doctree_sync.diagnostics import DiagnosticTrace, trace_step
from doctree_sync.models.snapshot import TextProjection, TextShape
from doctree_sync.protocols import NodeLookupProtocol

_Strategy = Callable[[Any, DiagnosticTrace | None], Awaitable[TextProjection | None]]

_ACCESSOR_NAMES = ("get_plain_text", "getPlainText", "get_text", "getText")
_CONTENT_ACCESSOR_NAMES = ("get_content", "getContent")
_RAW_CONTENT_FIELDS = ("content", "text", "rich_text", "richText", "value")

UNRESOLVED = TextProjection(text=TEXT_UNAVAILABLE, shape=TextShape.UNKNOWN, strategy="none")


async def _line_array_text(node: Any, _trace: DiagnosticTrace | None) -> TextProjection | None:
    lines = as_lines(get_field(node, "text"))
    if lines is None:
        return None
    return TextProjection("\n".join(lines), TextShape.LINE_ARRAY, "text-lines")


async def _string_text(node: Any, _trace: DiagnosticTrace | None) -> TextProjection | None:
    text = get_field(node, "text")
    if not isinstance(text, str):
        return None
    return TextProjection(text, TextShape.STRING, "text")


async def _plain_text_field(node: Any, _trace: DiagnosticTrace | None) -> TextProjection | None:
    text = get_field(node, "plain_text", "plainText")
    if not isinstance(text, str):
        return None
    return TextProjection(text, TextShape.STRING, "plain-text")


async def _accessor_text(node: Any, trace: DiagnosticTrace | None) -> TextProjection | None:
    for name in _ACCESSOR_NAMES:
        fn = get_method(node, name)
        if fn is None:
            continue
        try:
            result = await call_maybe_async(fn)
        except Exception as e:
            trace_step(trace, "Accessor {}() failed: {!r}", name, e)
            continue
        if isinstance(result, str):
            return TextProjection(result, TextShape.ACCESSOR, f"{name}()")
        lines = as_lines(result)
        if lines is not None:
            return TextProjection("\n".join(lines), TextShape.ACCESSOR, f"{name}()")
        trace_step(trace, "Accessor {}() returned unusable {}", name, type(result).__name__)
    return None


async def _string_conversion(node: Any, trace: DiagnosticTrace | None) -> TextProjection | None:
    # Only a class-defined __str__ counts; the default one just names the object.
    if isinstance(node, (Mapping, list, tuple)) or type(node).__str__ is object.__str__:
        return None
    try:
        text = str(node)
    except Exception as e:
        trace_step(trace, "String conversion failed: {!r}", e)
        return None
    if not text or text == "[object Object]":
        return None
    return TextProjection(text, TextShape.STRING, "str()")


async def _private_text(node: Any, _trace: DiagnosticTrace | None) -> TextProjection | None:
    value = get_field(node, "_text")
    if isinstance(value, str):
        return TextProjection(value, TextShape.STRING, "_text")
    lines = as_lines(value)
    if lines is not None:
        return TextProjection("\n".join(lines), TextShape.LINE_ARRAY, "_text-lines")
    return None


async def _structured_text(node: Any, _trace: DiagnosticTrace | None) -> TextProjection | None:
    for name in ("content", "text"):
        value = get_field(node, name)
        if value is MISSING or value is None or isinstance(value, (str, list, tuple)):
            continue
        nested = get_field(value, "text")
        if isinstance(nested, str):
            return TextProjection(nested, TextShape.STRUCTURED, f"{name}.text")
    return None


STRATEGIES: tuple[_Strategy, ...] = (
    _line_array_text,
    _string_text,
    _plain_text_field,
    _accessor_text,
    _string_conversion,
    _private_text,
    _structured_text,
)


async def resolve_projection(
    node: Any,
    lookup: NodeLookupProtocol | None = None,
    *,
    trace: DiagnosticTrace | None = None,
) -> TextProjection:
    """Resolve a node's text, recording the shape and the strategy that fired.

    Never raises. A bare string is dereferenced through ``lookup`` first; when
    no strategy applies the result carries the TEXT_UNAVAILABLE sentinel.
    """
    if isinstance(node, str):
        try:
            found = await dereference(node, lookup)
        except Exception as e:
            trace_step(trace, "Lookup of {!r} failed: {!r}", node, e)
            return UNRESOLVED
        if found is None:
            trace_step(trace, "Node {!r} not found for text resolution", node)
            return UNRESOLVED
        node = found

    for strategy in STRATEGIES:
        projection = await strategy(node, trace)
        if projection is not None:
            trace_step(trace, "Text of {!r} resolved via {}", node_id(node), projection.strategy)
            return projection

    trace_step(trace, "No text strategy applied to {!r}", node_id(node))
    return UNRESOLVED


async def resolve_text(
    node: Any,
    lookup: NodeLookupProtocol | None = None,
    *,
    trace: DiagnosticTrace | None = None,
) -> str:
    """Canonical text of a node; the sentinel on failure."""
    projection = await resolve_projection(node, lookup, trace=trace)
    return projection.text


async def _jsonable(value: Any, lookup: NodeLookupProtocol | None) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [await _jsonable(v, lookup) for v in value]
    if isinstance(value, Mapping):
        return {str(k): await _jsonable(v, lookup) for k, v in value.items()}
    return await resolve_text(value, lookup)


async def resolve_raw_content(
    node: Any,
    lookup: NodeLookupProtocol | None = None,
    *,
    trace: DiagnosticTrace | None = None,
) -> Any:
    """Best-effort raw content of a node as a JSON-serializable value.

    Tries the ``content`` field, a content accessor, then the usual content
    fields on the node as found through the lookup. Returns None when nothing
    is discoverable.
    """
    try:
        node = await dereference(node, lookup)
    except Exception as e:
        trace_step(trace, "Lookup failed while reading raw content: {!r}", e)
        return None
    if node is None:
        return None

    content = get_field(node, "content")
    if content is not MISSING and content is not None:
        trace_step(trace, "Raw content found in content field")
        return await _jsonable(content, lookup)

    for name in _CONTENT_ACCESSOR_NAMES:
        fn = get_method(node, name)
        if fn is None:
            continue
        try:
            result = await call_maybe_async(fn)
        except Exception as e:
            trace_step(trace, "Content accessor {}() failed: {!r}", name, e)
            continue
        trace_step(trace, "Raw content found via {}()", name)
        return await _jsonable(result, lookup)

    ident = node_id(node)
    fresh = node
    if ident and lookup is not None:
        try:
            fresh = await lookup.find_node(ident) or node
        except Exception as e:
            trace_step(trace, "Lookup of {!r} failed: {!r}", ident, e)
    for name in _RAW_CONTENT_FIELDS:
        value = get_field(fresh, name)
        if value:
            trace_step(trace, "Raw content found via property {}", name)
            return await _jsonable(value, lookup)

    trace_step(trace, "Could not find content in any known property")
    return None


async def child_label(
    child: Any,
    index: int,
    lookup: NodeLookupProtocol | None = None,
) -> str:
    """Short display label for a child: truncated text, else a placeholder."""
    projection = await resolve_projection(child, lookup)
    text = projection.text.strip() if projection.found else ""
    if text:
        if len(text) > LABEL_MAX_LENGTH:
            return text[:LABEL_MAX_LENGTH] + "..."
        return text
    ident = node_id(child)
    if ident:
        return f"[ID: {ident[:8]}{'...' if len(ident) > 8 else ''}]"
    return f"[Child {index + 1}]"
