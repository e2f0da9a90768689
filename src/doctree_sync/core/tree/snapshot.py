"""Build snapshots of live subtrees and move them across the JSON boundary."""

import json
from typing import Any

from loguru import logger

from doctree_sync.config import CHILD_ERROR_TEMPLATE
from doctree_sync.core.content.probe import as_lines, dereference, node_id
from doctree_sync.core.content.resolver import resolve_text
from doctree_sync.core.tree.children import list_children
from doctree_sync.diagnostics import DiagnosticTrace, trace_step
from doctree_sync.errors import EditParseError, ExternalFailureError, NodeNotFoundError
from doctree_sync.models.snapshot import EditedTree, Snapshot
from doctree_sync.protocols import NodeLookupProtocol


async def build_snapshot(
    node: Any,
    lookup: NodeLookupProtocol | None = None,
    *,
    include_children: bool = True,
    trace: DiagnosticTrace | None = None,
) -> Snapshot:
    """Serialize a node and its descendants into a Snapshot.

    Args:
        node: Live node, or its id (resolved through ``lookup``).
        lookup: Host lookup used to dereference bare ids.
        include_children: If False, only the node itself is captured.
        trace: Optional diagnostic trace.

    Returns:
        Snapshot whose children follow the host's enumeration order. A child
        whose subtree fails to build is kept with a diagnostic text.

    Raises:
        NodeNotFoundError: The root id does not resolve.
        ExternalFailureError: The root lookup itself raised.
    """
    try:
        live = await dereference(node, lookup)
    except Exception as e:
        msg = f"Lookup of {node!r} failed: {e}"
        raise ExternalFailureError(msg) from e
    if live is None:
        raise NodeNotFoundError(node_id(node))

    trace_step(trace, "Building snapshot of {!r}", node_id(live))
    snapshot = await _build(live, lookup, include_children=include_children, trace=trace)
    logger.debug("Snapshot of {!r} has {} nodes", snapshot.id, snapshot.count())
    return snapshot


async def _build(
    node: Any,
    lookup: NodeLookupProtocol | None,
    *,
    include_children: bool,
    trace: DiagnosticTrace | None,
) -> Snapshot:
    text = await resolve_text(node, lookup, trace=trace)
    children: list[Snapshot] = []
    if include_children:
        # Sequential on purpose: order must match the host's.
        for child in await list_children(node, lookup, trace=trace):
            children.append(await _build_child(child, lookup, trace=trace))
    return Snapshot(id=node_id(node), text=text, children=tuple(children))


async def _build_child(
    child: Any,
    lookup: NodeLookupProtocol | None,
    *,
    trace: DiagnosticTrace | None,
) -> Snapshot:
    ident = node_id(child)
    try:
        live = await dereference(child, lookup)
        if live is None:
            raise NodeNotFoundError(ident)
        return await _build(live, lookup, include_children=True, trace=trace)
    except Exception as e:
        logger.warning("Could not load child {!r}: {}", ident, e)
        trace_step(trace, "Child {!r} failed: {!r}", ident, e)
        return Snapshot(id=ident, text=CHILD_ERROR_TEMPLATE.format(node_id=ident))


def snapshot_to_json(snapshot: Snapshot) -> str:
    """Serialize a snapshot as 2-space indented JSON."""
    return json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False)


def snapshot_from_dict(data: dict[str, Any], *, path: str = "root") -> Snapshot:
    """Build a Snapshot from parsed JSON, ignoring unknown fields.

    ``text`` is required on every node (a list of lines is joined); ``id`` is
    optional below the root and defaults to the empty string.
    """
    raw_id = data.get("id", "")
    ident = raw_id if isinstance(raw_id, str) else str(raw_id)

    raw_text = data.get("text")
    lines = as_lines(raw_text)
    if isinstance(raw_text, str):
        text = raw_text
    elif lines is not None:
        text = "\n".join(lines)
    else:
        msg = f"{path}: 'text' must be a string, got {type(raw_text).__name__}"
        raise EditParseError(msg)

    raw_children = data.get("children")
    if raw_children is None:
        raw_children = []
    if not isinstance(raw_children, list):
        msg = f"{path}: 'children' must be an array"
        raise EditParseError(msg)

    children: list[Snapshot] = []
    for i, raw_child in enumerate(raw_children):
        child_path = f"{path}.children[{i}]"
        if not isinstance(raw_child, dict):
            msg = f"{child_path}: expected an object"
            raise EditParseError(msg)
        children.append(snapshot_from_dict(raw_child, path=child_path))

    return Snapshot(id=ident, text=text, children=tuple(children))


def parse_edited_tree(text: str) -> EditedTree:
    """Parse user-edited JSON back into a tree.

    Raises:
        EditParseError: Invalid JSON, a non-object root, or a root without
            ``id``/``text``.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        msg = f"Edited text is not valid JSON: {e}"
        raise EditParseError(msg) from e
    if not isinstance(data, dict):
        msg = "Edited tree must be a JSON object"
        raise EditParseError(msg)
    for required in ("id", "text"):
        if required not in data:
            msg = f"Edited tree is missing required field {required!r}"
            raise EditParseError(msg)
    if not data["id"]:
        msg = "Edited tree root has an empty 'id'"
        raise EditParseError(msg)
    return snapshot_from_dict(data)
