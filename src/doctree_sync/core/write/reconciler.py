"""Converge a live subtree to an edited tree.

Children are matched by position, never by id: the i-th edited child is
applied to the i-th live child. Inserting or removing an entry in the middle
of a list therefore shifts the content of every later sibling instead of
preserving identity. Surplus edited children are created and surplus trailing
live children are removed.
"""

from collections.abc import Awaitable, Callable, Mapping, MutableMapping
from typing import Any

from loguru import logger

from doctree_sync.core.content.probe import (
    MISSING,
    call_maybe_async,
    dereference,
    get_field,
    get_method,
    node_id,
)
from doctree_sync.core.content.resolver import resolve_projection
from doctree_sync.core.tree.children import list_children
from doctree_sync.core.tree.snapshot import parse_edited_tree
from doctree_sync.diagnostics import DiagnosticTrace, trace_step
from doctree_sync.errors import (
    ExternalFailureError,
    NodeNotFoundError,
    UnsupportedShapeError,
)
from doctree_sync.models.report import ReconcileReport
from doctree_sync.models.snapshot import EditedTree, TextProjection, TextShape
from doctree_sync.protocols import NodeFactoryProtocol, NodeLookupProtocol

TextValue = str | list[str]
_Writer = Callable[[Any, TextValue, TextProjection], Awaitable[str | None]]


async def _call_host(fn: Callable[..., Any], *args: Any, what: str) -> Any:
    try:
        return await call_maybe_async(fn, *args)
    except Exception as e:
        msg = f"{what} failed: {e}"
        raise ExternalFailureError(msg) from e


async def _write_via_setter(node: Any, value: TextValue, _p: TextProjection) -> str | None:
    fn = get_method(node, "set_text", "setText")
    if fn is None:
        return None
    await _call_host(fn, value, what=f"set_text on {node_id(node)!r}")
    return "set_text()"


def _assign(target: Any, name: str, value: Any) -> bool:
    if isinstance(target, MutableMapping):
        target[name] = value
        return True
    try:
        setattr(target, name, value)
    except (AttributeError, TypeError):
        return False
    return True


async def _write_via_field(node: Any, value: TextValue, projection: TextProjection) -> str | None:
    if projection.shape is TextShape.STRUCTURED:
        container_name = projection.strategy.split(".", 1)[0]
        container = get_field(node, container_name)
        if container is not MISSING and _assign(container, "text", value):
            return f"{container_name}.text field"
        return None
    if get_field(node, "text") is MISSING:
        return None
    if _assign(node, "text", value):
        return "text field"
    return None


async def _write_via_content_setter(
    node: Any, value: TextValue, _p: TextProjection
) -> str | None:
    fn = get_method(node, "set_content", "setContent")
    if fn is None:
        return None
    content = get_field(node, "content")
    if isinstance(content, Mapping) and "text" in content:
        new_content: Any = {**content, "text": value}
    else:
        new_content = value
    await _call_host(fn, new_content, what=f"set_content on {node_id(node)!r}")
    return "set_content()"


TEXT_WRITERS: tuple[_Writer, ...] = (
    _write_via_setter,
    _write_via_field,
    _write_via_content_setter,
)


async def write_text(
    node: Any,
    text: str,
    lookup: NodeLookupProtocol | None = None,
    *,
    trace: DiagnosticTrace | None = None,
) -> str:
    """Write edited text through the best setter the node exposes.

    Line-array text is split back on newlines so the node keeps its shape.

    Returns:
        Name of the setter that carried the value.

    Raises:
        UnsupportedShapeError: No setter can carry the value.
        ExternalFailureError: The setter raised.
    """
    projection = await resolve_projection(node, lookup)
    value: TextValue = text
    if projection.shape is TextShape.LINE_ARRAY:
        value = text.split("\n") if text else []
    for writer in TEXT_WRITERS:
        used = await writer(node, value, projection)
        if used is not None:
            trace_step(trace, "Wrote text of {!r} via {}", node_id(node), used)
            return used
    msg = f"No text setter available on node {node_id(node)!r}"
    raise UnsupportedShapeError(msg)


async def create_child_node(parent: Any, host: Any) -> Any:
    """Create a new last child under parent and return it.

    Uses the parent's own ``create_child`` if present, else the host's
    ``create_node`` followed by the parent's ``add_child``.
    """
    fn = get_method(parent, "create_child", "createChild")
    if fn is not None:
        new = await _call_host(fn, what=f"create_child under {node_id(parent)!r}")
    elif isinstance(host, NodeFactoryProtocol):
        adder = get_method(parent, "add_child", "addChild")
        if adder is None:
            msg = f"Node {node_id(parent)!r} cannot adopt children"
            raise UnsupportedShapeError(msg)
        new = await _call_host(host.create_node, what="create_node")
        await _call_host(adder, new, what=f"add_child under {node_id(parent)!r}")
    else:
        msg = f"No way to create children under {node_id(parent)!r}"
        raise UnsupportedShapeError(msg)

    if isinstance(new, str):
        new = await dereference(new, host)
    if new is None:
        msg = f"Host returned no node for new child of {node_id(parent)!r}"
        raise ExternalFailureError(msg)
    return new


async def remove_child_node(parent: Any, child: Any) -> None:
    """Remove child (and, per host semantics, its descendants) from parent."""
    fn = get_method(child, "remove")
    if fn is not None:
        await _call_host(fn, what=f"remove of {node_id(child)!r}")
        return
    fn = get_method(parent, "remove_child", "removeChild")
    if fn is not None:
        await _call_host(fn, child, what=f"remove_child of {node_id(child)!r}")
        return
    siblings = get_field(parent, "children")
    if isinstance(siblings, list):
        ident = node_id(child)
        for i, sibling in enumerate(siblings):
            if sibling is child or (ident and sibling == ident):
                del siblings[i]
                return
    msg = f"No way to remove {node_id(child)!r} from {node_id(parent)!r}"
    raise UnsupportedShapeError(msg)


class TreeReconciler:
    """Applies an edited tree to the live tree of a host.

    The host must implement ``find_node``; ``create_node`` is used for child
    creation when a node cannot create children itself.
    """

    def __init__(self, host: NodeLookupProtocol, *, trace: DiagnosticTrace | None = None) -> None:
        self.host = host
        self.trace = trace

    async def reconcile(self, edited: EditedTree, live_root_id: str) -> ReconcileReport:
        """Converge the live subtree at ``live_root_id`` to ``edited``.

        Per-child failures are recorded in the returned report and skipped.

        Raises:
            NodeNotFoundError: The root id does not resolve.
            UnsupportedShapeError: The root text cannot be written.
            ExternalFailureError: The root lookup or write raised.
        """
        try:
            root = await self.host.find_node(live_root_id)
        except Exception as e:
            msg = f"Lookup of {live_root_id!r} failed: {e}"
            raise ExternalFailureError(msg) from e
        if root is None:
            raise NodeNotFoundError(live_root_id)

        report = ReconcileReport(root_id=live_root_id)
        report.root_setter = await write_text(root, edited.text, self.host, trace=self.trace)
        await self._reconcile_children(root, edited, report, path="root")

        logger.info(
            "Reconciled {}: {} updated, {} created, {} removed, {} failed",
            live_root_id,
            report.updated,
            report.created,
            report.removed,
            report.failed,
        )
        return report

    async def _reconcile_children(
        self, live: Any, edited: EditedTree, report: ReconcileReport, *, path: str
    ) -> None:
        live_children = await list_children(live, self.host, trace=self.trace)
        n = min(len(edited.children), len(live_children))
        trace_step(
            self.trace,
            "{}: {} edited vs {} live children",
            path,
            len(edited.children),
            len(live_children),
        )

        for i in range(n):
            await self._update(live_children[i], edited.children[i], report, path=f"{path}/{i}")

        for i in range(n, len(edited.children)):
            await self._create(live, edited.children[i], report, path=f"{path}/{i}")

        for i in range(n, len(live_children)):
            await self._remove(live, live_children[i], report, path=f"{path}/{i}")

    async def _update(
        self, child_ref: Any, edited: EditedTree, report: ReconcileReport, *, path: str
    ) -> None:
        ident = node_id(child_ref)
        try:
            child = await dereference(child_ref, self.host)
            if child is None:
                raise NodeNotFoundError(ident)
            await write_text(child, edited.text, self.host, trace=self.trace)
        except Exception as e:
            self._fail(report, path=path, ident=ident, operation="update", error=e)
            return
        report.updated += 1
        await self._reconcile_children(child, edited, report, path=path)

    async def _create(
        self, parent: Any, edited: EditedTree, report: ReconcileReport, *, path: str
    ) -> None:
        try:
            child = await create_child_node(parent, self.host)
        except Exception as e:
            self._fail(report, path=path, ident=edited.id, operation="create", error=e)
            return
        try:
            await write_text(child, edited.text, self.host, trace=self.trace)
        except Exception as e:
            reason = str(e)
            try:
                await remove_child_node(parent, child)
            except Exception as cleanup_error:
                trace_step(self.trace, "{}: cleanup failed: {!r}", path, cleanup_error)
                reason += f" (new child {node_id(child)!r} left empty)"
            self._fail(
                report, path=path, ident=node_id(child), operation="create", error=e, reason=reason
            )
            return
        report.created += 1
        trace_step(self.trace, "{}: created {!r}", path, node_id(child))
        for i, grandchild in enumerate(edited.children):
            await self._create(child, grandchild, report, path=f"{path}/{i}")

    async def _remove(
        self, parent: Any, child_ref: Any, report: ReconcileReport, *, path: str
    ) -> None:
        ident = node_id(child_ref)
        try:
            child = await dereference(child_ref, self.host)
            if child is None:
                raise NodeNotFoundError(ident)
            await remove_child_node(parent, child)
        except Exception as e:
            self._fail(report, path=path, ident=ident, operation="remove", error=e)
            return
        report.removed += 1
        trace_step(self.trace, "{}: removed {!r}", path, ident)

    def _fail(
        self,
        report: ReconcileReport,
        *,
        path: str,
        ident: str,
        operation: str,
        error: Exception,
        reason: str | None = None,
    ) -> None:
        logger.warning("{} of {!r} at {} failed: {}", operation, ident, path, error)
        trace_step(self.trace, "{}: {} of {!r} failed: {!r}", path, operation, ident, error)
        report.record_failure(
            path=path, node_id=ident, operation=operation, reason=reason or str(error)
        )


async def reconcile_text(
    host: NodeLookupProtocol,
    edited_text: str,
    *,
    live_root_id: str | None = None,
    trace: DiagnosticTrace | None = None,
) -> ReconcileReport:
    """Parse edited JSON and reconcile it against the host.

    The live root defaults to the edited tree's own root id.
    """
    edited = parse_edited_tree(edited_text)
    reconciler = TreeReconciler(host, trace=trace)
    return await reconciler.reconcile(edited, live_root_id or edited.id)
