"""MCP server exposing subtree export, write-back and draft tools."""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from doctree_sync.config import resolve_data_directory
from doctree_sync.core.drafts.backends import SqliteKeyValueStore
from doctree_sync.core.drafts.store import DraftStore, make_draft_key
from doctree_sync.core.tree.markdown import render_snapshot_as_markdown
from doctree_sync.core.tree.snapshot import build_snapshot, snapshot_to_json
from doctree_sync.core.write.reconciler import reconcile_text
from doctree_sync.errors import DocTreeSyncError, DraftNotFoundError
from doctree_sync.hosts.sources import OutlineSource, open_source
from doctree_sync.models.draft import Draft


def _draft_entry(draft: Draft, *, with_content: bool = False) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "key": draft.key,
        "display_name": draft.display_name,
        "timestamp": draft.timestamp,
        "modified": datetime.fromtimestamp(draft.timestamp / 1000, tz=UTC).isoformat(),
    }
    if with_content:
        entry["content"] = draft.content
    return entry


# --- Core functions (testable without MCP context) ---


async def doctree_export(
    source: OutlineSource,
    *,
    node_id: str | None = None,
    include_children: bool = True,
    output_format: str = "json",
    max_depth: int | None = None,
) -> dict[str, Any]:
    """Export a node and its subtree as editable JSON or a markdown preview.

    Args:
        node_id: Node to export (default: the outline root).
        include_children: Export the whole subtree, or the node alone.
        output_format: "json" (editable) or "markdown" (read-only preview).
        max_depth: Max depth levels in the markdown preview.
    """
    target = node_id or source.root_id
    try:
        snapshot = await build_snapshot(target, source.host, include_children=include_children)
    except DocTreeSyncError as e:
        return {"error": str(e)}

    if output_format == "markdown":
        content = render_snapshot_as_markdown(snapshot, max_depth=max_depth)
    else:
        content = snapshot_to_json(snapshot)

    result: dict[str, Any] = {
        "node_id": snapshot.id,
        "content": content,
        "node_count": snapshot.count(),
        "estimated_tokens": len(content) // 4,
    }
    if result["estimated_tokens"] > 5000:
        result["warning"] = (
            f"Large result (~{result['estimated_tokens']} tokens). "
            "Consider exporting a smaller subtree."
        )
    return result


async def doctree_apply(
    source: OutlineSource,
    *,
    edited: str,
    node_id: str | None = None,
) -> dict[str, Any]:
    """Reconcile an edited JSON tree into the outline.

    Children are matched by position. Surplus edited children are created,
    surplus live children removed.

    Args:
        edited: The edited JSON tree (as produced by doctree_export).
        node_id: Live node to write into (default: the edited root id).
    """
    try:
        report = await reconcile_text(source.host, edited, live_root_id=node_id)
    except DocTreeSyncError as e:
        return {"success": False, "error": f"Error saving changes: {e}"}

    source.persist()
    return {
        "success": report.ok,
        "status": report.status_message(),
        "root_id": report.root_id,
        "updated": report.updated,
        "created": report.created,
        "removed": report.removed,
        "failures": [
            {"path": f.path, "node_id": f.node_id, "operation": f.operation, "reason": f.reason}
            for f in report.failures
        ],
    }


def doctree_list_drafts(store: DraftStore, *, node_id: str | None = None) -> dict[str, Any]:
    """List drafts newest first, optionally only those of one node."""
    drafts = store.drafts_for(node_id) if node_id else store.list_drafts()
    return {"drafts": [_draft_entry(d) for d in drafts], "count": len(drafts)}


def doctree_save_draft(
    store: DraftStore,
    *,
    node_id: str,
    content: str,
    display_name: str | None = None,
) -> dict[str, Any]:
    """Store content as a new timestamped draft of node_id."""
    if not content.strip():
        return {"success": False, "error": "Draft content is empty."}
    draft = store.save(make_draft_key(node_id), content, display_name)
    return {"success": True, **_draft_entry(draft)}


def doctree_load_draft(store: DraftStore, *, key: str) -> dict[str, Any]:
    try:
        draft = store.load(key)
    except DraftNotFoundError:
        return {"error": f"Draft '{key}' not found."}
    return _draft_entry(draft, with_content=True)


def doctree_delete_draft(store: DraftStore, *, key: str) -> dict[str, Any]:
    try:
        store.delete(key)
    except DraftNotFoundError:
        return {"success": False, "error": f"Draft '{key}' not found."}
    return {"success": True, "key": key}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    source: OutlineSource | None
    drafts: DraftStore
    backend: SqliteKeyValueStore
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def _resolve_paths() -> tuple[Path, str | None]:
    return resolve_data_directory(), os.environ.get("DOCTREE_SYNC_SOURCE")


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the outline source and the drafts database; close on shutdown."""
    data_dir, source_name = _resolve_paths()
    backend = SqliteKeyValueStore.open(data_dir)
    try:
        source = open_source(source_name) if source_name else None
        if source is None:
            logger.warning("DOCTREE_SYNC_SOURCE not set; tools need an explicit source")
        yield ServerContext(source=source, drafts=DraftStore(backend), backend=backend)
    finally:
        backend.close()


mcp_server = FastMCP(
    "doctree-sync",
    instructions="""\
doctree-sync edits a subtree of an outline as one JSON document.

## Workflow

1. Call doctree_export_tool to get the subtree as JSON: {"id", "text", "children"}.
2. Edit the text fields; add entries to a children array to create nodes and
   drop trailing entries to remove nodes.
3. Call doctree_apply_tool with the edited JSON.

Children are matched by POSITION, not by id. Inserting an entry in the middle of
a children array rewrites every later sibling instead of inserting a node. To be
safe, only append or remove at the end of a children array.

Save work in progress with doctree_save_draft_tool; drafts never touch the outline.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


def _source(ctx: ServerContext, source: str | None) -> OutlineSource:
    if source:
        return open_source(source)
    if ctx.source is None:
        msg = "No outline source configured. Pass source or set DOCTREE_SYNC_SOURCE."
        raise ValueError(msg)
    return ctx.source


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def doctree_export_tool(
    ctx: Context,
    node_id: str | None = None,
    source: str | None = None,
    include_children: bool = True,
    output_format: str = "json",
    max_depth: int | None = None,
) -> dict[str, Any]:
    """Export a node and its subtree as editable JSON.

    Each node is {"id": ..., "text": ..., "children": [...]}. Edit the JSON and
    pass it to doctree_apply_tool to write it back.

    Args:
        node_id: Node to export (default: the outline root).
        source: Outline file path or dynalist:<file_id> (default: server source).
        include_children: Export the whole subtree, or the node alone.
        output_format: "json" (editable) or "markdown" (read-only preview).
        max_depth: Max depth levels in the markdown preview.
    """
    try:
        src = _source(_ctx(ctx), source)
    except (OSError, ValueError, KeyError, RuntimeError) as e:
        return {"error": str(e)}
    return await doctree_export(
        src,
        node_id=node_id,
        include_children=include_children,
        output_format=output_format,
        max_depth=max_depth,
    )


@mcp_server.tool()
async def doctree_apply_tool(
    ctx: Context,
    edited: str,
    node_id: str | None = None,
    source: str | None = None,
) -> dict[str, Any]:
    """Write an edited JSON tree back into the outline.

    Children are matched by position. Extra children in the edited JSON are
    created; live children beyond the edited list are removed with their
    subtrees. Failed child changes are listed under "failures".

    Args:
        edited: The edited JSON tree.
        node_id: Live node to write into (default: the edited root id).
        source: Outline file path or dynalist:<file_id> (default: server source).
    """
    server_ctx = _ctx(ctx)
    try:
        src = _source(server_ctx, source)
    except (OSError, ValueError, KeyError, RuntimeError) as e:
        return {"success": False, "error": str(e)}
    async with server_ctx.write_lock:
        return await doctree_apply(src, edited=edited, node_id=node_id)


@mcp_server.tool()
async def doctree_list_drafts_tool(ctx: Context, node_id: str | None = None) -> dict[str, Any]:
    """List saved drafts, newest first.

    Args:
        node_id: Only list drafts of this node.
    """
    return doctree_list_drafts(_ctx(ctx).drafts, node_id=node_id)


@mcp_server.tool()
async def doctree_save_draft_tool(
    ctx: Context,
    node_id: str,
    content: str,
    display_name: str | None = None,
) -> dict[str, Any]:
    """Save content as a new draft of a node. The outline is not changed.

    Args:
        node_id: Node the draft belongs to.
        content: Draft content, usually an edited JSON tree.
        display_name: Name shown in draft listings.
    """
    return doctree_save_draft(
        _ctx(ctx).drafts, node_id=node_id, content=content, display_name=display_name
    )


@mcp_server.tool()
async def doctree_load_draft_tool(ctx: Context, key: str) -> dict[str, Any]:
    """Load a draft's content by key.

    Args:
        key: Draft key from doctree_list_drafts_tool.
    """
    return doctree_load_draft(_ctx(ctx).drafts, key=key)


@mcp_server.tool()
async def doctree_delete_draft_tool(ctx: Context, key: str) -> dict[str, Any]:
    """Delete a draft by key.

    Args:
        key: Draft key from doctree_list_drafts_tool.
    """
    return doctree_delete_draft(_ctx(ctx).drafts, key=key)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from doctree_sync.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
