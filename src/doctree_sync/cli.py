"""CLI for doctree-sync (export, apply, preview, drafts, MCP server)."""

import asyncio
import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from doctree_sync.config import resolve_data_directory
from doctree_sync.core.content.resolver import resolve_raw_content
from doctree_sync.core.drafts.backends import SqliteKeyValueStore
from doctree_sync.core.drafts.store import DraftStore, make_draft_key
from doctree_sync.core.tree.markdown import render_snapshot_as_markdown
from doctree_sync.core.tree.snapshot import build_snapshot, snapshot_to_json
from doctree_sync.core.write.reconciler import reconcile_text
from doctree_sync.errors import DocTreeSyncError, DraftNotFoundError, NodeNotFoundError
from doctree_sync.hosts.sources import OutlineSource, open_source
from doctree_sync.logging_config import configure_logging

app = typer.Typer(help="doctree-sync: edit outline subtrees as JSON and write them back.")
drafts_app = typer.Typer(help="Manage locally stored drafts.")
app.add_typer(drafts_app, name="drafts")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _open(source: str, *, from_cache: bool = False) -> OutlineSource:
    """Open a source, exiting with an error message if it can't be opened."""
    try:
        return open_source(source, from_cache=from_cache)
    except (OSError, ValueError, KeyError, RuntimeError) as e:
        logger.error("Cannot open {}: {}", source, e)
        raise typer.Exit(1) from None


async def _raw_content(src: OutlineSource, node_id: str) -> object:
    live = await src.host.find_node(node_id)
    if live is None:
        raise NodeNotFoundError(node_id)
    return await resolve_raw_content(live, src.host)


@app.command()
def export(
    source: str = typer.Argument(..., help="Outline JSON file or dynalist:<file_id>"),
    node: Annotated[
        str | None,
        typer.Option("--node", "-n", help="Node to export (default: the root)"),
    ] = None,
    no_children: bool = typer.Option(False, "--no-children", help="Export the node only"),
    raw: bool = typer.Option(False, "--raw", help="Export the node's raw content"),
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write JSON here instead of stdout"),
    ] = None,
    cache: bool = typer.Option(False, "--cache", help="Answer Dynalist reads from cache"),
) -> None:
    """Export a node (and its subtree) as editable JSON."""
    src = _open(source, from_cache=cache)
    node_id = node or src.root_id

    try:
        if raw:
            text = json.dumps(asyncio.run(_raw_content(src, node_id)), indent=2, ensure_ascii=False)
        else:
            snapshot = asyncio.run(
                build_snapshot(node_id, src.host, include_children=not no_children)
            )
            text = snapshot_to_json(snapshot)
    except DocTreeSyncError as e:
        logger.error("Export failed: {}", e)
        raise typer.Exit(1) from None

    if output:
        output.write_text(text + "\n", encoding="utf-8")
        typer.echo(f"Wrote {output}")
    else:
        typer.echo(text)


@app.command()
def apply(
    source: str = typer.Argument(..., help="Outline JSON file or dynalist:<file_id>"),
    edited: Path = typer.Argument(..., help="Edited JSON produced by 'export'"),
    node: Annotated[
        str | None,
        typer.Option("--node", "-n", help="Live node to write into (default: the edited root id)"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the updated outline here (file sources)"),
    ] = None,
) -> None:
    """Write an edited JSON tree back into the outline."""
    if not edited.exists():
        logger.error("Edited file not found: {}", edited)
        raise typer.Exit(1)
    src = _open(source)

    try:
        report = asyncio.run(
            reconcile_text(src.host, edited.read_text(encoding="utf-8"), live_root_id=node)
        )
    except DocTreeSyncError as e:
        logger.error("Error saving changes: {}", e)
        raise typer.Exit(1) from None

    written = src.persist(output)
    typer.echo(report.status_message())
    typer.echo(
        f"  root via {report.root_setter}; "
        f"{report.updated} updated, {report.created} created, {report.removed} removed"
    )
    for failure in report.failures:
        typer.echo(
            f"  FAILED {failure.operation} {failure.path} ({failure.node_id}): {failure.reason}"
        )
    if written:
        typer.echo(f"Wrote {written}")
    if report.failed:
        raise typer.Exit(1)


@app.command()
def show(
    source: str = typer.Argument(..., help="Outline JSON file or dynalist:<file_id>"),
    node: Annotated[
        str | None,
        typer.Option("--node", "-n", help="Node to show (default: the root)"),
    ] = None,
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
    cache: bool = typer.Option(False, "--cache", help="Answer Dynalist reads from cache"),
) -> None:
    """Preview a node and its subtree as markdown."""
    src = _open(source, from_cache=cache)
    try:
        snapshot = asyncio.run(build_snapshot(node or src.root_id, src.host))
    except DocTreeSyncError as e:
        logger.error("Cannot show {}: {}", node or src.root_id, e)
        raise typer.Exit(1) from None
    typer.echo(render_snapshot_as_markdown(snapshot, max_depth=max_depth), nl=False)


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from doctree_sync.mcp.server import run_mcp_server

    run_mcp_server()


# --- Drafts ---


@contextmanager
def _draft_store(data_dir: Path | None) -> Iterator[DraftStore]:
    backend = SqliteKeyValueStore.open(data_dir or resolve_data_directory())
    try:
        yield DraftStore(backend)
    finally:
        backend.close()


_DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Drafts database directory"),
]


@drafts_app.command(name="list")
def drafts_list(
    node: Annotated[
        str | None,
        typer.Option("--node", "-n", help="Only drafts of this node"),
    ] = None,
    data_dir: _DataDirOption = None,
) -> None:
    """List drafts, newest first."""
    with _draft_store(data_dir) as store:
        drafts = store.drafts_for(node) if node else store.list_drafts()
        typer.echo(f"{len(drafts)} drafts:\n")
        for draft in drafts:
            dt = datetime.fromtimestamp(draft.timestamp / 1000, tz=UTC)
            typer.echo(f"  {draft.display_name}  ({dt:%Y-%m-%d %H:%M:%S})  [key={draft.key}]")


@drafts_app.command(name="show")
def drafts_show(
    key: str = typer.Argument(..., help="Draft key"),
    data_dir: _DataDirOption = None,
) -> None:
    """Print a draft's content."""
    with _draft_store(data_dir) as store:
        try:
            draft = store.load(key)
        except DraftNotFoundError:
            typer.echo(f"Draft '{key}' not found.")
            raise typer.Exit(1) from None
        typer.echo(draft.content)


@drafts_app.command(name="save")
def drafts_save(
    node_id: str = typer.Argument(..., help="Node the draft belongs to"),
    content_file: Path = typer.Argument(..., help="File holding the draft content"),
    name: Annotated[
        str | None,
        typer.Option("--name", help="Display name"),
    ] = None,
    data_dir: _DataDirOption = None,
) -> None:
    """Store a file's content as a new draft of a node."""
    if not content_file.exists():
        logger.error("File not found: {}", content_file)
        raise typer.Exit(1)
    with _draft_store(data_dir) as store:
        draft = store.save(
            make_draft_key(node_id), content_file.read_text(encoding="utf-8"), name
        )
        typer.echo(f"Draft saved: {draft.display_name} [key={draft.key}]")


@drafts_app.command(name="delete")
def drafts_delete(
    key: str = typer.Argument(..., help="Draft key"),
    data_dir: _DataDirOption = None,
) -> None:
    """Delete a draft."""
    with _draft_store(data_dir) as store:
        try:
            store.delete(key)
        except DraftNotFoundError:
            typer.echo(f"Draft '{key}' not found.")
            raise typer.Exit(1) from None
        typer.echo(f"Deleted draft {key}")
