"""Edit session: load the focused node, edit its JSON, autosave, save back."""

import json
from collections.abc import Callable
from typing import Any

from loguru import logger

from doctree_sync.config import AUTOSAVE_DELAY_SECONDS
from doctree_sync.core.content.probe import as_lines, node_id
from doctree_sync.core.content.resolver import child_label, resolve_raw_content
from doctree_sync.core.drafts.autosave import Autosaver
from doctree_sync.core.drafts.store import DraftStore, autosave_key, make_draft_key
from doctree_sync.core.tree.snapshot import build_snapshot, parse_edited_tree, snapshot_to_json
from doctree_sync.core.write.reconciler import TreeReconciler, write_text
from doctree_sync.diagnostics import DiagnosticTrace, inspect_node
from doctree_sync.errors import (
    DocTreeSyncError,
    DraftNotFoundError,
    EditParseError,
    NodeNotFoundError,
)
from doctree_sync.models.draft import Draft
from doctree_sync.models.report import ReconcileReport
from doctree_sync.models.snapshot import Snapshot
from doctree_sync.protocols import FocusTrackerProtocol, NodeLookupProtocol


def _parse_single_text(buffer: str) -> str:
    """Single-node buffers hold raw content: a JSON string, line array or {"text": ...}."""
    try:
        value = json.loads(buffer)
    except json.JSONDecodeError as e:
        msg = f"Edited text is not valid JSON: {e}"
        raise EditParseError(msg) from e
    if isinstance(value, dict) and isinstance(value.get("text"), str):
        value = value["text"]
    if isinstance(value, str):
        return value
    lines = as_lines(value)
    if lines is None:
        msg = "Edited content must be a JSON string, an array of strings or an object with text"
        raise EditParseError(msg)
    return "\n".join(lines)


class EditorSession:
    """One user's edit workflow against a host.

    Every operation ends by setting ``status`` to a short message; the
    step-by-step ``trace`` of the last load or save is kept for debugging.
    """

    def __init__(
        self,
        host: NodeLookupProtocol,
        drafts: DraftStore,
        *,
        focus: FocusTrackerProtocol | None = None,
        autosave_delay: float = AUTOSAVE_DELAY_SECONDS,
    ) -> None:
        self.host = host
        self.drafts = drafts
        self.focus = focus
        self.autosaver = Autosaver(drafts, delay=autosave_delay)
        self.trace = DiagnosticTrace()

        self.node_id: str | None = None
        self.snapshot: Snapshot | None = None
        self.label = ""
        self.content = ""
        self.buffer = ""
        self.editing = False
        self.include_children = True
        self.status = "Ready"
        self._unsubscribe: Callable[[], None] | None = None

    # --- Focus tracking ---

    async def attach(self) -> None:
        """Follow the focus tracker: load now and reload on every focus change."""
        if self.focus is None:
            msg = "EditorSession has no focus tracker"
            raise RuntimeError(msg)
        self._unsubscribe = self.focus.add_listener(self._on_focus_change)
        await self.load_focused()

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.autosaver.cancel_all()

    async def _on_focus_change(self) -> None:
        if self.editing and self.node_id is not None:
            # Keep the unsaved buffer before the session moves on.
            self.autosaver.cancel(self.node_id)
            if self.buffer.strip():
                self.drafts.save(autosave_key(self.node_id), self.buffer, self._display_name())
            self.editing = False
        await self.load_focused()

    async def load_focused(self) -> None:
        if self.focus is None:
            self.status = "No focus tracker attached"
            return
        focused = await self.focus.get_focused_node()
        if focused is None:
            self.node_id = None
            self.snapshot = None
            self.label = ""
            self.content = ""
            self.status = "No document is focused - click on a document first"
            return
        await self.load(focused)

    # --- Loading ---

    async def load(self, node: Any) -> None:
        """Rebuild the snapshot of node (or a node id) from scratch."""
        self.trace.clear()
        self.trace.step("Loading {!r}", node_id(node))
        try:
            snapshot = await build_snapshot(
                node, self.host, include_children=self.include_children, trace=self.trace
            )
        except NodeNotFoundError:
            self.status = "Error: Selected node not found"
            return
        except DocTreeSyncError as e:
            self.status = f"Error loading node: {e}"
            return

        self.node_id = snapshot.id
        self.snapshot = snapshot
        first_line = snapshot.text.split("\n", 1)[0]
        self.label = await child_label(Snapshot(snapshot.id, first_line), 0)
        if self.include_children:
            self.content = snapshot_to_json(snapshot)
        else:
            raw = await resolve_raw_content(node, self.host, trace=self.trace)
            if raw is None:
                raw = snapshot.text
            self.content = json.dumps(raw, indent=2, ensure_ascii=False)
        self.status = "Loaded document content"

    async def refresh(self) -> None:
        if self.node_id is None:
            self.status = "No document is selected"
            return
        await self.load(self.node_id)

    async def set_include_children(self, include: bool) -> bool:
        """Switch between whole-subtree and single-node editing."""
        if self.editing:
            self.status = "Finish or cancel editing before switching modes"
            return False
        self.include_children = include
        if self.node_id is not None:
            await self.load(self.node_id)
        return True

    # --- Editing ---

    def begin_edit(self) -> bool:
        if self.node_id is None:
            self.status = "No document is selected"
            return False
        self.editing = True
        self.buffer = self.content
        self.status = "Editing"
        return True

    def update_buffer(self, text: str) -> None:
        """Replace the edit buffer and restart the autosave quiet period.

        Must be called with a running event loop.
        """
        if not self.editing or self.node_id is None:
            self.status = "Not editing"
            return
        self.buffer = text
        self.autosaver.schedule(self.node_id, text, self._display_name())

    async def save(self) -> ReconcileReport | None:
        """Apply the buffer to the live tree.

        A buffer that does not parse, or whose child changes all fail, keeps
        the session in edit mode so it can be fixed. Returns the report, or
        None if nothing was written.
        """
        if not self.editing or self.node_id is None:
            self.status = "Error: No node selected"
            return None
        root_id = self.node_id
        self.autosaver.cancel(root_id)
        self.trace.clear()

        try:
            if self.include_children:
                report = await self._save_tree(root_id)
            else:
                report = await self._save_single(root_id)
        except DocTreeSyncError as e:
            logger.warning("Save of {!r} failed: {}", root_id, e)
            self.status = f"Error saving changes: {e}"
            return None

        await self.load(root_id)
        if report.ok:
            self.editing = False
            self.buffer = ""
        self.status = report.status_message()
        return report

    async def _save_tree(self, root_id: str) -> ReconcileReport:
        edited = parse_edited_tree(self.buffer)
        if edited.id != root_id:
            self.trace.step("Edited root id {!r} ignored; saving into {!r}", edited.id, root_id)
        return await TreeReconciler(self.host, trace=self.trace).reconcile(edited, root_id)

    async def _save_single(self, root_id: str) -> ReconcileReport:
        text = _parse_single_text(self.buffer)
        live = await self.host.find_node(root_id)
        if live is None:
            raise NodeNotFoundError(root_id)
        setter = await write_text(live, text, self.host, trace=self.trace)
        return ReconcileReport(root_id=root_id, root_setter=setter)

    def cancel(self) -> None:
        if self.node_id is not None:
            self.autosaver.cancel(self.node_id)
        self.editing = False
        self.buffer = ""
        self.status = "Edit canceled"

    # --- Drafts ---

    def _display_name(self) -> str:
        return self.label or f"[ID: {self.node_id}]"

    def save_draft(self, display_name: str | None = None) -> Draft | None:
        """Store the buffer (or the loaded content) as a new timestamped draft."""
        if self.node_id is None:
            self.status = "No document is selected"
            return None
        content = self.buffer if self.editing else self.content
        draft = self.drafts.save(
            make_draft_key(self.node_id), content, display_name or self._display_name()
        )
        self.status = f"Draft saved: {draft.display_name}"
        return draft

    def restore_draft(self, key: str) -> Draft | None:
        """Open a draft in the edit buffer. The live tree is not touched."""
        try:
            draft = self.drafts.load(key)
        except DraftNotFoundError:
            self.status = f"Draft not found: {key}"
            return None
        self.editing = True
        self.buffer = draft.content
        self.status = f"Draft restored: {draft.display_name}"
        return draft

    # --- Debugging ---

    async def inspect(self) -> str:
        """Properties and methods of the loaded live node."""
        if self.node_id is None:
            return inspect_node(None)
        return inspect_node(await self.host.find_node(self.node_id))
