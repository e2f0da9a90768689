"""Tests for the edit session workflow."""

import asyncio
import json
from typing import Any

from doctree_sync.core.drafts.store import DraftStore
from doctree_sync.core.session import EditorSession
from doctree_sync.hosts.memory import MemoryFocus, MemoryOutline
from tests.unit.fakes import break_method

DELAY = 0.01


def _session(outline: MemoryOutline, drafts: DraftStore, **kwargs: Any) -> EditorSession:
    return EditorSession(outline, drafts, autosave_delay=DELAY, **kwargs)


def test_load_node_serializes_subtree(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)
    asyncio.run(session.load("n1"))

    assert session.status == "Loaded document content"
    assert session.node_id == "n1"
    assert json.loads(session.content) == {
        "id": "n1",
        "text": "Python is great for scripting",
        "children": [{"id": "n1a", "text": "FastAPI for web services", "children": []}],
    }


def test_load_missing_node(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)
    asyncio.run(session.load("nope"))
    assert session.status == "Error: Selected node not found"
    assert session.node_id is None


def test_edit_and_save_whole_subtree(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)

    async def scenario() -> None:
        await session.load("n1")
        assert session.begin_edit()
        assert session.status == "Editing"
        edited = json.loads(session.buffer)
        edited["text"] = "Python"
        edited["children"].append({"text": "Flask"})
        session.update_buffer(json.dumps(edited))
        report = await session.save()
        assert report is not None
        assert report.created == 1

    asyncio.run(scenario())

    assert outline.nodes["n1"].text == "Python"
    assert [c.text for c in outline.nodes["n1"].child_nodes] == [
        "FastAPI for web services",
        "Flask",
    ]
    assert session.status == "Document and children saved successfully"
    assert not session.editing
    assert "Flask" in session.content
    # Saving cancelled the pending autosave.
    assert "n1:autosave" not in drafts


def test_save_uses_loaded_node_not_edited_root_id(
    outline: MemoryOutline, drafts: DraftStore
) -> None:
    session = _session(outline, drafts)

    async def scenario() -> None:
        await session.load("n3")
        session.begin_edit()
        session.buffer = '{"id": "n1", "text": "Golang"}'
        await session.save()

    asyncio.run(scenario())

    assert outline.nodes["n3"].text == "Golang"
    assert outline.nodes["n1"].text == "Python is great for scripting"


def test_parse_error_keeps_edit_mode(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)

    async def scenario() -> None:
        await session.load("n1")
        session.begin_edit()
        session.buffer = "{broken"
        assert await session.save() is None

    asyncio.run(scenario())

    assert session.editing
    assert session.buffer == "{broken"
    assert session.status.startswith("Error saving changes: ")
    assert outline.nodes["n1"].text == "Python is great for scripting"


def test_failed_root_write_keeps_edit_mode(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)
    break_method(outline.nodes["n3"], "set_text")

    async def scenario() -> None:
        await session.load("n3")
        session.begin_edit()
        session.buffer = '{"id": "n3", "text": "Golang"}'
        await session.save()

    asyncio.run(scenario())

    assert session.editing
    assert "set_text" in session.status


def test_single_node_mode_round_trip(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)

    async def scenario() -> None:
        assert await session.set_include_children(False)
        await session.load("n2")
        assert json.loads(session.content) == ["Rust is fast", "and memory safe"]
        session.begin_edit()
        session.buffer = json.dumps(["Rust is fast", "and safe"])
        report = await session.save()
        assert report is not None
        assert report.root_setter == "set_text()"

    asyncio.run(scenario())

    assert outline.nodes["n2"].text == ["Rust is fast", "and safe"]
    assert session.status == "Document and children saved successfully"


def test_single_node_mode_accepts_plain_string(
    outline: MemoryOutline, drafts: DraftStore
) -> None:
    session = _session(outline, drafts)

    async def scenario() -> None:
        await session.set_include_children(False)
        await session.load("n3")
        assert session.content == '"Go"'
        session.begin_edit()
        session.buffer = '{"text": "Golang"}'
        await session.save()

    asyncio.run(scenario())

    assert outline.nodes["n3"].text == "Golang"
    assert [c.id for c in outline.nodes["n1"].child_nodes] == ["n1a"]


def test_switching_mode_refused_while_editing(
    outline: MemoryOutline, drafts: DraftStore
) -> None:
    session = _session(outline, drafts)

    async def scenario() -> bool:
        await session.load("n1")
        session.begin_edit()
        return await session.set_include_children(False)

    assert not asyncio.run(scenario())
    assert session.include_children
    assert session.status == "Finish or cancel editing before switching modes"


def test_cancel_discards_buffer(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)

    async def scenario() -> None:
        await session.load("n1")
        session.begin_edit()
        session.update_buffer('{"id": "n1", "text": "changed"}')
        session.cancel()
        await asyncio.sleep(DELAY * 3)

    asyncio.run(scenario())

    assert session.status == "Edit canceled"
    assert not session.editing
    assert outline.nodes["n1"].text == "Python is great for scripting"
    assert len(drafts) == 0


def test_operations_without_selection(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)

    assert not session.begin_edit()
    assert session.status == "No document is selected"
    session.update_buffer("x")
    assert session.status == "Not editing"
    assert asyncio.run(session.save()) is None
    assert session.status == "Error: No node selected"
    assert session.save_draft() is None
    assert asyncio.run(session.inspect()) == "null or undefined object"


def test_autosave_after_quiet_period(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)

    async def scenario() -> None:
        await session.load("n1")
        session.begin_edit()
        session.update_buffer("first")
        session.update_buffer("second")
        await session.autosaver.wait("n1")

    asyncio.run(scenario())

    draft = drafts.load("n1:autosave")
    assert draft.content == "second"
    assert draft.display_name == "Python is great for scripting"


def test_save_and_restore_draft(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)
    asyncio.run(session.load("n3"))

    draft = session.save_draft("My draft")
    assert draft is not None
    assert draft.key.startswith("n3:")
    assert draft.content == session.content
    assert session.status == "Draft saved: My draft"

    restored = session.restore_draft(draft.key)
    assert restored == draft
    assert session.editing
    assert session.buffer == draft.content
    assert session.status == "Draft restored: My draft"
    # Restoring does not write to the live tree.
    assert outline.nodes["n3"].text == "Go"


def test_restore_missing_draft(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)
    assert session.restore_draft("n3:1") is None
    assert session.status == "Draft not found: n3:1"
    assert not session.editing


def test_follows_focus_and_keeps_unsaved_buffer(
    outline: MemoryOutline, drafts: DraftStore
) -> None:
    focus = MemoryFocus(outline.nodes["n1"])
    session = _session(outline, drafts, focus=focus)

    async def scenario() -> None:
        await session.attach()
        assert session.node_id == "n1"
        session.begin_edit()
        session.update_buffer("unsaved work")
        await focus.focus(outline.nodes["n3"])
        assert not session.autosaver.pending("n1")
        session.detach()
        await focus.focus(outline.nodes["n2"])

    asyncio.run(scenario())

    assert session.node_id == "n3"
    assert not session.editing
    assert drafts.load("n1:autosave").content == "unsaved work"


def test_focus_cleared(outline: MemoryOutline, drafts: DraftStore) -> None:
    focus = MemoryFocus()
    session = _session(outline, drafts, focus=focus)
    asyncio.run(session.attach())
    assert session.status == "No document is focused - click on a document first"


def test_inspect_loaded_node(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)
    asyncio.run(session.load("n3"))
    line = asyncio.run(session.inspect())
    assert line.startswith("Properties: ")
    assert "set_text" in line


def test_failed_child_changes_keep_edit_mode(outline: MemoryOutline, drafts: DraftStore) -> None:
    session = _session(outline, drafts)
    break_method(outline.nodes["n1a"], "set_text")
    buffer = '{"id": "n1", "text": "Python", "children": [{"text": "Django"}]}'

    async def scenario() -> None:
        await session.load("n1")
        session.begin_edit()
        session.buffer = buffer
        report = await session.save()
        assert report is not None
        assert not report.ok

    asyncio.run(scenario())

    assert session.editing
    assert session.buffer == buffer
    assert session.status == "Error saving changes: all 1 child change failed"


def test_draft_name_is_truncated_label(outline: MemoryOutline, drafts: DraftStore) -> None:
    outline.add(outline.root, "x" * 40 + "\nsecond line", node_id="long")
    session = _session(outline, drafts)
    asyncio.run(session.load("long"))

    draft = session.save_draft()

    assert draft is not None
    assert draft.display_name == "x" * 30 + "..."


def test_draft_name_falls_back_to_id(outline: MemoryOutline, drafts: DraftStore) -> None:
    outline.add(outline.root, "", node_id="blank-node-id")
    session = _session(outline, drafts)
    asyncio.run(session.load("blank-node-id"))

    draft = session.save_draft()

    assert draft is not None
    assert draft.display_name == "[ID: blank-no...]"
