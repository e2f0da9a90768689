"""Tests for reconciling edited trees into live outlines."""

import asyncio
import json
from types import MappingProxyType
from typing import Any

import pytest

from doctree_sync.core.content.resolver import resolve_text
from doctree_sync.core.tree.snapshot import build_snapshot, parse_edited_tree
from doctree_sync.core.write.reconciler import (
    TreeReconciler,
    create_child_node,
    reconcile_text,
    remove_child_node,
    write_text,
)
from doctree_sync.diagnostics import DiagnosticTrace
from doctree_sync.errors import (
    EditParseError,
    ExternalFailureError,
    NodeNotFoundError,
    PartialFailureError,
    UnsupportedShapeError,
)
from doctree_sync.hosts.memory import MemoryOutline, OutlineNode
from doctree_sync.models.snapshot import Snapshot
from tests.unit.fakes import (
    AccessorNode,
    CamelNode,
    DictLookup,
    LineNode,
    StructuredNode,
    break_method,
)


def _outline_with_children(texts: list[str]) -> MemoryOutline:
    outline = MemoryOutline(title="Root")
    for i, text in enumerate(texts):
        outline.add(outline.root, text, node_id=f"c{i}")
    return outline


def _edited(root_text: str, texts: list[str]) -> Snapshot:
    return Snapshot("root", root_text, tuple(Snapshot("", t) for t in texts))


def _texts(node: OutlineNode) -> list[Any]:
    return [c.text for c in node.child_nodes]


def test_unedited_round_trip_leaves_text_unchanged(outline: MemoryOutline) -> None:
    before = asyncio.run(build_snapshot(outline.root, outline))

    report = asyncio.run(TreeReconciler(outline).reconcile(before, "root"))

    after = asyncio.run(build_snapshot(outline.root, outline))
    assert after == before
    assert report.failed == 0
    assert report.updated == 4
    assert asyncio.run(resolve_text(outline.nodes["n1a"])) == "FastAPI for web services"


def test_line_array_text_keeps_its_shape(outline: MemoryOutline) -> None:
    edited = Snapshot("n2", "a\nc")
    asyncio.run(TreeReconciler(outline).reconcile(edited, "n2"))
    assert outline.nodes["n2"].text == ["a", "c"]


def test_growth_creates_surplus_children_in_order() -> None:
    outline = _outline_with_children(["a", "b", "c"])
    originals = list(outline.root.child_nodes)

    report = asyncio.run(
        TreeReconciler(outline).reconcile(_edited("Root", ["A", "B", "C", "D", "E"]), "root")
    )

    assert report.updated == 3
    assert report.created == 2
    assert report.removed == 0
    assert _texts(outline.root) == ["A", "B", "C", "D", "E"]
    assert list(outline.root.child_nodes[:3]) == originals


def test_shrinkage_removes_trailing_live_children() -> None:
    outline = _outline_with_children(["a", "b", "c", "d", "e"])

    report = asyncio.run(TreeReconciler(outline).reconcile(_edited("Root", ["A", "B"]), "root"))

    assert (report.updated, report.created, report.removed) == (2, 0, 3)
    assert _texts(outline.root) == ["A", "B"]
    assert set(outline.nodes) == {"root", "c0", "c1"}


def test_positional_reassignment_on_mid_list_insert() -> None:
    outline = _outline_with_children(["x", "y", "z"])

    asyncio.run(
        TreeReconciler(outline).reconcile(_edited("Root", ["x", "NEW", "y", "z"]), "root")
    )

    assert outline.nodes["c0"].text == "x"
    assert outline.nodes["c1"].text == "NEW"
    assert outline.nodes["c2"].text == "y"
    assert outline.root.child_nodes[3].text == "z"


def test_child_ids_in_edited_tree_are_ignored() -> None:
    outline = _outline_with_children(["a", "b"])
    edited = Snapshot("root", "Root", (Snapshot("c1", "first"), Snapshot("c0", "second")))

    asyncio.run(TreeReconciler(outline).reconcile(edited, "root"))

    assert outline.nodes["c0"].text == "first"
    assert outline.nodes["c1"].text == "second"


def test_concrete_edit_scenario() -> None:
    outline = MemoryOutline(root_id="r1", title="Hello")
    outline.add(outline.root, "World", node_id="c1")
    edited_text = json.dumps(
        {
            "id": "r1",
            "text": "Hello!",
            "children": [
                {"id": "c1", "text": "World!", "children": []},
                {"id": "", "text": "New"},
            ],
        }
    )

    report = asyncio.run(reconcile_text(outline, edited_text))

    assert outline.root.text == "Hello!"
    assert outline.nodes["c1"].text == "World!"
    assert _texts(outline.root) == ["World!", "New"]
    assert report.created == 1
    assert report.status_message() == "Document and children saved successfully"


def test_new_children_are_created_recursively() -> None:
    outline = _outline_with_children([])
    edited = Snapshot(
        "root",
        "Root",
        (Snapshot("", "parent", (Snapshot("", "kid", (Snapshot("", "grandkid"),)),)),),
    )

    report = asyncio.run(TreeReconciler(outline).reconcile(edited, "root"))

    assert report.created == 3
    parent = outline.root.child_nodes[0]
    assert parent.child_nodes[0].child_nodes[0].text == "grandkid"


def test_deep_edits_recurse_into_matching_children(outline: MemoryOutline) -> None:
    edited = parse_edited_tree(
        json.dumps(
            {
                "id": "root",
                "text": "Notes",
                "children": [
                    {"id": "n1", "text": "Python", "children": [{"text": "Django"}]},
                    {"id": "n2", "text": "Rust is fast\nand memory safe"},
                    {"id": "n3", "text": "Go", "children": [{"text": "goroutines"}]},
                ],
            }
        )
    )

    asyncio.run(TreeReconciler(outline).reconcile(edited, "root"))

    assert outline.nodes["n1a"].text == "Django"
    assert _texts(outline.nodes["n3"]) == ["goroutines"]


def test_missing_root_raises_before_any_mutation(outline: MemoryOutline) -> None:
    with pytest.raises(NodeNotFoundError):
        asyncio.run(TreeReconciler(outline).reconcile(Snapshot("x", "changed"), "nope"))
    assert outline.root.text == "Notes"


def test_root_setter_failure_propagates(outline: MemoryOutline) -> None:
    break_method(outline.root, "set_text")
    with pytest.raises(ExternalFailureError, match="set_text"):
        asyncio.run(TreeReconciler(outline).reconcile(Snapshot("root", "x"), "root"))


def test_root_without_setter_is_unsupported() -> None:
    lookup = DictLookup({"a": AccessorNode("a", "read only")})
    with pytest.raises(UnsupportedShapeError):
        asyncio.run(TreeReconciler(lookup).reconcile(Snapshot("a", "x"), "a"))


def test_partial_failure_is_recorded_and_siblings_continue() -> None:
    outline = _outline_with_children(["a", "b", "c"])
    break_method(outline.nodes["c1"], "set_text")
    trace = DiagnosticTrace()

    report = asyncio.run(
        TreeReconciler(outline, trace=trace).reconcile(_edited("Root", ["A", "B", "C"]), "root")
    )

    assert _texts(outline.root) == ["A", "b", "C"]
    assert report.updated == 2
    assert report.failed == 1
    failure = report.failures[0]
    assert (failure.path, failure.node_id, failure.operation) == ("root/1", "c1", "update")
    assert report.ok
    assert report.status_message() == "Saved with 2 of 3 changes (1 failed)"
    assert any("update of 'c1' failed" in step for step in trace.steps)
    with pytest.raises(PartialFailureError) as exc_info:
        report.raise_for_status()
    assert exc_info.value.report is report


def test_failed_child_subtree_is_skipped() -> None:
    outline = _outline_with_children(["a"])
    outline.add(outline.nodes["c0"], "kid", node_id="k")
    break_method(outline.nodes["c0"], "set_text")
    edited = Snapshot("root", "Root", (Snapshot("", "A", (Snapshot("", "KID"),)),))

    report = asyncio.run(TreeReconciler(outline).reconcile(edited, "root"))

    assert outline.nodes["k"].text == "kid"
    assert report.failed == 1
    assert report.updated == 0


def test_all_children_failing_is_not_ok() -> None:
    outline = _outline_with_children(["a", "b"])
    for node_id in ("c0", "c1"):
        break_method(outline.nodes[node_id], "set_text")

    report = asyncio.run(TreeReconciler(outline).reconcile(_edited("New root", ["A", "B"]), "root"))

    assert outline.root.text == "New root"
    assert not report.ok
    assert report.status_message() == "Error saving changes: all 2 child changes failed"


def test_failed_removal_is_recorded() -> None:
    outline = _outline_with_children(["a", "b"])
    break_method(outline.nodes["c1"], "remove")

    report = asyncio.run(TreeReconciler(outline).reconcile(_edited("Root", ["a"]), "root"))

    assert report.failures[0].operation == "remove"
    assert "c1" in outline.nodes


def test_reconcile_text_rejects_bad_json(outline: MemoryOutline) -> None:
    with pytest.raises(EditParseError):
        asyncio.run(reconcile_text(outline, "{oops"))
    assert outline.root.text == "Notes"


def test_reconcile_text_honors_explicit_root(outline: MemoryOutline) -> None:
    asyncio.run(reconcile_text(outline, '{"id": "n3", "text": "Golang"}', live_root_id="n1a"))
    assert outline.nodes["n1a"].text == "Golang"
    assert outline.nodes["n3"].text == "Go"


# --- Setters ---


def test_write_text_prefers_setter_method() -> None:
    node = CamelNode("a", "old")
    assert asyncio.run(write_text(node, "new")) == "set_text()"
    assert node.getPlainText() == "new"


def test_write_text_assigns_text_field_of_mapping() -> None:
    node = {"id": "a", "text": "old"}
    assert asyncio.run(write_text(node, "new")) == "text field"
    assert node["text"] == "new"


def test_write_text_splits_line_arrays_on_field_write() -> None:
    node = LineNode("a", ["x", "y"])
    asyncio.run(write_text(node, "p\nq\nr"))
    assert node.text == ["p", "q", "r"]


def test_write_text_updates_structured_content_in_place() -> None:
    node = StructuredNode("a", "old")
    assert asyncio.run(write_text(node, "new")) == "content.text field"
    assert node.content == {"text": "new", "style": "bold"}
    assert node.replaced == []


def test_write_text_rewrites_read_only_content_object() -> None:
    node = StructuredNode("a", "old")
    node.content = MappingProxyType({"text": "old", "style": "bold"})  # type: ignore[assignment]

    assert asyncio.run(write_text(node, "new")) == "set_content()"
    assert node.replaced == [{"text": "new", "style": "bold"}]


def test_write_text_without_any_setter_is_unsupported() -> None:
    with pytest.raises(UnsupportedShapeError, match="No text setter"):
        asyncio.run(write_text(AccessorNode("a", "x"), "y"))


# --- Structural helpers ---


def test_create_child_via_host_factory() -> None:
    class Adopter:
        id = "p"

        def __init__(self) -> None:
            self.adopted: list[Any] = []

        def add_child(self, child: Any) -> None:
            self.adopted.append(child)

    class Factory:
        async def find_node(self, node_id: str) -> Any | None:
            return None

        async def create_node(self) -> Any:
            return {"id": "fresh", "text": ""}

    parent = Adopter()
    child = asyncio.run(create_child_node(parent, Factory()))

    assert child == {"id": "fresh", "text": ""}
    assert parent.adopted == [child]


def test_create_child_without_capability_is_unsupported() -> None:
    with pytest.raises(UnsupportedShapeError):
        asyncio.run(create_child_node({"id": "p", "children": []}, DictLookup({})))


def test_remove_child_from_plain_children_list() -> None:
    child = {"id": "c", "text": "x"}
    parent = {"id": "p", "children": [child]}
    asyncio.run(remove_child_node(parent, child))
    assert parent["children"] == []


def test_remove_child_via_parent_method() -> None:
    class Parent:
        id = "p"

        def __init__(self) -> None:
            self.removed: list[str] = []

        def remove_child(self, child: Any) -> None:
            self.removed.append(child["id"])

    parent = Parent()
    asyncio.run(remove_child_node(parent, {"id": "c"}))
    assert parent.removed == ["c"]


def test_empty_line_array_survives_unedited_round_trip() -> None:
    outline = _outline_with_children([])
    outline.add(outline.root, [], node_id="c0")
    before = asyncio.run(build_snapshot(outline.root, outline))

    asyncio.run(TreeReconciler(outline).reconcile(before, "root"))

    assert outline.nodes["c0"].text == []


def test_remove_child_listed_by_id() -> None:
    parent = {"id": "p", "text": "P", "children": ["k"]}
    asyncio.run(remove_child_node(parent, {"id": "k", "text": "kid"}))
    assert parent["children"] == []


def test_shrinking_parent_with_id_children() -> None:
    parent = {"id": "p", "text": "P", "children": ["k", "j"]}
    lookup = DictLookup(
        {"p": parent, "k": {"id": "k", "text": "K"}, "j": {"id": "j", "text": "J"}}
    )

    report = asyncio.run(
        TreeReconciler(lookup).reconcile(Snapshot("p", "P", (Snapshot("", "K2"),)), "p")
    )

    assert (report.updated, report.removed, report.failed) == (1, 1, 0)
    assert parent["children"] == ["k"]


def _break_new_children(outline: MemoryOutline, *methods: str) -> None:
    create = outline.root.create_child

    async def create_broken() -> OutlineNode:
        child = await create()
        for name in methods:
            break_method(child, name)
        return child

    outline.root.create_child = create_broken  # type: ignore[method-assign]


def test_created_child_is_removed_when_its_text_cannot_be_written() -> None:
    outline = _outline_with_children(["a"])
    _break_new_children(outline, "set_text")

    report = asyncio.run(TreeReconciler(outline).reconcile(_edited("Root", ["a", "b"]), "root"))

    assert _texts(outline.root) == ["a"]
    assert report.created == 0
    assert report.failures[0].operation == "create"
    assert "left empty" not in report.failures[0].reason


def test_unremovable_blank_child_is_reported_as_left_empty() -> None:
    outline = _outline_with_children([])
    _break_new_children(outline, "set_text", "remove")

    report = asyncio.run(TreeReconciler(outline).reconcile(_edited("Root", ["b"]), "root"))

    assert _texts(outline.root) == [""]
    failure = report.failures[0]
    assert failure.node_id == outline.root.child_nodes[0].id
    assert failure.reason.endswith("left empty)")
