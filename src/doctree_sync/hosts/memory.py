"""In-memory outline host, loadable from Dynalist-style outline JSON files."""

import itertools
import json
from collections import deque
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

from doctree_sync.protocols import FocusHandler

# Outline keys handled explicitly; anything else is carried through untouched.
_KNOWN_KEYS = {"id", "content", "children"}


class OutlineNode:
    """A live node: text is a string, or a list of lines for line-mode nodes."""

    def __init__(
        self,
        outline: "MemoryOutline",
        node_id: str,
        text: str | list[str] = "",
        *,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.id = node_id
        self.text = text
        self.extra = dict(extra or {})
        self.parent: OutlineNode | None = None
        self._outline = outline
        self._children: list[OutlineNode] = []

    def __repr__(self) -> str:
        return f"OutlineNode(id={self.id!r}, text={self.text!r}, children={len(self._children)})"

    @property
    def child_nodes(self) -> tuple["OutlineNode", ...]:
        return tuple(self._children)

    async def get_children(self) -> list["OutlineNode"]:
        return list(self._children)

    async def set_text(self, text: str | list[str]) -> None:
        self.text = list(text) if isinstance(text, (list, tuple)) else text

    async def create_child(self) -> "OutlineNode":
        child = self._outline.new_node()
        self.append(child)
        return child

    async def add_child(self, child: "OutlineNode") -> None:
        self.append(child)

    async def remove(self) -> None:
        self._outline.detach(self)

    def append(self, child: "OutlineNode") -> "OutlineNode":
        if child.parent is not None:
            child.parent._children.remove(child)
        child.parent = self
        self._children.append(child)
        return child


class MemoryOutline:
    """A whole outline document held in memory."""

    def __init__(self, *, file_id: str = "local", title: str = "", root_id: str = "root") -> None:
        self.file_id = file_id
        self.title = title
        self.nodes: dict[str, OutlineNode] = {}
        self._ids = itertools.count(1)
        self.root = self._register(OutlineNode(self, root_id, title))

    def _register(self, node: OutlineNode) -> OutlineNode:
        if node.id in self.nodes:
            msg = f"Duplicate node id {node.id!r}"
            raise ValueError(msg)
        self.nodes[node.id] = node
        return node

    def new_node(self, text: str | list[str] = "", *, node_id: str | None = None) -> OutlineNode:
        """Register a detached node; a fresh id is generated unless given."""
        if node_id is None:
            node_id = f"n{next(self._ids)}"
            while node_id in self.nodes:
                node_id = f"n{next(self._ids)}"
        return self._register(OutlineNode(self, node_id, text))

    def add(
        self, parent: OutlineNode, text: str | list[str] = "", *, node_id: str | None = None
    ) -> OutlineNode:
        """Create a node as the last child of parent."""
        return parent.append(self.new_node(text, node_id=node_id))

    def detach(self, node: OutlineNode) -> None:
        """Remove node and all its descendants from the outline."""
        if node.parent is not None:
            node.parent._children.remove(node)
            node.parent = None
        todo = [node]
        while todo:
            current = todo.pop()
            self.nodes.pop(current.id, None)
            todo.extend(current.child_nodes)

    async def find_node(self, node_id: str) -> OutlineNode | None:
        return self.nodes.get(node_id)

    async def create_node(self) -> OutlineNode:
        return self.new_node()


def load_outline(data: dict[str, Any]) -> MemoryOutline:
    """Build an outline from a Dynalist-style document dict.

    ``nodes`` is a flat list; each node names its children by id and the
    tree starts at the node with id ``root``. ``content`` may be a string or
    a list of lines.

    Raises:
        ValueError: Unknown child ids, or nodes unreachable from the root.
    """
    raw_nodes = data["nodes"]
    nodes_by_id = {n["id"]: n for n in raw_nodes}
    if "root" not in nodes_by_id:
        msg = "Outline has no 'root' node"
        raise ValueError(msg)

    outline = MemoryOutline(file_id=data.get("file_id", "local"), title=data.get("title", ""))
    root_raw = nodes_by_id.pop("root")
    outline.root.text = root_raw.get("content", "")
    outline.root.extra = {k: v for k, v in root_raw.items() if k not in _KNOWN_KEYS}

    # BFS; children keep the order of the parent's children array.
    todo: deque[tuple[OutlineNode, dict[str, Any]]] = deque([(outline.root, root_raw)])
    while todo:
        parent, raw_parent = todo.popleft()
        for child_id in raw_parent.get("children", []):
            try:
                raw = nodes_by_id.pop(child_id)
            except KeyError:
                msg = f"Unknown or repeated child id {child_id!r} under {parent.id!r}"
                raise ValueError(msg) from None
            child = outline.add(parent, raw.get("content", ""), node_id=child_id)
            child.extra = {k: v for k, v in raw.items() if k not in _KNOWN_KEYS}
            todo.append((child, raw))

    if nodes_by_id:
        msg = f"Orphaned nodes: {sorted(nodes_by_id.keys())!r}"
        raise ValueError(msg)

    logger.debug("Loaded outline {!r} with {} nodes", outline.file_id, len(outline.nodes))
    return outline


def dump_outline(outline: MemoryOutline) -> dict[str, Any]:
    """Inverse of load_outline."""
    nodes: list[dict[str, Any]] = []
    todo: deque[OutlineNode] = deque([outline.root])
    while todo:
        node = todo.popleft()
        entry: dict[str, Any] = {"id": node.id, "content": node.text, **node.extra}
        if node.child_nodes:
            entry["children"] = [c.id for c in node.child_nodes]
        nodes.append(entry)
        todo.extend(node.child_nodes)
    return {"file_id": outline.file_id, "title": outline.title, "nodes": nodes}


def load_outline_file(path: Path) -> MemoryOutline:
    return load_outline(json.loads(path.read_text(encoding="utf-8")))


def save_outline_file(outline: MemoryOutline, path: Path) -> None:
    contents = json.dumps(dump_outline(outline), indent=2, ensure_ascii=False) + "\n"
    path.write_text(contents, encoding="utf-8")
    logger.debug("Wrote outline {!r} to {}", outline.file_id, path)


class MemoryFocus:
    """Focus tracker that fires its listeners when focus() is awaited."""

    def __init__(self, focused: Any | None = None) -> None:
        self.focused = focused
        self._handlers: list[FocusHandler] = []

    async def get_focused_node(self) -> Any | None:
        return self.focused

    def add_listener(self, handler: FocusHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def focus(self, node: Any | None) -> None:
        self.focused = node
        for handler in list(self._handlers):
            await handler()
