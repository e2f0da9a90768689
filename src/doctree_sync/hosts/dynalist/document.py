"""A live Dynalist document exposed as a node host."""

import asyncio
from typing import Any

from loguru import logger

from doctree_sync.errors import ExternalFailureError
from doctree_sync.hosts.dynalist.client import add_node, delete_node, edit_node
from doctree_sync.protocols import ApiProtocol


class DynalistNode:
    """One node of a Dynalist document.

    Children are reported as bare ids, as the API returns them.
    """

    def __init__(self, document: "DynalistDocument", raw: dict[str, Any]) -> None:
        self._document = document
        self.id: str = raw["id"]
        self.content: str = raw.get("content", "")
        self.note: str = raw.get("note", "")
        self.child_ids: list[str] = list(raw.get("children", []))

    def __repr__(self) -> str:
        return f"DynalistNode(id={self.id!r}, content={self.content[:20]!r})"

    @property
    def text(self) -> str:
        return self.content

    async def get_children(self) -> list[str]:
        return list(self.child_ids)

    async def set_text(self, text: str | list[str]) -> None:
        if isinstance(text, list):
            text = "\n".join(text)
        await self._document.edit(self.id, text)

    async def create_child(self) -> str:
        return await self._document.insert(self.id, "")

    async def remove(self) -> None:
        await self._document.delete(self.id)


class DynalistDocument:
    """Host over one Dynalist document.

    The document is read once (``doc/read``) and the local copy is kept in
    step with every write, so enumeration after a write needs no re-read.
    Blocking API calls run in a worker thread.
    """

    def __init__(self, api: ApiProtocol, file_id: str) -> None:
        self.api = api
        self.file_id = file_id
        self.title = ""
        self.version: int | None = None
        self._nodes: dict[str, DynalistNode] | None = None

    async def _call(self, path: str, args: dict[str, Any]) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self.api.call, path, args)
        except Exception as e:
            msg = f"Dynalist {path} failed: {e}"
            raise ExternalFailureError(msg) from e

    async def refresh(self) -> None:
        """Re-read the whole document."""
        data = await self._call("doc/read", {"file_id": self.file_id})
        self.title = data.get("title", "")
        self.version = data.get("version")
        self._nodes = {raw["id"]: DynalistNode(self, raw) for raw in data.get("nodes", [])}
        logger.debug("Read Dynalist document {} ({} nodes)", self.file_id, len(self._nodes))

    async def _index(self) -> dict[str, DynalistNode]:
        if self._nodes is None:
            await self.refresh()
        return self._nodes  # type: ignore[return-value]

    async def find_node(self, node_id: str) -> DynalistNode | None:
        nodes = await self._index()
        return nodes.get(node_id)

    def _raise_unless_ok(self, outcome: dict[str, Any]) -> None:
        if not outcome["success"]:
            raise ExternalFailureError(outcome["error"])

    async def edit(self, node_id: str, content: str) -> None:
        outcome = await asyncio.to_thread(
            edit_node, self.api, node_id=node_id, document_id=self.file_id, content=content
        )
        self._raise_unless_ok(outcome)
        node = (await self._index()).get(node_id)
        if node is not None:
            node.content = content

    async def insert(self, parent_id: str, content: str) -> str:
        outcome = await asyncio.to_thread(
            add_node, self.api, parent_id=parent_id, document_id=self.file_id, content=content
        )
        self._raise_unless_ok(outcome)
        new_id: str = outcome["node_id"]
        nodes = await self._index()
        nodes[new_id] = DynalistNode(self, {"id": new_id, "content": content})
        parent = nodes.get(parent_id)
        if parent is not None:
            parent.child_ids.append(new_id)
        return new_id

    async def delete(self, node_id: str) -> None:
        outcome = await asyncio.to_thread(
            delete_node, self.api, node_id=node_id, document_id=self.file_id
        )
        self._raise_unless_ok(outcome)
        nodes = await self._index()
        todo = [node_id]
        while todo:
            removed = nodes.pop(todo.pop(), None)
            if removed is not None:
                todo.extend(removed.child_ids)
        for node in nodes.values():
            if node_id in node.child_ids:
                node.child_ids.remove(node_id)
