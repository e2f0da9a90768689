"""Error taxonomy for the synchronization engine."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from doctree_sync.models.report import ReconcileReport


class DocTreeSyncError(Exception):
    """Base class for all doctree-sync errors."""


class NodeNotFoundError(DocTreeSyncError):
    """An id did not resolve to a live node."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node {node_id!r} not found")
        self.node_id = node_id


class DraftNotFoundError(DocTreeSyncError):
    """No draft is stored under the key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Draft {key!r} not found")
        self.key = key


class UnsupportedShapeError(DocTreeSyncError):
    """No known extraction or mutation strategy applies to a node."""


class EditParseError(DocTreeSyncError):
    """Edited text is not valid JSON or lacks required fields."""


class ExternalFailureError(DocTreeSyncError):
    """An awaited call into the host raised."""


class PartialFailureError(DocTreeSyncError):
    """Some child operations of a reconcile pass failed."""

    def __init__(self, report: "ReconcileReport") -> None:
        super().__init__(report.status_message())
        self.report = report
