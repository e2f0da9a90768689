"""Bidirectional sync between live outline trees and editable JSON."""

from doctree_sync.core.drafts.store import DraftStore
from doctree_sync.core.session import EditorSession
from doctree_sync.core.tree.snapshot import build_snapshot, parse_edited_tree
from doctree_sync.core.write.reconciler import TreeReconciler, reconcile_text
from doctree_sync.models.report import ReconcileReport
from doctree_sync.models.snapshot import Snapshot
from doctree_sync.protocols import NodeLookupProtocol

__all__ = [
    "DraftStore",
    "EditorSession",
    "NodeLookupProtocol",
    "ReconcileReport",
    "Snapshot",
    "TreeReconciler",
    "build_snapshot",
    "parse_edited_tree",
    "reconcile_text",
]
