"""Bookkeeping for a reconcile pass."""

from dataclasses import dataclass, field

from doctree_sync.errors import PartialFailureError


@dataclass(frozen=True)
class ReconcileFailure:
    """A child operation that was skipped."""

    path: str
    node_id: str
    operation: str
    reason: str


@dataclass
class ReconcileReport:
    """Counts of child operations performed while converging a live subtree.

    The root write is not counted: it either succeeds or the whole call fails.
    """

    root_id: str
    root_setter: str = ""
    updated: int = 0
    created: int = 0
    removed: int = 0
    failures: list[ReconcileFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def succeeded(self) -> int:
        return self.updated + self.created + self.removed

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    @property
    def ok(self) -> bool:
        """False when failures occurred and no child operation succeeded."""
        return not (self.failed and not self.succeeded)

    def record_failure(self, *, path: str, node_id: str, operation: str, reason: str) -> None:
        self.failures.append(
            ReconcileFailure(path=path, node_id=node_id, operation=operation, reason=reason)
        )

    def status_message(self) -> str:
        if not self.failed:
            return "Document and children saved successfully"
        if not self.succeeded:
            noun = "change" if self.failed == 1 else "changes"
            return f"Error saving changes: all {self.failed} child {noun} failed"
        return f"Saved with {self.succeeded} of {self.total} changes ({self.failed} failed)"

    def raise_for_status(self) -> None:
        """Raise PartialFailureError if any child operation failed."""
        if self.failures:
            raise PartialFailureError(self)
