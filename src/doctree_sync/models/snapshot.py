"""Snapshot models: the canonical, serializable projection of a node subtree."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TextShape(Enum):
    """How a node's text was found, which decides how it is written back."""

    LINE_ARRAY = "line_array"
    STRING = "string"
    ACCESSOR = "accessor"
    STRUCTURED = "structured"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TextProjection:
    """Canonical text of a node plus the shape and strategy it came from."""

    text: str
    shape: TextShape
    strategy: str

    @property
    def found(self) -> bool:
        return self.shape is not TextShape.UNKNOWN


@dataclass(frozen=True)
class Snapshot:
    """A node and its descendants as plain records.

    ``children`` keeps the host's enumeration order; an empty tuple is a leaf.
    """

    id: str
    text: str
    children: tuple["Snapshot", ...] = field(default_factory=tuple)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def count(self) -> int:
        """Number of nodes in this subtree, including itself."""
        return 1 + sum(c.count() for c in self.children)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "children": [c.to_dict() for c in self.children],
        }


# Parsed from user-edited text. Only the root id is trusted.
EditedTree = Snapshot
