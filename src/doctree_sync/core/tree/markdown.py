"""Render snapshots as markdown outlines."""

import io

from doctree_sync.models.snapshot import Snapshot


def render_snapshot_as_markdown(snapshot: Snapshot, *, max_depth: int | None = None) -> str:
    """Render a snapshot and its descendants as indented markdown.

    Args:
        snapshot: The root to start rendering from.
        max_depth: Max levels below the root to include (None = unlimited).

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    out = io.StringIO()
    # Depth-first with an explicit stack; children pushed in reverse keep order.
    stack: list[tuple[Snapshot, int]] = [(snapshot, 0)]
    while stack:
        node, depth = stack.pop()
        indent = "    " * depth

        # Write text lines
        lines = node.text.split("\n")
        out.write(f"{indent}- {lines[0]}\n")
        for line in lines[1:]:
            out.write(f"{indent}  {line}\n")

        if not node.children:
            continue

        # Truncation indicator when children are cut off by max_depth
        if max_depth is not None and depth >= max_depth:
            child_indent = "    " * (depth + 1)
            count = len(node.children)
            noun = "child" if count == 1 else "children"
            out.write(f"{child_indent}- ... ({count} more {noun}, id={node.id})\n")
            continue

        stack.extend((child, depth + 1) for child in reversed(node.children))

    return out.getvalue()
