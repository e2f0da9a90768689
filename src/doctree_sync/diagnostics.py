"""Diagnostic trace of which strategy or step fired during an operation."""

import inspect as pyinspect
from typing import Any

from loguru import logger


class DiagnosticTrace:
    """Ordered record of steps, mirrored to the logger at DEBUG.

    Several equally plausible strategies are attempted silently; the trace
    keeps the exact sequence so a caller (or a debug panel) can tell which
    one succeeded.
    """

    def __init__(self) -> None:
        self.steps: list[str] = []

    def step(self, message: str, *args: Any) -> None:
        """Record a step. Uses loguru-style ``{}`` placeholders."""
        text = message.format(*args) if args else message
        self.steps.append(text)
        logger.opt(depth=1).debug(text)

    def clear(self) -> None:
        self.steps.clear()

    @property
    def last(self) -> str:
        return self.steps[-1] if self.steps else ""

    def __len__(self) -> int:
        return len(self.steps)

    def __str__(self) -> str:
        return "\n".join(self.steps)


def trace_step(trace: DiagnosticTrace | None, message: str, *args: Any) -> None:
    """Record on the trace if one is given, else log at DEBUG only."""
    if trace is not None:
        trace.step(message, *args)
    else:
        logger.opt(depth=1).debug(message, *args)


def inspect_node(node: Any) -> str:
    """Describe a node's properties and methods.

    Returns a single line ``"Properties: a, b | Methods: c, d"``; mapping
    nodes list their keys as properties.
    """
    if node is None:
        return "null or undefined object"
    if isinstance(node, dict):
        return f"Properties: {', '.join(str(k) for k in node)} | Methods: "
    try:
        names = sorted(n for n in dir(node) if not n.startswith("__"))
        methods = [n for n in names if callable(getattr(node, n, None))]
        props = [n for n in names if n not in methods]
    except Exception as e:
        return f"Error inspecting object: {e}"
    kind = "class" if pyinspect.isclass(node) else type(node).__name__
    logger.debug("Inspected {} with {} properties, {} methods", kind, len(props), len(methods))
    return f"Properties: {', '.join(props)} | Methods: {', '.join(methods)}"
