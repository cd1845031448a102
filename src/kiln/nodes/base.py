"""Base node class for kiln template trees."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Node:
    """Base class for all template nodes.

    All nodes track their source location for error reporting.
    Nodes are immutable; a tree lives for a single compilation.

    """

    lineno: int
    col_offset: int
