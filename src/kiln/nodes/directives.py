"""Directive nodes for kiln templates."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from kiln.nodes.base import Node


@dataclass(frozen=True, slots=True)
class Directive(Node):
    """Directive invocation: ``@name(args)``, optionally wrapping a block.

    ``children`` is None for directives without a block. Sub-directives
    that continue a block (``@elseif``, ``@else``, ``@empty``...) are kept
    in ``related`` in source order, each with its own children.
    """

    name: str
    raw_args: str | None = None
    children: Sequence[Node] | None = None
    related: Sequence[Directive] = ()

    @property
    def is_block(self) -> bool:
        return self.children is not None
