"""Element nodes for kiln templates."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from kiln.nodes.base import Node


@dataclass(frozen=True, slots=True)
class LiteralValue:
    """Plain attribute value: ``name="text"``, or ``True`` for a bare ``name``."""

    value: str | bool


@dataclass(frozen=True, slots=True)
class ExpressionValue:
    """Expression attribute value: ``name={expr}``."""

    code: str


@dataclass(frozen=True, slots=True)
class SpreadValue:
    """Spread attributes: ``{...expr}``."""

    code: str


AttrValue = LiteralValue | ExpressionValue | SpreadValue


@dataclass(frozen=True, slots=True)
class Element(Node):
    """A tag matched by a registered element definition.

    Attributes are kept in source order as ``(name, value)`` pairs so
    that spreads (name ``None``) merge with last-write-wins semantics.
    """

    tag: str
    attributes: Sequence[tuple[str | None, AttrValue]] = ()
    inner: Sequence[Node] = ()
    slots: Mapping[str, Sequence[Node]] = field(default_factory=dict)
    self_closing: bool = False

    def get_attribute(self, name: str) -> AttrValue | None:
        """Return the last value given for ``name``, ignoring spreads."""
        found = None
        for attr_name, value in self.attributes:
            if attr_name == name:
                found = value
        return found
