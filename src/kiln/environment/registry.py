"""Directive and element registries for kiln.

Directives are looked up by exact name. Elements are matched by tag in
three tiers, each tried only after the previous one misses:

1. exact name (``"x-card"``), a dict lookup,
2. wildcard names (``"x-*"``), in registration order,
3. compiled regular expressions, in registration order.

Both registries are shared by an engine and all of its forks. Every
mutation bumps ``version``, which takes part in compiled-unit cache keys
so that registering or removing a handler never serves stale code.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from kiln.compiler.handler import DirectiveContext, ElementContext

DirectiveHandler = Callable[["DirectiveContext"], Any]
ElementHandler = Callable[["ElementContext"], Any]

_PARAM_RE = re.compile(r"^\s*([A-Za-z_]\w*)(\?)?\s*(?::\s*(.+?))?\s*$")


@dataclass(frozen=True, slots=True)
class ParamSpec:
    """A declared directive parameter: ``"name"``, ``"name:type"``, ``"name?:a|b"``."""

    name: str
    types: tuple[str, ...] = ("any",)
    optional: bool = False

    @classmethod
    def parse(cls, spec: str) -> ParamSpec:
        match = _PARAM_RE.match(spec)
        if match is None:
            raise ValueError(f"Invalid parameter spec {spec!r}")
        name, optional, types = match.groups()
        type_names = tuple(t.strip() for t in types.split("|")) if types else ("any",)
        return cls(name=name, types=type_names, optional=bool(optional))

    def __str__(self) -> str:
        mark = "?" if self.optional else ""
        return f"{self.name}{mark}:{'|'.join(self.types)}"


@dataclass(slots=True)
class DirectiveDefinition:
    """A directive handler and its metadata.

    Attributes:
        name: Directive name, used as ``@name``.
        on_call: Handler receiving a ``DirectiveContext``.
        params: Parameter specs, matched positionally or by ``name=value``.
        children: True for block directives closed by ``@end``; ``"auto"``
            decides per use by looking ahead for a matching ``@end``.
        branches: Sub-directives valid only directly inside this block
            (``@else`` for ``@if``, ``@empty`` for ``@for``).
        description: Human-readable summary for the package schema.
        example: Usage example for the package schema.
    """

    name: str
    on_call: DirectiveHandler
    params: Sequence[str] = ()
    children: bool | Literal["auto"] = False
    branches: Sequence[DirectiveDefinition] = ()
    description: str | None = None
    example: str | None = None
    param_specs: tuple[ParamSpec, ...] = field(init=False, default=())

    def __post_init__(self) -> None:
        self.param_specs = tuple(ParamSpec.parse(spec) for spec in self.params)

    def branch(self, name: str) -> DirectiveDefinition | None:
        for definition in self.branches:
            if definition.name == name:
                return definition
        return None


class MatcherKind(Enum):
    """How an element definition matches a tag."""

    EXACT = "exact"
    WILDCARD = "wildcard"
    PATTERN = "pattern"


@dataclass(slots=True)
class ElementDefinition:
    """An element handler and its metadata.

    ``name`` is an exact tag, a wildcard ending in ``*`` (``"x-*"``), or
    a compiled regular expression matched against the whole tag.
    """

    name: str | re.Pattern[str]
    on_call: ElementHandler
    void: bool = False
    attributes: Sequence[str] = ()
    description: str | None = None
    example: str | None = None
    kind: MatcherKind = field(init=False, default=MatcherKind.EXACT)

    def __post_init__(self) -> None:
        if isinstance(self.name, re.Pattern):
            self.kind = MatcherKind.PATTERN
        elif self.name.endswith("*"):
            self.kind = MatcherKind.WILDCARD
        else:
            self.kind = MatcherKind.EXACT

    @property
    def label(self) -> str:
        """Printable matcher, used in schemas and error messages."""
        return self.name.pattern if isinstance(self.name, re.Pattern) else self.name

    def match(self, tag: str) -> str | None:
        """Return the wildcard part of ``tag`` (``""`` for exact), or None."""
        if self.kind is MatcherKind.EXACT:
            return "" if tag == self.name else None
        if self.kind is MatcherKind.WILDCARD:
            prefix = self.name[:-1]
            if tag.startswith(prefix) and len(tag) > len(prefix):
                return tag[len(prefix):]
            return None
        found = self.name.fullmatch(tag)
        if found is None:
            return None
        return found.group(1) if found.groups() else tag


@dataclass(frozen=True, slots=True)
class ElementMatch:
    """Result of matching a tag against the element registry."""

    definition: ElementDefinition
    wildcard: str


class DirectiveRegistry:
    """Name → DirectiveDefinition map shared across forks.

    Supports:
        - registry.register(definition)
        - registry["name"], registry.get("name")
        - "name" in registry
        - registry.unregister("name")
    """

    __slots__ = ("_definitions", "version")

    def __init__(self) -> None:
        self._definitions: dict[str, DirectiveDefinition] = {}
        self.version = 0

    def register(self, definition: DirectiveDefinition) -> DirectiveDefinition:
        self._definitions[definition.name] = definition
        self.version += 1
        return definition

    def unregister(self, name: str) -> DirectiveDefinition | None:
        removed = self._definitions.pop(name, None)
        if removed is not None:
            self.version += 1
        return removed

    def get(self, name: str) -> DirectiveDefinition | None:
        return self._definitions.get(name)

    def __getitem__(self, name: str) -> DirectiveDefinition:
        return self._definitions[name]

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[DirectiveDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def names(self) -> list[str]:
        return sorted(self._definitions)


class ElementRegistry:
    """Tag matcher registry shared across forks."""

    __slots__ = ("_exact", "_wildcards", "_patterns", "version")

    def __init__(self) -> None:
        self._exact: dict[str, ElementDefinition] = {}
        self._wildcards: list[ElementDefinition] = []
        self._patterns: list[ElementDefinition] = []
        self.version = 0

    def register(self, definition: ElementDefinition) -> ElementDefinition:
        self.unregister(definition.name)
        if definition.kind is MatcherKind.EXACT:
            self._exact[definition.name] = definition
        elif definition.kind is MatcherKind.WILDCARD:
            self._wildcards.append(definition)
        else:
            self._patterns.append(definition)
        self.version += 1
        return definition

    def unregister(self, name: str | re.Pattern[str]) -> ElementDefinition | None:
        removed: ElementDefinition | None = None
        if isinstance(name, str) and name in self._exact:
            removed = self._exact.pop(name)
        else:
            for bucket in (self._wildcards, self._patterns):
                for definition in bucket:
                    if definition.name == name:
                        bucket.remove(definition)
                        removed = definition
                        break
        if removed is not None:
            self.version += 1
        return removed

    def match(self, tag: str) -> ElementMatch | None:
        """Find the definition handling ``tag``, exact names first."""
        definition = self._exact.get(tag)
        if definition is not None:
            return ElementMatch(definition, "")
        for bucket in (self._wildcards, self._patterns):
            for definition in bucket:
                wildcard = definition.match(tag)
                if wildcard is not None:
                    return ElementMatch(definition, wildcard)
        return None

    def __contains__(self, tag: object) -> bool:
        return isinstance(tag, str) and self.match(tag) is not None

    def __iter__(self) -> Iterator[ElementDefinition]:
        yield from self._exact.values()
        yield from self._wildcards
        yield from self._patterns

    def __len__(self) -> int:
        return len(self._exact) + len(self._wildcards) + len(self._patterns)
