"""Layered mappings for engine globals and context.

A ``LayeredMap`` is a local dict plus an optional parent mapping. Reads
fall through to the parent; writes and deletes only touch the local
layer. Forks chain their maps to the parent engine's maps instead of
copying them, so later writes in the parent stay visible to the fork
while writes in the fork never leak upward.

Example:
    >>> parent = LayeredMap({"site": "kiln"})
    >>> child = parent.new_child()
    >>> child["page"] = "home"
    >>> parent["theme"] = "dark"
    >>> child["theme"], "page" in parent
    ('dark', False)
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any


class LayeredMap(MutableMapping[str, Any]):
    """Mapping with read-through inheritance and local-only writes."""

    __slots__ = ("_local", "_parent")

    def __init__(
        self,
        local: Mapping[str, Any] | None = None,
        parent: Mapping[str, Any] | None = None,
    ) -> None:
        self._local: dict[str, Any] = dict(local or {})
        self._parent = parent

    @property
    def parent(self) -> Mapping[str, Any] | None:
        return self._parent

    @property
    def local(self) -> dict[str, Any]:
        """Values written in this layer only."""
        return self._local

    def new_child(self, local: Mapping[str, Any] | None = None) -> LayeredMap:
        return LayeredMap(local, parent=self)

    def __getitem__(self, key: str) -> Any:
        if key in self._local:
            return self._local[key]
        if self._parent is not None:
            return self._parent[key]
        raise KeyError(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self._local[key] = value

    def __delitem__(self, key: str) -> None:
        if key not in self._local:
            raise KeyError(f"{key!r} is not set in this layer")
        del self._local[key]

    def __contains__(self, key: object) -> bool:
        if key in self._local:
            return True
        return self._parent is not None and key in self._parent

    def __iter__(self) -> Iterator[str]:
        seen = set(self._local)
        yield from self._local
        if self._parent is not None:
            for key in self._parent:
                if key not in seen:
                    seen.add(key)
                    yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def flatten(self) -> dict[str, Any]:
        """Merged view as a plain dict, local values winning."""
        return {key: self[key] for key in self}

    def __repr__(self) -> str:
        return f"LayeredMap({self._local!r}, parent={self._parent!r})"
