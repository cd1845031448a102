"""Two-tier cache for compiled units.

- ``units``: content-addressed. Keyed by the SHA-256 of the source and the
  directive/element registry versions, so the same text compiles once no matter how many
  names or forks use it.
- ``files``: one ``ResolvedFileCacheEntry`` per concrete path, holding the
  hash of the content last read and the unit compiled from it.

Entries are replaced whole and never edited. The only eviction is
``clear()``. The cache is shared by an engine and all its forks and is
not synchronized; kiln assumes a single cooperative thread.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass

from kiln.template.core import CompiledUnit

logger = logging.getLogger(__name__)

UnitKey = tuple[str, int, int]


def content_hash(source: str) -> str:
    """Stable SHA-256 hex digest of template source."""
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class ResolvedFileCacheEntry:
    """The unit last compiled for a concrete path, and the hash it came from."""

    path: str
    content_hash: str
    unit: CompiledUnit
    versions: tuple[int, int] = (0, 0)


class UnitCache:
    """Compiled-unit and resolved-file caches."""

    __slots__ = ("units", "streams", "files", "hits", "misses")

    def __init__(self) -> None:
        self.units: dict[UnitKey, CompiledUnit] = {}
        self.streams: dict[UnitKey, CompiledUnit] = {}
        self.files: dict[str, ResolvedFileCacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def get_or_build(
        self,
        key: UnitKey,
        build: Callable[[], CompiledUnit],
        *,
        streaming: bool = False,
    ) -> CompiledUnit:
        """Return the unit for ``key``, building and storing it on a miss."""
        store = self.streams if streaming else self.units
        unit = store.get(key)
        if unit is not None:
            self.hits += 1
            return unit
        self.misses += 1
        unit = build()
        store[key] = unit
        logger.debug("Cached %s unit %s", "stream" if streaming else "render", unit.filename)
        return unit

    def get_file(self, path: str) -> ResolvedFileCacheEntry | None:
        return self.files.get(path)

    def put_file(
        self,
        path: str,
        digest: str,
        unit: CompiledUnit,
        versions: tuple[int, int] = (0, 0),
    ) -> ResolvedFileCacheEntry:
        entry = ResolvedFileCacheEntry(path, digest, unit, versions)
        self.files[path] = entry
        return entry

    def clear(self) -> None:
        self.units.clear()
        self.streams.clear()
        self.files.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self.units)
