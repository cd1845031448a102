"""Template resolvers for the kiln engine.

A resolver turns a concrete path (the output of ``Engine.resolve_path``)
into template source. Any callable ``(path) -> str`` works, and so does
an ``async def`` function, which makes ``@include`` and ``view_async``
await the read. Resolvers raise ``ResolutionError`` when a path does not
exist.

Built-in Resolvers:
- `FileSystemResolver`: Read files from disk (the default)
- `DictResolver`: Serve sources from an in-memory dict (testing/embedded)
- `FunctionResolver`: Wrap a callable returning source or None
- `ChoiceResolver`: Try several resolvers in order (overrides, themes)

Custom Resolvers:
    ```python
    async def from_database(path: str) -> str:
        row = await db.fetch_one("SELECT source FROM views WHERE path = $1", path)
        if row is None:
            raise ResolutionError(f"View '{path}' not found", path=path)
        return row["source"]

    engine = Engine(resolver=from_database)
    ```

Resolvers may also implement ``glob(pattern) -> list[str]``, used by
``Engine.glob`` when no ``readdir`` collaborator is configured.

"""

from __future__ import annotations

import fnmatch
import glob as _glob
import os
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from kiln.environment.exceptions import ResolutionError


class FileSystemResolver:
    """Read templates from the filesystem.

    Relative paths are read against ``base`` (default: the working
    directory at call time).

    Attributes:
        base: Directory for relative paths, or None.
        encoding: File encoding (default: utf-8).
    """

    __slots__ = ("base", "encoding")

    def __init__(self, base: str | Path | None = None, encoding: str = "utf-8"):
        self.base = Path(base) if base is not None else None
        self.encoding = encoding

    def _path(self, path: str) -> Path:
        candidate = Path(path)
        if self.base is not None and not candidate.is_absolute():
            candidate = self.base / candidate
        return candidate

    def __call__(self, path: str) -> str:
        target = self._path(path)
        try:
            return target.read_text(self.encoding)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise ResolutionError(f"View file '{target}' not found", path=path) from exc

    def glob(self, pattern: str) -> list[str]:
        """Files matching ``pattern``, sorted; ``**`` matches recursively."""
        if self.base is not None and not os.path.isabs(pattern):
            pattern = str(self.base / pattern)
        return sorted(p for p in _glob.glob(pattern, recursive=True) if os.path.isfile(p))

    def __repr__(self) -> str:
        return f"FileSystemResolver(base={self.base!r})"


class DictResolver:
    """Serve template sources from a mapping of concrete path → source.

    Example:
        >>> resolver = DictResolver({"/views/home.kiln": "<h1>{{ title }}</h1>"})
        >>> engine = Engine(resolver=resolver)
        >>> engine.namespace("~", "/views")
        >>> engine.view("home", {"title": "Hi"})
        '<h1>Hi</h1>'
    """

    __slots__ = ("mapping", "reads")

    def __init__(self, mapping: Mapping[str, str] | None = None):
        self.mapping: dict[str, str] = dict(mapping or {})
        self.reads = 0

    def __call__(self, path: str) -> str:
        self.reads += 1
        try:
            return self.mapping[path]
        except KeyError:
            raise ResolutionError(f"View '{path}' not found", path=path) from None

    def glob(self, pattern: str) -> list[str]:
        return sorted(path for path in self.mapping if fnmatch.fnmatchcase(path, pattern))

    def __setitem__(self, path: str, source: str) -> None:
        self.mapping[path] = source


class FunctionResolver:
    """Wrap a callable that returns source, or None when the path is unknown."""

    __slots__ = ("_load",)

    def __init__(self, load: Callable[[str], str | None]):
        self._load = load

    def __call__(self, path: str) -> str:
        source = self._load(path)
        if source is None:
            raise ResolutionError(f"View '{path}' not found", path=path)
        return source


class ChoiceResolver:
    """Try resolvers in order and return the first source found."""

    __slots__ = ("_resolvers",)

    def __init__(self, resolvers: Sequence[Callable[[str], str]]):
        self._resolvers = list(resolvers)

    def __call__(self, path: str) -> str:
        for resolver in self._resolvers:
            try:
                return resolver(path)
            except ResolutionError:
                continue
        raise ResolutionError(
            f"View '{path}' not found in any of {len(self._resolvers)} resolvers", path=path
        )

    def glob(self, pattern: str) -> list[str]:
        found: set[str] = set()
        for resolver in self._resolvers:
            lister = getattr(resolver, "glob", None)
            if lister is not None:
                found.update(lister(pattern))
        return sorted(found)
