"""Namespace-based resolution of logical view paths.

Logical paths name a namespace alias followed by path segments, either
slash- or dot-separated::

    ~/layouts/main         -> {root of ~}/layouts/main.kiln
    @components/Button     -> {root of @components}/Button.kiln
    emails.welcome         -> {root of emails}/welcome.kiln
    partials.nav           -> {root of ~}/partials/nav.kiln   (no alias "partials")
    ~/users/john.doe       -> {root of ~}/users/john/doe.kiln
    ~/page.kiln            -> {root of ~}/page.kiln
    /srv/views/page        -> /srv/views/page.kiln

The longest registered alias wins. Namespace roots may contain
``{placeholders}`` filled from mount data and render values, which lets
one alias point at a per-request directory (``/themes/{theme}``).
"""

from __future__ import annotations

import posixpath
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from kiln.environment.exceptions import ResolutionError

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][\w.]*)\}")


@dataclass(frozen=True, slots=True)
class NamespaceMapping:
    """An alias and the root location it stands for."""

    alias: str
    root_path: str


def with_extension(path: str, extension: str) -> str:
    """Append ``.extension`` unless ``path`` already ends with it."""
    if not extension or path.endswith("." + extension):
        return path
    return path + "." + extension


class NamespaceResolver:
    """Alias → root mappings with longest-prefix matching.

    Shared by an engine and its forks, like the other registries.
    """

    __slots__ = ("_mappings", "default_alias")

    def __init__(self, default_alias: str = "~") -> None:
        self._mappings: dict[str, NamespaceMapping] = {}
        self.default_alias = default_alias

    def register(self, alias: str, root_path: str) -> NamespaceMapping:
        if not alias:
            raise ValueError("Namespace alias must not be empty")
        root = root_path.replace("\\", "/")
        if len(root) > 1:
            root = root.rstrip("/")
        mapping = NamespaceMapping(alias, root)
        self._mappings[alias] = mapping
        return mapping

    def unregister(self, alias: str) -> NamespaceMapping | None:
        return self._mappings.pop(alias, None)

    def get(self, alias: str) -> NamespaceMapping | None:
        return self._mappings.get(alias)

    def __contains__(self, alias: object) -> bool:
        return alias in self._mappings

    def __iter__(self) -> Iterator[NamespaceMapping]:
        return iter(self._mappings.values())

    def __len__(self) -> int:
        return len(self._mappings)

    def match(self, path: str) -> tuple[NamespaceMapping, str] | None:
        """Longest alias that is ``path`` itself or followed by ``/`` or ``.``.

        Returns the mapping and the remainder after the separator.
        """
        best: NamespaceMapping | None = None
        for alias, mapping in self._mappings.items():
            if path == alias or path.startswith((alias + "/", alias + ".")):
                if best is None or len(alias) > len(best.alias):
                    best = mapping
        if best is not None:
            return best, path[len(best.alias) + 1 :]
        default = self._mappings.get(self.default_alias)
        if default is not None:
            return default, path
        return None

    def resolve(
        self,
        logical: str,
        *,
        extension: str,
        defaults: Mapping[str, Any] | None = None,
        mounts: Mapping[str, Mapping[str, Any]] | None = None,
        values: Mapping[str, Any] | None = None,
    ) -> str:
        """Turn a logical path into a concrete one.

        Args:
            logical: Path as written in a template or passed to ``view()``.
            extension: Template extension to append, without the dot.
            defaults: Placeholder values of lowest priority (globals, context).
            mounts: Per-alias placeholder data, overriding ``defaults``.
            values: Placeholder values of highest priority (render locals).

        Raises:
            ResolutionError: No namespace matches, or a placeholder is unfilled.
        """
        if not logical:
            raise ResolutionError("Empty view path", path=logical)
        path = logical.replace("\\", "/")
        if path.startswith("/"):
            return with_extension(posixpath.normpath(path), extension)

        found = self.match(path)
        if found is None:
            raise ResolutionError(
                f"No namespace matches '{logical}'",
                path=logical,
                suggestion=(
                    f"Register one with engine.namespace('{self.default_alias}', '/path/to/views')"
                ),
            )
        mapping, rest = found

        if not (extension and rest.endswith("." + extension)):
            rest = "/".join(
                part if part in (".", "..") else part.replace(".", "/")
                for part in rest.split("/")
            )
        rest = rest.lstrip("/")

        data: dict[str, Any] = dict(defaults or {})
        if mounts and mapping.alias in mounts:
            data.update(mounts[mapping.alias])
        if values:
            data.update(values)
        root = self._fill(mapping, data, logical)

        joined = posixpath.join(root, rest) if rest else root
        return with_extension(posixpath.normpath(joined), extension)

    def _fill(self, mapping: NamespaceMapping, data: Mapping[str, Any], logical: str) -> str:
        def replace(match: re.Match[str]) -> str:
            value: Any = data
            for part in match.group(1).split("."):
                if isinstance(value, Mapping) and part in value:
                    value = value[part]
                else:
                    raise ResolutionError(
                        f"Namespace '{mapping.alias}' needs a value for "
                        f"'{{{match.group(1)}}}' to resolve '{logical}'",
                        path=logical,
                    )
            return str(value)

        return _PLACEHOLDER_RE.sub(replace, mapping.root_path)
