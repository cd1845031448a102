"""Runtime values injected into generated routines.

``Undefined`` stands in for names that resolve nowhere: it renders as an
empty string, is falsy and iterates as empty, but dereferencing it
raises ``UndefinedError`` naming the identifier. ``Props`` wraps the
render locals so they can be read as attributes (``it.title``).
"""

from __future__ import annotations

import builtins
from collections.abc import Iterator, Mapping
from typing import Any, NoReturn

from kiln.environment.exceptions import UndefinedError
from kiln.utils.html import Markup

# Lowercase literal aliases, so templates may write @if(true)
TEMPLATE_CONSTANTS: dict[str, Any] = {"true": True, "false": False, "null": None}

BUILTINS: dict[str, Any] = vars(builtins)

STATIC_NAMESPACE: dict[str, Any] = {
    "__builtins__": BUILTINS,
    "Markup": Markup,
}


class Undefined:
    """Sentinel for an unresolved template name."""

    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def _fail(self, accessed: str) -> NoReturn:
        root = self._name.split(".", 1)[0]
        raise UndefinedError(root, accessed=accessed)

    def __getattr__(self, attr: str) -> NoReturn:
        if attr.startswith("__"):
            raise AttributeError(attr)
        self._fail(f"{self._name}.{attr}")

    def __getitem__(self, key: Any) -> NoReturn:
        self._fail(f"{self._name}[{key!r}]")

    def __call__(self, *args: Any, **kwargs: Any) -> NoReturn:
        self._fail(f"{self._name}()")

    def __str__(self) -> str:
        return ""

    def __html__(self) -> Markup:
        return Markup("")

    def __bool__(self) -> bool:
        return False

    def __iter__(self) -> Iterator[Any]:
        return iter(())

    def __len__(self) -> int:
        return 0

    def __eq__(self, other: object) -> bool:
        return other is None or isinstance(other, Undefined)

    def __hash__(self) -> int:
        return hash(None)

    def __repr__(self) -> str:
        return f"Undefined({self._name!r})"


def is_undefined(value: Any) -> bool:
    return isinstance(value, Undefined)


def wrap(value: Any, path: str) -> Any:
    """Wrap plain dicts so nested keys read as attributes."""
    if type(value) is dict:
        return Props(value, path)
    return value


class Props(Mapping[str, Any]):
    """Read-only attribute view over a mapping of template values.

    ``it.title`` and ``it["title"]`` both read ``title``; a missing key
    read as an attribute yields ``Undefined`` instead of raising. Mapping
    method names (``items``, ``keys``...) resolve to methods, so keys
    with those names need item access.
    """

    __slots__ = ("_data", "_path")

    def __init__(self, data: Mapping[str, Any] | None = None, path: str = "it") -> None:
        self._data: Mapping[str, Any] = data if data is not None else {}
        self._path = path

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        try:
            value = self._data[name]
        except KeyError:
            return Undefined(f"{self._path}.{name}")
        return wrap(value, f"{self._path}.{name}")

    def __getitem__(self, key: str) -> Any:
        return wrap(self._data[key], f"{self._path}.{key}")

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __repr__(self) -> str:
        return f"Props({self._data!r})"
