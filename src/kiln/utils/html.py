"""HTML escaping utilities for kiln.

``Markup`` marks a string as safe for direct inclusion in HTML output.
Escaping uses ``str.translate`` with a precomputed table, which is the
fastest pure-Python approach for the five significant characters.

Example:
    >>> html_escape("<b>x</b>")
    '&lt;b&gt;x&lt;/b&gt;'
    >>> escape(Markup("<b>x</b>"))
    Markup('<b>x</b>')

"""

from __future__ import annotations

from typing import Any, SupportsIndex

_ESCAPE_TABLE = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&#34;",
        "'": "&#39;",
    }
)


def html_escape(value: str) -> str:
    """Escape the HTML-significant characters of a plain string."""
    return value.translate(_ESCAPE_TABLE)


class Markup(str):
    """A string that is already safe HTML.

    Concatenating a ``Markup`` with a plain string escapes the plain
    string, so safe fragments can be assembled without double escaping.
    """

    __slots__ = ()

    def __new__(cls, value: Any = "") -> Markup:
        if hasattr(value, "__html__") and not isinstance(value, Markup):
            value = value.__html__()
        return super().__new__(cls, value)

    def __html__(self) -> Markup:
        return self

    def __add__(self, other: Any) -> Markup:
        if isinstance(other, str) or hasattr(other, "__html__"):
            return Markup(str.__add__(self, escape(other)))
        return NotImplemented

    def __radd__(self, other: Any) -> Markup:
        if isinstance(other, str) or hasattr(other, "__html__"):
            return Markup(str.__add__(escape(other), self))
        return NotImplemented

    def __mul__(self, count: SupportsIndex) -> Markup:
        return Markup(str.__mul__(self, count))

    def __repr__(self) -> str:
        return f"Markup({str.__repr__(self)})"

    def join(self, iterable: Any) -> Markup:
        return Markup(str.join(self, (escape(item) for item in iterable)))

    @classmethod
    def escape(cls, value: Any) -> Markup:
        """Escape ``value`` unless it is already markup."""
        return escape(value)


def escape(value: Any) -> Markup:
    """Return ``value`` as escaped ``Markup``.

    Objects implementing ``__html__`` are trusted and returned as-is.
    """
    if hasattr(value, "__html__"):
        return Markup(value.__html__())
    return Markup(html_escape(str(value)))


def format_attributes(attributes: dict[str, Any]) -> Markup:
    """Render a mapping as an HTML attribute string with a leading space.

    ``True`` renders a bare attribute; ``False`` and ``None`` drop it.
    """
    parts: list[str] = []
    for name, value in attributes.items():
        if value is None or value is False:
            continue
        if value is True:
            parts.append(f" {name}")
        else:
            parts.append(f' {name}="{escape(value)}"')
    return Markup("".join(parts))
