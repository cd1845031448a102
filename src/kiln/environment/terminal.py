"""ANSI colors for kiln diagnostics.

Colors are used only when stdout is a TTY. ``NO_COLOR`` disables them and
``FORCE_COLOR`` enables them regardless (https://no-color.org/).
"""

from __future__ import annotations

import os
import re
import sys
from typing import Literal

_CODES = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "cyan": "\033[36m",
    "yellow": "\033[33m",
    "green": "\033[32m",
    "bright_red": "\033[91m",
    "bright_blue": "\033[94m",
}

ColorName = Literal["reset", "bold", "dim", "cyan", "yellow", "green", "bright_red", "bright_blue"]

_ANSI_RE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def _should_use_colors() -> bool:
    if os.environ.get("FORCE_COLOR"):
        return True
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


_USE_COLORS = _should_use_colors()


def supports_color() -> bool:
    """Whether diagnostics are colorized in this process."""
    return _USE_COLORS


def colorize(text: str, *colors: ColorName) -> str:
    """Wrap ``text`` in the given ANSI codes when colors are enabled."""
    if not _USE_COLORS or not colors:
        return text
    prefix = "".join(_CODES[color] for color in colors)
    return f"{prefix}{text}{_CODES['reset']}"


def strip_colors(text: str) -> str:
    """Remove ANSI escape sequences from ``text``."""
    return _ANSI_RE.sub("", text)


def error_code(text: str) -> str:
    return colorize(text, "bright_red", "bold")


def location(text: str) -> str:
    return colorize(text, "cyan")


def line_number(text: str) -> str:
    return colorize(text, "yellow")


def error_line(text: str) -> str:
    return colorize(text, "bright_red")


def hint(text: str) -> str:
    return colorize(text, "green")


def dim_text(text: str) -> str:
    return colorize(text, "dim")


def format_source_line(lineno: int, content: str, is_error: bool = False) -> str:
    """Format one numbered source line, marking the error line with ``>``.

    Example:
        >>> strip_colors(format_source_line(42, "{{ user }}", is_error=True))
        '> 42 | {{ user }}'
    """
    marker = ">" if is_error else " "
    number = line_number(f"{marker}{lineno:>3}")
    body = error_line(content) if is_error else dim_text(content)
    return f"{number} | {body}"
