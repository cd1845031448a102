"""Utility modules for kiln."""

from kiln.utils.html import Markup, escape, format_attributes, html_escape

__all__ = ["Markup", "escape", "format_attributes", "html_escape"]
