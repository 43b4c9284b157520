"""Terminal highlighting for preview text.

Previews are printed by a finder sub-process, so everything here renders to
plain ANSI via Pygments' terminal formatters.
"""

from __future__ import annotations

import pprint

from pygments import highlight
from pygments.formatters import Terminal256Formatter
from pygments.lexer import Lexer
from pygments.lexers import PythonLexer, TextLexer
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

DEFAULT_STYLE = "monokai"

_FORMATTERS: dict[str, Terminal256Formatter] = {}
_VALID_STYLES: set[str] = set()
_INVALID_STYLES: set[str] = set()


def _normalize_style(style: str) -> str:
    if style in _VALID_STYLES:
        return style
    if style in _INVALID_STYLES:
        return DEFAULT_STYLE
    try:
        get_style_by_name(style)
    except ClassNotFound:
        _INVALID_STYLES.add(style)
        return DEFAULT_STYLE
    _VALID_STYLES.add(style)
    return style


def _formatter_for_style(style: str) -> Terminal256Formatter:
    formatter = _FORMATTERS.get(style)
    if formatter is None:
        formatter = Terminal256Formatter(style=style)
        _FORMATTERS[style] = formatter
    return formatter


def colorize(text: str, lexer: Lexer | None = None, style: str = DEFAULT_STYLE, no_color: bool = False) -> str:
    """Highlight ``text``; trailing newline handling matches the input."""
    if no_color or not text:
        return text
    formatter = _formatter_for_style(_normalize_style(style))
    rendered = highlight(text, lexer or TextLexer(), formatter)
    if not text.endswith("\n") and rendered.endswith("\n"):
        rendered = rendered[:-1]
    return rendered


def colorize_value(value: object, style: str = DEFAULT_STYLE, no_color: bool = False) -> str:
    """Pretty-print a Python value and highlight it as Python source."""
    return colorize(pprint.pformat(value, width=80, sort_dicts=False), PythonLexer(), style, no_color)


__all__ = ["DEFAULT_STYLE", "colorize", "colorize_value"]
