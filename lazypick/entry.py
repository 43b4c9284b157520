"""Finder entries and ANSI helpers.

An entry is flattened to exactly one protocol line before it reaches the
finder. ANSI color sequences survive; every other control byte is escaped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0a-\x1a\x1c-\x1f\x7f-\x9f]")
NBSP = "\u00a0"

ANSI_COLORS: dict[str, str] = {
    "clear": "\033[0m",
    "bold": "\033[1m",
    "black": "\033[0;30m",
    "red": "\033[0;31m",
    "green": "\033[0;32m",
    "yellow": "\033[0;33m",
    "blue": "\033[0;34m",
    "magenta": "\033[0;35m",
    "cyan": "\033[0;36m",
    "grey": "\033[0;90m",
    "dark_grey": "\033[0;97m",
    "white": "\033[0;98m",
}


def ansi_color(name: str | None, text: str) -> str:
    """Wrap ``text`` in the named color; unknown or empty names pass through."""
    if not name or name not in ANSI_COLORS or not text:
        return text
    return f"{ANSI_COLORS[name]}{text}{ANSI_COLORS['clear']}"


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text)


def sanitize_line(text: str) -> str:
    """Make ``text`` safe to send as one finder input line.

    Newlines and carriage returns become the two-character sequences ``\\n``
    and ``\\r``; other C0/C1 controls become ``\\xNN``. ESC and tab are kept
    so colored entries still render.
    """
    if _CONTROL_RE.search(text) is None:
        return text

    out: list[str] = []
    for ch in text:
        code = ord(ch)
        if ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch in {"\t", "\x1b"}:
            out.append(ch)
        elif code < 32 or code == 127 or 0x80 <= code <= 0x9F:
            out.append(f"\\x{code:02x}")
        else:
            out.append(ch)
    return "".join(out)


@dataclass(frozen=True)
class Entry:
    """One selectable line with optional decoration."""

    text: str
    icon: str | None = None
    color: str | None = None
    icon_color: str | None = None

    def display(self) -> str:
        """Return the single-line string handed to the finder."""
        body = ansi_color(self.color, self.text)
        if self.icon:
            body = f"{ansi_color(self.icon_color, self.icon)}{NBSP}{body}"
        return sanitize_line(body)


def to_line(item: Entry | str) -> str:
    """Flatten an ``Entry`` or plain string into one protocol line."""
    if isinstance(item, Entry):
        return item.display()
    return sanitize_line(str(item))


__all__ = [
    "ANSI_COLORS",
    "ANSI_ESCAPE_RE",
    "Entry",
    "NBSP",
    "ansi_color",
    "sanitize_line",
    "strip_ansi",
    "to_line",
]
