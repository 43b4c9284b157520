"""Host application state the host providers list.

The embedding application fills a ``HostState`` with its command table,
key bindings, event subscriptions and histories; providers only read it.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Keymap:
    mode: str
    lhs: str
    rhs: str | None = None
    callback: Callable[..., Any] | None = None
    desc: str | None = None
    buffer: int = 0


@dataclass(frozen=True)
class Autocmd:
    event: str
    pattern: str = "*"
    group_name: str | None = None
    command: str | None = None
    callback: Callable[..., Any] | None = None

    def callback_location(self) -> tuple[str, int]:
        """Source file and first line of the callback, like a debugger would show."""
        if self.callback is None:
            return "<none>", 0
        target = inspect.unwrap(self.callback)
        try:
            source = inspect.getsourcefile(target) or ""
        except TypeError:
            source = ""
        code = getattr(target, "__code__", None)
        return source, code.co_firstlineno if code is not None else 0


@dataclass
class HostState:
    commands: dict[str, dict[str, Any]] = field(default_factory=dict)
    buffer_commands: dict[str, dict[str, Any]] = field(default_factory=dict)
    keymaps: list[Keymap] = field(default_factory=list)
    buffer_keymaps: list[Keymap] = field(default_factory=list)
    autocmds: list[Autocmd] = field(default_factory=list)
    command_history: list[str] = field(default_factory=list)
    search_history: list[str] = field(default_factory=list)


__all__ = ["Autocmd", "HostState", "Keymap"]
