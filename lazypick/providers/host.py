"""Pickers over the host application's own registries.

Commands, command/search history, key bindings and event subscriptions
("autocmds") all come from a ``HostState`` supplied by the caller.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from ..config import GLOBALS, FinderOptions, normalize_options, provider_defaults
from ..entry import ansi_color, strip_ansi
from ..finder import Finder
from ..highlight import colorize_value
from ..host import Autocmd, HostState, Keymap
from ..producer import LazyContentProducer
from ..session import Session
from ..shell import ShellBridge
from . import launch

logger = logging.getLogger(__name__)

Options = Mapping[str, Any] | None

MODE_COLORS = {
    "n": "blue",
    "i": "red",
    "c": "yellow",
    "v": "magenta",
    "t": "green",
}
_WHITESPACE_RE = re.compile(r"\s")
_DESC_BREAK_RE = re.compile(r"\n\s*")
_HISTORY_LASTUSED = 4
DEFAULT_KEYMAP_FORMATTER: str = GLOBALS["keymaps"]["formatter"]


def _command_preview(host: HostState) -> Callable[[list[str]], str | None]:
    def preview(items: list[str]) -> str | None:
        if not items:
            return None
        name = strip_ansi(items[0]).strip()
        definition = host.buffer_commands.get(name, host.commands.get(name))
        if definition is None:
            return name
        return colorize_value(definition)

    return preview


def command_entries(host: HostState, sort_lastused: bool = False) -> list[str]:
    """Global commands in magenta, buffer-local ones in green.

    With ``sort_lastused`` the commands found in the last few history lines
    come first, most recent on top; otherwise the list is sorted by name.
    """
    global_commands = dict(host.commands)
    buffer_commands = dict(host.buffer_commands)
    entries: list[str] = []

    if sort_lastused:
        for line in reversed(host.command_history[-_HISTORY_LASTUSED:]):
            words = line.split()
            if not words:
                continue
            name = words[0]
            if name in buffer_commands:
                entries.append(ansi_color("green", name))
                del buffer_commands[name]
                global_commands.pop(name, None)
            elif name in global_commands:
                entries.append(ansi_color("magenta", name))
                del global_commands[name]

    rest = [ansi_color("magenta", name) for name in global_commands if name not in buffer_commands]
    rest += [ansi_color("green", name) for name in buffer_commands]
    if not sort_lastused:
        rest.sort(key=strip_ansi)
    return entries + rest


def commands(
    host: HostState,
    opts: Options = None,
    *,
    finder: Finder | None = None,
    bridge: ShellBridge | None = None,
) -> Session | None:
    options = normalize_options(opts, provider_defaults("commands"))
    if options is None:
        return None
    entries = command_entries(host, options.sort_lastused)
    options.multi = False
    if options.preview is None:
        options.preview = _command_preview(host)
    return launch(entries, options, finder, bridge)


def history_entries(history: list[str], reverse_list: bool = False) -> list[str]:
    """Newest first, or oldest first with ``reverse_list``."""
    entries = [item for item in history if item.strip()]
    return entries if reverse_list else list(reversed(entries))


def _history(
    history: list[str],
    options: FinderOptions | None,
    finder: Finder | None,
    bridge: ShellBridge | None,
) -> Session | None:
    if options is None:
        return None
    options.multi = False
    return launch(history_entries(history, options.reverse_list), options, finder, bridge)


def command_history(
    host: HostState,
    opts: Options = None,
    *,
    finder: Finder | None = None,
    bridge: ShellBridge | None = None,
) -> Session | None:
    options = normalize_options(opts, provider_defaults("command_history"))
    return _history(host.command_history, options, finder, bridge)


def search_history(
    host: HostState,
    opts: Options = None,
    *,
    finder: Finder | None = None,
    bridge: ShellBridge | None = None,
) -> Session | None:
    options = normalize_options(opts, provider_defaults("search_history"))
    return _history(host.search_history, options, finder, bridge)


def _keymap_ignored(keymap: Keymap, patterns: list[str]) -> bool:
    lhs = keymap.lhs.strip().lower()
    for pattern in patterns:
        try:
            if re.search(pattern.lower(), lhs):
                return True
        except re.error:
            logger.warning("invalid keymap ignore pattern %r", pattern)
    return False


def keymap_entries(keymaps: list[Keymap], options: FinderOptions) -> list[str]:
    """Formatted, de-duplicated and sorted keymap lines (no header)."""
    formatter = options.formatter or DEFAULT_KEYMAP_FORMATTER
    modes = set(options.modes)
    by_key: dict[str, str] = {}
    for keymap in keymaps:
        if modes and keymap.mode not in modes:
            continue
        if keymap.callback is None and not keymap.rhs:
            continue
        if _keymap_ignored(keymap, options.ignore_patterns):
            continue
        desc = _DESC_BREAK_RE.sub(" ", keymap.desc or "")[:30]
        detail = keymap.rhs or getattr(keymap.callback, "__qualname__", repr(keymap.callback))
        line = formatter.format(
            mode=ansi_color(MODE_COLORS.get(keymap.mode, "blue"), keymap.mode),
            lhs=_WHITESPACE_RE.sub("<Space>", keymap.lhs),
            desc=desc,
            detail=detail,
        )
        by_key[f"[{keymap.buffer}:{keymap.mode}:{keymap.lhs}]"] = line
    return sorted(by_key.values(), key=strip_ansi)


def keymaps(
    host: HostState,
    opts: Options = None,
    *,
    finder: Finder | None = None,
    bridge: ShellBridge | None = None,
) -> Session | None:
    options = normalize_options(opts, provider_defaults("keymaps"))
    if options is None:
        return None
    formatter = options.formatter or DEFAULT_KEYMAP_FORMATTER
    entries = keymap_entries(host.keymaps + host.buffer_keymaps, options)
    entries.insert(0, formatter.format(mode="m", lhs="keymap", desc="description", detail="detail"))
    options.multi = False
    options.fzf_opts["--header-lines"] = "1"
    return launch(entries, options, finder, bridge)


def autocmd_line(autocmd: Autocmd) -> str:
    source, line = autocmd.callback_location()
    group = autocmd.group_name.strip() if autocmd.group_name else " "
    if autocmd.callback is not None:
        detail = ansi_color("red", getattr(autocmd.callback, "__qualname__", repr(autocmd.callback)))
    else:
        detail = autocmd.command or ""
    return "{}:{}:{} │ {} │ {:<18} │ {}".format(
        source,
        line,
        ansi_color("yellow", f"{autocmd.event:<28}"),
        ansi_color("blue", f"{group:<34}"),
        autocmd.pattern,
        detail,
    )


def autocmd_producer(autocmds: list[Autocmd]) -> LazyContentProducer[str]:
    def lines() -> Iterator[str]:
        for autocmd in autocmds:
            yield autocmd_line(autocmd)

    return LazyContentProducer(lines())


def autocmds(
    host: HostState,
    opts: Options = None,
    *,
    finder: Finder | None = None,
    bridge: ShellBridge | None = None,
) -> Session | None:
    options = normalize_options(opts, provider_defaults("autocmds"))
    if options is None:
        return None
    registered = list(host.autocmds)
    if not registered:
        return None
    return launch(lambda: autocmd_producer(registered), options, finder, bridge)


__all__ = [
    "autocmd_line",
    "autocmd_producer",
    "autocmds",
    "command_entries",
    "command_history",
    "commands",
    "history_entries",
    "keymap_entries",
    "keymaps",
    "search_history",
]
