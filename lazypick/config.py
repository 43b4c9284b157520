"""Provider defaults, user JSON config, and option normalization.

User overrides live in a JSON object keyed by provider name (``git.status``,
``keymaps``...) plus the top-level ``fzf_bin`` and ``fzf_opts`` keys. All file
access tolerates errors: a missing or malformed config behaves like ``{}``.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from . import actions
from .actions import Action, as_action
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

APP_NAME = "lazypick"
CONFIG_FILENAME = "config.json"
DEFAULT_CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
CONFIG_PATH = DEFAULT_CONFIG_PATH


GIT_ICONS: dict[str, dict[str, str]] = {
    "M": {"icon": "M", "color": "yellow"},
    "D": {"icon": "D", "color": "red"},
    "A": {"icon": "A", "color": "green"},
    "R": {"icon": "R", "color": "yellow"},
    "C": {"icon": "C", "color": "yellow"},
    "T": {"icon": "T", "color": "magenta"},
    "?": {"icon": "?", "color": "magenta"},
}

GLOBALS: dict[str, dict[str, Any]] = {
    "git.status": {
        "prompt": "GitStatus> ",
        "cmd": "git -c color.status=false status -s",
        "preview": "git diff --color HEAD -- {}",
        "git_scoped": True,
        "color_icons": True,
        "icons": GIT_ICONS,
        "actions": {
            "default": Action(actions.status_paths),
            "right": Action(actions.git_stage, "stage", reload=True),
            "left": Action(actions.git_unstage, "unstage", reload=True),
            "ctrl-x": Action(actions.git_reset, "reset", reload=True),
        },
    },
    "git.commits": {
        "prompt": "Commits> ",
        "cmd": "git log --color --pretty=format:'%C(yellow)%h%Creset %Cgreen(%><(12)%cr%><|(12))%Creset %s %C(blue)<%an>%Creset'",
        "preview": "git show --pretty='%Cred%H%n%Cblue%an <%ae>%n%C(yellow)%cD%n%Cgreen%s' --color {1}",
        "git_scoped": True,
        "actions": {
            "default": Action(actions.commit_hashes),
        },
    },
    "git.branches": {
        "prompt": "Branches> ",
        "cmd": "git branch --all --color",
        "preview": "git log --graph --pretty=oneline --abbrev-commit --color {}",
        "git_scoped": True,
        "multi": False,
        "actions": {
            "default": Action(actions.git_switch, "switch"),
        },
    },
    "commands": {
        "prompt": "Commands> ",
        "multi": False,
        "sort_lastused": False,
        "actions": {"default": Action(actions.selected_lines)},
    },
    "command_history": {
        "prompt": "Command History> ",
        "multi": False,
        "reverse_list": False,
        "actions": {"default": Action(actions.selected_lines)},
    },
    "search_history": {
        "prompt": "Search History> ",
        "multi": False,
        "reverse_list": False,
        "actions": {"default": Action(actions.selected_lines)},
    },
    "keymaps": {
        "prompt": "Keymaps> ",
        "multi": False,
        "modes": ["n", "i", "c", "v", "t"],
        "ignore_patterns": ["^<SNR>", "^<Plug>"],
        "formatter": "{mode} │ {lhs:<14} │ {desc:<33} │ {detail}",
        "actions": {"default": Action(actions.selected_lines)},
    },
    "autocmds": {
        "prompt": "Autocmds> ",
        "actions": {"default": Action(actions.selected_lines)},
    },
}


def load_config() -> dict[str, object]:
    """Load the user config object, or ``{}`` when unusable."""
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict[str, object]) -> None:
    """Persist config data as pretty-printed JSON; write errors are logged."""
    try:
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        CONFIG_PATH.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        logger.warning("could not write %s: %s", CONFIG_PATH, exc)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return ``base`` updated recursively with ``override``; inputs untouched."""
    merged: dict[str, Any] = {}
    for key, value in base.items():
        merged[key] = value if callable(value) else copy.deepcopy(value)
    for key, value in (override or {}).items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def provider_defaults(name: str) -> dict[str, Any]:
    """Built-in defaults for ``name`` merged with the user's config."""
    if name not in GLOBALS:
        raise ConfigurationError(f"unknown provider: {name}")
    user = load_config()
    defaults = deep_merge(GLOBALS[name], {})
    for key in ("fzf_bin", "fzf_opts"):
        if key in user:
            defaults[key] = copy.deepcopy(user[key])
    section = user.get(name)
    if isinstance(section, dict):
        defaults = deep_merge(defaults, section)
    elif section is not None:
        logger.warning("ignoring config section %r: expected an object", name)
    return defaults


@dataclass
class FinderOptions:
    """Normalized options for one finder session."""

    prompt: str | None = None
    cmd: str | None = None
    cwd: str | None = None
    git_dir: str | None = None
    git_worktree: str | None = None
    git_scoped: bool = False
    header: str | None = None
    headers: list[str] | None = None
    header_prefix: str | None = None
    header_separator: str | None = None
    preview: Any = None
    preview_pager: str | None = None
    reload: Any = None
    reload_events: list[str] = field(default_factory=list)
    fn_transform: Callable[[str], str | None] | None = None
    actions: dict[str, Action] = field(default_factory=dict)
    multi: bool = True
    fzf_bin: str = "fzf"
    fzf_opts: dict[str, str | None] = field(default_factory=dict)
    debug: bool = False
    color_icons: bool = False
    icons: dict[str, dict[str, str]] = field(default_factory=dict)
    sort_lastused: bool = False
    reverse_list: bool = False
    modes: list[str] = field(default_factory=list)
    ignore_patterns: list[str] = field(default_factory=list)
    formatter: str | None = None


_STRING_FIELDS = {
    "prompt", "cmd", "cwd", "git_dir", "git_worktree", "header",
    "header_prefix", "header_separator", "preview_pager", "fzf_bin", "formatter",
}
_BOOL_FIELDS = {"git_scoped", "multi", "debug", "color_icons", "sort_lastused", "reverse_list"}
_LIST_FIELDS = {"headers", "reload_events", "modes", "ignore_patterns"}
_DICT_FIELDS = {"fzf_opts", "icons"}
_FIELD_NAMES = {f.name for f in fields(FinderOptions)}


def _check(key: str, value: Any) -> Any:
    if value is None:
        return value
    if key in _STRING_FIELDS and not isinstance(value, str):
        raise ConfigurationError(f"option {key!r} must be a string, got {type(value).__name__}")
    if key in _BOOL_FIELDS and not isinstance(value, bool):
        raise ConfigurationError(f"option {key!r} must be a boolean, got {type(value).__name__}")
    if key in _LIST_FIELDS:
        if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
            raise ConfigurationError(f"option {key!r} must be a list of strings")
        return list(value)
    if key in _DICT_FIELDS and not isinstance(value, Mapping):
        raise ConfigurationError(f"option {key!r} must be an object")
    if key in {"preview", "reload"} and not (isinstance(value, str) or callable(value)):
        raise ConfigurationError(f"option {key!r} must be a command string or a callable")
    if key == "fn_transform" and not callable(value):
        raise ConfigurationError("option 'fn_transform' must be callable")
    if key == "actions":
        if not isinstance(value, Mapping):
            raise ConfigurationError("option 'actions' must be an object")
        try:
            return {str(k): as_action(v) for k, v in value.items() if v is not None}
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from exc
    return value


def options_from_mapping(data: Mapping[str, Any]) -> FinderOptions:
    """Validate ``data`` and build ``FinderOptions``; raises ``ConfigurationError``."""
    unknown = sorted(set(data) - _FIELD_NAMES)
    if unknown:
        raise ConfigurationError(f"unknown option(s): {', '.join(unknown)}")
    values = {key: _check(key, value) for key, value in data.items()}
    if values.get("fzf_bin") is None:
        values.pop("fzf_bin", None)
    for key in ("multi", "reload_events", "actions", "fzf_opts", "icons", "modes", "ignore_patterns"):
        if key in values and values[key] is None:
            values.pop(key)
    return FinderOptions(**values)


def normalize_options(
    raw: Mapping[str, Any] | FinderOptions | None,
    defaults: Mapping[str, Any],
) -> FinderOptions | None:
    """Merge call-site options over ``defaults``.

    Returns ``None`` (after logging) when the merged options are invalid, so
    providers can bail out before spawning anything.
    """
    if isinstance(raw, FinderOptions):
        raw = {f.name: getattr(raw, f.name) for f in fields(FinderOptions)}
    if raw is not None and not isinstance(raw, Mapping):
        logger.error("options must be a mapping, got %s", type(raw).__name__)
        return None
    try:
        return options_from_mapping(deep_merge(defaults, raw))
    except ConfigurationError as exc:
        logger.error("invalid options: %s", exc)
        return None


__all__ = [
    "CONFIG_PATH",
    "FinderOptions",
    "GIT_ICONS",
    "GLOBALS",
    "deep_merge",
    "load_config",
    "normalize_options",
    "options_from_mapping",
    "provider_defaults",
    "save_config",
]
