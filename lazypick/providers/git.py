"""Git status, commit and branch pickers."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from .. import actions
from ..command import Bindings, CommandSpec, git_cwd, git_root
from ..config import FinderOptions, normalize_options, provider_defaults
from ..entry import NBSP, ansi_color, strip_ansi
from ..errors import NoRepository
from ..finder import Finder
from ..session import Session, set_header
from ..shell import ShellBridge
from . import capture, launch

logger = logging.getLogger(__name__)

_RENAME_RE = re.compile(r"(.*)\s->\s(.*)")
_UNTRACKED_PREVIEW_LINES = 500

Options = Mapping[str, Any] | None


def set_git_cwd_args(options: FinderOptions) -> FinderOptions | None:
    """Root ``options`` in a git work tree, or return ``None`` if there is none.

    A caller-supplied ``cwd`` inside the repository is kept as is.
    """
    try:
        root = git_root(options.cwd)
    except NoRepository as exc:
        logger.warning("%s", exc)
        return None
    if not options.cwd:
        options.cwd = str(root)
    if (options.git_dir or options.git_worktree) and options.cmd:
        options.cmd = git_cwd(options.cmd, git_dir=options.git_dir, git_worktree=options.git_worktree)
    return options


def _git_preview_template(options: FinderOptions, template: str) -> str:
    return git_cwd(template, cwd=options.cwd, git_dir=options.git_dir, git_worktree=options.git_worktree)


def status_transform(options: FinderOptions) -> Callable[[str], str | None]:
    """Render ``git status -s`` lines as ``<staged> <unstaged>  <path>``."""

    def iconify(flag: str, staged: bool) -> str:
        spec = options.icons.get(flag)
        if not spec:
            return flag
        icon = spec.get("icon", flag)
        if options.color_icons:
            icon = ansi_color("green" if staged else spec.get("color", "dark_grey"), icon)
        return icon

    def transform(line: str) -> str | None:
        # porcelain short format is always "XY <path>"
        if len(line) < 4:
            return line
        line = strip_ansi(line)
        first, second = line[3:].replace('"', ""), None
        renamed = _RENAME_RE.match(first)
        if renamed:
            first, second = renamed.group(1), renamed.group(2)
        staged = iconify(line[0].replace("?", " "), True)
        unstaged = iconify(line[1], False)
        path = f"{first} -> {second}" if second else first
        return f"{staged}{NBSP}{unstaged}{NBSP}{NBSP}{path}"

    return transform


def status_preview(options: FinderOptions, template: str) -> Callable[[list[str]], str | None]:
    spec = CommandSpec.from_string(_git_preview_template(options, template))

    def preview(items: list[str]) -> str | None:
        if not items:
            return None
        path = actions.status_entry_path(items[0])
        output = capture(spec.resolve(Bindings(selected=(path,))), cwd=options.cwd)
        if output:
            return output
        target = Path(options.cwd or ".") / path
        if target.is_file():
            try:
                with target.open(encoding="utf-8", errors="replace") as handle:
                    return "".join(line for _, line in zip(range(_UNTRACKED_PREVIEW_LINES), handle))
            except OSError as exc:
                return str(exc)
        return None

    return preview


def status(opts: Options = None, *, finder: Finder | None = None, bridge: ShellBridge | None = None) -> Session | None:
    options = normalize_options(opts, provider_defaults("git.status"))
    if options is None:
        return None
    options = set_git_cwd_args(options)
    if options is None or not options.cmd:
        return None
    if isinstance(options.preview, str):
        options.preview = status_preview(options, options.preview)
    if options.fn_transform is None:
        options.fn_transform = status_transform(options)

    # The list is produced by the reload command itself, on launch and on
    # every reload triggered by a stage/unstage/reset key.
    options.reload = options.cmd

    if options.header_prefix is None:
        options.header_prefix = "+ -  "
    if options.header_separator is None:
        options.header_separator = "|"
    options = set_header(options, options.headers or ["actions", "cwd"])
    return launch(options.cmd, options, finder, bridge)


def _git_cmd(options: FinderOptions, finder: Finder | None, bridge: ShellBridge | None) -> Session | None:
    if not options.cmd:
        return None
    options = set_header(options, options.headers or ["cwd"])
    return launch(options.cmd, options, finder, bridge)


def commits(opts: Options = None, *, finder: Finder | None = None, bridge: ShellBridge | None = None) -> Session | None:
    options = normalize_options(opts, provider_defaults("git.commits"))
    if options is None:
        return None
    options = set_git_cwd_args(options)
    if options is None:
        return None
    if isinstance(options.preview, str):
        options.preview = _git_preview_template(options, options.preview)
        if options.preview_pager:
            options.preview = f"{options.preview} | {options.preview_pager}"
    options = set_header(options, options.headers or ["actions", "cwd"])
    return _git_cmd(options, finder, bridge)


def branch_preview(options: FinderOptions, template: str) -> Callable[[list[str]], str | None]:
    spec = CommandSpec.from_string(_git_preview_template(options, template))

    def preview(items: list[str]) -> str | None:
        if not items:
            return None
        branch = actions.branch_name(items[0])
        return capture(spec.resolve(Bindings(selected=(branch,))), cwd=options.cwd)

    return preview


def branches(opts: Options = None, *, finder: Finder | None = None, bridge: ShellBridge | None = None) -> Session | None:
    options = normalize_options(opts, provider_defaults("git.branches"))
    if options is None:
        return None
    options = set_git_cwd_args(options)
    if options is None:
        return None
    options.multi = False
    if isinstance(options.preview, str):
        options.preview = branch_preview(options, options.preview)
    return _git_cmd(options, finder, bridge)


__all__ = [
    "branch_preview",
    "branches",
    "commits",
    "set_git_cwd_args",
    "status",
    "status_preview",
    "status_transform",
]
