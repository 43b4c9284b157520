"""Actions bound to finder keys and the stock git actions.

An action receives the selected lines and the session options. Actions with
``reload`` run inside the live finder through the shell bridge and refresh
the list afterwards; actions with ``resume`` run after the finder exits and
relaunch it in the same session.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .command import git_cwd
from .entry import NBSP, strip_ansi

if TYPE_CHECKING:
    from .config import FinderOptions

logger = logging.getLogger(__name__)

ActionFn = Callable[[list[str], "FinderOptions"], Any]


@dataclass(frozen=True)
class Action:
    fn: ActionFn
    desc: str | None = None
    reload: bool = False
    resume: bool = False


def as_action(value: Action | ActionFn) -> Action:
    if isinstance(value, Action):
        return value
    if callable(value):
        return Action(fn=value)
    raise TypeError(f"not an action: {value!r}")


def selected_lines(selected: Sequence[str], _options: FinderOptions | None = None) -> list[str]:
    """Default action: hand the selection back to the caller."""
    return [strip_ansi(line) for line in selected]


def status_entry_path(entry: str) -> str:
    """Extract the (destination) path from a rendered git status entry."""
    text = strip_ansi(entry)
    if NBSP in text:
        text = text.split(NBSP)[-1]
    else:
        text = text[3:] if len(text) > 3 else text
    if " -> " in text:
        text = text.split(" -> ", 1)[1]
    return text.strip()


def status_paths(selected: Sequence[str], _options: FinderOptions | None = None) -> list[str]:
    return [path for path in (status_entry_path(line) for line in selected) if path]


def commit_hashes(selected: Sequence[str], _options: FinderOptions | None = None) -> list[str]:
    out: list[str] = []
    for line in selected:
        fields = strip_ansi(line).split()
        if fields:
            out.append(fields[0])
    return out


def branch_name(entry: str) -> str:
    """Normalize a ``git branch --all`` line to a ref name.

    Handles ``  branch``, ``* branch``, ``remotes/origin/branch`` and
    ``(HEAD detached at origin/branch)``.
    """
    text = strip_ansi(entry).strip()
    if text.startswith("*"):
        text = text[1:].strip()
    if " -> " in text:
        text = text.split(" -> ", 1)[0].strip()
    if text.endswith(")"):
        text = text[:-1]
    return text.split()[-1] if text.split() else ""


def _run_git(args: list[str], options: FinderOptions) -> subprocess.CompletedProcess[str] | None:
    cmd = git_cwd(
        "git " + " ".join(shlex.quote(arg) for arg in args),
        git_dir=options.git_dir,
        git_worktree=options.git_worktree,
    )
    try:
        proc = subprocess.run(
            cmd,
            shell=True,
            cwd=options.cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        logger.warning("%s: %s", cmd, exc)
        return None
    if proc.returncode != 0:
        logger.warning("%s failed: %s", cmd, proc.stderr.strip())
    return proc


def git_stage(selected: list[str], options: FinderOptions) -> None:
    paths = status_paths(selected)
    if paths:
        _run_git(["add", "--", *paths], options)


def git_unstage(selected: list[str], options: FinderOptions) -> None:
    paths = status_paths(selected)
    if paths:
        _run_git(["reset", "-q", "--", *paths], options)


def git_reset(selected: list[str], options: FinderOptions) -> None:
    """Discard worktree changes of the selected paths."""
    paths = status_paths(selected)
    if paths:
        _run_git(["checkout", "-q", "--", *paths], options)


def git_switch(selected: list[str], options: FinderOptions) -> str | None:
    if not selected:
        return None
    branch = branch_name(selected[0])
    if not branch:
        return None
    if "HEAD detached" in strip_ansi(selected[0]):
        args = ["switch", "--detach", branch]
    elif branch.startswith("remotes/"):
        args = ["switch", "--track", branch[len("remotes/") :]]
    else:
        args = ["switch", branch]
    proc = _run_git(args, options)
    if proc is None or proc.returncode != 0:
        return None
    return branch


__all__ = [
    "Action",
    "ActionFn",
    "as_action",
    "branch_name",
    "commit_hashes",
    "git_reset",
    "git_stage",
    "git_switch",
    "git_unstage",
    "selected_lines",
    "status_entry_path",
    "status_paths",
]
