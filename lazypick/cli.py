"""Command-line front door for lazypick.

Parses CLI options, configures logging, and dispatches into one of the git
pickers. Whatever the chosen action returns is printed, one item per line.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from .providers import git
from .session import Session
from .shell import default_bridge

PICKERS: dict[str, Callable[..., Session | None]] = {
    "git-status": git.status,
    "git-commits": git.commits,
    "git-branches": git.branches,
}


def _existing_dir(value: str) -> str:
    """argparse type for an existing directory."""
    path = Path(value).expanduser()
    if not path.is_dir():
        raise argparse.ArgumentTypeError(f"not a directory: {value!r}")
    return str(path)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lazypick",
        description="Fuzzy-pick git status entries, commits, or branches with fzf.",
    )
    parser.add_argument("picker", choices=sorted(PICKERS), help="Which list to pick from.")
    parser.add_argument("--cwd", type=_existing_dir, default=None, help="Repository directory (default: current).")
    parser.add_argument("--prompt", default=None, help="Override the finder prompt.")
    parser.add_argument("--fzf-bin", default=None, help="Finder executable (default: fzf).")
    parser.add_argument("--no-preview", action="store_true", help="Disable the preview pane.")
    parser.add_argument("--debug", action="store_true", help="Log callback traffic to stderr.")
    return parser


def _format_result(result: object) -> list[str]:
    if result is None:
        return []
    if isinstance(result, str):
        return [result]
    if isinstance(result, (list, tuple)):
        return [str(item) for item in result]
    return [str(result)]


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run the picker, and print the action result.

    Returns ``1`` when no session could start, ``0`` otherwise.
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="lazypick: %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    opts: dict[str, Any] = {"debug": args.debug}
    if args.cwd is not None:
        opts["cwd"] = args.cwd
    if args.prompt is not None:
        opts["prompt"] = args.prompt
    if args.fzf_bin is not None:
        opts["fzf_bin"] = args.fzf_bin
    if args.no_preview:
        opts["preview"] = None

    with default_bridge():
        session = PICKERS[args.picker](opts)
    if session is None:
        return 1
    for line in _format_result(session.action_result):
        sys.stdout.write(line + "\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
