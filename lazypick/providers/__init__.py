"""Providers: turn a data source into finder content and start a session.

Every provider normalizes its options first and returns ``None`` without
spawning anything when options or preconditions are invalid.
"""

from __future__ import annotations

import logging
import subprocess

from ..config import FinderOptions
from ..errors import ConfigurationError, NoWorkspace
from ..finder import Finder
from ..session import ContentSource, Session, start
from ..shell import ShellBridge

logger = logging.getLogger(__name__)


def launch(
    content: ContentSource,
    options: FinderOptions,
    finder: Finder | None = None,
    bridge: ShellBridge | None = None,
) -> Session | None:
    """Start a session, turning start-time failures into ``None``."""
    try:
        return start(content, options, finder=finder, bridge=bridge)
    except ConfigurationError as exc:
        logger.error("%s", exc)
    except NoWorkspace as exc:
        logger.warning("%s", exc)
    return None


def capture(command: str, cwd: str | None = None) -> str:
    """Run a preview command and return what it printed.

    A failing command shows its stderr instead so the preview pane explains
    what went wrong.
    """
    try:
        proc = subprocess.run(
            command,
            shell=True,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        return f"{command}: {exc}"
    if proc.returncode != 0 and not proc.stdout:
        return proc.stderr
    return proc.stdout


__all__ = ["capture", "launch"]
