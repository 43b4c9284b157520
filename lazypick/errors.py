"""Exception hierarchy shared by the registry, builder, and session driver.

Only configuration and precondition errors abort a session before it starts.
Everything else stays local to one sub-invocation.
"""

from __future__ import annotations


class LazypickError(Exception):
    """Base class for all lazypick errors."""


class ConfigurationError(LazypickError):
    """Options are missing or malformed; no finder process is spawned."""


class NoWorkspace(LazypickError):
    """A working-directory override does not point at an existing directory.

    ``command`` carries the unmodified command line so callers can report it.
    """

    def __init__(self, cwd: str, command: str = "") -> None:
        super().__init__(f"not a directory: {cwd}")
        self.cwd = cwd
        self.command = command


class NoRepository(NoWorkspace):
    """A git-scoped command was asked to run outside a git work tree."""

    def __init__(self, cwd: str, command: str = "") -> None:
        super().__init__(cwd, command)
        self.args = (f"not a git repository: {cwd}",)


class InvocationError(LazypickError):
    """A registered callback could not be invoked.

    ``reason`` is ``"unknown_id"`` when the id was never issued or has been
    released.
    """

    def __init__(self, callback_id: int, reason: str = "unknown_id") -> None:
        super().__init__(f"callback {callback_id}: {reason}")
        self.callback_id = callback_id
        self.reason = reason


class ProducerCancelled(LazypickError):
    """A lazy content producer was stopped before exhausting its source."""


__all__ = [
    "ConfigurationError",
    "InvocationError",
    "LazypickError",
    "NoRepository",
    "NoWorkspace",
    "ProducerCancelled",
]
