"""Command templates with finder-style placeholders.

A template is parsed once into literal segments and placeholder markers and
then resolved any number of times against the current query/selection.
Resolution never mutates the template and never fails: a placeholder with
nothing to bind resolves to the empty string.

Supported markers: ``{}`` current line, ``{+}`` all selected lines,
``{q}`` query, ``{n}`` nth whitespace-delimited field (negative from end).
"""

from __future__ import annotations

import enum
import os
import re
import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .errors import NoRepository, NoWorkspace

_PLACEHOLDER_RE = re.compile(r"\{(\+|q|-?\d+)?\}")


class PlaceholderKind(enum.Enum):
    CURRENT = "{}"
    SELECTED = "{+}"
    QUERY = "{q}"
    FIELD = "{n}"


@dataclass(frozen=True)
class Placeholder:
    kind: PlaceholderKind
    index: int = 0

    def __str__(self) -> str:
        if self.kind is PlaceholderKind.FIELD:
            return "{%d}" % self.index
        return self.kind.value


@dataclass(frozen=True)
class Bindings:
    """Values placeholders resolve against at invocation time."""

    query: str = ""
    selected: tuple[str, ...] = ()

    @classmethod
    def from_args(cls, args: Sequence[str]) -> Bindings:
        """Decode the shell bridge layout ``[query, *selected]``."""
        if not args:
            return cls()
        return cls(query=args[0], selected=tuple(args[1:]))

    @property
    def current(self) -> str:
        return self.selected[0] if self.selected else ""


@dataclass(frozen=True)
class Template:
    """Ordered literal segments and placeholders."""

    segments: tuple[str | Placeholder, ...] = ()

    @classmethod
    def parse(cls, text: str) -> Template:
        segments: list[str | Placeholder] = []
        pos = 0
        for match in _PLACEHOLDER_RE.finditer(text):
            if match.start() > pos:
                segments.append(text[pos : match.start()])
            token = match.group(1)
            if token is None:
                segments.append(Placeholder(PlaceholderKind.CURRENT))
            elif token == "+":
                segments.append(Placeholder(PlaceholderKind.SELECTED))
            elif token == "q":
                segments.append(Placeholder(PlaceholderKind.QUERY))
            else:
                segments.append(Placeholder(PlaceholderKind.FIELD, int(token)))
            pos = match.end()
        if pos < len(text):
            segments.append(text[pos:])
        return cls(tuple(segments))

    @property
    def placeholders(self) -> tuple[Placeholder, ...]:
        return tuple(seg for seg in self.segments if isinstance(seg, Placeholder))

    def __str__(self) -> str:
        return "".join(str(seg) for seg in self.segments)


def parse_template(text: str) -> Template:
    return Template.parse(text)


def resolve_placeholder(placeholder: Placeholder, bindings: Bindings) -> str:
    """Return the raw (unquoted) value of one placeholder."""
    kind = placeholder.kind
    if kind is PlaceholderKind.QUERY:
        return bindings.query
    if kind is PlaceholderKind.CURRENT:
        return bindings.current
    if kind is PlaceholderKind.SELECTED:
        return " ".join(bindings.selected)

    fields = bindings.current.split()
    index = placeholder.index
    if index > 0 and index <= len(fields):
        return fields[index - 1]
    if index < 0 and -index <= len(fields):
        return fields[index]
    return ""


def _render(placeholder: Placeholder, bindings: Bindings) -> str:
    if placeholder.kind is PlaceholderKind.SELECTED and bindings.selected:
        return " ".join(shlex.quote(item) for item in bindings.selected)
    return shlex.quote(resolve_placeholder(placeholder, bindings))


def build(template: Template | str, bindings: Bindings | None = None) -> str:
    """Render ``template`` into a shell command line."""
    if isinstance(template, str):
        template = parse_template(template)
    if bindings is None:
        bindings = Bindings()
    out: list[str] = []
    for seg in template.segments:
        if isinstance(seg, Placeholder):
            out.append(_render(seg, bindings))
        else:
            out.append(seg)
    return "".join(out)


def git_root(cwd: str | Path | None = None, timeout_seconds: float = 2.0) -> Path:
    """Return the top level of the work tree containing ``cwd``.

    Raises ``NoRepository`` when git is missing or ``cwd`` is not inside a
    work tree.
    """
    target = Path(cwd).expanduser() if cwd is not None else Path.cwd()
    try:
        proc = subprocess.run(
            ["git", "-C", str(target), "rev-parse", "--show-toplevel"],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
            timeout=timeout_seconds,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        raise NoRepository(str(target)) from exc
    top = proc.stdout.strip()
    if proc.returncode != 0 or not top:
        raise NoRepository(str(target))
    return Path(top).resolve()


def git_cwd(
    cmd: str,
    cwd: str | None = None,
    git_dir: str | None = None,
    git_worktree: str | None = None,
) -> str:
    """Inject ``-C``/``--git-dir``/``--work-tree`` after a leading ``git``."""
    args = ""
    for flag, value in (("-C", cwd), ("--git-dir", git_dir), ("--work-tree", git_worktree)):
        if value:
            args += f"{flag} {shlex.quote(os.path.expanduser(value))} "
    if not args or not cmd.startswith("git "):
        return cmd
    return "git " + args + cmd[len("git ") :]


@dataclass(frozen=True)
class CommandSpec:
    """A reusable template plus the directory it must run in."""

    template: Template
    cwd: str | None = None
    git_scoped: bool = False

    @classmethod
    def from_string(cls, text: str, cwd: str | None = None, git_scoped: bool = False) -> CommandSpec:
        return cls(Template.parse(text), cwd, git_scoped)

    def resolve(self, bindings: Bindings | None = None, ambient: str | Path | None = None) -> str:
        """Build the command line, prefixing ``cd <cwd> &&`` when needed.

        The prefix is added only when ``cwd`` differs from ``ambient`` (the
        process cwd by default). A missing directory raises ``NoWorkspace``; a
        git-scoped spec outside a work tree raises ``NoRepository``. Both carry
        the unprefixed command line.
        """
        command = build(self.template, bindings)
        if not self.cwd:
            return command

        target = Path(self.cwd).expanduser()
        if not target.is_dir():
            raise NoWorkspace(str(target), command)
        if self.git_scoped:
            try:
                git_root(target)
            except NoRepository as exc:
                raise NoRepository(str(target), command) from exc

        ambient_path = Path(ambient) if ambient is not None else Path.cwd()
        if target.resolve() == ambient_path.resolve():
            return command
        return f"cd {shlex.quote(str(target))} && {command}"


__all__ = [
    "Bindings",
    "CommandSpec",
    "Placeholder",
    "PlaceholderKind",
    "Template",
    "build",
    "git_cwd",
    "git_root",
    "parse_template",
    "resolve_placeholder",
]
