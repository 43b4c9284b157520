"""External finder process wrapper.

Spawns the finder binary, writes entries to its stdin and parses the
``--print-query``/``--expect`` output once it exits.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import IO, Protocol

from .entry import Entry, to_line
from .errors import ConfigurationError
from .producer import LazyContentProducer, Resume

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NO_MATCH = 1
EXIT_INTERRUPTED = 130

Content = Sequence[Entry | str] | LazyContentProducer


@dataclass(frozen=True)
class FinderResult:
    """What the finder reported when it exited."""

    query: str
    key: str
    selected: tuple[str, ...]
    exit_code: int = EXIT_OK

    @property
    def action_key(self) -> str:
        return self.key or "default"


class Finder(Protocol):
    def check(self) -> None: ...

    def run(
        self,
        args: Sequence[str],
        content: Content,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> FinderResult | None: ...


def parse_output(stdout: str, exit_code: int = EXIT_OK) -> FinderResult:
    """Split finder output into query, expect key and selected lines."""
    lines = stdout.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    query = lines[0] if lines else ""
    key = lines[1] if len(lines) > 1 else ""
    return FinderResult(query=query, key=key, selected=tuple(lines[2:]), exit_code=exit_code)


def feed(stream: IO[str], content: Content) -> int:
    """Write ``content`` to ``stream`` and close it; return lines written.

    Static content is written in one go. Producers are pulled one item per
    successful write; a closed pipe cancels the producer.
    """
    written = 0
    if not isinstance(content, LazyContentProducer):
        try:
            payload = "".join(to_line(item) + "\n" for item in content)
            stream.write(payload)
            written = len(content)
        except BrokenPipeError:
            pass
        _close_quietly(stream)
        return written

    def on_item(item: Entry | str, resume: Resume) -> bool:
        nonlocal written
        try:
            stream.write(to_line(item) + "\n")
            stream.flush()
        except (BrokenPipeError, ValueError):
            return True
        written += 1
        resume()
        return False

    def on_done(cancelled: bool) -> None:
        if cancelled:
            logger.debug("content producer cancelled after %d lines", written)
        _close_quietly(stream)

    content.start(on_item, on_done)
    return written


def _close_quietly(stream: IO[str]) -> None:
    try:
        stream.close()
    except (BrokenPipeError, OSError):
        pass


def build_args(
    *,
    prompt: str | None = None,
    header: str | None = None,
    multi: bool = True,
    preview: str | None = None,
    expect: Iterable[str] = (),
    binds: Mapping[str, str] | None = None,
    extra: Mapping[str, str | None] | None = None,
) -> list[str]:
    """Assemble finder flags; ``extra`` maps flag → value (``None`` for bare)."""
    args = ["--ansi", "--print-query"]
    args.append("--multi" if multi else "--no-multi")
    if prompt:
        args.append(f"--prompt={prompt}")
    if header:
        args.append(f"--header={header}")
    if preview:
        args.append(f"--preview={preview}")
    keys = [key for key in expect if key and key != "default"]
    if keys:
        args.append(f"--expect={','.join(keys)}")
    for event, action in (binds or {}).items():
        args.append(f"--bind={event}:{action}")
    for flag, value in (extra or {}).items():
        args.append(flag if value is None or value == "" else f"{flag}={value}")
    return args


class FzfFinder:
    """Runs one ``fzf`` process per call."""

    def __init__(self, binary: str = "fzf") -> None:
        self.binary = binary

    def resolve_binary(self) -> str:
        path = shutil.which(self.binary)
        if path is None:
            raise ConfigurationError(f"finder binary not found: {self.binary}")
        return path

    def check(self) -> None:
        self.resolve_binary()

    def run(
        self,
        args: Sequence[str],
        content: Content,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> FinderResult | None:
        binary = self.resolve_binary()
        logger.debug("spawning %s %s", binary, " ".join(args))
        proc = subprocess.Popen(
            [binary, *args],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        assert proc.stdin is not None and proc.stdout is not None
        feed(proc.stdin, content)
        stdout = proc.stdout.read()
        exit_code = proc.wait()

        if exit_code == EXIT_INTERRUPTED:
            return None
        if exit_code not in (EXIT_OK, EXIT_NO_MATCH):
            logger.warning("%s exited with status %d", self.binary, exit_code)
            return None
        return parse_output(stdout, exit_code)


__all__ = [
    "Content",
    "EXIT_INTERRUPTED",
    "EXIT_NO_MATCH",
    "EXIT_OK",
    "Finder",
    "FinderResult",
    "FzfFinder",
    "build_args",
    "feed",
    "parse_output",
]
