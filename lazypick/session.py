"""Finder session driver.

A session owns one finder run from launch to exit: it assembles the header,
registers reload/preview/action callbacks with the shell bridge, feeds the
initial content, dispatches the selection, and releases everything it
registered once the run ends.

Callback lifetimes:

* the reload handler is registered once per run and protected, so nothing
  registered later (preview re-attachments, actions) can displace it;
* preview handlers get a fresh id every time the finder is (re)launched and
  older ids stay reachable until the session ends;
* ephemeral ids are evicted at the end and the protected id is released last.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import replace
from pathlib import Path

from .actions import Action
from .command import Bindings, CommandSpec
from .config import FinderOptions
from .entry import Entry, ansi_color, to_line
from .errors import ConfigurationError
from .finder import Content, Finder, FinderResult, FzfFinder, build_args
from .producer import LazyContentProducer, ProducerState, Resume, command_producer
from .shell import ShellBridge, default_bridge

logger = logging.getLogger(__name__)

ContentSource = (
    str
    | Sequence[Entry | str]
    | LazyContentProducer
    | Callable[[], LazyContentProducer]
)


def _actions_header(options: FinderOptions) -> str:
    parts = [
        f"{ansi_color('yellow', f'<{key}>')} to {ansi_color('red', action.desc)}"
        for key, action in options.actions.items()
        if action.desc and key != "default"
    ]
    if not parts:
        return ""
    separator = options.header_separator if options.header_separator is not None else ","
    prefix = options.header_prefix if options.header_prefix is not None else ":: "
    return prefix + f" {separator} ".join(parts)


def _cwd_header(options: FinderOptions) -> str:
    if not options.cwd:
        return ""
    cwd = Path(options.cwd).expanduser()
    try:
        if cwd.resolve() == Path.cwd().resolve():
            return ""
    except OSError:
        pass
    text = str(cwd)
    home = str(Path.home())
    if text == home or text.startswith(home + "/"):
        text = "~" + text[len(home) :]
    return f"cwd: {ansi_color('cyan', text)}"


_HEADER_PARTS: dict[str, Callable[[FinderOptions], str]] = {
    "actions": _actions_header,
    "cwd": _cwd_header,
}


def set_header(options: FinderOptions, parts: Sequence[str] | None = None) -> FinderOptions:
    """Return ``options`` with ``header`` assembled from named parts.

    Parts render in the given order and empty ones are skipped. An explicit
    ``header`` already present in ``options`` wins.
    """
    if options.header:
        return options
    names = list(parts if parts is not None else (options.headers or ()))
    rendered: list[str] = []
    for name in names:
        render = _HEADER_PARTS.get(name)
        if render is None:
            logger.warning("unknown header part %r", name)
            continue
        text = render(options)
        if text:
            rendered.append(text)
    if not rendered:
        return options
    return replace(options, header=", ".join(rendered))


class Session:
    """One interactive finder session."""

    def __init__(
        self,
        content: ContentSource,
        options: FinderOptions,
        *,
        finder: Finder | None = None,
        bridge: ShellBridge | None = None,
    ) -> None:
        self.content = content
        self.options = options
        self.finder = finder if finder is not None else FzfFinder(options.fzf_bin)
        self.bridge = bridge if bridge is not None else default_bridge()
        self.registry = self.bridge.registry
        self.cwd = options.cwd
        self.header = options.header
        self.callback_ids: list[int] = []
        self.protected_id: int | None = None
        self.reload_command: str | None = None
        self.preview_command: str | None = None
        self.result: FinderResult | None = None
        self.action_result: object = None
        self.launches = 0
        self.ended = False
        self._lock = threading.Lock()
        self._live_stream: LazyContentProducer | None = None
        self._reload_generation = 0
        self._action_commands: dict[str, str] = {}

    # -- content ---------------------------------------------------------

    def _open_content(self) -> Content:
        content = self.content
        if isinstance(content, str):
            line = CommandSpec.from_string(content, self.cwd, self.options.git_scoped).resolve()
            producer: LazyContentProducer = command_producer(line, transform=self.options.fn_transform)
        elif isinstance(content, LazyContentProducer):
            if content.state is not ProducerState.IDLE:
                logger.warning("content producer already %s; showing an empty list", content.state.value)
                return []
            producer = content
        elif callable(content):
            producer = content()
        else:
            return list(content)
        with self._lock:
            self._live_stream = producer
        return producer

    @property
    def live_stream(self) -> LazyContentProducer | None:
        with self._lock:
            return self._live_stream

    # -- reload ----------------------------------------------------------

    def reload_command_line(self, bindings: Bindings | None = None) -> str | None:
        """Resolve the reload template against ``bindings``."""
        template = self.options.reload
        if callable(template):
            template = template(bindings or Bindings())
        if not template:
            return None
        return CommandSpec.from_string(template, self.cwd, self.options.git_scoped).resolve(bindings)

    def reload(self, bindings: Bindings | None = None) -> list[str] | None:
        """Replace the live stream with fresh output of the reload command.

        Returns the new lines, or ``None`` when a newer reload superseded this
        one before it finished (its output is discarded).
        """
        with self._lock:
            self._reload_generation += 1
            generation = self._reload_generation
            previous = self._live_stream
            self._live_stream = None
        if previous is not None:
            previous.cancel()

        line = self.reload_command_line(bindings)
        if line is None:
            return []
        producer = command_producer(line, transform=self.options.fn_transform)
        with self._lock:
            if generation != self._reload_generation:
                return None
            self._live_stream = producer

        lines: list[str] = []

        def on_item(item: str, resume: Resume) -> bool:
            with self._lock:
                if generation != self._reload_generation:
                    return True
            lines.append(to_line(item))
            resume()
            return False

        producer.start(on_item)
        with self._lock:
            if generation != self._reload_generation:
                return None
        return lines

    def _reload_handler(self, args: Sequence[str]) -> str:
        lines = self.reload(Bindings.from_args(args))
        return "\n".join(lines) if lines else ""

    # -- callbacks -------------------------------------------------------

    def _attach(self) -> None:
        opts = self.options
        if opts.reload is not None and (
            self.protected_id is None or not self.registry.is_registered(self.protected_id)
        ):
            callback_id = self.registry.register(self._reload_handler, debug=opts.debug)
            self.registry.protect(callback_id)
            self.protected_id = callback_id
            self.reload_command = self.bridge.command(callback_id, "{+}")

        if callable(opts.preview):
            preview = self.bridge.action(self._preview_handler(opts.preview), "{}", debug=opts.debug)
            self.callback_ids.append(preview.callback_id)
            self.preview_command = preview.command
        elif isinstance(opts.preview, str):
            self.preview_command = opts.preview

        for key, action in opts.actions.items():
            if not action.reload or key == "default" or key in self._action_commands:
                continue
            bound = self.bridge.action(self._action_handler(action), "{+}", debug=opts.debug)
            self.callback_ids.append(bound.callback_id)
            self._action_commands[key] = bound.command

    def _preview_handler(self, preview: Callable[[list[str]], str | None]) -> Callable[[Sequence[str]], str | None]:
        def handler(args: Sequence[str]) -> str | None:
            return preview(list(Bindings.from_args(args).selected))

        return handler

    def _action_handler(self, action: Action) -> Callable[[Sequence[str]], str | None]:
        def handler(args: Sequence[str]) -> str | None:
            action.fn(list(Bindings.from_args(args).selected), self.options)
            return None

        return handler

    def _binds(self) -> dict[str, str]:
        binds: dict[str, str] = {}
        if self.reload_command:
            for event in self.options.reload_events:
                binds[event] = f"reload({self.reload_command})"
        for key, command in self._action_commands.items():
            step = f"execute-silent({command})"
            if self.reload_command:
                step += f"+reload({self.reload_command})"
            binds[key] = step
        return binds

    def finder_args(self) -> list[str]:
        opts = self.options
        expect = [key for key, action in opts.actions.items() if not action.reload and key != "default"]
        return build_args(
            prompt=opts.prompt,
            header=self.header,
            multi=opts.multi,
            preview=self.preview_command,
            expect=expect,
            binds=self._binds(),
            extra=opts.fzf_opts,
        )

    # -- lifecycle -------------------------------------------------------

    def run(self) -> Session:
        """Launch the finder, relaunching while resuming actions are chosen."""
        self.ended = False
        try:
            while True:
                content = self._open_content()
                self._attach()
                self.launches += 1
                env = self.bridge.environment() if self.bridge.running else None
                result = self.finder.run(self.finder_args(), content, cwd=self.cwd, env=env)
                self.result = result
                if result is None:
                    break
                if not result.selected and not result.key:
                    break
                action = self.options.actions.get(result.action_key)
                if action is None:
                    break
                try:
                    self.action_result = action.fn(list(result.selected), self.options)
                except Exception:
                    logger.exception("action %r failed", result.action_key)
                    self.action_result = None
                    break
                if not action.resume:
                    break
        finally:
            self._end()
        return self

    def resume(self) -> Session:
        """Relaunch a finished session with the same content and options."""
        if not self.ended:
            raise RuntimeError("session is still running")
        return self.run()

    def _end(self) -> None:
        with self._lock:
            stream = self._live_stream
            self._live_stream = None
        if stream is not None and not stream.finished:
            stream.cancel()

        self.registry.evict(self.callback_ids)
        self.callback_ids = []
        self._action_commands.clear()
        if self.protected_id is not None:
            self.registry.release(self.protected_id)
            self.protected_id = None
            self.reload_command = None
        self.ended = True


def start(
    content: ContentSource,
    options: FinderOptions | None,
    *,
    finder: Finder | None = None,
    bridge: ShellBridge | None = None,
) -> Session:
    """Run one finder session over ``content`` and return it once it ends.

    Raises ``ConfigurationError`` before anything is registered when options
    are missing or the finder binary cannot be found.
    """
    if options is None:
        raise ConfigurationError("missing finder options")
    session = Session(content, options, finder=finder, bridge=bridge)
    session.finder.check()
    return session.run()


__all__ = [
    "ContentSource",
    "Session",
    "set_header",
    "start",
]
