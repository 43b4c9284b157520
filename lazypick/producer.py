"""Pull-driven, cancellable content production.

A producer hands out one entry per request. The consumer receives each entry
together with a continuation and must call it to get the next one, so no
item is produced ahead of demand. ``on_done`` fires exactly once.
"""

from __future__ import annotations

import enum
import logging
import os
import signal
import subprocess
import threading
from collections.abc import Callable, Iterable, Iterator
from typing import Generic, TypeVar

from .errors import ProducerCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProducerState(enum.Enum):
    IDLE = "idle"
    PRODUCING = "producing"
    DONE = "done"
    CANCELLED = "cancelled"


Resume = Callable[..., None]


class LazyContentProducer(Generic[T]):
    """Cooperative generator of entries with explicit backpressure.

    ``on_item(item, resume)`` gets one item; a truthy return stops the
    producer. ``resume()`` asks for the next item, ``resume(cancel=True)``
    stops. Calling ``resume`` from inside ``on_item`` is trampolined so long
    sources never grow the stack.
    """

    def __init__(self, source: Iterable[T], on_close: Callable[[], None] | None = None) -> None:
        self._source = source
        self._iterator: Iterator[T] | None = None
        self._on_close = on_close
        self._lock = threading.Lock()
        self._state = ProducerState.IDLE
        self._delivering = False
        self._pull_requested = False
        self._on_item: Callable[[T, Resume], object] | None = None
        self._on_done: Callable[[bool], None] | None = None
        self.delivered = 0

    @property
    def state(self) -> ProducerState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state in {ProducerState.DONE, ProducerState.CANCELLED}

    def start(
        self,
        on_item: Callable[[T, Resume], object],
        on_done: Callable[[bool], None] | None = None,
    ) -> None:
        """Begin production and deliver the first item."""
        with self._lock:
            if self._state is not ProducerState.IDLE:
                raise RuntimeError(f"producer already {self._state.value}")
            self._state = ProducerState.PRODUCING
            self._on_item = on_item
            self._on_done = on_done
        self.resume()

    def resume(self, cancel: bool = False) -> None:
        """Request the next item, or stop when ``cancel`` is true."""
        if cancel:
            self.cancel()
            return
        with self._lock:
            if self._state is not ProducerState.PRODUCING:
                return
            self._pull_requested = True
            if self._delivering:
                return
            self._delivering = True
        self._pump()

    def cancel(self) -> None:
        """Stop production; no further ``on_item`` calls happen."""
        self._finish(ProducerState.CANCELLED)

    def _pump(self) -> None:
        try:
            while True:
                with self._lock:
                    if self._state is not ProducerState.PRODUCING or not self._pull_requested:
                        self._delivering = False
                        return
                    self._pull_requested = False
                if self._iterator is None:
                    self._iterator = iter(self._source)
                try:
                    item = next(self._iterator)
                except StopIteration:
                    with self._lock:
                        self._delivering = False
                    self._finish(ProducerState.DONE)
                    return
                with self._lock:
                    if self._state is not ProducerState.PRODUCING:
                        self._delivering = False
                        return
                    on_item = self._on_item
                self.delivered += 1
                assert on_item is not None
                if on_item(item, self.resume):
                    with self._lock:
                        self._delivering = False
                    self.cancel()
                    return
        except BaseException:
            with self._lock:
                self._delivering = False
            self._finish(ProducerState.CANCELLED)
            raise

    def _finish(self, state: ProducerState) -> None:
        with self._lock:
            if self._state in {ProducerState.DONE, ProducerState.CANCELLED}:
                return
            self._state = state
            on_done = self._on_done
        if self._on_close is not None:
            self._on_close()
        if on_done is not None:
            on_done(state is ProducerState.CANCELLED)


def drain(producer: LazyContentProducer[T], raise_on_cancel: bool = False) -> list[T]:
    """Run ``producer`` to completion and return every item it yields.

    With ``raise_on_cancel`` a cancelled producer raises ``ProducerCancelled``
    instead of returning the partial list.
    """
    items: list[T] = []
    outcome: dict[str, bool] = {}

    def on_item(item: T, resume: Resume) -> None:
        items.append(item)
        resume()

    def on_done(cancelled: bool) -> None:
        outcome["cancelled"] = cancelled

    producer.start(on_item, on_done)
    if raise_on_cancel and outcome.get("cancelled"):
        raise ProducerCancelled(f"cancelled after {len(items)} items")
    return items


def command_producer(
    command: str,
    cwd: str | None = None,
    transform: Callable[[str], str | None] | None = None,
    env: dict[str, str] | None = None,
) -> LazyContentProducer[str]:
    """Stream stdout lines of a shell command as a lazy producer.

    ``transform`` may rewrite each line or return ``None`` to drop it. The
    child is spawned on first pull in its own process group; cancelling the
    producer before the command finishes terminates the whole group, so
    compound lines such as ``cd <dir> && git ...`` stop too.
    """
    proc_holder: list[subprocess.Popen[str]] = []

    def lines() -> Iterator[str]:
        try:
            proc = subprocess.Popen(
                command,
                shell=True,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,
            )
        except OSError as exc:
            logger.warning("failed to run %r: %s", command, exc)
            return
        proc_holder.append(proc)
        assert proc.stdout is not None
        try:
            for raw in proc.stdout:
                line = raw.rstrip("\r\n")
                if transform is not None:
                    line = transform(line)
                    if line is None:
                        continue
                yield line
        finally:
            proc.stdout.close()

    def close() -> None:
        if not proc_holder:
            return
        proc = proc_holder[0]
        if proc.poll() is None:
            try:
                os.killpg(proc.pid, signal.SIGTERM)
            except ProcessLookupError:
                # group already exited
                pass
        proc.wait()

    return LazyContentProducer(lines(), on_close=close)


__all__ = [
    "LazyContentProducer",
    "ProducerState",
    "Resume",
    "command_producer",
    "drain",
]
