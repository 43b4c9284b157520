"""Process-wide table of host callables reachable from finder sub-processes.

Ids are issued monotonically and never reused, so a newer registration can
never overwrite an older one. Eviction is always explicit: ``release`` drops
one id regardless of protection, ``evict`` drops only ephemeral ids.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from .errors import InvocationError

logger = logging.getLogger(__name__)

CallbackHandler = Callable[[Sequence[str]], str | None]


@dataclass(frozen=True)
class Registration:
    """One registered handler and its debug flag."""

    callback_id: int
    handler: CallbackHandler
    debug: bool = False


class CallbackRegistry:
    """Thread-safe id → handler map with protect/release lifecycle."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_id = 1
        self._entries: dict[int, Registration] = {}
        self._protected: set[int] = set()

    def register(self, handler: CallbackHandler, debug: bool = False) -> int:
        """Store ``handler`` under a fresh id and return that id."""
        with self._lock:
            callback_id = self._next_id
            self._next_id += 1
            self._entries[callback_id] = Registration(callback_id, handler, debug)
        if debug:
            logger.debug("registered callback %d: %r", callback_id, handler)
        return callback_id

    def invoke(self, callback_id: int, args: Sequence[str]) -> str | None:
        """Call the handler registered under ``callback_id``.

        Raises ``InvocationError`` for unknown or released ids. Exceptions from
        the handler itself propagate unchanged. The handler runs outside the
        lock so slow callbacks never block other registrations.
        """
        with self._lock:
            registration = self._entries.get(callback_id)
        if registration is None:
            raise InvocationError(callback_id, "unknown_id")
        if registration.debug:
            logger.debug("invoke callback %d args=%r", callback_id, list(args))
        result = registration.handler(args)
        if registration.debug:
            logger.debug(
                "callback %d returned %d chars",
                callback_id,
                len(result) if result is not None else 0,
            )
        return result

    def protect(self, callback_id: int) -> None:
        """Pin ``callback_id`` so ``evict`` leaves it alone."""
        with self._lock:
            if callback_id not in self._entries:
                raise InvocationError(callback_id, "unknown_id")
            self._protected.add(callback_id)

    def is_protected(self, callback_id: int) -> bool:
        with self._lock:
            return callback_id in self._protected

    def is_registered(self, callback_id: int) -> bool:
        with self._lock:
            return callback_id in self._entries

    def release(self, callback_id: int) -> bool:
        """Drop ``callback_id`` even if protected; return whether it existed."""
        with self._lock:
            self._protected.discard(callback_id)
            return self._entries.pop(callback_id, None) is not None

    def evict(self, callback_ids: Iterable[int]) -> list[int]:
        """Release the ephemeral ids among ``callback_ids``.

        Protected ids are skipped. Returns the ids actually released.
        """
        released: list[int] = []
        with self._lock:
            for callback_id in callback_ids:
                if callback_id in self._protected:
                    continue
                if self._entries.pop(callback_id, None) is not None:
                    released.append(callback_id)
        return released

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_DEFAULT_REGISTRY = CallbackRegistry()


def default_registry() -> CallbackRegistry:
    """Return the registry shared by the whole process."""
    return _DEFAULT_REGISTRY


__all__ = [
    "CallbackHandler",
    "CallbackRegistry",
    "Registration",
    "default_registry",
]
