"""Shell bridge between finder sub-processes and host callbacks.

The finder cannot call Python directly, so every reload/preview/action is a
shell command that runs ``python -m lazypick.shell SOCKET ID {q} FIELDS``.
That client forwards its arguments over a Unix socket to the host, which
invokes the registered callback and sends back the text to print.

Wire format, one JSON line each way::

    -> {"id": 7, "args": ["query", "line one", "line two"]}
    <- {"ok": true, "output": "..."}
    <- {"ok": false, "reason": "unknown_id", "error": "..."}
"""

from __future__ import annotations

import json
import logging
import os
import shlex
import shutil
import socket
import socketserver
import sys
import tempfile
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .errors import InvocationError
from .registry import CallbackHandler, CallbackRegistry, default_registry

logger = logging.getLogger(__name__)

PACKAGE_PARENT = str(Path(__file__).resolve().parent.parent)
_RECV_CHUNK = 65536


@dataclass(frozen=True)
class BridgeCommand:
    """A registered callback and the shell line that reaches it."""

    callback_id: int
    command: str


class _BridgeRequestHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        bridge: ShellBridge = self.server.bridge  # type: ignore[attr-defined]
        raw = self.rfile.readline()
        try:
            request = json.loads(raw.decode("utf-8"))
            callback_id = int(request["id"])
            args = [str(arg) for arg in request.get("args", [])]
        except (ValueError, KeyError, TypeError) as exc:
            self._reply({"ok": False, "reason": "bad_request", "error": str(exc)})
            return

        try:
            output = bridge.registry.invoke(callback_id, args)
        except InvocationError as exc:
            logger.warning("shell bridge: %s", exc)
            self._reply({"ok": False, "reason": exc.reason, "error": str(exc)})
            return
        except Exception as exc:
            logger.warning("shell bridge: callback %d failed", callback_id, exc_info=True)
            self._reply({"ok": False, "reason": "handler_error", "error": f"{type(exc).__name__}: {exc}"})
            return
        self._reply({"ok": True, "output": output or ""})

    def _reply(self, payload: dict[str, object]) -> None:
        try:
            self.wfile.write(json.dumps(payload).encode("utf-8") + b"\n")
        except OSError:
            # Client gave up (finder moved on to another item).
            pass


class _BridgeServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    daemon_threads = True
    allow_reuse_address = True


class ShellBridge:
    """Serve registry invocations over a private Unix socket.

    Each connection runs on its own thread, so a slow preview never blocks a
    reload or another preview.
    """

    def __init__(self, registry: CallbackRegistry | None = None) -> None:
        self.registry = registry if registry is not None else default_registry()
        self._lock = threading.Lock()
        self._server: _BridgeServer | None = None
        self._thread: threading.Thread | None = None
        self._tmpdir: str | None = None
        self.socket_path: str | None = None

    @property
    def running(self) -> bool:
        return self._server is not None

    def start(self) -> str:
        """Start serving (idempotent) and return the socket path."""
        with self._lock:
            if self._server is not None:
                assert self.socket_path is not None
                return self.socket_path
            self._tmpdir = tempfile.mkdtemp(prefix="lazypick-")
            self.socket_path = os.path.join(self._tmpdir, "bridge.sock")
            server = _BridgeServer(self.socket_path, _BridgeRequestHandler)
            server.bridge = self  # type: ignore[attr-defined]
            self._server = server
            self._thread = threading.Thread(
                target=server.serve_forever,
                name="lazypick-shell-bridge",
                daemon=True,
            )
            self._thread.start()
            logger.debug("shell bridge listening on %s", self.socket_path)
            return self.socket_path

    def stop(self) -> None:
        with self._lock:
            server = self._server
            self._server = None
            tmpdir = self._tmpdir
            self._tmpdir = None
            self.socket_path = None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if tmpdir is not None:
            shutil.rmtree(tmpdir, ignore_errors=True)

    def __enter__(self) -> ShellBridge:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def command(self, callback_id: int, fields: str = "{+}") -> str:
        """Return the shell line that invokes ``callback_id``.

        ``fields`` is passed through to the finder for substitution; the
        query always comes first so handlers can decode it with
        ``Bindings.from_args``.
        """
        socket_path = self.start()
        return " ".join(
            [
                shlex.quote(sys.executable),
                "-m",
                "lazypick.shell",
                shlex.quote(socket_path),
                str(callback_id),
                "{q}",
                fields,
            ]
        ).rstrip()

    def action(self, handler: CallbackHandler, fields: str = "{+}", debug: bool = False) -> BridgeCommand:
        """Register ``handler`` and return its id plus the shell line."""
        callback_id = self.registry.register(handler, debug=debug)
        return BridgeCommand(callback_id, self.command(callback_id, fields))

    def environment(self, base: dict[str, str] | None = None) -> dict[str, str]:
        """Environment for the finder so ``-m lazypick.shell`` always imports."""
        env = dict(os.environ if base is None else base)
        current = env.get("PYTHONPATH")
        env["PYTHONPATH"] = PACKAGE_PARENT if not current else os.pathsep.join([PACKAGE_PARENT, current])
        return env


_DEFAULT_BRIDGE: ShellBridge | None = None
_DEFAULT_BRIDGE_LOCK = threading.Lock()


def default_bridge() -> ShellBridge:
    """Return the process-wide bridge over the default registry."""
    global _DEFAULT_BRIDGE
    with _DEFAULT_BRIDGE_LOCK:
        if _DEFAULT_BRIDGE is None:
            _DEFAULT_BRIDGE = ShellBridge(default_registry())
        return _DEFAULT_BRIDGE


def request(socket_path: str, callback_id: int, args: Sequence[str]) -> dict[str, object]:
    """Send one invocation to a running bridge and return the decoded reply."""
    payload = json.dumps({"id": callback_id, "args": list(args)}).encode("utf-8") + b"\n"
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.connect(socket_path)
        sock.sendall(payload)
        chunks: list[bytes] = []
        while True:
            chunk = sock.recv(_RECV_CHUNK)
            if not chunk:
                break
            chunks.append(chunk)
            if chunk.endswith(b"\n"):
                break
    reply = json.loads(b"".join(chunks).decode("utf-8"))
    if not isinstance(reply, dict):
        raise ValueError("malformed bridge reply")
    return reply


def main(argv: Sequence[str] | None = None) -> int:
    """Client entry point run by the finder for every sub-invocation."""
    argv = list(sys.argv[1:] if argv is None else argv)
    if len(argv) < 2:
        sys.stderr.write("usage: python -m lazypick.shell SOCKET ID [ARGS...]\n")
        return 2
    socket_path, raw_id, args = argv[0], argv[1], argv[2:]
    try:
        callback_id = int(raw_id)
    except ValueError:
        sys.stderr.write(f"lazypick: invalid callback id {raw_id!r}\n")
        return 2

    try:
        reply = request(socket_path, callback_id, args)
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"lazypick: host unreachable: {exc}\n")
        return 1

    if not reply.get("ok"):
        sys.stderr.write(f"lazypick: {reply.get('error', 'unknown error')}\n")
        return 1
    output = str(reply.get("output") or "")
    sys.stdout.write(output)
    if output and not output.endswith("\n"):
        sys.stdout.write("\n")
    return 0


__all__ = [
    "BridgeCommand",
    "ShellBridge",
    "default_bridge",
    "main",
    "request",
]


if __name__ == "__main__":
    raise SystemExit(main())
