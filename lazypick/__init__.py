"""Public package surface for lazypick.

Exports ``main`` for programmatic CLI invocation and ``start`` for embedding
a finder session. Providers live under ``lazypick.providers``.
"""

from __future__ import annotations


def main(*args, **kwargs):
    """Lazily import CLI entrypoint to keep package imports lightweight."""
    from .cli import main as _main

    return _main(*args, **kwargs)


def start(*args, **kwargs):
    """Lazily import the session driver; see ``lazypick.session.start``."""
    from .session import start as _start

    return _start(*args, **kwargs)

__all__ = ["main", "start"]
