"""Module entrypoint for ``python -m lazypick``.

All argument parsing and logging setup happen in ``lazypick.cli``.
"""

from .cli import main


if __name__ == "__main__":
    raise SystemExit(main())
