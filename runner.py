from __future__ import annotations

"""Repo-root convenience shim for running the live merge-queue loop.

    python runner.py --preset flaky-ci --auto-step

It delegates to the canonical entry point:

    python -m mergequeuelab_ui
"""

import sys


def main() -> int:
    """Launch the live loop; arguments are forwarded unchanged."""

    # `mergequeuelab_ui.__main__.main()` prints the PySide6-missing message.
    from mergequeuelab_ui.__main__ import main as ui_main

    sys.argv = ["mergequeuelab_ui", *sys.argv[1:]]

    return ui_main()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
