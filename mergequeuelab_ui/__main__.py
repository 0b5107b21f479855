from __future__ import annotations

import sys


def main() -> int:
    """Entry point for `python -m mergequeuelab_ui`."""

    try:
        from mergequeuelab_ui.console import run_console
    except ImportError as e:  # pragma: no cover
        # Common first-run experience: PySide6 not installed.
        sys.stderr.write(
            "The live loop requires PySide6. Install it (e.g. `pip install PySide6`)\n"
        )
        sys.stderr.write(f"ImportError: {e}\n")
        return 2

    return run_console(argv=sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(main())
