from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest


@pytest.fixture(scope="session", autouse=True)
def _qt_offscreen() -> None:
    """Ensure Qt can initialize in CI/headless environments."""

    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope="session", autouse=True)
def _add_repo_root_to_syspath() -> None:
    """Make local packages importable when running tests from `tests/`."""

    root = Path(__file__).resolve().parents[1]
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """The CLI entry points install their own handlers; undo that per test."""

    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
