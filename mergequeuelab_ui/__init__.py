"""Qt client for the headless merge-queue simulation core.

The core (`mergequeuelab/`) never imports Qt. This package owns the host loop
that feeds simulated time into it.

Run from source:

    python -m mergequeuelab_ui
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
