from __future__ import annotations

import logging

from mergequeuelab.engine import Engine
from mergequeuelab.types import EvalResult, Preview

logger = logging.getLogger(__name__)

FREE = "free"
WAITING = "waiting"
TRANSITIONING = "transitioning"


class StepController:
    """Holds evaluation back until an operator acknowledges it.

    While waiting or transitioning the simulation clock is frozen. Each
    acknowledgement performs exactly one logical action: the run of leading
    successes, or a single rejection with its window restart.
    """

    def __init__(self, engine: Engine, *, enabled: bool) -> None:
        self.engine = engine
        self.enabled = enabled
        self.phase = FREE
        self.preview: Preview | None = None

    @property
    def frozen(self) -> bool:
        return self.phase != FREE

    def on_head_resolved(self) -> bool:
        """Enter the waiting phase if step mode is on; returns True if it did."""

        if not self.enabled:
            return False
        self.phase = WAITING
        self.preview = self.engine.preview_evaluation()
        logger.debug("step waiting: %s", self.preview.description)
        return True

    def acknowledge(self) -> Preview | None:
        if self.phase != WAITING:
            return None
        preview = self.engine.preview_evaluation()
        if preview.action == "none":
            self._resume()
            return preview
        self.phase = TRANSITIONING
        self.preview = preview
        return preview

    def complete_transition(self) -> EvalResult | None:
        if self.phase != TRANSITIONING:
            return None
        result = self.engine.evaluate_step()
        if self.enabled and self.engine.head_resolved():
            self.phase = WAITING
            self.preview = self.engine.preview_evaluation()
        else:
            self._resume()
        return result

    def continue_step(self) -> EvalResult | None:
        """Acknowledge and finish the transition in one call."""

        self.acknowledge()
        return self.complete_transition()

    def set_enabled(self, enabled: bool) -> EvalResult | None:
        """Toggle step mode.

        Turning it off while waiting runs the full continuous evaluation so
        no resolved head is left behind.
        """

        self.enabled = enabled
        if enabled or self.phase != WAITING:
            return None
        result = self.engine.evaluate() if self.engine.state.queue else None
        self._resume()
        return result

    def cancel(self) -> None:
        self._resume()

    def _resume(self) -> None:
        self.phase = FREE
        self.preview = None
