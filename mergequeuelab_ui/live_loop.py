from __future__ import annotations

import time
from collections.abc import Callable

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from mergequeuelab.drivers import FRAME_MS, realtime_dt
from mergequeuelab.model import SimConfig
from mergequeuelab.simulation import Simulation
from mergequeuelab.step import WAITING
from mergequeuelab.types import EvalResult, TickResult


class LiveLoop(QObject):
    """Drives a `Simulation` from a Qt timer at `speed_multiplier` x real time.

    Pausing stops simulated time at the host; step-mode waits freeze it in the
    core. Both reset the frame clock on resume so no time jump is applied.
    """

    ticked = Signal(object)  # TickResult
    step_waiting = Signal(object)  # Preview
    finished = Signal(object)  # SimSnapshot

    def __init__(
        self,
        sim: Simulation,
        *,
        interval_ms: int = int(FRAME_MS),
        clock: Callable[[], float] = time.monotonic,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._sim = sim
        self._clock = clock
        self._last: float | None = None
        self._paused = False

        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._on_timeout)

    @property
    def simulation(self) -> Simulation:
        return self._sim

    def is_running(self) -> bool:
        return self._timer.isActive()

    def is_paused(self) -> bool:
        return self._paused

    def start(self) -> None:
        if self._timer.isActive():
            return
        self._last = None
        self._paused = False
        self._timer.start()

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False
        self._last = None

    def stop(self) -> None:
        self._timer.stop()
        self._last = None

    def reset(self, config: SimConfig | None = None) -> None:
        self.stop()
        self._paused = False
        self._sim.reset(config)

    def acknowledge_step(self) -> EvalResult | None:
        result = self._sim.continue_step()
        self._last = None
        if result is not None:
            self.ticked.emit(TickResult(dt_ms=0.0, evaluation=result))
        if self._sim.controller.phase == WAITING:
            self.step_waiting.emit(self._sim.controller.preview)
        return result

    @Slot()
    def _on_timeout(self) -> None:
        now = self._clock()
        if self._last is None:
            self._last = now
        raw_ms = (now - self._last) * 1000.0
        self._last = now
        if self._paused:
            return

        tick = self._sim.advance(realtime_dt(raw_ms, self._sim.config.speed_multiplier))
        self.ticked.emit(tick)
        if tick.finished:
            self._timer.stop()
            self.finished.emit(self._sim.snapshot())
            return
        if tick.waiting and not tick.frozen:
            self.step_waiting.emit(tick.preview)
