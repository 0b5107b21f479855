from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from mergequeuelab.simulation import Simulation

logger = logging.getLogger(__name__)

MAX_RAW_DELTA_MS = 200.0
FRAME_MS = 16.0


@dataclass(frozen=True)
class DriveResult:
    iterations: int
    finished: bool
    converged: bool = True
    waiting_for_step: bool = False
    failure_reason: str | None = None


class SimulationDriver(Protocol):
    def drive(self, sim: Simulation) -> DriveResult:
        raise NotImplementedError


def realtime_dt(raw_delta_ms: float, speed: float, cap_ms: float = MAX_RAW_DELTA_MS) -> float:
    """Simulated ms for one frame; the raw delta is capped before scaling."""

    return min(max(0.0, raw_delta_ms), cap_ms) * speed


@dataclass(frozen=True)
class InstantDriver:
    """Runs the whole queue synchronously, jumping from completion to completion.

    Step mode is ignored. The iteration cap only guards against a broken
    configuration; every rejection still shortens the queue by one.
    """

    max_iterations: int | None = None

    def drive(self, sim: Simulation) -> DriveResult:
        engine = sim.engine
        state = sim.state
        # A pending step is settled at once.
        sim.controller.cancel()
        if state.queue and engine.head_resolved():
            engine.evaluate()

        cap = self.max_iterations
        if cap is None:
            cap = sim.config.total_commits * sim.config.concurrency_limit * 10

        iterations = 0
        while state.queue and iterations < cap:
            iterations += 1
            engine.start_idle()
            step = engine.next_completion_ms()
            if step is None:
                break
            state.wall_clock_ms += step
            engine.advance_running(step)
            if engine.head_resolved():
                engine.evaluate()

        if state.queue:
            reason = f"simulation did not converge after {iterations} iterations"
            logger.warning("%s (%d commits left in queue)", reason, len(state.queue))
            return DriveResult(
                iterations=iterations,
                finished=False,
                converged=False,
                failure_reason=reason,
            )

        sim.advance(0.0)
        return DriveResult(iterations=iterations, finished=True)


@dataclass
class RealtimeDriver:
    """Headless real-time loop: `speed_multiplier` simulated ms per wall ms.

    Returns when the queue is done, when step mode is waiting for an
    acknowledgement, or after `max_frames` frames.
    """

    clock: Callable[[], float] = field(default=time.monotonic)
    sleep: Callable[[float], None] = field(default=time.sleep)
    frame_ms: float = FRAME_MS
    max_raw_delta_ms: float = MAX_RAW_DELTA_MS
    max_frames: int | None = None

    def drive(self, sim: Simulation) -> DriveResult:
        frames = 0
        last = self.clock()
        while self.max_frames is None or frames < self.max_frames:
            self.sleep(self.frame_ms / 1000.0)
            now = self.clock()
            raw_ms = (now - last) * 1000.0
            last = now
            frames += 1

            tick = sim.advance(realtime_dt(raw_ms, sim.config.speed_multiplier, self.max_raw_delta_ms))
            if tick.finished:
                return DriveResult(iterations=frames, finished=True)
            if tick.waiting:
                return DriveResult(iterations=frames, finished=False, waiting_for_step=True)
        return DriveResult(iterations=frames, finished=False)


def default_driver(mode: str) -> SimulationDriver:
    if mode == "instant":
        return InstantDriver()
    if mode == "realtime":
        return RealtimeDriver()
    raise ValueError(f"Unsupported driver mode: {mode}")

