from __future__ import annotations

import logging

from numpy.random import Generator

from mergequeuelab.commits import generate_commits
from mergequeuelab.engine import Engine
from mergequeuelab.metrics import ci_cost, wasted_cost
from mergequeuelab.model import SimConfig, SimState
from mergequeuelab.rng import make_rng
from mergequeuelab.step import WAITING, StepController
from mergequeuelab.types import (
    CommitView,
    EvalResult,
    Preview,
    RunRecord,
    RunStats,
    SimSnapshot,
    TickResult,
)
from mergequeuelab.validate import validate_config

logger = logging.getLogger(__name__)


class Simulation:
    """One merge-queue run: configuration, RNG, state and its controllers.

    Everything the engine touches hangs off this object; callers hold it and
    drive it through `advance`, the step operations and `reset`.
    """

    def __init__(
        self,
        config: SimConfig,
        *,
        rng: Generator | None = None,
        now_ms: float | None = None,
    ) -> None:
        validate_config(config)
        self.config = config
        self.rng = rng if rng is not None else make_rng(config.seed)
        self.previous_run: RunRecord | None = None
        self._now_ms = now_ms
        self._build()

    def _build(self) -> None:
        commits, queue = generate_commits(self.config.total_commits, now_ms=self._now_ms)
        self.state = SimState(commits=commits, queue=queue)
        self.engine = Engine(config=self.config, state=self.state, rng=self.rng)
        self.controller = StepController(
            self.engine, enabled=self.config.step_mode_enabled
        )

    @property
    def finished(self) -> bool:
        return self.state.finished

    def reset(self, config: SimConfig | None = None) -> None:
        """Discard the current run and regenerate the queue.

        Safe at any point, including mid-step. A run that merged or rejected
        anything is kept as `previous_run`.
        """

        if config is not None:
            validate_config(config)
        self.controller.cancel()
        if self.state.merged or self.state.rejected:
            self.previous_run = self.record()
        if config is not None:
            if config.seed is not None and config.seed != self.config.seed:
                self.rng = make_rng(config.seed)
            self.config = config
        self._build()
        logger.info(
            "reset: %d commits, concurrency %d, success rate %.1f%%",
            self.config.total_commits,
            self.config.concurrency_limit,
            self.config.success_rate,
        )

    def advance(self, dt: float) -> TickResult:
        if not self.state.queue:
            if not self.state.finished:
                logger.info(
                    "run finished: %d merged, %d rejected",
                    len(self.state.merged),
                    len(self.state.rejected),
                )
            self.state.finished = True
            return TickResult(dt_ms=0.0, finished=True)
        if self.controller.frozen:
            return TickResult(
                dt_ms=0.0,
                frozen=True,
                waiting=self.controller.phase == WAITING,
                preview=self.controller.preview,
            )

        tick = self.engine.tick(dt)
        if not self.engine.head_resolved():
            return tick

        if self.controller.on_head_resolved():
            return TickResult(
                dt_ms=tick.dt_ms,
                started_ids=tick.started_ids,
                completed_ids=tick.completed_ids,
                waiting=True,
                preview=self.controller.preview,
            )
        return TickResult(
            dt_ms=tick.dt_ms,
            started_ids=tick.started_ids,
            completed_ids=tick.completed_ids,
            evaluation=self.engine.evaluate(),
        )

    def evaluate(self) -> EvalResult:
        return self.engine.evaluate()

    def preview_evaluation(self) -> Preview:
        return self.engine.preview_evaluation()

    def acknowledge_step(self) -> Preview | None:
        return self.controller.acknowledge()

    def complete_step_transition(self) -> EvalResult | None:
        return self.controller.complete_transition()

    def continue_step(self) -> EvalResult | None:
        return self.controller.continue_step()

    def set_step_mode(self, enabled: bool) -> EvalResult | None:
        self.config = self.config.replace(step_mode_enabled=enabled)
        self.engine.config = self.config
        return self.controller.set_enabled(enabled)

    def stats(self) -> RunStats:
        s = self.state
        return RunStats(
            total_reruns=s.total_reruns,
            wasted_ci_ms=s.wasted_ci_ms,
            useful_ci_ms=s.useful_ci_ms,
            wall_clock_ms=s.wall_clock_ms,
            sequential_ci_ms=s.sequential_ci_ms,
        )

    def record(self) -> RunRecord:
        s = self.state
        cfg = self.config
        return RunRecord(
            merged=len(s.merged),
            rejected=len(s.rejected),
            concurrency_limit=cfg.concurrency_limit,
            reruns=s.total_reruns,
            wall_clock_ms=s.wall_clock_ms,
            sequential_ci_ms=s.sequential_ci_ms,
            useful_ci_ms=s.useful_ci_ms,
            wasted_ci_ms=s.wasted_ci_ms,
            total_cost=ci_cost(
                s.useful_ci_ms,
                s.wasted_ci_ms,
                runners=cfg.runner_count,
                rate_per_runner_minute=cfg.rate_per_runner_minute,
            ),
            wasted_cost=wasted_cost(
                s.wasted_ci_ms,
                runners=cfg.runner_count,
                rate_per_runner_minute=cfg.rate_per_runner_minute,
            ),
        )

    def snapshot(self) -> SimSnapshot:
        queue = tuple(
            CommitView(
                id=c.id,
                name=c.name,
                created_at_ms=c.created_at_ms,
                status=c.status,
                planned_outcome=c.planned_outcome,
                duration_ms=c.duration_ms,
                elapsed_ms=c.elapsed_ms,
                run_count=c.run_count,
                first_run_duration_ms=c.first_run_duration_ms,
            )
            for c in (self.state.commits[cid] for cid in self.state.queue)
        )
        return SimSnapshot(
            queue=queue,
            active_size=self.engine.active_size(),
            merged_ids=tuple(self.state.merged),
            rejected_ids=tuple(self.state.rejected),
            stats=self.stats(),
            step_phase=self.controller.phase,
            preview=self.controller.preview,
            finished=self.state.finished or not self.state.queue,
        )
