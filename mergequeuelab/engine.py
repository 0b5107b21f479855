from __future__ import annotations

"""Merge-queue state machine.

The engine mutates a `SimState` in place. A tick starts CI for idle commits in
the active window, advances running commits, and reports whether the head has
resolved; deciding what to do about a resolved head is up to the caller
(continuous evaluation or the step controller).
"""

import logging

from numpy.random import Generator

from mergequeuelab.model import CiStatus, Commit, SimConfig, SimState
from mergequeuelab.rng import bernoulli_percent, ci_duration_bounds, sample_uniform
from mergequeuelab.types import NO_ACTION, EvalResult, Preview, TickResult

logger = logging.getLogger(__name__)

PREVIEW_NAME_LIMIT = 3


def _discarded_ms(commit: Commit) -> float:
    # Running: only the elapsed part is lost. Resolved but never evaluated:
    # the whole run is lost.
    if commit.status is CiStatus.RUNNING and commit.elapsed_ms > 0:
        return commit.elapsed_ms
    if commit.status.resolved and commit.duration_ms > 0:
        return commit.duration_ms
    return 0.0


class Engine:
    def __init__(self, *, config: SimConfig, state: SimState, rng: Generator) -> None:
        self.config = config
        self.state = state
        self.rng = rng

    def active_size(self) -> int:
        return min(self.config.concurrency_limit, len(self.state.queue))

    def head_resolved(self) -> bool:
        head = self.state.head()
        return head is not None and head.status.resolved

    def start_ci(self, commit: Commit) -> None:
        lo, hi = ci_duration_bounds(
            self.config.base_ci_duration_minutes, self.config.ci_jitter_minutes
        )
        commit.status = CiStatus.RUNNING
        commit.elapsed_ms = 0.0
        commit.duration_ms = sample_uniform(self.rng, lo, hi)
        commit.planned_outcome = (
            CiStatus.SUCCESS
            if bernoulli_percent(self.rng, self.config.success_rate)
            else CiStatus.FAIL
        )
        if commit.run_count == 0:
            commit.first_run_duration_ms = commit.duration_ms
        commit.run_count += 1
        if commit.run_count > 1:
            self.state.total_reruns += 1
        logger.debug(
            "CI start %s run=%d duration=%.0fms", commit.id, commit.run_count, commit.duration_ms
        )

    def start_idle(self) -> tuple[str, ...]:
        started: list[str] = []
        for commit in self.state.window(self.active_size()):
            if commit.status is CiStatus.IDLE:
                self.start_ci(commit)
                started.append(commit.id)
        return tuple(started)

    def advance_running(self, dt: float) -> tuple[str, ...]:
        completed: list[str] = []
        for commit in self.state.window(self.active_size()):
            if commit.status is not CiStatus.RUNNING:
                continue
            commit.elapsed_ms += dt
            if commit.elapsed_ms >= commit.duration_ms:
                assert commit.planned_outcome is not None
                commit.elapsed_ms = commit.duration_ms
                commit.status = commit.planned_outcome
                completed.append(commit.id)
        return tuple(completed)

    def tick(self, dt: float) -> TickResult:
        """Advance simulated time by `dt` ms without evaluating the head."""

        assert dt >= 0, f"dt must be >= 0 (got {dt})"
        self.state.wall_clock_ms += dt
        started = self.start_idle()
        completed = self.advance_running(dt)
        return TickResult(dt_ms=dt, started_ids=started, completed_ids=completed)

    def next_completion_ms(self) -> float | None:
        remaining = [
            c.duration_ms - c.elapsed_ms
            for c in self.state.window(self.active_size())
            if c.status is CiStatus.RUNNING
        ]
        return min(remaining) if remaining else None

    def _leave_queue(self, commit: Commit) -> None:
        self.state.queue.pop(0)
        self.state.sequential_ci_ms += commit.first_run_duration_ms

    def _merge_head(self) -> Commit:
        commit = self.state.commits[self.state.queue[0]]
        assert commit.status is CiStatus.SUCCESS
        self._leave_queue(commit)
        self.state.merged.append(commit.id)
        self.state.useful_ci_ms += commit.duration_ms
        return commit

    def _reject_head(self) -> tuple[Commit, float, float]:
        """Remove the failed head; returns (commit, useful delta, wasted delta)."""

        commit = self.state.commits[self.state.queue[0]]
        assert commit.status is CiStatus.FAIL
        self._leave_queue(commit)
        self.state.rejected.append(commit.id)
        if self.config.rejection_ci_policy == "useful":
            self.state.useful_ci_ms += commit.duration_ms
            return commit, commit.duration_ms, 0.0
        self.state.wasted_ci_ms += commit.duration_ms
        return commit, 0.0, commit.duration_ms

    def restart_active_window(self, already_removed: int) -> tuple[tuple[str, ...], float]:
        """Reset the remainder of the pre-evaluation active window to idle.

        `already_removed` counts the commits dequeued in the current pass,
        including the failed one, so the window is measured against the queue
        length before the pass started.
        """

        assert already_removed >= 0
        original_len = len(self.state.queue) + already_removed
        original_active = min(self.config.concurrency_limit, original_len)
        remaining = max(0, original_active - already_removed)
        assert remaining <= len(self.state.queue)

        wasted = 0.0
        restarted: list[str] = []
        for commit in self.state.window(remaining):
            wasted += _discarded_ms(commit)
            commit.reset_ci()
            restarted.append(commit.id)
        self.state.wasted_ci_ms += wasted
        return tuple(restarted), wasted

    def _reject_and_restart(self, shifted: int) -> EvalResult:
        commit, useful, wasted = self._reject_head()
        restarted, discarded = self.restart_active_window(shifted + 1)
        logger.debug(
            "rejected %s, restarted %d commit(s), discarded %.0fms",
            commit.id,
            len(restarted),
            discarded,
        )
        return EvalResult(
            rejected_id=commit.id,
            restarted_ids=restarted,
            useful_delta_ms=useful,
            wasted_delta_ms=wasted + discarded,
        )

    def _merge_leading_successes(self) -> tuple[list[str], float]:
        merged: list[str] = []
        useful = 0.0
        while self.state.queue and self.state.head().status is CiStatus.SUCCESS:
            commit = self._merge_head()
            merged.append(commit.id)
            useful += commit.duration_ms
        if merged:
            logger.debug("merged %d commit(s)", len(merged))
        return merged, useful

    def evaluate(self) -> EvalResult:
        """Merge every leading success, then reject at most one failure."""

        assert self.state.queue, "evaluate() called on an empty queue"
        merged, useful = self._merge_leading_successes()
        head = self.state.head()
        if head is None or head.status is not CiStatus.FAIL:
            return EvalResult(merged_ids=tuple(merged), useful_delta_ms=useful)

        rejection = self._reject_and_restart(len(merged))
        return EvalResult(
            merged_ids=tuple(merged),
            rejected_id=rejection.rejected_id,
            restarted_ids=rejection.restarted_ids,
            useful_delta_ms=useful + rejection.useful_delta_ms,
            wasted_delta_ms=rejection.wasted_delta_ms,
        )

    def evaluate_step(self) -> EvalResult:
        """Perform one logical action: the leading successes, or one failure."""

        assert self.state.queue, "evaluate_step() called on an empty queue"
        merged, useful = self._merge_leading_successes()
        if merged:
            return EvalResult(merged_ids=tuple(merged), useful_delta_ms=useful)
        if self.state.head().status is CiStatus.FAIL:
            return self._reject_and_restart(0)
        return EvalResult()

    def preview_evaluation(self) -> Preview:
        """Describe what `evaluate_step()` would do, without mutating state."""

        head = self.state.head()
        if head is None:
            return NO_ACTION

        if head.status is CiStatus.FAIL:
            window = max(0, self.active_size() - 1)
            behind = [self.state.commits[cid] for cid in self.state.queue[1 : 1 + window]]
            discarded = sum(_discarded_ms(c) for c in behind)
            useful = head.duration_ms if self.config.rejection_ci_policy == "useful" else 0.0
            wasted = discarded + (head.duration_ms - useful)
            return Preview(
                action="reject",
                count=1,
                commit_ids=(head.id,),
                description=(
                    f'Reject "{head.name}". CI failed. '
                    "Remaining active window will restart CI."
                ),
                useful_delta_ms=useful,
                wasted_delta_ms=wasted,
            )

        if head.status is CiStatus.SUCCESS:
            run: list[Commit] = []
            for cid in self.state.queue:
                commit = self.state.commits[cid]
                if commit.status is not CiStatus.SUCCESS:
                    break
                run.append(commit)
            names = [c.name for c in run]
            if len(run) == 1:
                description = f'Merge "{names[0]}" into main.'
            else:
                shown = ", ".join(names[:PREVIEW_NAME_LIMIT])
                extra = len(run) - PREVIEW_NAME_LIMIT
                more = f" (+{extra} more)" if extra > 0 else ""
                description = f"Merge {len(run)} commits into main: {shown}{more}."
            return Preview(
                action="merge",
                count=len(run),
                commit_ids=tuple(c.id for c in run),
                description=description,
                useful_delta_ms=sum(c.duration_ms for c in run),
            )

        return NO_ACTION
