from __future__ import annotations

from dataclasses import dataclass

from mergequeuelab.model import CiStatus


@dataclass(frozen=True)
class CommitView:
    id: str
    name: str
    created_at_ms: float
    status: CiStatus
    planned_outcome: CiStatus | None
    duration_ms: float
    elapsed_ms: float
    run_count: int
    first_run_duration_ms: float

    @property
    def progress(self) -> float:
        if self.duration_ms <= 0:
            return 0.0
        return min(1.0, self.elapsed_ms / self.duration_ms)


@dataclass(frozen=True)
class EvalResult:
    merged_ids: tuple[str, ...] = ()
    rejected_id: str | None = None
    restarted_ids: tuple[str, ...] = ()
    useful_delta_ms: float = 0.0
    wasted_delta_ms: float = 0.0

    @property
    def moved(self) -> bool:
        return bool(self.merged_ids) or self.rejected_id is not None


@dataclass(frozen=True)
class Preview:
    action: str  # "merge" | "reject" | "none"
    count: int = 0
    commit_ids: tuple[str, ...] = ()
    description: str = ""
    useful_delta_ms: float = 0.0
    wasted_delta_ms: float = 0.0


NO_ACTION = Preview(action="none")


@dataclass(frozen=True)
class TickResult:
    dt_ms: float
    started_ids: tuple[str, ...] = ()
    completed_ids: tuple[str, ...] = ()
    evaluation: EvalResult | None = None
    waiting: bool = False
    preview: Preview | None = None
    frozen: bool = False
    finished: bool = False


@dataclass(frozen=True)
class RunStats:
    total_reruns: int
    wasted_ci_ms: float
    useful_ci_ms: float
    wall_clock_ms: float
    sequential_ci_ms: float


@dataclass(frozen=True)
class SimSnapshot:
    queue: tuple[CommitView, ...]
    active_size: int
    merged_ids: tuple[str, ...]
    rejected_ids: tuple[str, ...]
    stats: RunStats
    step_phase: str
    preview: Preview | None
    finished: bool


@dataclass(frozen=True)
class RunRecord:
    """Totals of a run, kept across a reset for comparison."""

    merged: int
    rejected: int
    concurrency_limit: int
    reruns: int
    wall_clock_ms: float
    sequential_ci_ms: float
    useful_ci_ms: float
    wasted_ci_ms: float
    total_cost: float
    wasted_cost: float

    @property
    def processed(self) -> int:
        return self.merged + self.rejected
