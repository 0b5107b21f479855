from __future__ import annotations

from mergequeuelab.model import CiStatus, SimConfig
from mergequeuelab.simulation import Simulation


def fixed_config(**overrides) -> SimConfig:
    """Every CI run takes exactly one minute."""

    values = dict(
        success_rate=100.0,
        concurrency_limit=5,
        total_commits=5,
        base_ci_duration_minutes=1.0,
        ci_jitter_minutes=0.0,
        step_mode_enabled=False,
        seed=1,
    )
    values.update(overrides)
    return SimConfig(**values)


def make_sim(**overrides) -> Simulation:
    return Simulation(fixed_config(**overrides), now_ms=1_000_000.0)


def force(
    sim: Simulation,
    cid: str,
    status: CiStatus,
    *,
    duration: float = 0.0,
    elapsed: float | None = None,
) -> None:
    """Put a commit into a given CI state as if one run had been started."""

    c = sim.state.commits[cid]
    c.status = status
    if status is CiStatus.IDLE:
        c.reset_ci()
        return
    c.duration_ms = duration
    c.elapsed_ms = duration if elapsed is None else elapsed
    c.planned_outcome = status if status.resolved else CiStatus.SUCCESS
    c.run_count = max(1, c.run_count)
    if not c.first_run_duration_ms:
        c.first_run_duration_ms = duration


def statuses(sim: Simulation) -> list[CiStatus]:
    return [sim.state.commits[cid].status for cid in sim.state.queue]
