from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from mergequeuelab.formatting import round_half_up
from mergequeuelab.model import SimConfig

if TYPE_CHECKING:  # pragma: no cover
    from mergequeuelab.simulation import Simulation
    from mergequeuelab.types import RunRecord

MS_PER_MINUTE = 60_000.0
MAX_RECOMMENDED_CONCURRENCY = 50

# Cycle counts below this removal rate are treated as "never finishes".
MIN_REMOVED_PER_CYCLE = 1e-4
STALLED_CYCLES = 9999.0

# Empirical smoothing: the last cycle is usually only partly filled, so half a
# cycle's worth of runs is taken off the total. Not derived, only fitted.
CYCLE_TAIL_CORRECTION = 0.5


def waste_ratio(useful_ms: float, wasted_ms: float) -> float | None:
    """wasted/useful; inf when nothing useful happened yet, None when idle."""

    if useful_ms > 0:
        return wasted_ms / useful_ms
    if wasted_ms > 0:
        return math.inf
    return None


def time_saved_ms(sequential_ms: float, wall_clock_ms: float) -> float:
    return max(0.0, sequential_ms - wall_clock_ms)


def ci_cost(
    useful_ms: float,
    wasted_ms: float,
    *,
    runners: int,
    rate_per_runner_minute: float,
) -> float:
    return (useful_ms + wasted_ms) / MS_PER_MINUTE * runners * rate_per_runner_minute


def wasted_cost(wasted_ms: float, *, runners: int, rate_per_runner_minute: float) -> float:
    return wasted_ms / MS_PER_MINUTE * runners * rate_per_runner_minute


def merge_percentages(merged: int, rejected: int) -> tuple[int, int] | None:
    settled = merged + rejected
    if settled == 0:
        return None
    return round_half_up(merged / settled * 100), round_half_up(rejected / settled * 100)


def optimal_concurrency(success_rate: float) -> int:
    p = success_rate / 100.0
    if p >= 1:
        return MAX_RECOMMENDED_CONCURRENCY
    if p <= 0:
        return 1
    return max(1, min(MAX_RECOMMENDED_CONCURRENCY, round_half_up(1.0 / (1.0 - p))))


def expected_merged_per_cycle(p: float, b: int) -> float:
    """E[merged] = sum_{k<b} k p^k (1-p) + b p^b.

    The position of the first failure in a window of `b`, or `b` when the
    whole window passes.
    """

    k = np.arange(b, dtype=float)
    return float(np.sum(k * np.power(p, k) * (1.0 - p)) + b * p**b)


@dataclass(frozen=True)
class ConcurrencyEstimate:
    concurrency: int
    expected_merged: float
    removed_per_cycle: float
    cycles: float
    wall_clock_minutes: float
    total_runs: float
    cost: float
    cost_multiplier: float


def estimate_at_concurrency(config: SimConfig, b: int) -> ConcurrencyEstimate:
    p = config.success_rate / 100.0
    merged = expected_merged_per_cycle(p, b)
    removed = merged + (1.0 - p**b)
    cycles = config.total_commits / removed if removed > MIN_REMOVED_PER_CYCLE else STALLED_CYCLES
    total_runs = max(1.0, cycles - CYCLE_TAIL_CORRECTION) * b
    cost = (
        total_runs
        * config.base_ci_duration_minutes
        * config.runner_count
        * config.rate_per_runner_minute
    )
    return ConcurrencyEstimate(
        concurrency=b,
        expected_merged=merged,
        removed_per_cycle=removed,
        cycles=cycles,
        wall_clock_minutes=cycles * config.base_ci_duration_minutes,
        total_runs=total_runs,
        cost=cost,
        cost_multiplier=max(1.0, total_runs / config.total_commits),
    )


def concurrency_curve(
    config: SimConfig, max_concurrency: int = MAX_RECOMMENDED_CONCURRENCY
) -> list[ConcurrencyEstimate]:
    return [estimate_at_concurrency(config, b) for b in range(1, max_concurrency + 1)]


def summarize(sim: "Simulation") -> dict[str, Any]:
    s = sim.state
    cfg = sim.config
    ratio = waste_ratio(s.useful_ci_ms, s.wasted_ci_ms)
    pct = merge_percentages(len(s.merged), len(s.rejected))
    optimal = optimal_concurrency(cfg.success_rate)
    return {
        "config": cfg.to_json(),
        "queue_remaining": len(s.queue),
        "merged": len(s.merged),
        "rejected": len(s.rejected),
        "merged_pct": pct[0] if pct else None,
        "rejected_pct": pct[1] if pct else None,
        "total_reruns": s.total_reruns,
        "time_ms": {
            "wall_clock": s.wall_clock_ms,
            "sequential": s.sequential_ci_ms,
            "saved": time_saved_ms(s.sequential_ci_ms, s.wall_clock_ms),
        },
        "ci_ms": {
            "useful": s.useful_ci_ms,
            "wasted": s.wasted_ci_ms,
            # JSON has no infinity; a string keeps the file valid.
            "waste_ratio": "inf" if ratio == math.inf else ratio,
        },
        "cost": {
            "total": ci_cost(
                s.useful_ci_ms,
                s.wasted_ci_ms,
                runners=cfg.runner_count,
                rate_per_runner_minute=cfg.rate_per_runner_minute,
            ),
            "wasted": wasted_cost(
                s.wasted_ci_ms,
                runners=cfg.runner_count,
                rate_per_runner_minute=cfg.rate_per_runner_minute,
            ),
        },
        "optimal_concurrency": optimal,
        "estimate": {
            "current": asdict(estimate_at_concurrency(cfg, cfg.concurrency_limit)),
            "optimal": asdict(estimate_at_concurrency(cfg, optimal)),
        },
    }


# Metrics where a smaller value is the better outcome.
_LOWER_IS_BETTER = {
    "wall_clock_ms": True,
    "sequential_ci_ms": True,
    "time_saved_ms": False,
    "useful_ci_ms": False,
    "wasted_ci_ms": True,
    "reruns": True,
    "total_cost": True,
    "wasted_cost": True,
}


def compare_runs(previous: "RunRecord", current: "RunRecord") -> dict[str, dict[str, Any]]:
    """Per-metric deltas between two runs, flagged as improvements or not."""

    def _values(r: "RunRecord") -> dict[str, float]:
        return {
            "wall_clock_ms": r.wall_clock_ms,
            "sequential_ci_ms": r.sequential_ci_ms,
            "time_saved_ms": time_saved_ms(r.sequential_ci_ms, r.wall_clock_ms),
            "useful_ci_ms": r.useful_ci_ms,
            "wasted_ci_ms": r.wasted_ci_ms,
            "reruns": float(r.reruns),
            "total_cost": r.total_cost,
            "wasted_cost": r.wasted_cost,
        }

    prev = _values(previous)
    cur = _values(current)
    out: dict[str, dict[str, Any]] = {}
    for key, lower_is_better in _LOWER_IS_BETTER.items():
        diff = cur[key] - prev[key]
        if diff == 0:
            improved = None
        else:
            improved = diff < 0 if lower_is_better else diff > 0
        out[key] = {
            "previous": prev[key],
            "current": cur[key],
            "diff": diff,
            "improved": improved,
        }
    return out
