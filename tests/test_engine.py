from __future__ import annotations

import pytest

from helpers import force, make_sim, statuses
from mergequeuelab.model import CiStatus


def test_all_green_window_merges_in_one_pass() -> None:
    sim = make_sim(total_commits=5, concurrency_limit=5, success_rate=100)

    tick = sim.advance(60_000.0)

    assert tick.started_ids == ("c-0", "c-1", "c-2", "c-3", "c-4")
    assert tick.evaluation is not None
    assert tick.evaluation.merged_ids == ("c-0", "c-1", "c-2", "c-3", "c-4")
    assert tick.evaluation.rejected_id is None
    assert sim.state.rejected == []
    assert sim.state.wasted_ci_ms == 0
    assert sim.state.useful_ci_ms == 5 * 60_000.0
    assert sim.advance(1.0).finished
    assert sim.finished


def test_all_red_window_rejects_head_and_restarts_the_rest() -> None:
    sim = make_sim(total_commits=3, concurrency_limit=3, success_rate=0)

    tick = sim.advance(60_000.0)

    ev = tick.evaluation
    assert ev is not None
    assert ev.merged_ids == ()
    assert ev.rejected_id == "c-0"
    assert ev.restarted_ids == ("c-1", "c-2")
    assert ev.wasted_delta_ms == 120_000.0
    assert sim.state.queue == ["c-1", "c-2"]
    assert statuses(sim) == [CiStatus.IDLE, CiStatus.IDLE]

    sim.advance(60_000.0)
    assert sim.state.queue == ["c-2"]
    sim.advance(60_000.0)

    assert sim.state.queue == []
    assert sim.state.rejected == ["c-0", "c-1", "c-2"]
    assert sim.state.merged == []
    assert sim.state.wasted_ci_ms == 180_000.0
    assert sim.state.total_reruns == 3
    assert sim.state.sequential_ci_ms == 180_000.0


def test_ci_outcome_is_planned_at_start_and_revealed_at_completion() -> None:
    sim = make_sim(total_commits=1, concurrency_limit=1, success_rate=0)

    sim.advance(1_000.0)
    head = sim.state.commits["c-0"]
    assert head.status is CiStatus.RUNNING
    assert head.planned_outcome is CiStatus.FAIL
    assert head.elapsed_ms == 1_000.0

    sim.advance(100_000.0)
    assert head.status is CiStatus.FAIL
    assert head.elapsed_ms == head.duration_ms


def test_zero_dt_starts_ci_without_completing_it() -> None:
    sim = make_sim(total_commits=2, concurrency_limit=2)

    tick = sim.advance(0.0)

    assert tick.started_ids == ("c-0", "c-1")
    assert tick.completed_ids == ()
    assert statuses(sim) == [CiStatus.RUNNING, CiStatus.RUNNING]


def test_commits_beyond_the_window_stay_idle() -> None:
    sim = make_sim(total_commits=6, concurrency_limit=2)

    sim.advance(10.0)

    assert statuses(sim) == [CiStatus.RUNNING, CiStatus.RUNNING] + [CiStatus.IDLE] * 4


def test_restart_uses_the_window_measured_before_the_pass() -> None:
    sim = make_sim(total_commits=6, concurrency_limit=4)
    force(sim, "c-0", CiStatus.SUCCESS, duration=100.0)
    force(sim, "c-1", CiStatus.FAIL, duration=200.0)
    force(sim, "c-2", CiStatus.RUNNING, duration=300.0, elapsed=50.0)
    force(sim, "c-3", CiStatus.SUCCESS, duration=400.0)

    ev = sim.evaluate()

    assert ev.merged_ids == ("c-0",)
    assert ev.rejected_id == "c-1"
    # window was 4; two commits left this pass, so two are restarted
    assert ev.restarted_ids == ("c-2", "c-3")
    assert ev.wasted_delta_ms == 450.0
    assert ev.useful_delta_ms == 300.0
    assert sim.state.queue == ["c-2", "c-3", "c-4", "c-5"]
    assert all(s is CiStatus.IDLE for s in statuses(sim))
    restarted = sim.state.commits["c-2"]
    assert (restarted.duration_ms, restarted.elapsed_ms, restarted.planned_outcome) == (
        0.0,
        0.0,
        None,
    )


def test_running_commit_with_no_elapsed_time_wastes_nothing() -> None:
    sim = make_sim(total_commits=3, concurrency_limit=3)
    force(sim, "c-0", CiStatus.FAIL, duration=100.0)
    force(sim, "c-1", CiStatus.RUNNING, duration=300.0, elapsed=0.0)

    ev = sim.evaluate()

    assert ev.restarted_ids == ("c-1", "c-2")
    assert ev.wasted_delta_ms == 0.0


def test_a_failure_stops_the_pass_even_if_successes_follow() -> None:
    sim = make_sim(total_commits=4, concurrency_limit=4)
    force(sim, "c-0", CiStatus.FAIL, duration=100.0)
    force(sim, "c-1", CiStatus.SUCCESS, duration=100.0)
    force(sim, "c-2", CiStatus.FAIL, duration=100.0)

    ev = sim.evaluate()

    assert ev.merged_ids == ()
    assert ev.rejected_id == "c-0"
    assert sim.state.merged == []
    assert sim.state.rejected == ["c-0"]


def test_wasted_rejection_policy_moves_failed_run_time_to_waste() -> None:
    sim = make_sim(total_commits=4, concurrency_limit=3, rejection_ci_policy="wasted")
    force(sim, "c-0", CiStatus.SUCCESS, duration=100.0)
    force(sim, "c-1", CiStatus.FAIL, duration=200.0)
    force(sim, "c-2", CiStatus.RUNNING, duration=300.0, elapsed=70.0)

    ev = sim.evaluate()

    assert ev.useful_delta_ms == 100.0
    assert ev.wasted_delta_ms == 270.0
    assert sim.state.useful_ci_ms == 100.0
    assert sim.state.wasted_ci_ms == 270.0
    assert sim.state.sequential_ci_ms == 300.0


def test_sequential_baseline_uses_first_run_durations_only() -> None:
    sim = make_sim(
        total_commits=2,
        concurrency_limit=2,
        success_rate=0,
        base_ci_duration_minutes=10.0,
        ci_jitter_minutes=5.0,
        seed=42,
    )

    sim.advance(0.0)
    first = {cid: c.duration_ms for cid, c in sim.state.commits.items()}
    seen_sequential = [sim.state.sequential_ci_ms]
    for _ in range(100):
        if sim.advance(60_000.0).finished:
            break
        seen_sequential.append(sim.state.sequential_ci_ms)

    assert sim.state.queue == []
    assert sim.state.commits["c-1"].run_count == 2
    assert sim.state.commits["c-1"].first_run_duration_ms == first["c-1"]
    assert sim.state.sequential_ci_ms == pytest.approx(first["c-0"] + first["c-1"])
    assert seen_sequential == sorted(seen_sequential)


def test_queue_invariants_hold_on_every_tick() -> None:
    sim = make_sim(
        total_commits=30,
        concurrency_limit=4,
        success_rate=60,
        base_ci_duration_minutes=1.0,
        ci_jitter_minutes=0.5,
        seed=7,
    )
    total = sim.config.total_commits

    for _ in range(10_000):
        before = list(sim.state.queue)
        sequential_before = sim.state.sequential_ci_ms
        tick = sim.advance(7_000.0)
        if tick.finished:
            break
        s = sim.state

        assert len(s.queue) + len(s.merged) + len(s.rejected) == total

        busy = [c is not CiStatus.IDLE for c in statuses(sim)]
        n_busy = sum(busy)
        assert busy[:n_busy] == [True] * n_busy
        assert n_busy <= min(sim.config.concurrency_limit, len(s.queue))

        ev = tick.evaluation
        if ev is not None and ev.moved:
            removed = list(ev.merged_ids)
            if ev.rejected_id is not None:
                removed.append(ev.rejected_id)
            assert before[: len(removed)] == removed
            left = sum(s.commits[cid].first_run_duration_ms for cid in removed)
            assert s.sequential_ci_ms == pytest.approx(sequential_before + left)
        else:
            assert s.sequential_ci_ms == sequential_before
    else:
        pytest.fail("simulation did not finish")

    assert len(sim.state.merged) + len(sim.state.rejected) == total


def test_evaluate_on_empty_queue_is_a_programming_error() -> None:
    sim = make_sim(total_commits=1, concurrency_limit=1)
    sim.advance(60_000.0)
    assert sim.state.queue == []

    with pytest.raises(AssertionError):
        sim.evaluate()


def test_next_completion_is_the_shortest_remaining_run() -> None:
    sim = make_sim(total_commits=3, concurrency_limit=3)
    assert sim.engine.next_completion_ms() is None
    force(sim, "c-0", CiStatus.RUNNING, duration=1_000.0, elapsed=900.0)
    force(sim, "c-1", CiStatus.RUNNING, duration=1_000.0, elapsed=100.0)

    assert sim.engine.next_completion_ms() == 100.0
