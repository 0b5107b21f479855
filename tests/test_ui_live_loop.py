from __future__ import annotations

import pytest

from helpers import fixed_config, force, make_sim
from mergequeuelab.model import CiStatus


def _ensure_qapp():
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _loop(sim):
    from mergequeuelab_ui.live_loop import LiveLoop

    clock = _FakeClock()
    return LiveLoop(sim, clock=clock), clock


def test_live_loop_scales_the_frame_delta() -> None:
    _ensure_qapp()
    sim = make_sim(total_commits=4, concurrency_limit=2, speed_multiplier=100)
    loop, clock = _loop(sim)
    ticks = []
    loop.ticked.connect(ticks.append)

    loop._on_timeout()
    clock.now = 0.1
    loop._on_timeout()

    assert len(ticks) == 2
    assert ticks[0].started_ids == ("c-0", "c-1")
    assert ticks[1].dt_ms == pytest.approx(10_000.0)
    assert sim.state.wall_clock_ms == pytest.approx(10_000.0)


def test_long_frames_are_capped() -> None:
    _ensure_qapp()
    sim = make_sim(total_commits=4, concurrency_limit=2, speed_multiplier=100)
    loop, clock = _loop(sim)

    loop._on_timeout()
    clock.now = 5.0
    loop._on_timeout()

    assert sim.state.wall_clock_ms == 200.0 * 100


def test_paused_loop_does_not_advance_and_resumes_without_a_jump() -> None:
    _ensure_qapp()
    sim = make_sim(total_commits=4, concurrency_limit=2, speed_multiplier=100)
    loop, clock = _loop(sim)
    loop._on_timeout()

    loop.pause()
    clock.now = 0.1
    loop._on_timeout()
    assert loop.is_paused()
    assert sim.state.wall_clock_ms == 0.0

    clock.now = 10.0
    loop.resume()
    loop._on_timeout()
    assert sim.state.wall_clock_ms == 0.0
    clock.now = 10.05
    loop._on_timeout()
    assert sim.state.wall_clock_ms == pytest.approx(5_000.0)


def test_finished_run_stops_the_timer_and_emits_a_snapshot() -> None:
    _ensure_qapp()
    sim = make_sim(total_commits=2, concurrency_limit=2, speed_multiplier=1000)
    loop, clock = _loop(sim)
    done = []
    loop.finished.connect(done.append)
    loop.start()
    assert loop.is_running()

    loop._on_timeout()
    clock.now = 0.2
    loop._on_timeout()
    assert sim.state.merged == ["c-0", "c-1"]
    loop._on_timeout()

    assert not loop.is_running()
    assert len(done) == 1
    assert done[0].finished
    assert done[0].merged_ids == ("c-0", "c-1")


def test_step_wait_is_announced_once_and_acknowledged() -> None:
    _ensure_qapp()
    sim = make_sim(total_commits=3, concurrency_limit=2, step_mode_enabled=True)
    force(sim, "c-0", CiStatus.SUCCESS, duration=100.0)
    loop, clock = _loop(sim)
    waits = []
    ticks = []
    loop.step_waiting.connect(waits.append)
    loop.ticked.connect(ticks.append)

    loop._on_timeout()
    clock.now = 1.0
    loop._on_timeout()

    assert len(waits) == 1
    assert waits[0].action == "merge"
    assert waits[0].commit_ids == ("c-0",)

    ev = loop.acknowledge_step()

    assert ev is not None and ev.merged_ids == ("c-0",)
    assert len(waits) == 1
    assert ticks[-1].evaluation == ev
    assert ticks[-1].dt_ms == 0.0
    assert sim.state.merged == ["c-0"]


def test_reset_stops_and_rebuilds_the_run() -> None:
    _ensure_qapp()
    sim = make_sim(total_commits=4, concurrency_limit=2)
    loop, _clock = _loop(sim)
    loop.start()
    loop.pause()

    loop.reset(fixed_config(total_commits=3))

    assert not loop.is_running()
    assert not loop.is_paused()
    assert loop.simulation.state.queue == ["c-0", "c-1", "c-2"]
