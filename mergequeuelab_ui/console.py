from __future__ import annotations

import argparse
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from mergequeuelab.formatting import format_ci_time, format_ratio
from mergequeuelab.logging_config import setup_logging
from mergequeuelab.metrics import time_saved_ms, waste_ratio
from mergequeuelab.model import PRESETS, SimConfig, preset_config
from mergequeuelab.simulation import Simulation
from mergequeuelab.types import Preview, SimSnapshot, TickResult
from mergequeuelab.validate import ConfigValidationError
from mergequeuelab_ui.live_loop import LiveLoop


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mergequeuelab_ui", description="Run the merge queue in (accelerated) real time"
    )
    p.add_argument("--preset", choices=sorted(PRESETS), default="default")
    p.add_argument("--speed", type=float, help="Simulated ms per real ms")
    p.add_argument("--seed", type=int)
    p.add_argument(
        "--auto-step",
        action="store_true",
        help="Step mode on, acknowledging every pending action automatically",
    )
    p.add_argument("--log-level", default="WARNING")
    return p


class ConsoleReporter:
    """Prints queue movements and the final summary."""

    def __init__(self, loop: LiveLoop, *, auto_step: bool, out=None) -> None:
        self._loop = loop
        self._auto_step = auto_step
        self._out = out if out is not None else sys.stdout
        loop.ticked.connect(self.on_tick)
        loop.step_waiting.connect(self.on_step_waiting)
        loop.finished.connect(self.on_finished)

    def on_tick(self, tick: TickResult) -> None:
        ev = tick.evaluation
        if ev is None or not ev.moved:
            return
        if ev.merged_ids:
            self._out.write(f"merged {len(ev.merged_ids)}: {', '.join(ev.merged_ids)}\n")
        if ev.rejected_id is not None:
            self._out.write(
                f"rejected {ev.rejected_id}, restarted {len(ev.restarted_ids)}\n"
            )

    def on_step_waiting(self, preview: Preview) -> None:
        self._out.write(f"step: {preview.description}\n")
        if self._auto_step:
            QTimer.singleShot(0, self._loop.acknowledge_step)

    def on_finished(self, snapshot: SimSnapshot) -> None:
        st = snapshot.stats
        self._out.write(
            f"done: {len(snapshot.merged_ids)} merged, {len(snapshot.rejected_ids)} rejected, "
            f"wall clock {format_ci_time(st.wall_clock_ms)}, "
            f"saved {format_ci_time(time_saved_ms(st.sequential_ci_ms, st.wall_clock_ms))}, "
            f"waste {format_ratio(waste_ratio(st.useful_ci_ms, st.wasted_ci_ms))}\n"
        )
        app = QCoreApplication.instance()
        if app is not None:
            app.quit()


def run_console(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(str(args.log_level).upper())

    config = preset_config(args.preset, base=SimConfig())
    config = config.replace(step_mode_enabled=bool(args.auto_step), seed=args.seed)
    if args.speed is not None:
        config = config.replace(speed_multiplier=args.speed)
    try:
        sim = Simulation(config)
    except ConfigValidationError as e:
        sys.stderr.write(f"invalid configuration: {e}\n")
        return 2

    app = QCoreApplication.instance() or QCoreApplication([sys.argv[0]])
    loop = LiveLoop(sim)
    reporter = ConsoleReporter(loop, auto_step=bool(args.auto_step))  # noqa: F841 - keeps slots alive
    loop.start()
    return app.exec()
