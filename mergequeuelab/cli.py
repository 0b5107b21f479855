from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

from mergequeuelab.drivers import InstantDriver
from mergequeuelab.formatting import (
    format_ci_time,
    format_cost,
    format_multiplier,
    format_ratio,
    format_wall_minutes,
)
from mergequeuelab.io import load_config_json, write_commits_csv, write_summary_json
from mergequeuelab.logging_config import setup_logging
from mergequeuelab.metrics import (
    concurrency_curve,
    optimal_concurrency,
    summarize,
    time_saved_ms,
    waste_ratio,
)
from mergequeuelab.model import PRESETS, REJECTION_POLICIES, SimConfig, preset_config
from mergequeuelab.simulation import Simulation
from mergequeuelab.validate import ConfigValidationError, validate_config

# CLI flag -> SimConfig field
_OVERRIDES = {
    "success_rate": "success_rate",
    "concurrency": "concurrency_limit",
    "commits": "total_commits",
    "ci_duration": "base_ci_duration_minutes",
    "ci_jitter": "ci_jitter_minutes",
    "rate": "rate_per_runner_minute",
    "runners": "runner_count",
    "rejection_policy": "rejection_ci_policy",
    "seed": "seed",
}


def _add_config_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", type=Path, help="JSON settings file")
    p.add_argument("--preset", choices=sorted(PRESETS))
    p.add_argument("--success-rate", type=float, help="Percent of CI runs that pass")
    p.add_argument("--concurrency", type=int, help="Active window size")
    p.add_argument("--commits", type=int, help="Commits in the queue at start")
    p.add_argument("--ci-duration", type=float, help="Base CI duration (minutes)")
    p.add_argument("--ci-jitter", type=float, help="CI duration jitter (minutes)")
    p.add_argument("--rate", type=float, help="Cost per runner-minute")
    p.add_argument("--runners", type=int, help="Runners per CI run")
    p.add_argument("--rejection-policy", choices=REJECTION_POLICIES)
    p.add_argument("--seed", type=int)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mergequeuelab", description="Merge queue simulator")
    p.add_argument("--log-level", default="WARNING")
    sub = p.add_subparsers(dest="cmd", required=True)

    sim = sub.add_parser("simulate", help="Run one simulation to completion")
    _add_config_args(sim)
    sim.add_argument("--out-summary", type=Path)
    sim.add_argument("--out-commits", type=Path)
    sim.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Safety limit for the event loop (default: commits x concurrency x 10)",
    )

    opt = sub.add_parser("optimal", help="Estimate cost and time across concurrency values")
    _add_config_args(opt)
    opt.add_argument("--max-concurrency", type=int, default=50)
    opt.add_argument("--json", action="store_true", help="Print the curve as JSON")
    return p


def _config_from_args(args: argparse.Namespace) -> SimConfig:
    config = load_config_json(args.config) if args.config else SimConfig()
    if args.preset:
        config = preset_config(args.preset, base=config)
    changes = {
        field: getattr(args, flag)
        for flag, field in _OVERRIDES.items()
        if getattr(args, flag) is not None
    }
    config = config.replace(step_mode_enabled=False, **changes)
    validate_config(config)
    return config


def _print_report(sim: Simulation) -> None:
    s = sim.state
    cfg = sim.config
    summary = summarize(sim)
    lines = [
        f"merged      {len(s.merged)}",
        f"rejected    {len(s.rejected)}",
        f"reruns      {s.total_reruns}",
        f"wall clock  {format_ci_time(s.wall_clock_ms)}",
        f"sequential  {format_ci_time(s.sequential_ci_ms)}",
        f"time saved  {format_ci_time(time_saved_ms(s.sequential_ci_ms, s.wall_clock_ms))}",
        f"useful CI   {format_ci_time(s.useful_ci_ms)}",
        f"wasted CI   {format_ci_time(s.wasted_ci_ms)}",
        f"waste ratio {format_ratio(waste_ratio(s.useful_ci_ms, s.wasted_ci_ms))}",
        f"total cost  {format_cost(summary['cost']['total'])}",
        f"wasted cost {format_cost(summary['cost']['wasted'])}",
        (
            f"optimal concurrency {summary['optimal_concurrency']} "
            f"(current {cfg.concurrency_limit})"
        ),
    ]
    sys.stdout.write("\n".join(lines) + "\n")


def _simulate(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    sim = Simulation(config)
    result = InstantDriver(max_iterations=args.max_iterations).drive(sim)

    if args.out_summary:
        summary = summarize(sim)
        summary["converged"] = result.converged
        summary["iterations"] = result.iterations
        write_summary_json(args.out_summary, summary)
    if args.out_commits:
        write_commits_csv(args.out_commits, sim)

    _print_report(sim)
    if not result.converged:
        sys.stderr.write(f"{result.failure_reason}\n")
        return 1
    return 0


def _optimal(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    curve = concurrency_curve(config, max_concurrency=args.max_concurrency)
    optimal = optimal_concurrency(config.success_rate)

    if args.json:
        out = {"optimal_concurrency": optimal, "curve": [asdict(e) for e in curve]}
        sys.stdout.write(json.dumps(out, indent=2) + "\n")
        return 0

    sys.stdout.write(f"optimal concurrency: {optimal}\n")
    for est in curve:
        marker = "*" if est.concurrency == optimal else " "
        sys.stdout.write(
            f"{marker}{est.concurrency:>3}  {format_wall_minutes(est.wall_clock_minutes):>12}"
            f"  {format_cost(est.cost):>10}  {format_multiplier(est.cost_multiplier):>6}\n"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    p = _build_parser()
    args = p.parse_args(argv)
    setup_logging(str(args.log_level).upper())

    try:
        if args.cmd == "simulate":
            return _simulate(args)
        if args.cmd == "optimal":
            return _optimal(args)
    except ConfigValidationError as e:
        sys.stderr.write(f"invalid configuration: {e}\n")
        return 2

    raise AssertionError(f"Unhandled command: {args.cmd}")
