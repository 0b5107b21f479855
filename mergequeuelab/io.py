from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mergequeuelab.model import SimConfig
from mergequeuelab.validate import ConfigValidationError

if TYPE_CHECKING:  # pragma: no cover
    from mergequeuelab.simulation import Simulation


def write_summary_json(path: Path, summary: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary, indent=2, sort_keys=True), encoding="utf-8")


def write_commits_csv(path: Path, sim: "Simulation") -> None:
    """One row per commit that has left the queue, merged ones first."""

    path.parent.mkdir(parents=True, exist_ok=True)
    rows = [(cid, "merged") for cid in sim.state.merged]
    rows += [(cid, "rejected") for cid in sim.state.rejected]

    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(
            [
                "id",
                "name",
                "outcome",
                "ci_runs",
                "first_run_duration_ms",
                "last_duration_ms",
            ]
        )
        for cid, outcome in rows:
            c = sim.state.commits[cid]
            w.writerow(
                [
                    c.id,
                    c.name,
                    outcome,
                    c.run_count,
                    c.first_run_duration_ms,
                    c.duration_ms,
                ]
            )


def load_config_json(path: Path) -> SimConfig:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"{path}: not valid JSON ({e})") from e
    if not isinstance(raw, dict):
        raise ConfigValidationError(f"{path}: expected a JSON object of settings")
    return SimConfig.from_json(raw)


def save_config_json(path: Path, config: SimConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_json(), indent=2), encoding="utf-8")
