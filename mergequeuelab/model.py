from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CiStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAIL = "fail"

    @property
    def resolved(self) -> bool:
        return self in (CiStatus.SUCCESS, CiStatus.FAIL)


REJECTION_POLICIES = ("useful", "wasted")


@dataclass(frozen=True)
class SimConfig:
    success_rate: float = 70.0
    concurrency_limit: int = 10
    total_commits: int = 100
    base_ci_duration_minutes: float = 15.0
    ci_jitter_minutes: float = 10.0
    speed_multiplier: float = 240.0
    step_mode_enabled: bool = True
    rate_per_runner_minute: float = 0.008
    runner_count: int = 1
    rejection_ci_policy: str = "useful"
    seed: int | None = None

    def replace(self, **changes: Any) -> "SimConfig":
        return dataclasses.replace(self, **changes)

    @staticmethod
    def from_json(obj: dict[str, Any]) -> "SimConfig":
        """Build a config from persisted settings.

        Accepts the snake_case field names as well as the camelCase keys the
        browser settings store used. Unknown keys are ignored; a value that
        cannot be converted raises `ConfigValidationError`.
        """

        from mergequeuelab.validate import ConfigValidationError

        values: dict[str, Any] = {}
        for key, raw in obj.items():
            name = _JSON_ALIASES.get(str(key), str(key))
            if name not in _FIELD_TYPES or raw is None:
                continue
            try:
                values[name] = _FIELD_TYPES[name](raw)
            except (TypeError, ValueError) as e:
                raise ConfigValidationError(f"{key}: {e}") from e
        return SimConfig(**values)

    def to_json(self) -> dict[str, Any]:
        return {
            "successRate": self.success_rate,
            "buildConcurrency": self.concurrency_limit,
            "totalCommits": self.total_commits,
            "ciDuration": self.base_ci_duration_minutes,
            "ciJitter": self.ci_jitter_minutes,
            "speed": self.speed_multiplier,
            "stepMode": self.step_mode_enabled,
            "ratePerRunnerMinute": self.rate_per_runner_minute,
            "runnerCount": self.runner_count,
            "rejectionCiPolicy": self.rejection_ci_policy,
            "seed": self.seed,
        }


def _int(v: Any) -> int:
    if isinstance(v, bool):
        raise TypeError(f"expected an integer, got {v!r}")
    if isinstance(v, float) and not v.is_integer():
        raise ValueError(f"expected an integer, got {v!r}")
    return int(v)


def _optional_int(v: Any) -> int | None:
    return None if v is None else _int(v)


_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


def _bool(v: Any) -> bool:
    # Settings files may hold "true" / "false" strings.
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)) and v in (0, 1):
        return bool(v)
    if isinstance(v, str) and v.strip().lower() in _TRUE + _FALSE:
        return v.strip().lower() in _TRUE
    raise ValueError(f"expected a boolean, got {v!r}")


_FIELD_TYPES: dict[str, Any] = {
    "success_rate": float,
    "concurrency_limit": _int,
    "total_commits": _int,
    "base_ci_duration_minutes": float,
    "ci_jitter_minutes": float,
    "speed_multiplier": float,
    "step_mode_enabled": _bool,
    "rate_per_runner_minute": float,
    "runner_count": _int,
    "rejection_ci_policy": str,
    "seed": _optional_int,
}

_JSON_ALIASES = {
    "successRate": "success_rate",
    "buildConcurrency": "concurrency_limit",
    "concurrencyLimit": "concurrency_limit",
    "batchSize": "concurrency_limit",
    "totalCommits": "total_commits",
    "ciDuration": "base_ci_duration_minutes",
    "baseCiDurationMinutes": "base_ci_duration_minutes",
    "ciJitter": "ci_jitter_minutes",
    "ciJitterMinutes": "ci_jitter_minutes",
    "speed": "speed_multiplier",
    "speedMultiplier": "speed_multiplier",
    "stepMode": "step_mode_enabled",
    "stepModeEnabled": "step_mode_enabled",
    "ratePerRunnerMinute": "rate_per_runner_minute",
    "runnerCount": "runner_count",
    "rejectionCiPolicy": "rejection_ci_policy",
}


# label, success %, concurrency, commits, CI minutes, jitter minutes, speed
PRESETS: dict[str, tuple[str, float, int, int, float, float, float]] = {
    "default": ("Default", 70, 10, 100, 15, 10, 240),
    "mostly-green": ("Mostly Green", 95, 10, 100, 10, 5, 240),
    "flaky-ci": ("Flaky CI", 50, 10, 100, 15, 10, 240),
    "disaster": ("Disaster Mode", 15, 10, 60, 20, 10, 3600),
    "fast-and-furious": ("Fast & Furious", 80, 20, 200, 5, 3, 10800),
}


def preset_config(name: str, base: SimConfig | None = None) -> SimConfig:
    try:
        _label, rate, conc, commits, duration, jitter, speed = PRESETS[name]
    except KeyError:
        raise KeyError(f"Unknown preset: {name!r}") from None
    return (base or SimConfig()).replace(
        success_rate=float(rate),
        concurrency_limit=conc,
        total_commits=commits,
        base_ci_duration_minutes=float(duration),
        ci_jitter_minutes=float(jitter),
        speed_multiplier=float(speed),
    )


def active_preset(config: SimConfig) -> str | None:
    for name in PRESETS:
        if preset_config(name, base=config) == config:
            return name
    return None


@dataclass
class Commit:
    """A candidate change and its CI lifecycle.

    `planned_outcome` is decided when CI starts; `status` only takes that value
    once the run has elapsed its full duration.
    """

    id: str
    name: str
    created_at_ms: float
    status: CiStatus = CiStatus.IDLE
    planned_outcome: CiStatus | None = None
    duration_ms: float = 0.0
    elapsed_ms: float = 0.0
    run_count: int = 0
    first_run_duration_ms: float = 0.0

    def reset_ci(self) -> None:
        self.status = CiStatus.IDLE
        self.planned_outcome = None
        self.duration_ms = 0.0
        self.elapsed_ms = 0.0


@dataclass
class SimState:
    commits: dict[str, Commit]
    queue: list[str]
    merged: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    total_reruns: int = 0
    wasted_ci_ms: float = 0.0
    useful_ci_ms: float = 0.0
    wall_clock_ms: float = 0.0
    sequential_ci_ms: float = 0.0
    finished: bool = False

    def head(self) -> Commit | None:
        if not self.queue:
            return None
        return self.commits[self.queue[0]]

    def window(self, size: int) -> list[Commit]:
        return [self.commits[cid] for cid in self.queue[:size]]
