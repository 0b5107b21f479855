from __future__ import annotations

import math

from mergequeuelab.model import REJECTION_POLICIES, SimConfig


class ConfigValidationError(ValueError):
    pass


def _require_finite(name: str, value: object) -> None:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
    ):
        raise ConfigValidationError(f"{name} must be a finite number (got {value!r})")


def _require_int(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"{name} must be an integer (got {value!r})")


def validate_config(config: SimConfig) -> None:
    for name in ("concurrency_limit", "total_commits", "runner_count"):
        _require_int(name, getattr(config, name))
    if config.seed is not None:
        _require_int("seed", config.seed)

    for name in (
        "success_rate",
        "base_ci_duration_minutes",
        "ci_jitter_minutes",
        "speed_multiplier",
        "rate_per_runner_minute",
    ):
        _require_finite(name, getattr(config, name))

    if not 0 <= config.success_rate <= 100:
        raise ConfigValidationError(
            f"success_rate must be within [0, 100] (got {config.success_rate})"
        )
    if config.concurrency_limit < 1:
        raise ConfigValidationError(
            f"concurrency_limit must be >= 1 (got {config.concurrency_limit})"
        )
    if config.total_commits < 1:
        raise ConfigValidationError(
            f"total_commits must be >= 1 (got {config.total_commits})"
        )
    if config.base_ci_duration_minutes < 0:
        raise ConfigValidationError("base_ci_duration_minutes must be >= 0")
    if config.ci_jitter_minutes < 0:
        raise ConfigValidationError("ci_jitter_minutes must be >= 0")
    if config.speed_multiplier < 0:
        raise ConfigValidationError("speed_multiplier must be >= 0")
    if config.rate_per_runner_minute < 0:
        raise ConfigValidationError("rate_per_runner_minute must be >= 0")
    if config.runner_count < 1:
        raise ConfigValidationError(
            f"runner_count must be >= 1 (got {config.runner_count})"
        )
    if config.rejection_ci_policy not in REJECTION_POLICIES:
        raise ConfigValidationError(
            (
                "rejection_ci_policy must be one of "
                f"{', '.join(REJECTION_POLICIES)} (got {config.rejection_ci_policy!r})"
            )
        )
