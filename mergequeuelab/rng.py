from __future__ import annotations

# NumPy-backed sampling for CI durations and outcomes.

import numpy as np
from numpy.random import Generator

MIN_CI_DURATION_MS = 30_000.0
MS_PER_MINUTE = 60_000.0


def _splitmix64(x: int) -> int:
    x = (x + 0x9E3779B97F4A7C15) & 0xFFFFFFFFFFFFFFFF
    z = x
    z = (z ^ (z >> 30)) * 0xBF58476D1CE4E5B9 & 0xFFFFFFFFFFFFFFFF
    z = (z ^ (z >> 27)) * 0x94D049BB133111EB & 0xFFFFFFFFFFFFFFFF
    return z ^ (z >> 31)


def make_rng(seed: int | None) -> Generator:
    if seed is None:
        return np.random.default_rng()
    return np.random.default_rng(_splitmix64(seed & 0xFFFFFFFFFFFFFFFF))


def ci_duration_bounds(base_minutes: float, jitter_minutes: float) -> tuple[float, float]:
    base_ms = float(base_minutes) * MS_PER_MINUTE
    jitter_ms = float(jitter_minutes) * MS_PER_MINUTE
    lo = max(MIN_CI_DURATION_MS, base_ms - jitter_ms)
    hi = max(lo, base_ms + jitter_ms)
    return lo, hi


def sample_uniform(rng: Generator, lo: float, hi: float) -> float:
    if hi <= lo:
        return float(lo)
    return float(rng.uniform(lo, hi))


def bernoulli_percent(rng: Generator, percent: float) -> bool:
    return float(rng.random()) * 100.0 < percent
