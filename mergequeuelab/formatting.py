from __future__ import annotations

import math


def round_half_up(x: float) -> int:
    """Nearest integer with halves rounded up, as browser `Math.round` does.

    Builtin `round` sends halves to the even neighbour (2.5 -> 2).
    """

    return math.floor(x + 0.5)


def format_ci_time(ms: float) -> str:
    sign = "-" if ms < 0 else ""
    s = abs(ms) / 1000.0
    if s < 60:
        return f"{sign}{s:.1f} s"
    total_min = s / 60.0
    if total_min < 60:
        m = math.floor(total_min)
        rem = round_half_up(s % 60)
        return f"{sign}{m}m {rem}s" if rem > 0 else f"{sign}{m} m"
    h = math.floor(total_min / 60)
    rem_min = round_half_up(total_min % 60)
    return f"{sign}{h}h {rem_min}m" if rem_min > 0 else f"{sign}{h} h"


def format_card_time(ms: float) -> str:
    """Compact label for queue cards, e.g. "42s", "4.2m", "1h 5m"."""

    s = ms / 1000.0
    if s < 60:
        return f"{s:.0f}s"
    m = s / 60.0
    if m < 60:
        text = f"{m:.1f}"
        return (text[:-2] if text.endswith(".0") else text) + "m"
    h = math.floor(m / 60)
    rem = round_half_up(m % 60)
    return f"{h}h {rem}m" if rem > 0 else f"{h}h"


def format_cost(dollars: float) -> str:
    if 0 < dollars < 0.01:
        return "< $0.01"
    if dollars >= 1000:
        return f"${dollars:,.0f}"
    if dollars >= 100:
        return f"${dollars:.0f}"
    if dollars >= 10:
        return f"${dollars:.1f}"
    return f"${dollars:.2f}"


def format_wall_minutes(minutes: float) -> str:
    if minutes < 60:
        return f"~{round_half_up(minutes)} min"
    if minutes < 1440:
        return f"~{minutes / 60:.1f} hrs"
    return f"~{minutes / 1440:.1f} days"


def format_ratio(ratio: float | None) -> str:
    if ratio is None:
        return "-"
    if math.isinf(ratio):
        return "∞"
    return f"{round_half_up(ratio * 100)}%"


def format_multiplier(multiplier: float) -> str:
    if multiplier < 10:
        return f"{multiplier:.1f}x"
    return f"{round_half_up(multiplier)}x"
