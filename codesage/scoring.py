"""
Maintainability index and technical-debt scoring.

Uses the simplified Maintainability Index:

    MI = 100 - a*ln(avg_cc) - b*ln(loc) + c*comment_ratio

clamped to [0, 100].  Both logarithms are guarded with ``max(1, x)`` so an
empty or trivial file scores 100 rather than raising.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence, Tuple

from .config import DebtCostTable, MaintainabilityWeights
from .models import Issue


def count_lines_of_code(text: str) -> int:
    """Number of non-blank physical lines."""
    return sum(1 for line in text.splitlines() if line.strip())


def comment_ratio(comment_lines: int, lines_of_code: int) -> float:
    if lines_of_code <= 0:
        return 0.0
    return round(min(1.0, comment_lines / lines_of_code), 4)


def maintainability_index(
    average_cyclomatic: float,
    lines_of_code: int,
    ratio: float,
    weights: MaintainabilityWeights = MaintainabilityWeights(),
) -> float:
    """
    Calculate the Maintainability Index of one file.

    Args:
        average_cyclomatic: Mean cyclomatic complexity of the file's units
        lines_of_code: Non-blank lines
        ratio: Comment lines / lines of code, in [0, 1]
        weights: Coefficients ``a``, ``b`` and ``c``

    Returns:
        MI in [0, 100], rounded to two decimals
    """
    mi = (
        100.0
        - weights.a * math.log(max(1.0, average_cyclomatic))
        - weights.b * math.log(max(1, lines_of_code))
        + weights.c * ratio
    )
    return round(max(0.0, min(100.0, mi)), 2)


def interpret_maintainability(mi: float) -> str:
    if mi >= 85:
        return "Excellent"
    elif mi >= 65:
        return "Good"
    elif mi >= 50:
        return "Moderate"
    elif mi >= 20:
        return "Poor"
    else:
        return "Critical"


def weighted_maintainability(per_file: Iterable[Tuple[float, int]]) -> float:
    """Line-weighted mean of per-file MI; 100.0 when nothing was measured."""
    total_weight = 0
    weighted = 0.0
    for mi, loc in per_file:
        weight = max(1, loc)
        total_weight += weight
        weighted += mi * weight
    if total_weight == 0:
        return 100.0
    return round(weighted / total_weight, 2)


def complexity_penalty(cyclomatic: int, table: DebtCostTable) -> int:
    return table.minutes_per_excess_point * max(0, cyclomatic - table.excess_threshold)


def technical_debt(
    issues: Iterable[Issue],
    cyclomatic_values: Sequence[int],
    table: DebtCostTable = DebtCostTable(),
) -> int:
    """Estimated remediation effort in minutes.

    Sums the cost of every issue by (category, severity) plus a penalty per
    cyclomatic point above the excess threshold for each unit.
    """
    minutes = sum(table.cost(issue.category, issue.severity) for issue in issues)
    minutes += sum(complexity_penalty(cc, table) for cc in cyclomatic_values)
    assert minutes >= 0, "technical debt cannot be negative"
    return minutes
