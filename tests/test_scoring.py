"""Tests for maintainability and technical-debt scoring."""

import math

import pytest

from codesage.config import DebtCostTable, MaintainabilityWeights
from codesage.models import Issue, IssueCategory, Location, Severity
from codesage.scoring import (
    comment_ratio,
    complexity_penalty,
    count_lines_of_code,
    interpret_maintainability,
    maintainability_index,
    technical_debt,
    weighted_maintainability,
)


def issue(category=IssueCategory.MAINTAINABILITY, severity=Severity.P1, line=1):
    return Issue(
        rule_id="rule",
        category=category,
        severity=severity,
        location=Location("a.py", line),
        message="msg",
    )


class TestMaintainabilityIndex:
    """MI = 100 - a*ln(avg_cc) - b*ln(loc) + c*comment_ratio, clamped."""

    def test_trivial_input_scores_ceiling(self):
        assert maintainability_index(1.0, 0, 0.0) == 100.0
        assert maintainability_index(0.0, 1, 0.0) == 100.0

    def test_formula(self):
        mi = maintainability_index(math.e, 1, 0.0)
        assert mi == pytest.approx(94.0)

        mi = maintainability_index(1.0, 100, 0.5)
        assert mi == round(100 - 4 * math.log(100) + 10, 2)

    def test_clamped_to_range(self):
        assert maintainability_index(1e12, 10 ** 12, 0.0) == 0.0
        assert maintainability_index(1.0, 1, 1.0) == 100.0

    def test_custom_weights(self):
        weights = MaintainabilityWeights(a=0.0, b=10.0, c=0.0)
        assert maintainability_index(50.0, 1000, 0.9, weights) == round(100 - 10 * math.log(1000), 2)

    def test_deterministic(self):
        results = {maintainability_index(3.7, 412, 0.13) for _ in range(5)}
        assert len(results) == 1

    @pytest.mark.parametrize("mi,label", [
        (100.0, "Excellent"),
        (85.0, "Excellent"),
        (70.0, "Good"),
        (55.0, "Moderate"),
        (30.0, "Poor"),
        (5.0, "Critical"),
    ])
    def test_interpretation(self, mi, label):
        assert interpret_maintainability(mi) == label

    def test_weighted_mean(self):
        assert weighted_maintainability([]) == 100.0
        assert weighted_maintainability([(80.0, 100), (40.0, 300)]) == 50.0
        assert weighted_maintainability([(100.0, 0)]) == 100.0


class TestLineMetrics:
    """Physical line counting."""

    def test_count_lines_of_code(self):
        assert count_lines_of_code("") == 0
        assert count_lines_of_code("   \n\t\n") == 0
        assert count_lines_of_code("a = 1\n\n  b = 2\n") == 2

    def test_comment_ratio(self):
        assert comment_ratio(0, 0) == 0.0
        assert comment_ratio(5, 20) == 0.25
        assert comment_ratio(30, 20) == 1.0


class TestTechnicalDebt:
    """Issue costs plus the complexity penalty."""

    def test_default_costs(self):
        table = DebtCostTable()
        assert table.cost(IssueCategory.MAINTAINABILITY, Severity.P0) == 120
        assert table.cost(IssueCategory.MAINTAINABILITY, Severity.P3) == 10
        assert table.cost(IssueCategory.SECURITY, Severity.P1) == 90
        assert table.cost(IssueCategory.STYLE, Severity.P2) == 15

    def test_complexity_penalty(self):
        table = DebtCostTable()
        assert complexity_penalty(10, table) == 0
        assert complexity_penalty(13, table) == 15

    def test_sum(self):
        issues = [issue(), issue(IssueCategory.SECURITY, Severity.P1, line=2)]
        assert technical_debt(issues, [12, 3]) == 60 + 90 + 10

    def test_no_input(self):
        assert technical_debt([], []) == 0
