"""Threshold and pattern rule detectors producing normalized issues."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .config import Thresholds
from .errors import ComplexityOverflow
from .models import (
    ComplexityResult,
    FunctionUnit,
    GenericKind,
    GenericNode,
    Issue,
    IssueCategory,
    Location,
    Severity,
)

# Calls that evaluate code or hand strings to a shell.
DANGEROUS_CALLS = {
    "eval": "code injection",
    "exec": "code injection",
    "__import__": "code injection",
    "system": "command injection",
    "popen": "command injection",
}

_EMPTY_BODY_TYPES = frozenset({"pass_statement", "empty_statement"})
_PUNCTUATION = frozenset({"{", "}", ";", ":"})


class IssueDetector:
    """Run every rule against one function unit or one file."""

    def __init__(self, thresholds: Thresholds = Thresholds()):
        self.thresholds = thresholds

    def detect_unit(
        self,
        path: str,
        unit: FunctionUnit,
        result: ComplexityResult,
        overflow: Optional[ComplexityOverflow] = None,
    ) -> List[Issue]:
        """Issues of one unit: threshold rules followed by tree-pattern rules."""
        issues: List[Issue] = []
        issues += self._detect_long_function(path, unit)
        issues += self._detect_high_complexity(path, unit, result)
        issues += self._detect_too_many_parameters(path, unit)
        issues += self._detect_deep_nesting(path, unit)
        issues += self._detect_cognitive(path, unit, result, overflow)
        issues += self._detect_empty_catches(path, unit)
        issues += self._detect_dangerous_calls(path, unit)
        issues += self._detect_nested_loops(path, unit)
        return issues

    def detect_file(self, path: str, duplicated_ratio: float, maintainability: float) -> List[Issue]:
        """File-wide rules, anchored at line 1."""
        issues: List[Issue] = []
        th = self.thresholds
        if duplicated_ratio > th.max_duplication_ratio:
            issues.append(Issue(
                rule_id="duplicated-code",
                category=IssueCategory.MAINTAINABILITY,
                severity=Severity.P2,
                location=Location(path, 1),
                message=(
                    f"{duplicated_ratio:.0%} of the tokens in this file are duplicated "
                    f"(limit {th.max_duplication_ratio:.0%})"
                ),
                suggestion="Extract the repeated code into a shared function",
            ))
        if maintainability < th.min_maintainability:
            issues.append(Issue(
                rule_id="low-maintainability",
                category=IssueCategory.MAINTAINABILITY,
                severity=Severity.P2,
                location=Location(path, 1),
                message=(
                    f"Maintainability index {maintainability:.2f} is below "
                    f"{th.min_maintainability:.0f}"
                ),
                suggestion="Split large functions and reduce branching",
            ))
        return issues

    # ------------------------------------------------------------------
    # Threshold rules
    # ------------------------------------------------------------------

    def _detect_long_function(self, path: str, unit: FunctionUnit) -> List[Issue]:
        limit = self.thresholds.max_function_lines
        if unit.file_level or unit.body_lines <= limit:
            return []
        return [Issue(
            rule_id="long-function",
            category=IssueCategory.MAINTAINABILITY,
            severity=Severity.P2,
            location=_unit_location(path, unit),
            message=f"Function '{unit.name}' is {unit.body_lines} lines long (limit {limit})",
            suggestion="Break the function into smaller, focused helpers",
        )]

    def _detect_high_complexity(
        self, path: str, unit: FunctionUnit, result: ComplexityResult,
    ) -> List[Issue]:
        th = self.thresholds
        cc = result.cyclomatic
        if cc <= th.max_cyclomatic:
            return []
        severity = Severity.P0 if cc > th.critical_cyclomatic else Severity.P1
        return [Issue(
            rule_id="high-complexity",
            category=IssueCategory.MAINTAINABILITY,
            severity=severity,
            location=_unit_location(path, unit),
            message=f"'{unit.name}' has cyclomatic complexity {cc} (limit {th.max_cyclomatic})",
            suggestion="Reduce branching, e.g. with early returns or lookup tables",
        )]

    def _detect_too_many_parameters(self, path: str, unit: FunctionUnit) -> List[Issue]:
        limit = self.thresholds.max_parameters
        if unit.file_level or unit.params <= limit:
            return []
        return [Issue(
            rule_id="too-many-parameters",
            category=IssueCategory.MAINTAINABILITY,
            severity=Severity.P3,
            location=_unit_location(path, unit),
            message=f"Function '{unit.name}' takes {unit.params} parameters (limit {limit})",
            suggestion="Group related parameters into an object",
        )]

    def _detect_deep_nesting(self, path: str, unit: FunctionUnit) -> List[Issue]:
        limit = self.thresholds.max_nesting_depth
        if unit.max_depth <= limit:
            return []
        return [Issue(
            rule_id="deep-nesting",
            category=IssueCategory.MAINTAINABILITY,
            severity=Severity.P2,
            location=Location(path, unit.deepest_line),
            message=f"'{unit.name}' nests control flow {unit.max_depth} levels deep (limit {limit})",
            suggestion="Use guard clauses or extract the inner block",
        )]

    def _detect_cognitive(
        self,
        path: str,
        unit: FunctionUnit,
        result: ComplexityResult,
        overflow: Optional[ComplexityOverflow],
    ) -> List[Issue]:
        if overflow is not None:
            return [Issue(
                rule_id="cognitive-unavailable",
                category=IssueCategory.MAINTAINABILITY,
                severity=Severity.P1,
                location=Location(path, overflow.line or unit.start_line),
                message=(
                    f"Nesting in '{unit.name}' exceeds {overflow.depth - 1} levels; "
                    "cognitive complexity could not be computed"
                ),
                suggestion="Flatten the nested blocks",
            )]
        limit = self.thresholds.max_cognitive
        if result.cognitive is None or result.cognitive <= limit:
            return []
        return [Issue(
            rule_id="high-cognitive-complexity",
            category=IssueCategory.MAINTAINABILITY,
            severity=Severity.P2,
            location=_unit_location(path, unit),
            message=(
                f"'{unit.name}' has cognitive complexity {result.cognitive} (limit {limit})"
            ),
            suggestion="Reduce nesting and split compound conditions",
        )]

    # ------------------------------------------------------------------
    # Tree-pattern rules
    # ------------------------------------------------------------------

    def _detect_empty_catches(self, path: str, unit: FunctionUnit) -> List[Issue]:
        issues: List[Issue] = []
        for node, _ in _walk_scope(unit):
            if node.kind is not GenericKind.CATCH:
                continue
            bodies = [c for c in node.children if c.kind is GenericKind.BLOCK]
            if bodies and _is_empty_block(bodies[-1]):
                issues.append(Issue(
                    rule_id="empty-catch",
                    category=IssueCategory.BUG,
                    severity=Severity.P1,
                    location=Location(path, node.start_line, node.end_line),
                    message="Exception is caught and silently ignored",
                    suggestion="Handle the error, log it, or let it propagate",
                ))
        return issues

    def _detect_dangerous_calls(self, path: str, unit: FunctionUnit) -> List[Issue]:
        issues: List[Issue] = []
        for node, _ in _walk_scope(unit):
            risk = DANGEROUS_CALLS.get(node.callee) if node.callee else None
            if risk is None:
                continue
            issues.append(Issue(
                rule_id="dangerous-call",
                category=IssueCategory.SECURITY,
                severity=Severity.P1,
                location=Location(path, node.start_line, node.end_line),
                message=f"Call to '{node.callee}()' risks {risk}",
                suggestion="Avoid evaluating dynamic strings; pass validated arguments instead",
            ))
        return issues

    def _detect_nested_loops(self, path: str, unit: FunctionUnit) -> List[Issue]:
        issues: List[Issue] = []
        for node, loops_above in _walk_scope(unit):
            if node.kind is GenericKind.LOOP and loops_above >= 1:
                issues.append(Issue(
                    rule_id="nested-loop",
                    category=IssueCategory.PERFORMANCE,
                    severity=Severity.P3,
                    location=Location(path, node.start_line, node.end_line),
                    message=f"Loop nested {loops_above + 1} levels deep in '{unit.name}'",
                    suggestion="Consider a lookup table or set membership to avoid O(n^2) scans",
                ))
        return issues


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def merge_issues(issues: Iterable[Issue]) -> List[Issue]:
    """Deduplicate on (category, path, line) and sort deterministically.

    The more severe issue wins a collision; equal severities keep the lowest
    rule id.  Output is ordered by severity (P0 first), path, line, rule id.
    """
    kept: Dict[Tuple[IssueCategory, str, int], Issue] = {}
    for issue in issues:
        key = (issue.category, issue.location.path, issue.location.line)
        current = kept.get(key)
        if current is None or (issue.severity.rank, issue.rule_id) < (
            current.severity.rank, current.rule_id,
        ):
            kept[key] = issue
    return sorted(kept.values(), key=lambda i: i.sort_key())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _unit_location(path: str, unit: FunctionUnit) -> Location:
    return Location(path, unit.start_line, unit.end_line)


def _walk_scope(unit: FunctionUnit) -> Iterator[Tuple[GenericNode, int]]:
    """Yield (node, enclosing loop count) for the unit, skipping nested functions."""
    stack: List[Tuple[GenericNode, int]] = [(c, 0) for c in reversed(unit.node.children)]
    while stack:
        node, loops = stack.pop()
        if node.kind is GenericKind.FUNCTION_LIKE:
            continue
        yield node, loops
        inner = loops + 1 if node.kind is GenericKind.LOOP else loops
        for child in reversed(node.children):
            stack.append((child, inner))


def _is_empty_block(block: GenericNode) -> bool:
    for child in block.children:
        if child.type in _EMPTY_BODY_TYPES:
            continue
        if child.is_leaf and child.type in _PUNCTUATION:
            continue
        return False
    return True
