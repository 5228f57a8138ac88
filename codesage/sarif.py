"""SARIF 2.1.0 export of analysis issues for code-scanning dashboards."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from . import __version__
from .models import AnalysisReport, Issue, Severity

SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = (
    "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/"
    "Schemata/sarif-schema-2.1.0.json"
)
TOOL_NAME = "CodeSage"

RULE_DESCRIPTIONS: Dict[str, str] = {
    "long-function": "Function body is longer than the configured limit",
    "high-complexity": "Cyclomatic complexity is above the configured limit",
    "too-many-parameters": "Function takes more parameters than the configured limit",
    "deep-nesting": "Control flow is nested deeper than the configured limit",
    "high-cognitive-complexity": "Cognitive complexity is above the configured limit",
    "cognitive-unavailable": "Nesting is too deep to compute cognitive complexity",
    "duplicated-code": "Too large a share of the file is duplicated",
    "low-maintainability": "Maintainability index is below the configured minimum",
    "empty-catch": "Exception handler silently ignores the error",
    "dangerous-call": "Call evaluates code or runs a shell command",
    "nested-loop": "Loop nested inside another loop",
}

_LEVELS = {
    Severity.P0: "error",
    Severity.P1: "warning",
    Severity.P2: "note",
    Severity.P3: "note",
}


def severity_to_level(severity: Severity) -> str:
    return _LEVELS[severity]


def to_sarif(report: AnalysisReport) -> Dict[str, Any]:
    """Build a SARIF log with one run holding every issue of *report*.

    Rules are listed once per rule id, sorted, and every result points at
    its rule through ``ruleIndex``.
    """
    rule_ids = sorted({issue.rule_id for issue in report.issues})
    rule_index = {rule_id: i for i, rule_id in enumerate(rule_ids)}
    first_seen: Dict[str, Issue] = {}
    for issue in report.issues:
        first_seen.setdefault(issue.rule_id, issue)

    rules: List[Dict[str, Any]] = []
    for rule_id in rule_ids:
        sample = first_seen[rule_id]
        description = RULE_DESCRIPTIONS.get(rule_id, sample.message)
        rules.append({
            "id": rule_id,
            "name": rule_id,
            "shortDescription": {"text": description},
            "fullDescription": {"text": sample.suggestion or description},
            "defaultConfiguration": {"level": severity_to_level(sample.severity)},
            "properties": {"category": sample.category.value},
        })

    results = [_result(issue, rule_index[issue.rule_id]) for issue in report.issues]

    return {
        "version": SARIF_VERSION,
        "$schema": SARIF_SCHEMA,
        "runs": [{
            "tool": {
                "driver": {
                    "name": TOOL_NAME,
                    "version": __version__,
                    "rules": rules,
                },
            },
            "results": results,
        }],
    }


def to_sarif_json(report: AnalysisReport, indent: int = 2) -> str:
    return json.dumps(to_sarif(report), indent=indent, ensure_ascii=False)


def _result(issue: Issue, index: int) -> Dict[str, Any]:
    location = issue.location
    text = issue.message
    if issue.suggestion:
        text = f"{text}. {issue.suggestion}"
    return {
        "ruleId": issue.rule_id,
        "ruleIndex": index,
        "level": severity_to_level(issue.severity),
        "message": {"text": text},
        "locations": [{
            "physicalLocation": {
                "artifactLocation": {"uri": location.path.replace("\\", "/")},
                "region": {
                    "startLine": location.line,
                    "endLine": location.end_line or location.line,
                },
            },
        }],
        "properties": {
            "category": issue.category.value,
            "severity": issue.severity.value,
        },
    }
