"""Core data models shared by the adapter, analyzers, scorer and report."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ---------------------------------------------------------------------------
# Source input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SourceUnit:
    """One analyzed file: raw text plus its language tag."""
    path: str
    text: str
    language: str

    @property
    def line_count(self) -> int:
        return len(self.text.splitlines())

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


# ---------------------------------------------------------------------------
# Generic syntax tree
# ---------------------------------------------------------------------------

class GenericKind(Enum):
    IF = "If"
    LOOP = "Loop"
    SWITCH = "Switch"
    CASE = "Case"
    CATCH = "Catch"
    LOGICAL_AND = "LogicalAnd"
    LOGICAL_OR = "LogicalOr"
    TERNARY = "Ternary"
    FUNCTION_LIKE = "FunctionLike"
    BLOCK = "Block"
    OTHER = "Other"


# Constructs that open a nesting level for their children.
NESTING_KINDS = frozenset({
    GenericKind.IF, GenericKind.LOOP, GenericKind.SWITCH, GenericKind.CATCH,
})

LOGICAL_KINDS = frozenset({GenericKind.LOGICAL_AND, GenericKind.LOGICAL_OR})

TOKEN_IDENTIFIER = "identifier"
TOKEN_LITERAL = "literal"


@dataclass(frozen=True)
class GenericNode:
    """A node of the normalized tree.

    Only leaves carry ``text``.  ``name``/``params`` are set on
    ``FUNCTION_LIKE`` nodes, ``callee`` on call expressions, ``else_if`` on an
    ``IF`` continuing an else-if chain and ``default`` on a default ``CASE``.
    """
    kind: GenericKind
    type: str
    start_byte: int
    end_byte: int
    start_line: int
    end_line: int
    children: Tuple["GenericNode", ...] = ()
    text: str = ""
    token: str = ""
    name: str = ""
    params: int = 0
    callee: str = ""
    else_if: bool = False
    default: bool = False

    @property
    def is_leaf(self) -> bool:
        return not self.children


@dataclass(frozen=True)
class FunctionUnit:
    """A function-like node (or the implicit file-level unit) plus metadata."""
    node: GenericNode
    name: str
    params: int
    body_lines: int
    max_depth: int
    deepest_line: int
    nested: bool = False
    file_level: bool = False

    @property
    def start_line(self) -> int:
        return self.node.start_line

    @property
    def end_line(self) -> int:
        return self.node.end_line


# ---------------------------------------------------------------------------
# Complexity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComplexityResult:
    cyclomatic: int
    cognitive: Optional[int]


@dataclass(frozen=True)
class FunctionComplexity:
    name: str
    start_line: int
    end_line: int
    cyclomatic: int
    cognitive: Optional[int]
    file_level: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "cyclomatic": self.cyclomatic,
            "cognitive": self.cognitive,
        }


@dataclass(frozen=True)
class FileComplexity:
    """Complexity aggregated over the units of one ``SourceUnit``."""
    path: str
    functions: Tuple[FunctionComplexity, ...]
    total_cyclomatic: int
    average_cyclomatic: float
    max_cyclomatic: int
    total_cognitive: int
    average_cognitive: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_cyclomatic": self.total_cyclomatic,
            "average_cyclomatic": self.average_cyclomatic,
            "max_cyclomatic": self.max_cyclomatic,
            "total_cognitive": self.total_cognitive,
            "average_cognitive": self.average_cognitive,
            "functions": [f.to_dict() for f in self.functions],
        }


# ---------------------------------------------------------------------------
# Duplication
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Span:
    """A byte/line/token range inside one source unit."""
    path: str
    start_byte: int
    end_byte: int
    start_line: int
    end_line: int
    start_token: int
    end_token: int

    @property
    def token_length(self) -> int:
        return self.end_token - self.start_token

    def overlaps(self, other: "Span") -> bool:
        return (
            self.path == other.path
            and self.start_token < other.end_token
            and other.start_token < self.end_token
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "start_byte": self.start_byte,
            "end_byte": self.end_byte,
        }


@dataclass(frozen=True)
class DuplicationMatch:
    first: Span
    second: Span
    tokens: int
    similarity: float

    def __post_init__(self) -> None:
        if self.first.overlaps(self.second):
            raise ValueError("A duplication match cannot pair overlapping ranges")
        if not 0.0 <= self.similarity <= 1.0:
            raise ValueError(f"Similarity out of range: {self.similarity}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first": self.first.to_dict(),
            "second": self.second.to_dict(),
            "tokens": self.tokens,
            "similarity": self.similarity,
        }


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------

class IssueCategory(Enum):
    BUG = "Bug"
    SECURITY = "Security"
    PERFORMANCE = "Performance"
    MAINTAINABILITY = "Maintainability"
    STYLE = "Style"
    DOCUMENTATION = "Documentation"
    TEST_COVERAGE = "TestCoverage"


class Severity(Enum):
    """Issue severity; P0 is the most severe."""
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @property
    def rank(self) -> int:
        return int(self.value[1])


@dataclass(frozen=True)
class Location:
    path: str
    line: int
    end_line: Optional[int] = None

    def __str__(self) -> str:
        return f"{self.path}:{self.line}"


@dataclass(frozen=True)
class Issue:
    rule_id: str
    category: IssueCategory
    severity: Severity
    location: Location
    message: str
    suggestion: Optional[str] = None

    def sort_key(self) -> Tuple[int, str, int, str]:
        return (self.severity.rank, self.location.path, self.location.line, self.rule_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "category": self.category.value,
            "severity": self.severity.value,
            "path": self.location.path,
            "line": self.location.line,
            "end_line": self.location.end_line,
            "message": self.message,
            "suggestion": self.suggestion,
        }


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnalysisWarning:
    path: str
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class FileMetrics:
    path: str
    language: str
    lines_of_code: int
    comment_lines: int
    comment_ratio: float
    maintainability: float
    debt_minutes: int
    duplicated_ratio: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "language": self.language,
            "lines_of_code": self.lines_of_code,
            "comment_lines": self.comment_lines,
            "comment_ratio": self.comment_ratio,
            "maintainability": self.maintainability,
            "debt_minutes": self.debt_minutes,
            "duplicated_ratio": self.duplicated_ratio,
        }


@dataclass(frozen=True)
class AnalysisReport:
    """Final, immutable result of one analysis run."""
    issues: Tuple[Issue, ...]
    complexity: Dict[str, FileComplexity]
    duplications: Tuple[DuplicationMatch, ...]
    maintainability: float
    debt_minutes: int
    files: Dict[str, FileMetrics] = field(default_factory=dict)
    warnings: Tuple[AnalysisWarning, ...] = ()

    @property
    def issue_counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts

    def issues_for(self, path: str) -> List[Issue]:
        return [i for i in self.issues if i.location.path == path]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maintainability": self.maintainability,
            "debt_minutes": self.debt_minutes,
            "issue_counts": self.issue_counts,
            "issues": [i.to_dict() for i in self.issues],
            "complexity": {p: c.to_dict() for p, c in sorted(self.complexity.items())},
            "files": {p: m.to_dict() for p, m in sorted(self.files.items())},
            "duplications": [d.to_dict() for d in self.duplications],
            "warnings": [w.to_dict() for w in self.warnings],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)
