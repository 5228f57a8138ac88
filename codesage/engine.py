"""Analysis engine: per-unit fan-out on a thread pool, single-threaded reduce.

Each ``SourceUnit`` is parsed, adapted, scored and tokenized by an
independent task.  Nothing is shared between tasks; their results are joined
before the reduce step builds the duplicate index, scores every file and
commits the immutable ``AnalysisReport``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional

from .adapter import SyntaxAdapter, collect_units
from .complexity import ComplexityAnalyzer, ScoredUnit, aggregate
from .config import AnalysisConfig
from .detectors import IssueDetector, merge_issues
from .duplication import DuplicationDetector, TokenStream, duplicated_ratio
from .errors import ParseError, UnsupportedConstruct, UnsupportedLanguage
from .models import (
    AnalysisReport,
    AnalysisWarning,
    FileComplexity,
    FileMetrics,
    GenericKind,
    GenericNode,
    Issue,
    SourceUnit,
)
from .scoring import (
    comment_ratio,
    count_lines_of_code,
    maintainability_index,
    technical_debt,
    weighted_maintainability,
)

logger = logging.getLogger(__name__)

ParseFn = Callable[[SourceUnit], Any]


@dataclass
class _UnitResult:
    """Everything one task produces for one source unit."""
    unit: SourceUnit
    skipped: bool = False
    stream: Optional[TokenStream] = None
    scored: List[ScoredUnit] = field(default_factory=list)
    complexity: Optional[FileComplexity] = None
    issues: List[Issue] = field(default_factory=list)
    comment_lines: int = 0
    lines_of_code: int = 0
    warnings: List[AnalysisWarning] = field(default_factory=list)


class AnalysisEngine:
    """Run every analyzer over a batch of source units.

    Args:
        config: Analysis configuration; validated before any work starts.
        parse: Callable turning a ``SourceUnit`` into a CST root.  Defaults
            to a strict tree-sitter ``SourceParser``.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None, parse: Optional[ParseFn] = None):
        self.config = (config or AnalysisConfig()).validate()
        if parse is None:
            from .parser import SourceParser
            parse = SourceParser()
        self._parse = parse
        self.complexity = ComplexityAnalyzer(self.config.thresholds.max_nesting_guard)
        self.duplication = DuplicationDetector(self.config.duplication)
        self.detector = IssueDetector(self.config.thresholds)

    def analyze(self, units: Iterable[SourceUnit]) -> AnalysisReport:
        ordered = sorted(units, key=lambda u: u.path)
        paths = [u.path for u in ordered]
        if len(set(paths)) != len(paths):
            raise ValueError("Source units must have distinct paths")

        results: List[_UnitResult] = []
        if ordered:
            workers = min(self.config.workers, len(ordered))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(self._analyze_unit, ordered))

        logger.debug(
            "Analyzed %d unit(s), %d skipped",
            len(results), sum(1 for r in results if r.skipped),
        )
        return self._reduce(results)

    # ------------------------------------------------------------------
    # Per-unit task
    # ------------------------------------------------------------------

    def _analyze_unit(self, unit: SourceUnit) -> _UnitResult:
        result = _UnitResult(unit=unit, lines_of_code=count_lines_of_code(unit.text))
        try:
            adapter = SyntaxAdapter(unit.language)
            if unit.is_blank:
                root = GenericNode(
                    kind=GenericKind.BLOCK, type="module", start_byte=0,
                    end_byte=len(unit.text.encode("utf-8")), start_line=1, end_line=1,
                )
                functions = collect_units(root)
                constructs: List[UnsupportedConstruct] = []
            else:
                tree = adapter.adapt(self._parse(unit))
                root = tree.root
                functions = tree.functions
                constructs = tree.warnings
                result.comment_lines = tree.comment_lines
        except (ParseError, UnsupportedLanguage, UnsupportedConstruct) as exc:
            logger.warning("Skipping %s: %s", unit.path, exc)
            result.skipped = True
            result.warnings.append(_warning(unit.path, exc))
            return result

        for construct in constructs:
            result.warnings.append(_warning(unit.path, construct))

        for fn in functions:
            scored, overflow = self.complexity.analyze(fn)
            result.scored.append((fn, scored))
            result.issues += self.detector.detect_unit(unit.path, fn, scored, overflow)
            if overflow is not None:
                result.warnings.append(_warning(unit.path, overflow))

        result.complexity = aggregate(unit.path, result.scored)
        result.stream = self.duplication.stream(unit.path, root)
        logger.debug("%s: %d unit(s), %d token(s)", unit.path, len(functions), len(result.stream))
        return result

    # ------------------------------------------------------------------
    # Reduce
    # ------------------------------------------------------------------

    def _reduce(self, results: List[_UnitResult]) -> AnalysisReport:
        analyzed = [r for r in results if not r.skipped]
        matches = self.duplication.detect([r.stream for r in analyzed if r.stream is not None])

        config = self.config
        all_issues: List[Issue] = []
        complexity: Dict[str, FileComplexity] = {}
        files: Dict[str, FileMetrics] = {}
        total_debt = 0

        for r in analyzed:
            path = r.unit.path
            assert r.complexity is not None and r.stream is not None
            dup_ratio = duplicated_ratio(matches, path, len(r.stream))
            ratio = comment_ratio(r.comment_lines, r.lines_of_code)
            mi = maintainability_index(
                r.complexity.average_cyclomatic, r.lines_of_code, ratio, config.maintainability,
            )

            issues = r.issues + self.detector.detect_file(path, dup_ratio, mi)
            issues = merge_issues(_within_unit(i, r.unit) for i in issues)
            debt = technical_debt(
                issues, [result.cyclomatic for _, result in r.scored], config.debt,
            )

            all_issues += issues
            total_debt += debt
            complexity[path] = r.complexity
            files[path] = FileMetrics(
                path=path,
                language=r.unit.language,
                lines_of_code=r.lines_of_code,
                comment_lines=r.comment_lines,
                comment_ratio=ratio,
                maintainability=mi,
                debt_minutes=debt,
                duplicated_ratio=dup_ratio,
            )

        maintainability = weighted_maintainability(
            (m.maintainability, m.lines_of_code) for m in files.values()
        )
        return AnalysisReport(
            issues=tuple(merge_issues(all_issues)),
            complexity=complexity,
            duplications=tuple(matches),
            maintainability=maintainability,
            debt_minutes=total_debt,
            files=files,
            warnings=tuple(w for r in results for w in r.warnings),
        )


def _warning(path: str, exc: Exception) -> AnalysisWarning:
    return AnalysisWarning(path=path, kind=type(exc).__name__, message=str(exc))


def _within_unit(issue: Issue, unit: SourceUnit) -> Issue:
    """Keep issue lines inside ``[1, max(1, line_count)]``."""
    last = max(1, unit.line_count)
    location = issue.location
    assert 1 <= location.line, f"issue {issue.rule_id} has line {location.line}"
    line = min(location.line, last)
    end_line = None if location.end_line is None else max(line, min(location.end_line, last))
    if line == location.line and end_line == location.end_line:
        return issue
    return replace(issue, location=replace(location, line=line, end_line=end_line))
