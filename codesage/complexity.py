"""Cyclomatic and cognitive complexity over generic function units.

Both metrics are scoped to the nearest enclosing function unit: traversal
stops at nested ``FUNCTION_LIKE`` nodes, which are scored as units of their
own.  Traversals use explicit stacks carrying the nesting depth.

Cognitive increments:

* ``If``/``Loop``/``Switch``/``Catch``/``Ternary``: ``1 + nesting``
* an ``else if`` counts at the nesting of its chain head; a plain ``else``
  adds nothing
* a run of one boolean operator adds 1; every operator change adds 1
* a call to the unit's own name adds a flat 1
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from .errors import ComplexityOverflow
from .models import (
    LOGICAL_KINDS,
    ComplexityResult,
    FileComplexity,
    FunctionComplexity,
    FunctionUnit,
    GenericKind,
    GenericNode,
)

logger = logging.getLogger(__name__)

DECISION_KINDS = frozenset({
    GenericKind.IF,
    GenericKind.LOOP,
    GenericKind.CATCH,
    GenericKind.LOGICAL_AND,
    GenericKind.LOGICAL_OR,
    GenericKind.TERNARY,
})

_STRUCTURAL_NESTING = frozenset({
    GenericKind.LOOP, GenericKind.SWITCH, GenericKind.CATCH,
})

ScoredUnit = Tuple[FunctionUnit, ComplexityResult]


class ComplexityAnalyzer:
    """Score function units; stateless and safe to share between threads."""

    def __init__(self, max_nesting_guard: int = 64) -> None:
        self.max_nesting_guard = max_nesting_guard

    def cyclomatic(self, unit: FunctionUnit) -> int:
        count = 1
        stack: List[GenericNode] = list(unit.node.children)
        while stack:
            node = stack.pop()
            if node.kind is GenericKind.FUNCTION_LIKE:
                continue
            if node.kind in DECISION_KINDS:
                count += 1
            elif node.kind is GenericKind.CASE and not node.default:
                count += 1
            stack.extend(node.children)
        return count

    def cognitive(self, unit: FunctionUnit) -> int:
        """Nesting-weighted complexity; raises ``ComplexityOverflow`` past the guard."""
        recursive_name = "" if unit.file_level else unit.name
        start = 1 if unit.nested else 0
        total = 0
        stack: List[Tuple[GenericNode, int, Optional[GenericKind]]] = [
            (child, start, None) for child in reversed(unit.node.children)
        ]
        while stack:
            node, nesting, parent_kind = stack.pop()
            kind = node.kind
            if kind is GenericKind.FUNCTION_LIKE:
                continue

            child_nesting = nesting
            if kind is GenericKind.IF:
                if node.else_if:
                    total += 1 + max(0, nesting - 1)
                else:
                    total += 1 + nesting
                    child_nesting = nesting + 1
            elif kind in _STRUCTURAL_NESTING:
                total += 1 + nesting
                child_nesting = nesting + 1
            elif kind is GenericKind.TERNARY:
                total += 1 + nesting
            elif kind in LOGICAL_KINDS and parent_kind is not kind:
                total += 1

            if recursive_name and node.callee == recursive_name:
                total += 1

            if child_nesting > self.max_nesting_guard:
                raise ComplexityOverflow(unit.name, child_nesting, node.start_line)

            for child in reversed(node.children):
                stack.append((child, child_nesting, kind))
        return total

    def analyze(self, unit: FunctionUnit) -> Tuple[ComplexityResult, Optional[ComplexityOverflow]]:
        """Score one unit.

        Returns:
            The result and, when the nesting guard tripped, the overflow that
            made the cognitive score unavailable.
        """
        cyclomatic = self.cyclomatic(unit)
        overflow: Optional[ComplexityOverflow] = None
        try:
            cognitive: Optional[int] = self.cognitive(unit)
        except ComplexityOverflow as exc:
            logger.warning("%s", exc)
            cognitive = None
            overflow = exc

        assert cyclomatic >= 1, f"cyclomatic complexity below 1 for {unit.name}"
        assert cognitive is None or cognitive >= 0, f"negative cognitive complexity for {unit.name}"
        return ComplexityResult(cyclomatic=cyclomatic, cognitive=cognitive), overflow


def aggregate(path: str, scored: Sequence[ScoredUnit]) -> FileComplexity:
    """Aggregate unit scores of one file.

    The file-level unit only counts toward totals and averages when it holds
    decision points of its own or is the only unit of the file.
    """
    functions = tuple(
        FunctionComplexity(
            name=unit.name,
            start_line=unit.start_line,
            end_line=unit.end_line,
            cyclomatic=result.cyclomatic,
            cognitive=result.cognitive,
            file_level=unit.file_level,
        )
        for unit, result in scored
    )
    counted = [
        f for f in functions
        if not f.file_level or f.cyclomatic > 1 or len(functions) == 1
    ]
    if not counted:
        return FileComplexity(
            path=path, functions=functions, total_cyclomatic=1, average_cyclomatic=1.0,
            max_cyclomatic=1, total_cognitive=0, average_cognitive=0.0,
        )

    cyclomatic = [f.cyclomatic for f in counted]
    cognitive = [f.cognitive for f in counted if f.cognitive is not None]
    return FileComplexity(
        path=path,
        functions=functions,
        total_cyclomatic=sum(cyclomatic),
        average_cyclomatic=round(sum(cyclomatic) / len(cyclomatic), 2),
        max_cyclomatic=max(cyclomatic),
        total_cognitive=sum(cognitive),
        average_cognitive=round(sum(cognitive) / len(cognitive), 2) if cognitive else 0.0,
    )
