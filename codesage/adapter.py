"""Syntax adapter: normalize a tree-sitter CST into the generic node model.

Each supported grammar gets one ``LanguageMapping`` -- a plain dispatch
table from grammar node types to ``GenericKind`` -- selected by language tag
when the adapter is built.  Conversion uses an explicit stack so that very
deep trees never hit the interpreter recursion limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

from .errors import UnsupportedConstruct, UnsupportedLanguage
from .models import (
    NESTING_KINDS,
    TOKEN_IDENTIFIER,
    TOKEN_LITERAL,
    FunctionUnit,
    GenericKind,
    GenericNode,
)

logger = logging.getLogger(__name__)

FILE_LEVEL_NAME = "<module>"
ANONYMOUS_NAME = "<anonymous>"

# Field names that lead from a call target to the member actually called
# (``obj.attr``, ``obj.property``, ``x.field``, ``path::name``).
_MEMBER_FIELDS = ("attribute", "property", "field", "name")


# ===================================================================
# Per-language dispatch tables
# ===================================================================

@dataclass(frozen=True)
class LanguageMapping:
    """Grammar node types of one language, grouped by generic role."""
    name: str
    kinds: Dict[str, GenericKind]
    function_types: FrozenSet[str]
    logical_types: FrozenSet[str]
    logical_operators: Dict[str, GenericKind]
    call_types: Dict[str, str]
    identifier_types: FrozenSet[str]
    literal_types: FrozenSet[str]
    comment_types: FrozenSet[str]
    else_if_types: FrozenSet[str] = frozenset()
    else_types: FrozenSet[str] = frozenset()
    default_case_types: FrozenSet[str] = frozenset()
    pattern_types: FrozenSet[str] = frozenset()
    parameter_fields: Tuple[str, ...] = ("parameters",)
    grouped_parameter_types: FrozenSet[str] = frozenset()
    skip_parameter_types: FrozenSet[str] = frozenset()
    receiver_names: FrozenSet[str] = frozenset()

    def map_node(self, node: Any) -> GenericKind:
        """Return the generic kind of a grammar node."""
        if not node.is_named:
            return GenericKind.OTHER
        node_type = node.type
        if node_type in self.function_types:
            return GenericKind.FUNCTION_LIKE
        if node_type in self.else_if_types:
            return GenericKind.IF
        if node_type in self.default_case_types:
            return GenericKind.CASE
        kind = self.kinds.get(node_type)
        if kind is not None:
            return kind
        if node_type in self.logical_types:
            for child in node.children:
                if not child.is_named and child.type in self.logical_operators:
                    return self.logical_operators[child.type]
            return GenericKind.OTHER
        if node_type in self.else_types:
            return GenericKind.BLOCK
        return GenericKind.OTHER


_C_LOGICAL = {
    "&&": GenericKind.LOGICAL_AND,
    "||": GenericKind.LOGICAL_OR,
}

PYTHON = LanguageMapping(
    name="python",
    kinds={
        "if_statement": GenericKind.IF,
        "for_statement": GenericKind.LOOP,
        "while_statement": GenericKind.LOOP,
        "match_statement": GenericKind.SWITCH,
        "case_clause": GenericKind.CASE,
        "except_clause": GenericKind.CATCH,
        "except_group_clause": GenericKind.CATCH,
        "for_in_clause": GenericKind.LOOP,
        "if_clause": GenericKind.IF,
        "conditional_expression": GenericKind.TERNARY,
        "block": GenericKind.BLOCK,
    },
    function_types=frozenset({"function_definition", "lambda"}),
    logical_types=frozenset({"boolean_operator"}),
    logical_operators={"and": GenericKind.LOGICAL_AND, "or": GenericKind.LOGICAL_OR},
    call_types={"call": "function"},
    identifier_types=frozenset({"identifier"}),
    literal_types=frozenset({
        "string", "concatenated_string", "integer", "float", "true", "false", "none",
    }),
    comment_types=frozenset({"comment"}),
    else_if_types=frozenset({"elif_clause"}),
    else_types=frozenset({"else_clause"}),
    pattern_types=frozenset({"case_pattern"}),
    skip_parameter_types=frozenset({"keyword_separator", "positional_separator"}),
    receiver_names=frozenset({"self", "cls"}),
)

JAVASCRIPT = LanguageMapping(
    name="javascript",
    kinds={
        "if_statement": GenericKind.IF,
        "for_statement": GenericKind.LOOP,
        "for_in_statement": GenericKind.LOOP,
        "while_statement": GenericKind.LOOP,
        "do_statement": GenericKind.LOOP,
        "switch_statement": GenericKind.SWITCH,
        "switch_case": GenericKind.CASE,
        "catch_clause": GenericKind.CATCH,
        "ternary_expression": GenericKind.TERNARY,
        "statement_block": GenericKind.BLOCK,
    },
    function_types=frozenset({
        "function_declaration", "function_expression", "function", "arrow_function",
        "method_definition", "generator_function_declaration", "generator_function",
    }),
    logical_types=frozenset({"binary_expression"}),
    logical_operators=dict(_C_LOGICAL, **{"??": GenericKind.LOGICAL_OR}),
    call_types={"call_expression": "function"},
    identifier_types=frozenset({
        "identifier", "property_identifier", "shorthand_property_identifier",
        "private_property_identifier",
    }),
    literal_types=frozenset({
        "string", "template_string", "number", "regex", "true", "false", "null", "undefined",
    }),
    comment_types=frozenset({"comment"}),
    else_types=frozenset({"else_clause"}),
    default_case_types=frozenset({"switch_default"}),
    parameter_fields=("parameters", "parameter"),
)

TYPESCRIPT = replace(
    JAVASCRIPT,
    name="typescript",
    identifier_types=JAVASCRIPT.identifier_types | {"type_identifier"},
)

TSX = replace(TYPESCRIPT, name="tsx")

GO = LanguageMapping(
    name="go",
    kinds={
        "if_statement": GenericKind.IF,
        "for_statement": GenericKind.LOOP,
        "expression_switch_statement": GenericKind.SWITCH,
        "type_switch_statement": GenericKind.SWITCH,
        "select_statement": GenericKind.SWITCH,
        "expression_case": GenericKind.CASE,
        "type_case": GenericKind.CASE,
        "communication_case": GenericKind.CASE,
        "block": GenericKind.BLOCK,
    },
    function_types=frozenset({"function_declaration", "method_declaration", "func_literal"}),
    logical_types=frozenset({"binary_expression"}),
    logical_operators=_C_LOGICAL,
    call_types={"call_expression": "function"},
    identifier_types=frozenset({
        "identifier", "field_identifier", "type_identifier", "package_identifier",
    }),
    literal_types=frozenset({
        "interpreted_string_literal", "raw_string_literal", "int_literal", "float_literal",
        "imaginary_literal", "rune_literal", "true", "false", "nil",
    }),
    comment_types=frozenset({"comment"}),
    default_case_types=frozenset({"default_case"}),
    grouped_parameter_types=frozenset({
        "parameter_declaration", "variadic_parameter_declaration",
    }),
)

RUST = LanguageMapping(
    name="rust",
    kinds={
        "if_expression": GenericKind.IF,
        "for_expression": GenericKind.LOOP,
        "while_expression": GenericKind.LOOP,
        "loop_expression": GenericKind.LOOP,
        "match_expression": GenericKind.SWITCH,
        "match_arm": GenericKind.CASE,
        "block": GenericKind.BLOCK,
    },
    function_types=frozenset({"function_item", "closure_expression"}),
    logical_types=frozenset({"binary_expression"}),
    logical_operators=_C_LOGICAL,
    call_types={"call_expression": "function"},
    identifier_types=frozenset({"identifier", "field_identifier", "type_identifier"}),
    literal_types=frozenset({
        "string_literal", "raw_string_literal", "char_literal", "integer_literal",
        "float_literal", "boolean_literal",
    }),
    comment_types=frozenset({"line_comment", "block_comment"}),
    else_types=frozenset({"else_clause"}),
    pattern_types=frozenset({"match_pattern"}),
    skip_parameter_types=frozenset({"self_parameter"}),
)

JAVA = LanguageMapping(
    name="java",
    kinds={
        "if_statement": GenericKind.IF,
        "for_statement": GenericKind.LOOP,
        "enhanced_for_statement": GenericKind.LOOP,
        "while_statement": GenericKind.LOOP,
        "do_statement": GenericKind.LOOP,
        "switch_expression": GenericKind.SWITCH,
        "switch_statement": GenericKind.SWITCH,
        "switch_label": GenericKind.CASE,
        "catch_clause": GenericKind.CATCH,
        "ternary_expression": GenericKind.TERNARY,
        "block": GenericKind.BLOCK,
    },
    function_types=frozenset({"method_declaration", "constructor_declaration", "lambda_expression"}),
    logical_types=frozenset({"binary_expression"}),
    logical_operators=_C_LOGICAL,
    call_types={"method_invocation": "name"},
    identifier_types=frozenset({"identifier", "type_identifier"}),
    literal_types=frozenset({
        "string_literal", "character_literal", "decimal_integer_literal",
        "hex_integer_literal", "octal_integer_literal", "binary_integer_literal",
        "decimal_floating_point_literal", "true", "false", "null_literal",
    }),
    comment_types=frozenset({"line_comment", "block_comment"}),
)

MAPPINGS: Dict[str, LanguageMapping] = {
    m.name: m for m in (PYTHON, JAVASCRIPT, TYPESCRIPT, TSX, GO, RUST, JAVA)
}


def supported_languages() -> List[str]:
    return sorted(MAPPINGS)


# ===================================================================
# Adapter
# ===================================================================

@dataclass
class AdaptedTree:
    """Output of one adaptation: generic root, function units and side data."""
    root: GenericNode
    functions: List[FunctionUnit]
    comment_lines: int = 0
    warnings: List[UnsupportedConstruct] = field(default_factory=list)


@dataclass
class _Frame:
    cst: Any
    kind: GenericKind
    else_if: bool = False
    else_of_if: bool = False
    pending: List[Any] = field(default_factory=list)
    children: List[GenericNode] = field(default_factory=list)
    index: int = 0
    after_else: bool = False

    def __post_init__(self) -> None:
        self.pending = list(self.cst.children)


class SyntaxAdapter:
    """Convert concrete syntax trees of one language into ``GenericNode`` trees."""

    def __init__(self, language: str) -> None:
        mapping = MAPPINGS.get(language)
        if mapping is None:
            raise UnsupportedLanguage(language)
        self.language = language
        self.mapping = mapping

    def map_node(self, node: Any) -> GenericKind:
        return self.mapping.map_node(node)

    def adapt(self, cst_root: Any) -> AdaptedTree:
        """Normalize *cst_root* and collect its function units."""
        warnings: List[UnsupportedConstruct] = []
        comment_lines: Set[int] = set()
        root = self._convert(cst_root, warnings, comment_lines)
        for warning in warnings:
            logger.debug("%s: %s", self.language, warning)
        return AdaptedTree(
            root=root,
            functions=collect_units(root),
            comment_lines=len(comment_lines),
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _convert(
        self,
        cst_root: Any,
        warnings: List[UnsupportedConstruct],
        comment_lines: Set[int],
    ) -> GenericNode:
        mapping = self.mapping
        stack: List[_Frame] = [_Frame(cst_root, GenericKind.BLOCK)]
        result: Optional[GenericNode] = None

        while stack:
            frame = stack[-1]
            children = frame.pending
            if frame.index >= len(children):
                stack.pop()
                node = self._finish(frame)
                if stack:
                    stack[-1].children.append(node)
                else:
                    result = node
                continue

            child = children[frame.index]
            frame.index += 1
            after_else = frame.after_else
            frame.after_else = child.type == "else" and not child.is_named

            if child.type in mapping.comment_types:
                comment_lines.update(range(child.start_point[0] + 1, child.end_point[0] + 2))
                continue

            if child.type == "ERROR" or getattr(child, "is_missing", False):
                warnings.append(UnsupportedConstruct(child.type, child.start_point[0] + 1))
                frame.children.append(_leaf(child, GenericKind.OTHER))
                continue

            if child.type in mapping.literal_types:
                frame.children.append(_leaf(child, GenericKind.OTHER, TOKEN_LITERAL))
                continue

            if not child.children:
                token = TOKEN_IDENTIFIER if child.type in mapping.identifier_types else ""
                frame.children.append(_leaf(child, mapping.map_node(child), token))
                continue

            kind = mapping.map_node(child)
            else_if = kind is GenericKind.IF and (
                child.type in mapping.else_if_types
                or (frame.kind is GenericKind.IF and after_else)
                or (frame.else_of_if and _sole_statement(frame.pending, child, mapping))
            )
            stack.append(_Frame(
                cst=child,
                kind=kind,
                else_if=else_if,
                else_of_if=frame.kind is GenericKind.IF and child.type in mapping.else_types,
            ))

        assert result is not None
        return result

    def _finish(self, frame: _Frame) -> GenericNode:
        cst = frame.cst
        mapping = self.mapping
        name = ""
        params = 0
        callee = ""
        default = False
        if frame.kind is GenericKind.FUNCTION_LIKE:
            name = _field_text(cst, "name") or ANONYMOUS_NAME
            params = self._count_parameters(cst)
        elif frame.kind is GenericKind.CASE:
            default = self._is_default_case(cst)
        if cst.type in mapping.call_types:
            callee = _callee_name(cst.child_by_field_name(mapping.call_types[cst.type]))
        return GenericNode(
            kind=frame.kind,
            type=cst.type,
            start_byte=cst.start_byte,
            end_byte=cst.end_byte,
            start_line=cst.start_point[0] + 1,
            end_line=cst.end_point[0] + 1,
            children=tuple(frame.children),
            name=name,
            params=params,
            callee=callee,
            else_if=frame.else_if,
            default=default,
        )

    def _count_parameters(self, cst: Any) -> int:
        mapping = self.mapping
        for field_name in mapping.parameter_fields:
            params = cst.child_by_field_name(field_name)
            if params is None:
                continue
            if not params.children:
                return 1 if params.is_named else 0
            count = 0
            first = True
            for child in params.children:
                if not child.is_named or child.type in mapping.comment_types:
                    continue
                if child.type in mapping.skip_parameter_types:
                    continue
                if first and child.type == "identifier" and _text(child) in mapping.receiver_names:
                    first = False
                    continue
                first = False
                if child.type in mapping.grouped_parameter_types:
                    names = [c for c in child.children if c.type == "identifier"]
                    count += max(1, len(names))
                else:
                    count += 1
            return count
        return 0

    def _is_default_case(self, cst: Any) -> bool:
        mapping = self.mapping
        if cst.type in mapping.default_case_types:
            return True
        for child in cst.children:
            if child.type == "default" and not child.is_named:
                return True
            if child.type in mapping.pattern_types and _text(child).strip() == "_":
                return True
        return False


# ===================================================================
# Function units
# ===================================================================

def collect_units(root: GenericNode) -> List[FunctionUnit]:
    """Return the file-level unit followed by every function-like unit.

    Units are listed in source order.  Each unit's scope stops at nested
    function-like nodes, which become units of their own.
    """
    units: List[FunctionUnit] = []
    pending: List[Tuple[GenericNode, bool, bool]] = [(root, False, True)]
    while pending:
        node, nested, file_level = pending.pop()
        max_depth, deepest_line, inner = _scan_scope(node)
        units.append(FunctionUnit(
            node=node,
            name=FILE_LEVEL_NAME if file_level else (node.name or ANONYMOUS_NAME),
            params=0 if file_level else node.params,
            body_lines=node.end_line - node.start_line + 1,
            max_depth=max_depth,
            deepest_line=deepest_line,
            nested=nested,
            file_level=file_level,
        ))
        for fn in reversed(inner):
            pending.append((fn, not file_level, False))
    units.sort(key=lambda u: (not u.file_level, u.node.start_byte, u.node.end_byte))
    return units


def _scan_scope(scope: GenericNode) -> Tuple[int, int, List[GenericNode]]:
    max_depth = 0
    deepest_line = scope.start_line
    inner: List[GenericNode] = []
    stack: List[Tuple[GenericNode, int]] = [(c, 0) for c in reversed(scope.children)]
    while stack:
        node, depth = stack.pop()
        if node.kind is GenericKind.FUNCTION_LIKE:
            inner.append(node)
            continue
        child_depth = depth
        if node.kind in NESTING_KINDS and not node.else_if:
            child_depth = depth + 1
            if child_depth > max_depth:
                max_depth = child_depth
                deepest_line = node.start_line
        for child in reversed(node.children):
            stack.append((child, child_depth))
    return max_depth, deepest_line, inner


# ===================================================================
# Helpers
# ===================================================================

def _text(node: Any) -> str:
    raw = node.text
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw)


def _leaf(node: Any, kind: GenericKind, token: str = "") -> GenericNode:
    return GenericNode(
        kind=kind,
        type=node.type,
        start_byte=node.start_byte,
        end_byte=node.end_byte,
        start_line=node.start_point[0] + 1,
        end_line=node.end_point[0] + 1,
        text=_text(node),
        token=token,
    )


def _field_text(node: Any, field_name: str) -> str:
    child = node.child_by_field_name(field_name)
    return _text(child) if child is not None else ""


def _sole_statement(siblings: List[Any], child: Any, mapping: LanguageMapping) -> bool:
    """True when *child* is the only named, non-comment node in *siblings*."""
    named = [
        c for c in siblings
        if c.is_named and c.type not in mapping.comment_types
    ]
    return len(named) == 1 and named[0].start_byte == child.start_byte and named[0].type == child.type


def _callee_name(target: Any) -> str:
    """Resolve the called name: ``foo`` for ``foo()``, ``bar`` for ``x.bar()``."""
    while target is not None and target.children:
        member = None
        for field_name in _MEMBER_FIELDS:
            member = target.child_by_field_name(field_name)
            if member is not None:
                break
        target = member
    return _text(target) if target is not None else ""
