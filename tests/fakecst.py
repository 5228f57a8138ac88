"""Lightweight stand-in for tree-sitter nodes, so the core is testable without grammars.

Trees are built with ``node``/``leaf``/``tok`` and then laid out by
``layout``, which writes leaves left to right (space separated, jumping to
the requested ``line`` when one is given) and fills in byte offsets, points
and text the way tree-sitter would.
"""

from __future__ import annotations

import itertools
from typing import List, Optional, Sequence

from codesage.models import GenericKind, GenericNode


class FakeNode:
    """Implements the subset of ``tree_sitter.Node`` that the adapter reads."""

    def __init__(
        self,
        type: str,
        children: Sequence["FakeNode"] = (),
        text: Optional[str] = None,
        named: bool = True,
        field: Optional[str] = None,
        line: Optional[int] = None,
        missing: bool = False,
    ):
        self.type = type
        self.children: List[FakeNode] = list(children)
        self.is_named = named
        self.is_missing = missing
        self.field = field
        self.line = line
        self._raw = text
        self.start_byte = 0
        self.end_byte = 0
        self.start_point = (0, 0)
        self.end_point = (0, 0)
        self.text = b""

    @property
    def has_error(self) -> bool:
        return self.type == "ERROR" or self.is_missing or any(c.has_error for c in self.children)

    def child_by_field_name(self, name: str) -> Optional["FakeNode"]:
        for child in self.children:
            if child.field == name:
                return child
        return None

    def __repr__(self) -> str:
        return f"FakeNode({self.type!r}, {len(self.children)} children)"


def node(type: str, *children: FakeNode, field: Optional[str] = None, line: Optional[int] = None) -> FakeNode:
    return FakeNode(type, children, field=field, line=line)


def leaf(type: str, text: str, field: Optional[str] = None, line: Optional[int] = None) -> FakeNode:
    return FakeNode(type, text=text, field=field, line=line)


def tok(text: str, line: Optional[int] = None) -> FakeNode:
    """Anonymous token whose type is its own text (``"if"``, ``"("``...)."""
    return FakeNode(text, text=text, named=False, line=line)


def ident(name: str, field: Optional[str] = None, line: Optional[int] = None) -> FakeNode:
    return leaf("identifier", name, field=field, line=line)


def layout(root: FakeNode) -> str:
    """Assign positions to every node of *root*; return the source text."""
    buf = bytearray()
    state = {"row": 0, "col": 0}

    def jump(line: Optional[int]) -> bool:
        if line is None or line - 1 <= state["row"]:
            return False
        gap = line - 1 - state["row"]
        buf.extend(b"\n" * gap)
        state["row"], state["col"] = line - 1, 0
        return True

    def place(n: FakeNode) -> None:
        jumped = jump(n.line)
        if not n.children:
            if not jumped and state["col"] > 0:
                buf.extend(b" ")
                state["col"] += 1
            raw = (n._raw if n._raw is not None else n.type).encode("utf-8")
            n.start_byte = len(buf)
            n.start_point = (state["row"], state["col"])
            buf.extend(raw)
            state["col"] += len(raw)
            n.end_byte = len(buf)
            n.end_point = (state["row"], state["col"])
            return
        for child in n.children:
            place(child)
        n.start_byte = n.children[0].start_byte
        n.start_point = n.children[0].start_point
        n.end_byte = n.children[-1].end_byte
        n.end_point = n.children[-1].end_point

    def fill_text(n: FakeNode) -> None:
        n.text = bytes(buf[n.start_byte:n.end_byte])
        for child in n.children:
            fill_text(child)

    place(root)
    fill_text(root)
    return buf.decode("utf-8") + "\n"


# ---------------------------------------------------------------------------
# Python-shaped CST builders (tree-sitter-python node types and fields)
# ---------------------------------------------------------------------------

def py_module(*statements: FakeNode) -> FakeNode:
    return node("module", *statements)


def py_block(*statements: FakeNode, field: Optional[str] = "body") -> FakeNode:
    return node("block", *statements, field=field)


def py_function(name: str, params: Sequence[str], *body: FakeNode, line: Optional[int] = None) -> FakeNode:
    param_nodes: List[FakeNode] = [tok("(")]
    for i, p in enumerate(params):
        if i:
            param_nodes.append(tok(","))
        param_nodes.append(ident(p))
    param_nodes.append(tok(")"))
    return node(
        "function_definition",
        tok("def", line=line),
        ident(name, field="name"),
        node("parameters", *param_nodes, field="parameters"),
        tok(":"),
        py_block(*body),
        line=line,
    )


def py_if(condition: FakeNode, body: Sequence[FakeNode], *alternatives: FakeNode, line: Optional[int] = None) -> FakeNode:
    return node(
        "if_statement",
        tok("if", line=line),
        condition,
        tok(":"),
        py_block(*body, field="consequence"),
        *alternatives,
    )


def py_elif(condition: FakeNode, *body: FakeNode, line: Optional[int] = None) -> FakeNode:
    return node(
        "elif_clause", tok("elif", line=line), condition, tok(":"), py_block(*body, field="consequence"),
        field="alternative",
    )


def py_else(*body: FakeNode, line: Optional[int] = None) -> FakeNode:
    return node("else_clause", tok("else", line=line), tok(":"), py_block(*body), field="alternative")


def py_for(target: str, iterable: str, *body: FakeNode, line: Optional[int] = None) -> FakeNode:
    return node(
        "for_statement",
        tok("for", line=line), ident(target, field="left"), tok("in"), ident(iterable, field="right"),
        tok(":"), py_block(*body),
    )


def py_while(condition: FakeNode, *body: FakeNode, line: Optional[int] = None) -> FakeNode:
    return node("while_statement", tok("while", line=line), condition, tok(":"), py_block(*body))


def py_try(
    body: Sequence[FakeNode], *handler_body: FakeNode, line: Optional[int] = None, except_line: Optional[int] = None,
) -> FakeNode:
    return node(
        "try_statement",
        tok("try", line=line), tok(":"), py_block(*body),
        node("except_clause", tok("except", line=except_line), ident("Exception"), tok(":"), py_block(*handler_body, field=None)),
    )


def py_bool(left: FakeNode, op: str, right: FakeNode) -> FakeNode:
    return node("boolean_operator", left, tok(op), right)


def py_compare(left: str, op: str, right: str) -> FakeNode:
    return node("comparison_operator", ident(left), tok(op), leaf("integer", right))


def py_call(name: str, *args: FakeNode, receiver: Optional[str] = None, line: Optional[int] = None) -> FakeNode:
    if receiver is None:
        target = ident(name, field="function", line=line)
    else:
        target = node(
            "attribute", ident(receiver, field="object", line=line), tok("."), ident(name, field="attribute"),
            field="function",
        )
    arg_nodes: List[FakeNode] = [tok("(")]
    for i, a in enumerate(args):
        if i:
            arg_nodes.append(tok(","))
        arg_nodes.append(a)
    arg_nodes.append(tok(")"))
    return node("expression_statement", node("call", target, node("argument_list", *arg_nodes, field="arguments")))


def py_return(value: FakeNode, line: Optional[int] = None) -> FakeNode:
    return node("return_statement", tok("return", line=line), value)


def py_assign(name: str, value: FakeNode, line: Optional[int] = None) -> FakeNode:
    return node(
        "expression_statement",
        node("assignment", ident(name, field="left", line=line), tok("="), value),
    )


def py_pass(line: Optional[int] = None) -> FakeNode:
    return node("pass_statement", tok("pass", line=line))


def py_comment(text: str, line: Optional[int] = None) -> FakeNode:
    return leaf("comment", text, line=line)


# ---------------------------------------------------------------------------
# Generic trees for analyzer-level tests
# ---------------------------------------------------------------------------

_positions = itertools.count()


def gnode(kind: GenericKind, *children: GenericNode, line: int = 1, end_line: Optional[int] = None, **attrs) -> GenericNode:
    start = next(_positions)
    last = max([line] + [c.end_line for c in children]) if end_line is None else end_line
    return GenericNode(
        kind=kind,
        type=attrs.pop("type", kind.value.lower()),
        start_byte=start,
        end_byte=start + 1,
        start_line=line,
        end_line=last,
        children=tuple(children),
        **attrs,
    )
