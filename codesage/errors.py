"""Error types raised by the analysis core."""

from __future__ import annotations

from typing import Optional


class CodeSageError(Exception):
    """Base class for every error raised by CodeSage."""


class ParseError(CodeSageError):
    """A located syntax error reported by the upstream parsing layer."""

    def __init__(self, path: str, line: int, column: int, message: str) -> None:
        self.path = path
        self.line = line
        self.column = column
        self.message = message
        super().__init__(f"{path}:{line}:{column}: {message}")


class UnsupportedLanguage(CodeSageError):
    """No grammar or adapter mapping exists for a language tag."""

    def __init__(self, language: str) -> None:
        self.language = language
        super().__init__(f"Unsupported language: {language}")


class UnsupportedConstruct(CodeSageError):
    """A grammar node that has no generic mapping.

    Never fatal: the adapter records it and keeps the node as an opaque leaf.
    """

    def __init__(self, node_type: str, line: int) -> None:
        self.node_type = node_type
        self.line = line
        super().__init__(f"Unsupported construct '{node_type}' at line {line}")


class ComplexityOverflow(CodeSageError):
    """Nesting went past the configured guard while scoring a unit."""

    def __init__(self, unit: str, depth: int, line: Optional[int] = None) -> None:
        self.unit = unit
        self.depth = depth
        self.line = line
        where = f" (line {line})" if line is not None else ""
        super().__init__(
            f"Nesting depth {depth} exceeds guard in '{unit}'{where}; "
            "cognitive complexity unavailable"
        )


class ConfigurationError(CodeSageError):
    """Invalid thresholds, weights or cost table."""
