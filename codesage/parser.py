"""Tree-sitter parsing boundary.

Turns a ``SourceUnit`` into a tree-sitter concrete syntax tree.  Grammars
come from the per-language ``tree-sitter-<lang>`` packages (tree-sitter
>= 0.22 API: ``Language(mod.language())``).  Parsers are not thread-safe,
so each worker thread keeps its own.
"""

from __future__ import annotations

import importlib
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ParseError, UnsupportedLanguage
from .models import SourceUnit

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
}

# language -> (grammar module, attribute returning the Language capsule)
_GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "python": ("tree_sitter_python", "language"),
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
    "go": ("tree_sitter_go", "language"),
    "rust": ("tree_sitter_rust", "language"),
    "java": ("tree_sitter_java", "language"),
}


def language_for_path(path: str) -> Optional[str]:
    """Language tag for a file name, or ``None`` when the extension is unknown."""
    return LANGUAGE_MAP.get(Path(path).suffix.lower())


class SourceParser:
    """Parse source units with tree-sitter.

    Args:
        strict: When true (the default) a tree containing syntax errors
            raises ``ParseError``; otherwise the tree is returned as-is and
            ``ERROR`` nodes are left for the adapter to degrade.
    """

    def __init__(self, strict: bool = True) -> None:
        self.strict = strict
        self._local = threading.local()

    def __call__(self, unit: SourceUnit) -> Any:
        return self.parse(unit)

    def supports_language(self, language: str) -> bool:
        return language in _GRAMMAR_MODULES

    def parse(self, unit: SourceUnit) -> Any:
        """Return the root node of *unit*'s concrete syntax tree."""
        parser = self._parser_for(unit.language)
        tree = parser.parse(unit.text.encode("utf-8"))
        root = tree.root_node
        if self.strict and root.has_error:
            raise _first_error(unit.path, root)
        return root

    # ------------------------------------------------------------------
    # Grammar loading
    # ------------------------------------------------------------------

    def _parser_for(self, language: str) -> Any:
        parsers: Optional[Dict[str, Any]] = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = self._local.parsers = {}
        parser = parsers.get(language)
        if parser is None:
            parser = parsers[language] = _load_parser(language)
        return parser


def _load_parser(language: str) -> Any:
    grammar = _GRAMMAR_MODULES.get(language)
    if grammar is None:
        raise UnsupportedLanguage(language)

    from tree_sitter import Language, Parser as TSParser  # type: ignore[import-untyped]

    mod_name, attr = grammar
    try:
        mod = importlib.import_module(mod_name)
    except ImportError as exc:
        logger.warning(
            "Grammar package '%s' not installed for language '%s'. Install with: pip install %s",
            mod_name, language, mod_name.replace("_", "-"),
        )
        raise UnsupportedLanguage(language) from exc

    parser = TSParser(Language(getattr(mod, attr)()))
    logger.debug("Loaded tree-sitter parser for %s", language)
    return parser


def _first_error(path: str, root: Any) -> ParseError:
    """Locate the first ``ERROR`` or missing node in document order."""
    stack: List[Any] = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            row, column = node.start_point
            if node.is_missing:
                message = f"missing '{node.type}'"
            else:
                snippet = (node.text or b"").decode("utf-8", errors="replace").splitlines()
                message = f"unexpected '{snippet[0][:40]}'" if snippet else "syntax error"
            return ParseError(path, row + 1, column + 1, message)
        if node.has_error:
            stack.extend(reversed(node.children))
    return ParseError(path, 1, 1, "syntax error")
