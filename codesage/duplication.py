"""Duplicate code detection by token shingling.

Every source unit contributes a token stream and a partial index
``shingle hash -> offsets`` built independently (one task per unit).  A
single combiner merges the partial indexes, then only shingles that share a
hash are compared.  Each candidate pair is extended in both directions
along its diagonal (the offset shift between the two units), so the cost is
bounded by actual collisions instead of a pairwise comparison of every
unit.  Of the maximal runs found for a pair of units, the longest win and
runs that would pair the same code again are dropped.
"""

from __future__ import annotations

import logging
import zlib
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from .config import DuplicationConfig
from .models import (
    TOKEN_IDENTIFIER,
    TOKEN_LITERAL,
    DuplicationMatch,
    GenericNode,
    Span,
)

logger = logging.getLogger(__name__)

IDENTIFIER_PLACEHOLDER = "$ID"
LITERAL_PLACEHOLDER = "$LIT"

_BASE = 1_000_003
_MOD = (1 << 61) - 1

PartialIndex = Dict[int, List[int]]
GlobalIndex = Dict[int, List[Tuple[int, int]]]


@dataclass(frozen=True)
class Token:
    value: str
    start_byte: int
    end_byte: int
    start_line: int
    end_line: int


@dataclass
class TokenStream:
    """Tokens of one source unit plus its partial shingle index."""
    path: str
    tokens: List[Token]
    index: PartialIndex = field(default_factory=dict)

    @property
    def values(self) -> List[str]:
        return [t.value for t in self.tokens]

    def __len__(self) -> int:
        return len(self.tokens)


# ===================================================================
# Tokens and shingles
# ===================================================================

def extract_tokens(root: GenericNode, normalize_identifiers: bool = True) -> List[Token]:
    """Emit one token per leaf, in source order."""
    tokens: List[Token] = []
    stack: List[GenericNode] = [root]
    while stack:
        node = stack.pop()
        if node.children:
            stack.extend(reversed(node.children))
            continue
        text = node.text.strip()
        if not text:
            continue
        value = text
        if normalize_identifiers:
            if node.token == TOKEN_IDENTIFIER:
                value = IDENTIFIER_PLACEHOLDER
            elif node.token == TOKEN_LITERAL:
                value = LITERAL_PLACEHOLDER
        tokens.append(Token(
            value=value,
            start_byte=node.start_byte,
            end_byte=node.end_byte,
            start_line=node.start_line,
            end_line=node.end_line,
        ))
    return tokens


def token_code(value: str) -> int:
    """Stable per-token code (independent of ``PYTHONHASHSEED``)."""
    return zlib.crc32(value.encode("utf-8")) + 1


def shingle_hashes(values: Sequence[str], window: int) -> List[int]:
    """Rabin-Karp rolling hash of every ``window``-token shingle."""
    if window <= 0 or len(values) < window:
        return []
    codes = [token_code(v) for v in values]
    power = pow(_BASE, window - 1, _MOD)
    h = 0
    for code in codes[:window]:
        h = (h * _BASE + code) % _MOD
    hashes = [h]
    for i in range(window, len(codes)):
        h = ((h - codes[i - window] * power) * _BASE + codes[i]) % _MOD
        hashes.append(h)
    return hashes


def shingle_index(values: Sequence[str], window: int) -> PartialIndex:
    """Partial index of one unit: hash -> every token offset with that hash."""
    index: PartialIndex = {}
    for offset, h in enumerate(shingle_hashes(values, window)):
        index.setdefault(h, []).append(offset)
    return index


def merge_indexes(partials: Iterable[Tuple[int, PartialIndex]]) -> GlobalIndex:
    """Single-threaded reduce of per-unit partial indexes."""
    merged: GlobalIndex = defaultdict(list)
    for unit_id, partial in partials:
        for h, offsets in partial.items():
            merged[h].extend((unit_id, offset) for offset in offsets)
    return merged


# ===================================================================
# Detector
# ===================================================================

class DuplicationDetector:
    """Find repeated token runs within and across source units."""

    def __init__(self, config: DuplicationConfig) -> None:
        self.window = config.window
        self.min_length = config.effective_min_length
        self.normalize_identifiers = config.normalize_identifiers

    def stream(self, path: str, root: GenericNode) -> TokenStream:
        """Per-unit task: tokens and the unit's partial shingle index."""
        tokens = extract_tokens(root, self.normalize_identifiers)
        values = [t.value for t in tokens]
        return TokenStream(path=path, tokens=tokens, index=shingle_index(values, self.window))

    def detect(self, streams: Sequence[TokenStream]) -> List[DuplicationMatch]:
        """Resolve matches once every unit has contributed its shingles."""
        index = merge_indexes((uid, s.index) for uid, s in enumerate(streams))
        values = [s.values for s in streams]

        # (unit a, unit b, shift) -> maximal runs already found, in a-offsets
        runs: Dict[Tuple[int, int, int], List[Tuple[int, int]]] = defaultdict(list)
        found: Dict[Tuple[int, int], List[Tuple[int, int, int]]] = defaultdict(list)
        for entries in index.values():
            if len(entries) < 2:
                continue
            entries = sorted(entries)
            for x, (ua, ia) in enumerate(entries):
                for ub, ib in entries[x + 1:]:
                    shift = ib - ia
                    diagonal = runs[(ua, ub, shift)]
                    if any(start <= ia < end for start, end in diagonal):
                        continue
                    a, b = values[ua], values[ub]
                    if a[ia:ia + self.window] != b[ib:ib + self.window]:
                        continue
                    start, end = self._extend(a, b, ia, shift)
                    diagonal.append((start, end))
                    length = end - start
                    if ua == ub:
                        length = min(length, shift)
                    if length >= self.min_length:
                        found[(ua, ub)].append((start, start + shift, length))

        matches: List[DuplicationMatch] = []
        for (ua, ub), candidates in found.items():
            for a_range, b_range in self._select(candidates, same_unit=ua == ub):
                matches.append(self._build(streams[ua], a_range, streams[ub], b_range))

        matches.sort(key=lambda m: (
            m.first.path, m.first.start_token, m.second.path, m.second.start_token,
        ))
        logger.debug("Found %d duplication match(es) across %d unit(s)", len(matches), len(streams))
        return matches

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _extend(self, a: List[str], b: List[str], ia: int, shift: int) -> Tuple[int, int]:
        """Maximal run through ``a[ia]`` ~ ``b[ia + shift]``, as ``a`` offsets."""
        start = ia
        while start > 0 and start + shift > 0 and a[start - 1] == b[start - 1 + shift]:
            start -= 1
        end = ia + self.window
        limit = min(len(a), len(b) - shift)
        while end < limit and a[end] == b[end + shift]:
            end += 1
        return start, end

    @staticmethod
    def _select(
        candidates: List[Tuple[int, int, int]], same_unit: bool,
    ) -> List[Tuple[Tuple[int, int], Tuple[int, int]]]:
        """Longest matches of one unit pair first; drop any that pair code already paired."""
        kept: List[Tuple[Tuple[int, int], Tuple[int, int]]] = []
        for ia, ib, length in sorted(candidates, key=lambda c: (-c[2], c[0], c[1])):
            a_range, b_range = (ia, ia + length), (ib, ib + length)
            if any(_conflicts(k, a_range, b_range, same_unit) for k in kept):
                continue
            kept.append((a_range, b_range))
        return kept

    @staticmethod
    def _build(
        first: TokenStream, a_range: Tuple[int, int],
        second: TokenStream, b_range: Tuple[int, int],
    ) -> DuplicationMatch:
        len_a = a_range[1] - a_range[0]
        len_b = b_range[1] - b_range[0]
        total = len(first) + len(second)
        similarity = min(1.0, round((len_a + len_b) / total, 4)) if total else 0.0
        spans = sorted(
            (_span(first, *a_range), _span(second, *b_range)),
            key=lambda s: (s.path, s.start_token),
        )
        return DuplicationMatch(
            first=spans[0],
            second=spans[1],
            tokens=(len_a + len_b) // 2,
            similarity=similarity,
        )


def _overlap(x: Tuple[int, int], y: Tuple[int, int]) -> bool:
    return x[0] < y[1] and y[0] < x[1]


def _conflicts(
    kept: Tuple[Tuple[int, int], Tuple[int, int]],
    a_range: Tuple[int, int],
    b_range: Tuple[int, int],
    same_unit: bool,
) -> bool:
    ka, kb = kept
    if _overlap(a_range, ka) and _overlap(b_range, kb):
        return True
    return same_unit and _overlap(a_range, kb) and _overlap(b_range, ka)


def _span(stream: TokenStream, start: int, end: int) -> Span:
    first, last = stream.tokens[start], stream.tokens[end - 1]
    return Span(
        path=stream.path,
        start_byte=first.start_byte,
        end_byte=last.end_byte,
        start_line=first.start_line,
        end_line=last.end_line,
        start_token=start,
        end_token=end,
    )


def duplicated_ratio(matches: Iterable[DuplicationMatch], path: str, total_tokens: int) -> float:
    """Share of a unit's tokens covered by at least one match."""
    if total_tokens <= 0:
        return 0.0
    ranges = sorted(
        (span.start_token, span.end_token)
        for match in matches
        for span in (match.first, match.second)
        if span.path == path
    )
    covered = 0
    current_start, current_end = -1, -1
    for start, end in ranges:
        if start > current_end:
            covered += current_end - current_start
            current_start, current_end = start, end
        else:
            current_end = max(current_end, end)
    covered += current_end - current_start
    return round(min(1.0, covered / total_tokens), 4)
