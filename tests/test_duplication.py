"""Tests for token shingling and duplicate detection."""

import pytest

from codesage.config import DuplicationConfig
from codesage.duplication import (
    IDENTIFIER_PLACEHOLDER,
    LITERAL_PLACEHOLDER,
    DuplicationDetector,
    duplicated_ratio,
    extract_tokens,
    merge_indexes,
    shingle_hashes,
    shingle_index,
)
from codesage.models import TOKEN_IDENTIFIER, TOKEN_LITERAL, GenericKind as K

from fakecst import gnode


def token_tree(values, line_every=5):
    """A flat generic tree with one leaf per value."""
    leaves = [
        gnode(K.OTHER, text=v, type="tok", line=1 + i // line_every)
        for i, v in enumerate(values)
    ]
    return gnode(K.BLOCK, *leaves)


def words(prefix, n):
    return [f"{prefix}{i}" for i in range(n)]


@pytest.fixture
def detector() -> DuplicationDetector:
    return DuplicationDetector(DuplicationConfig(window=5))


class TestTokens:
    """Token extraction and hashing."""

    def test_normalization(self):
        root = gnode(
            K.BLOCK,
            gnode(K.OTHER, text="total", token=TOKEN_IDENTIFIER, type="identifier"),
            gnode(K.OTHER, text="=", type="="),
            gnode(K.OTHER, text="42", token=TOKEN_LITERAL, type="integer"),
            gnode(K.OTHER, text="   ", type="ws"),
        )

        normalized = [t.value for t in extract_tokens(root, normalize_identifiers=True)]
        raw = [t.value for t in extract_tokens(root, normalize_identifiers=False)]

        assert normalized == [IDENTIFIER_PLACEHOLDER, "=", LITERAL_PLACEHOLDER]
        assert raw == ["total", "=", "42"]

    def test_tokens_in_source_order(self):
        root = gnode(K.BLOCK, gnode(K.OTHER, token_tree(["a", "b"]), token_tree(["c"])), token_tree(["d"]))
        assert [t.value for t in extract_tokens(root)] == ["a", "b", "c", "d"]

    def test_rolling_hash_matches_direct_hash(self):
        values = words("t", 20)
        rolled = shingle_hashes(values, 5)

        assert len(rolled) == 16
        for i, h in enumerate(rolled):
            assert h == shingle_hashes(values[i:i + 5], 5)[0]

    def test_hashes_stable_across_calls(self):
        values = words("x", 12)
        assert shingle_hashes(values, 4) == shingle_hashes(list(values), 4)

    def test_short_stream_has_no_shingles(self):
        assert shingle_hashes(["a", "b"], 5) == []
        assert shingle_index(["a", "b"], 5) == {}

    def test_merge_indexes_single_reduce(self):
        values = words("t", 8)
        merged = merge_indexes([(0, shingle_index(values, 5)), (1, shingle_index(values, 5))])

        first = shingle_hashes(values, 5)[0]
        assert merged[first] == [(0, 0), (1, 0)]


class TestDetector:
    """Match resolution across and within units."""

    def test_identical_files_one_match(self, detector):
        values = words("t", 30)
        streams = [detector.stream("a.py", token_tree(values)), detector.stream("b.py", token_tree(values))]

        matches = detector.detect(streams)

        assert len(matches) == 1
        match = matches[0]
        assert match.similarity == 1.0
        assert match.tokens == 30
        assert (match.first.path, match.second.path) == ("a.py", "b.py")
        assert match.first.start_line == 1
        assert match.first.end_line == 6

    def test_short_overlap_no_match(self, detector):
        shared = words("s", 4)
        a = words("a", 10) + shared + words("b", 10)
        b = words("c", 10) + shared + words("d", 10)
        streams = [detector.stream("a.py", token_tree(a)), detector.stream("b.py", token_tree(b))]

        assert detector.detect(streams) == []

    def test_min_length_filters_extended_runs(self):
        detector = DuplicationDetector(DuplicationConfig(window=5, min_length=10))
        shared = words("s", 7)
        a = words("a", 10) + shared + words("b", 10)
        b = words("c", 10) + shared + words("d", 10)
        streams = [detector.stream("a.py", token_tree(a)), detector.stream("b.py", token_tree(b))]

        assert detector.detect(streams) == []

    def test_partial_similarity(self, detector):
        shared = words("s", 30)
        streams = [
            detector.stream("a.py", token_tree(shared)),
            detector.stream("b.py", token_tree(shared + words("x", 30))),
        ]

        [match] = detector.detect(streams)
        assert match.tokens == 30
        assert match.similarity == pytest.approx(60 / 90, abs=1e-4)

    def test_renamed_copy_matches_when_normalized(self):
        def renamed(prefix):
            return gnode(K.BLOCK, *[
                gnode(K.OTHER, text=f"{prefix}{i}" if i % 2 else f"op{i}", token=TOKEN_IDENTIFIER if i % 2 else "", type="t")
                for i in range(20)
            ])

        normalized = DuplicationDetector(DuplicationConfig(window=5))
        raw = DuplicationDetector(DuplicationConfig(window=5, normalize_identifiers=False))

        assert len(normalized.detect([normalized.stream("a", renamed("x")), normalized.stream("b", renamed("y"))])) == 1
        assert raw.detect([raw.stream("a", renamed("x")), raw.stream("b", renamed("y"))]) == []

    def test_shifted_copy_after_periodic_prefix(self):
        detector = DuplicationDetector(DuplicationConfig(window=50))
        shared = words("u", 60)
        a = ["x", "y"] * 40 + shared
        b = ["q"] + ["x", "y"] * 35 + shared
        matches = detector.detect([detector.stream("a.py", token_tree(a)), detector.stream("b.py", token_tree(b))])
        cross = [m for m in matches if m.first.path != m.second.path]

        assert len(cross) == 1
        match = cross[0]
        assert (match.first.start_token, match.first.end_token) == (10, 140)
        assert (match.second.start_token, match.second.end_token) == (1, 131)
        assert match.tokens == 130
        assert match.similarity == round(260 / 271, 4)

    def test_run_extends_backwards_from_a_later_collision(self, detector):
        run = words("r", 12)
        # r4..r8 also opens a, so the shared run is first reached at r4 and grown back to r0
        a = run[4:9] + ["z"] + run
        b = ["w"] + run
        matches = detector.detect([detector.stream("a.py", token_tree(a)), detector.stream("b.py", token_tree(b))])
        cross = [
            (m.first.start_token, m.first.end_token, m.second.start_token, m.second.end_token)
            for m in matches if m.first.path != m.second.path
        ]

        assert cross == [(0, 5, 5, 10), (6, 18, 1, 13)]

    def test_matches_never_pair_the_same_code_twice(self):
        detector = DuplicationDetector(DuplicationConfig(window=6))
        a = ["p", "q"] * 10 + words("t", 8)
        b = ["p", "q"] * 7 + words("t", 8)
        matches = detector.detect([detector.stream("a.py", token_tree(a)), detector.stream("b.py", token_tree(b))])
        cross = [m for m in matches if m.first.path != m.second.path]

        for i, m in enumerate(cross):
            for other in cross[i + 1:]:
                assert not (m.first.overlaps(other.first) and m.second.overlaps(other.second))
        assert any(m.first.end_token == len(a) and m.second.end_token == len(b) for m in cross)

    def test_repeat_within_one_unit(self, detector):
        block = words("r", 10)
        values = block + words("gap", 3) + block
        matches = detector.detect([detector.stream("a.py", token_tree(values))])

        assert len(matches) == 1
        match = matches[0]
        assert match.first.path == match.second.path == "a.py"
        assert (match.first.start_token, match.first.end_token) == (0, 10)
        assert (match.second.start_token, match.second.end_token) == (13, 23)

    def test_periodic_run_never_overlaps(self, detector):
        matches = detector.detect([detector.stream("a.py", token_tree(["a"] * 40))])

        assert matches
        for match in matches:
            assert not match.first.overlaps(match.second)
            assert match.first.token_length >= 5

    def test_output_is_sorted(self, detector):
        values = words("t", 12)
        streams = [detector.stream(p, token_tree(values)) for p in ("c.py", "a.py", "b.py")]
        matches = detector.detect(streams)
        keys = [(m.first.path, m.second.path) for m in matches]

        assert keys == [("a.py", "b.py"), ("a.py", "c.py"), ("b.py", "c.py")]
        assert len(matches) == 3


class TestDuplicatedRatio:
    """Share of a unit's tokens covered by matches."""

    def test_ratio_counts_union_of_spans(self, detector):
        block = words("r", 10)
        values = block + words("gap", 3) + block
        matches = detector.detect([detector.stream("a.py", token_tree(values))])

        assert duplicated_ratio(matches, "a.py", len(values)) == round(20 / 23, 4)
        assert duplicated_ratio(matches, "other.py", 10) == 0.0

    def test_empty_unit(self):
        assert duplicated_ratio([], "a.py", 0) == 0.0
