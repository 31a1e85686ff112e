"""Weighted multi-field fuzzy matching.

Approximate substring matching uses the bitap (shift-and) algorithm
extended to Levenshtein errors. A field value matches when some
substring is within ``floor(threshold * len(pattern))`` edits of the
pattern, anywhere in the value. Match position does not affect scoring.

Scores follow the usual convention of fuzzy search libraries: 0 is a
perfect match and 1 is no match. A field's score is ``errors /
len(pattern)`` (floored at 0.001); a document's score is the product of
its matching fields' scores, each raised to ``weight * norm`` where
``norm = 1 / sqrt(token count)`` so short fields such as titles weigh
more than long bodies.

Example:
    >>> index = FuzzyIndex(
    ...     [{"title": "Climate Policy"}, {"title": "Energy Storage"}],
    ...     weights={"title": 1.0},
    ... )
    >>> [hit.doc_index for hit in index.search("climte")]
    [0]
"""

import math
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

MIN_FIELD_SCORE = 0.001

FieldValue = str | Sequence[str]


@dataclass(frozen=True)
class BitapResult:
    """Outcome of matching one pattern against one text."""

    is_match: bool
    score: float
    indices: tuple[tuple[int, int], ...] = ()


NO_MATCH = BitapResult(is_match=False, score=1.0)


@dataclass(frozen=True)
class FieldMatch:
    """A matching field value with its inclusive match spans."""

    key: str
    value: str
    score: float
    indices: tuple[tuple[int, int], ...]
    norm: float
    weight: float


@dataclass(frozen=True)
class FuzzyHit:
    """A matching document: its position, combined score and field matches."""

    doc_index: int
    score: float
    matches: tuple[FieldMatch, ...]


def fold_case(text: str) -> str:
    """Lowercase text without changing its length.

    Characters whose lowercase form is longer (e.g. 'İ') are kept as-is
    so match indices stay valid for the original text.
    """
    lowered = text.lower()
    if len(lowered) == len(text):
        return lowered
    return "".join(c.lower() if len(c.lower()) == 1 else c for c in text)


def field_norm(value: str) -> float:
    """Length normalisation for a field value: 1/sqrt(tokens), 3 decimals.

    Examples:
        >>> field_norm("Climate Policy in Kenya")
        0.5
        >>> field_norm("solo")
        1.0
    """
    tokens = max(1, len(value.split()))
    return round(1 / math.sqrt(tokens), 3)


def merge_spans(spans: list[tuple[int, int]]) -> list[tuple[int, int]]:
    """Merge overlapping or touching inclusive spans.

    Examples:
        >>> merge_spans([(5, 8), (0, 2), (3, 4), (10, 12)])
        [(0, 8), (10, 12)]
    """
    merged: list[tuple[int, int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1] + 1:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def bitap_search(
    text: str,
    pattern: str,
    threshold: float = 0.4,
    min_match_char_length: int = 1,
) -> BitapResult:
    """Find approximate occurrences of pattern in text.

    Both arguments are expected to be case-folded already.

    Args:
        text: Text to search
        pattern: Pattern to find
        threshold: Largest accepted errors / pattern length
        min_match_char_length: Shortest span that counts as a match

    Returns:
        BitapResult with the best score and the spans reaching it

    Examples:
        >>> bitap_search("climate finance", "climate").indices
        ((0, 6),)
        >>> bitap_search("climate finance", "climte").score
        0.16666666666666666
        >>> bitap_search("energy storage", "climate").is_match
        False
    """
    pattern_len = len(pattern)
    if not pattern_len or not text:
        return NO_MATCH

    max_errors = min(pattern_len - 1, int(threshold * pattern_len + 1e-9))

    alphabet: dict[str, int] = {}
    for i, char in enumerate(pattern):
        alphabet[char] = alphabet.get(char, 0) | (1 << i)

    full = (1 << pattern_len) - 1
    accept = 1 << (pattern_len - 1)
    # rows[d] bit i: pattern[:i+1] matches a suffix of the text read so far with <= d errors
    rows = [(1 << d) - 1 for d in range(max_errors + 1)]

    best_errors = max_errors + 1
    ends: list[int] = []

    for j, char in enumerate(text):
        char_mask = alphabet.get(char, 0)
        prev_old = rows[0]
        rows[0] = ((prev_old << 1) | 1) & char_mask
        for d in range(1, max_errors + 1):
            old = rows[d]
            rows[d] = (
                (((old << 1) | 1) & char_mask)
                | ((prev_old | rows[d - 1]) << 1)
                | prev_old
                | 1
            ) & full
            prev_old = old

        for d in range(min(best_errors, max_errors) + 1):
            if rows[d] & accept:
                if d < best_errors:
                    best_errors = d
                    ends = []
                ends.append(j)
                break

    if best_errors > max_errors:
        return NO_MATCH

    spans = merge_spans([(max(0, end - pattern_len + 1), end) for end in ends])
    spans = [(s, e) for s, e in spans if e - s + 1 >= min_match_char_length]
    if not spans:
        return NO_MATCH

    return BitapResult(
        is_match=True,
        score=max(MIN_FIELD_SCORE, best_errors / pattern_len),
        indices=tuple(spans),
    )


@dataclass(frozen=True)
class _IndexedValue:
    key: str
    value: str
    folded: str
    norm: float


class FuzzyIndex:
    """Precomputed, immutable fuzzy index over a list of documents.

    Each document maps a field name to a string or a sequence of
    strings; every element of a sequence is matched separately.
    """

    def __init__(
        self,
        documents: Sequence[Mapping[str, FieldValue]],
        weights: Mapping[str, float],
        threshold: float = 0.4,
        min_match_char_length: int = 1,
    ) -> None:
        total_weight = sum(weights.values())
        if total_weight <= 0:
            raise ValueError("Field weights must sum to a positive value")

        self.weights = {key: weight / total_weight for key, weight in weights.items()}
        self.threshold = threshold
        self.min_match_char_length = min_match_char_length
        self._entries: tuple[tuple[_IndexedValue, ...], ...] = tuple(
            self._index_document(doc) for doc in documents
        )

    def _index_document(self, document: Mapping[str, FieldValue]) -> tuple[_IndexedValue, ...]:
        values: list[_IndexedValue] = []
        for key in self.weights:
            raw = document.get(key)
            items = [raw] if isinstance(raw, str) else list(raw or [])
            for item in items:
                if not item or not item.strip():
                    continue
                values.append(_IndexedValue(key, item, fold_case(item), field_norm(item)))
        return tuple(values)

    def __len__(self) -> int:
        return len(self._entries)

    def search(self, pattern: str) -> list[FuzzyHit]:
        """Match pattern against every document.

        Returns:
            Matching documents, best (lowest) score first; ties keep
            document order
        """
        folded_pattern = fold_case(pattern)
        if not folded_pattern:
            return []

        hits: list[FuzzyHit] = []
        for doc_index, entries in enumerate(self._entries):
            matches: list[FieldMatch] = []
            for entry in entries:
                result = bitap_search(
                    entry.folded,
                    folded_pattern,
                    threshold=self.threshold,
                    min_match_char_length=self.min_match_char_length,
                )
                if result.is_match:
                    matches.append(
                        FieldMatch(
                            key=entry.key,
                            value=entry.value,
                            score=result.score,
                            indices=result.indices,
                            norm=entry.norm,
                            weight=self.weights[entry.key],
                        )
                    )
            if matches:
                hits.append(FuzzyHit(doc_index, combine_scores(matches), tuple(matches)))

        hits.sort(key=lambda hit: (hit.score, hit.doc_index))
        return hits


def combine_scores(matches: Sequence[FieldMatch]) -> float:
    """Combine field scores into one document score in [0, 1]."""
    total = 1.0
    for match in matches:
        score = match.score or sys.float_info.epsilon
        total *= score ** (match.weight * match.norm)
    return total
