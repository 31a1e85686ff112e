"""Query completion and popular term extraction."""

from collections import Counter
from collections.abc import Iterable

from research_search.search.index import Index
from research_search.search.models import SearchableRecord

MIN_SUGGESTION_QUERY_LENGTH = 2
MIN_POPULAR_WORD_LENGTH = 4

STOP_WORDS = frozenset(
    {
        "the",
        "a",
        "an",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
        "by",
        "is",
        "are",
        "was",
        "were",
        "be",
        "been",
        "have",
        "has",
        "had",
        "do",
        "does",
        "did",
        "will",
        "would",
        "could",
        "should",
        "may",
        "might",
        "can",
        "this",
        "that",
        "these",
        "those",
    }
)


def is_stop_word(word: str) -> bool:
    """Check a word against the English stop-word list."""
    return word.lower() in STOP_WORDS


def suggest(index: Index, partial_query: str, limit: int = 5) -> list[str]:
    """Propose completions for a partial query.

    Looks at the top ``limit * 2`` fuzzy matches and collects title
    words that extend the query, then tags containing it.

    Args:
        index: Index to draw suggestions from
        partial_query: What the user has typed so far
        limit: Maximum suggestions to return

    Returns:
        Unique suggestions in first-seen order; empty when the query is
        shorter than two characters

    Examples:
        For an index holding "Climate Policy in Kenya" tagged "climate-risk":
        suggest(index, "cli") -> ['climate', 'climate-risk']
    """
    if len(partial_query) < MIN_SUGGESTION_QUERY_LENGTH or limit <= 0:
        return []

    lower_query = partial_query.lower()
    suggestions: dict[str, None] = {}

    for hit in index.search(partial_query)[: limit * 2]:
        for word in hit.record.title.lower().split():
            if word.startswith(lower_query) and len(word) > len(partial_query):
                suggestions.setdefault(word)
        for tag in hit.record.tags:
            if lower_query in tag.lower():
                suggestions.setdefault(tag)

    return list(suggestions)[:limit]


def popular_terms(records: Iterable[SearchableRecord], limit: int = 10) -> list[str]:
    """Most frequent tags and significant title words across records.

    Title words count when longer than three characters and not stop
    words. Ties keep first-seen order.
    """
    if limit <= 0:
        return []

    frequency: Counter[str] = Counter()
    for record in records:
        frequency.update(tag.lower() for tag in record.tags)
        frequency.update(
            word
            for word in record.title.lower().split()
            if len(word) >= MIN_POPULAR_WORD_LENGTH and not is_stop_word(word)
        )

    return [term for term, _ in frequency.most_common(limit)]
