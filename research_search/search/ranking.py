"""Relevance boosting and result diversification.

Ranking starts from the fuzzy distance (relevance = 1 - distance) and
adds domain boosts:

- +0.20 when the title contains the raw query (case-insensitive)
- +0.10 when published within 30 days, +0.05 within 90 days
- +0.05 per tag sharing a query word (case-insensitive substring)

The result is clamped to [0, 1]. Records whose clamped scores tie are
ordered by the unclamped sum, so stacked boosts still separate two
strong matches. Diversification then caps how many results of one
category appear before the rest.
"""

from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from research_search.search.index import IndexHit
from research_search.search.models import SearchableRecord

TITLE_BOOST = 0.2
RECENT_BOOST = 0.1
RECENT_DAYS = 30
FAIRLY_RECENT_BOOST = 0.05
FAIRLY_RECENT_DAYS = 90
TAG_BOOST = 0.05

T = TypeVar("T")


@dataclass(frozen=True)
class RankedHit:
    """An IndexHit with its final relevance score.

    raw_score is the boosted sum before clamping and only orders records
    whose relevance_score is equal.
    """

    hit: IndexHit
    relevance_score: float
    raw_score: float

    @property
    def record(self) -> SearchableRecord:
        return self.hit.record


def recency_boost(published_at: datetime | None, now: datetime) -> float:
    """Boost for recently published records.

    Examples:
        >>> from datetime import UTC, timedelta
        >>> now = datetime(2025, 6, 1, tzinfo=UTC)
        >>> recency_boost(now - timedelta(days=1), now)
        0.1
        >>> recency_boost(now - timedelta(days=60), now)
        0.05
        >>> recency_boost(now - timedelta(days=200), now)
        0.0
    """
    if published_at is None:
        return 0.0
    days_since = (now - published_at).total_seconds() / 86400
    if days_since < RECENT_DAYS:
        return RECENT_BOOST
    if days_since < FAIRLY_RECENT_DAYS:
        return FAIRLY_RECENT_BOOST
    return 0.0


def boosted_score(
    record: SearchableRecord,
    query: str,
    fuzzy_score: float,
    now: datetime,
) -> float:
    """Sum the base score and every boost, without clamping."""
    score = 1.0 - fuzzy_score
    lower_query = query.lower()

    if lower_query and lower_query in record.title.lower():
        score += TITLE_BOOST

    score += recency_boost(record.published_at, now)

    query_words = lower_query.split()
    matching_tags = [
        tag for tag in record.tags if any(word in tag.lower() for word in query_words)
    ]
    score += len(matching_tags) * TAG_BOOST

    return score


def calculate_relevance(
    record: SearchableRecord,
    query: str,
    fuzzy_score: float,
    now: datetime,
) -> float:
    """Calculate the final relevance score for a matched record.

    Args:
        record: Matched record
        query: Raw user query
        fuzzy_score: Fuzzy distance from the index (0 = exact)
        now: Reference time for the recency boost

    Returns:
        Score between 0.0 and 1.0
    """
    return _clamp(boosted_score(record, query, fuzzy_score, now))


def _clamp(score: float) -> float:
    return min(1.0, max(0.0, score))


def rank(hits: Sequence[IndexHit], query: str, now: datetime) -> list[RankedHit]:
    """Score every hit and order by relevance, highest first.

    Equal relevance falls back to the unclamped sum; the sort is stable,
    so full ties keep their fuzzy-match order.
    """
    ranked = []
    for hit in hits:
        raw = boosted_score(hit.record, query, hit.score, now)
        ranked.append(RankedHit(hit, _clamp(raw), raw))
    ranked.sort(key=lambda r: (r.relevance_score, r.raw_score), reverse=True)
    return ranked


def diversify(
    results: Sequence[T],
    max_per_category: int = 3,
    category: Callable[[T], str] = lambda r: r.record.category_name,
) -> list[T]:
    """Limit how many results of one category lead the list.

    A greedy pass keeps each result while its category has fewer than
    max_per_category entries; the surplus follows afterwards in its
    original order. Both passes preserve relative order, which is the
    tie-break when several categories are over-represented.

    Args:
        results: Results in relevance order
        max_per_category: Cap per category in the leading slice
        category: Returns a result's category name

    Returns:
        Re-ordered results (same set)
    """
    counts: Counter[str] = Counter()
    leading: list[T] = []
    surplus: list[T] = []

    for result in results:
        name = category(result)
        if counts[name] < max_per_category:
            leading.append(result)
            counts[name] += 1
        else:
            surplus.append(result)

    return leading + surplus
