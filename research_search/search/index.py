"""Search index construction and freshness checks.

An Index is an immutable snapshot: the published records plus the
fuzzy structure built over them. Rebuilding produces a new Index; the
old one is never modified, so a query holding a reference keeps a
consistent view even if a rebuild lands mid-query.
"""

import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from research_search.content.tools import ContentSource
from research_search.dependencies import SourceUnavailable, logger
from research_search.search.fuzzy import FieldMatch, FuzzyIndex
from research_search.search.models import SearchableRecord

# Relative field weights for fuzzy scoring. Must sum to 1.0.
FIELD_WEIGHTS: dict[str, float] = {
    "title": 0.40,
    "summary": 0.30,
    "body": 0.20,
    "tags": 0.05,
    "author_names": 0.03,
    "category_name": 0.02,
}

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


def validate_field_weights(weights: Mapping[str, float]) -> dict[str, float]:
    """Check weights name known fields, are non-negative and sum to 1.0.

    Raises:
        ValueError: If the configuration is invalid
    """
    unknown = set(weights) - set(SearchableRecord.model_fields)
    if unknown:
        raise ValueError(f"Unknown fields in weights: {', '.join(sorted(unknown))}")
    if any(w < 0 for w in weights.values()):
        raise ValueError("Field weights must be non-negative")
    if not math.isclose(sum(weights.values()), 1.0, abs_tol=1e-6):
        raise ValueError(f"Field weights must sum to 1.0, got {sum(weights.values()):.4f}")
    return dict(weights)


def is_visible(record: SearchableRecord, now: datetime) -> bool:
    """A record is visible once it has a publish time that has passed."""
    return record.published_at is not None and record.published_at <= now


@dataclass(frozen=True)
class IndexHit:
    """A record matched by the fuzzy index.

    Attributes:
        record: The matched search record
        score: Fuzzy distance, 0.0 is a perfect match
        matches: Per-field match details, used for highlighting
    """

    record: SearchableRecord
    score: float
    matches: tuple[FieldMatch, ...] = ()


@dataclass(frozen=True)
class Index:
    """Point-in-time, immutable search index."""

    records: tuple[SearchableRecord, ...]
    built_at: datetime
    field_weights: Mapping[str, float] = field(default_factory=lambda: dict(FIELD_WEIGHTS))
    matcher: FuzzyIndex | None = None

    @property
    def size(self) -> int:
        """Number of indexed records."""
        return len(self.records)

    def search(self, query: str) -> list[IndexHit]:
        """Run a fuzzy match over every record, best match first."""
        if self.matcher is None or not query:
            return []
        return [
            IndexHit(self.records[hit.doc_index], hit.score, hit.matches)
            for hit in self.matcher.search(query)
        ]


def record_fields(record: SearchableRecord, keys: Mapping[str, float]) -> dict[str, object]:
    """Extract the weighted fields of a record for the fuzzy index."""
    return {key: getattr(record, key) for key in keys}


class IndexBuilder:
    """Builds Index generations from a ContentSource.

    Args:
        source: Content source to read records from
        threshold: Fuzzy threshold (errors / pattern length)
        min_match_char_length: Shortest span counted as a match
        field_weights: Field name to weight, summing to 1.0
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        source: ContentSource,
        threshold: float = 0.4,
        min_match_char_length: int = 2,
        field_weights: Mapping[str, float] = FIELD_WEIGHTS,
        clock: Clock = utc_now,
    ) -> None:
        self.source = source
        self.threshold = threshold
        self.min_match_char_length = min_match_char_length
        self.field_weights = validate_field_weights(field_weights)
        self.clock = clock

    async def build(self) -> Index:
        """Read every publishable record and build a new Index.

        Records without a publish time, or published in the future, are
        left out even if the source returned them. Duplicate ids keep the
        first record seen.

        Raises:
            SourceUnavailable: If the content source fails
        """
        started = time.perf_counter()
        # Read before the fetch; edits landing mid-build must count as changes
        built_at = self.clock()

        try:
            fetched = await self.source.fetch_publishable_content()
        except Exception as e:
            logger.error("search_index_source_failed", extra={"error": str(e)})
            raise SourceUnavailable(f"Content source unavailable: {e}") from e

        records: list[SearchableRecord] = []
        seen: set[str] = set()
        skipped = 0
        for record in fetched:
            if not is_visible(record, built_at) or record.id in seen:
                skipped += 1
                continue
            seen.add(record.id)
            records.append(record)

        matcher = FuzzyIndex(
            [record_fields(r, self.field_weights) for r in records],
            weights=self.field_weights,
            threshold=self.threshold,
            min_match_char_length=self.min_match_char_length,
        )
        index = Index(
            records=tuple(records),
            built_at=built_at,
            field_weights=self.field_weights,
            matcher=matcher,
        )

        logger.info(
            "search_index_built",
            extra={
                "records": index.size,
                "skipped": skipped,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        return index

    async def should_rebuild(self, last_build_time: datetime | None) -> bool:
        """Decide whether the index must be rebuilt.

        Never-built indexes always need a build. A failed freshness check
        also answers True.
        """
        if last_build_time is None:
            return True

        try:
            return await self.source.has_content_changed_since(last_build_time)
        except Exception as e:
            logger.warning("search_index_freshness_check_failed", extra={"error": str(e)})
            return True
