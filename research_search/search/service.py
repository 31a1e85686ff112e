"""Search service: index lifecycle, query execution and term suggestions.

SearchService owns exactly one current Index. Before every query it asks
the content source whether anything changed and, if so, rebuilds. The
swap to a new index is a single attribute assignment, and concurrent
callers that find the index stale share one rebuild (single-flight).

Failure policy: search is best effort. A failed rebuild keeps serving
the previous index; only a never-built index with an unreachable
source raises SourceUnavailable. Hits that cannot be resolved to a
full article are dropped. Suggestions and popular terms degrade to [].

Example:
    service = SearchService(LibraryContentSource(ContentLibrary(path)))
    await service.warm_up()
    page = await service.search("climate", limit=10, filters=SearchFilters(tags=["policy"]))
"""

import asyncio
from collections import Counter
from collections.abc import Iterable
from functools import lru_cache

from research_search.config import Settings, get_settings
from research_search.content.models import Article
from research_search.content.tools import ContentSource, LibraryContentSource
from research_search.dependencies import (
    ContentLibrary,
    RecordResolutionFailed,
    SearchError,
    logger,
)
from research_search.search.index import Clock, Index, IndexBuilder, IndexHit, utc_now
from research_search.search.models import (
    MAX_QUERY_LENGTH,
    FacetCount,
    FilterOptions,
    SearchableRecord,
    SearchFilters,
    SearchResponse,
    SearchResult,
    SearchStats,
)
from research_search.search.ranking import RankedHit, diversify, rank
from research_search.search.snippets import extract_highlighted_snippets
from research_search.search.suggestions import popular_terms, suggest

# =============================================================================
# Filtering
# =============================================================================


def _fold_all(values: Iterable[str]) -> set[str]:
    return {v.casefold() for v in values}


def matches_filters(record: SearchableRecord, filters: SearchFilters) -> bool:
    """Check a record against every non-empty filter dimension.

    Dimensions combine with AND, values within a dimension with OR.
    Empty dimensions do not constrain.
    """
    if filters.divisions and record.category_name.casefold() not in _fold_all(filters.divisions):
        return False

    if filters.authors and not _fold_all(record.author_names) & _fold_all(filters.authors):
        return False

    if filters.tags and not _fold_all(record.tags) & _fold_all(filters.tags):
        return False

    if filters.date_range and record.published_at is not None:
        start, end = filters.date_range.start, filters.date_range.end
        if start and record.published_at < start:
            return False
        if end and record.published_at > end:
            return False

    return True


def apply_filters(hits: list[IndexHit], filters: SearchFilters | None) -> list[IndexHit]:
    """Drop hits that fail the filters, preserving order."""
    if filters is None:
        return hits
    return [hit for hit in hits if matches_filters(hit.record, filters)]


def facet_counts(values: Iterable[str]) -> list[FacetCount]:
    """Count values, most frequent first, ties by name."""
    counts = Counter(v for v in values if v)
    return [
        FacetCount(name=name, count=count)
        for name, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]


# =============================================================================
# Service
# =============================================================================


class SearchService:
    """Full-text search over published articles.

    Args:
        source: Content source the index is built from
        settings: Tuning knobs (threshold, snippet size, caps)
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        source: ContentSource,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.source = source
        self.settings = settings or get_settings()
        self.clock = clock
        self.builder = IndexBuilder(
            source,
            threshold=self.settings.fuzzy_threshold,
            min_match_char_length=self.settings.min_match_char_length,
            clock=clock,
        )
        self._index: Index | None = None
        self._rebuild_lock = asyncio.Lock()

    @property
    def index(self) -> Index | None:
        """The current index generation, if one has been built."""
        return self._index

    # -------------------------------------------------------------------------
    # Index lifecycle
    # -------------------------------------------------------------------------

    async def rebuild(self) -> Index:
        """Build a new index and make it current.

        Raises:
            SourceUnavailable: If the source fails; the previous index
                stays current
        """
        index = await self.builder.build()
        self._index = index
        return index

    async def ensure_fresh_index(self) -> Index:
        """Return a current index, rebuilding first if content changed.

        Raises:
            SourceUnavailable: Only when no index has ever been built and
                the source cannot be read
        """
        current = self._index
        if current is not None and not await self.builder.should_rebuild(current.built_at):
            return current

        async with self._rebuild_lock:
            # Another caller rebuilt while this one waited for the lock
            if self._index is not current and self._index is not None:
                return self._index
            try:
                return await self.rebuild()
            except SearchError:
                if current is None:
                    raise
                logger.warning(
                    "search_index_rebuild_failed_serving_stale",
                    extra={"built_at": current.built_at.isoformat(), "records": current.size},
                )
                return current

    async def warm_up(self) -> bool:
        """Build the index ahead of the first query.

        Returns:
            True if an index is available afterwards
        """
        try:
            await self.ensure_fresh_index()
        except SearchError as e:
            logger.warning("search_warm_up_failed", extra={"error": str(e)})
            return False
        return True

    async def refresh(self) -> SearchStats:
        """Force a rebuild regardless of freshness and return new stats.

        Raises:
            SourceUnavailable: If the source cannot be read
        """
        async with self._rebuild_lock:
            await self.rebuild()
        return self.get_stats()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def search(
        self,
        query: str,
        limit: int | None = None,
        offset: int = 0,
        filters: SearchFilters | None = None,
    ) -> SearchResponse:
        """Search published articles.

        Args:
            query: Free-text query, fuzzy-matched across weighted fields
            limit: Page size (defaults to settings.default_limit)
            offset: Number of ranked results to skip
            filters: Optional constraints applied after matching

        Returns:
            SearchResponse with the requested page, the post-filter total
            and whether more pages exist

        Raises:
            SourceUnavailable: If no index exists and none can be built
        """
        limit = self.settings.default_limit if limit is None else max(0, limit)
        offset = max(0, offset)
        query = query.strip()[:MAX_QUERY_LENGTH]
        if not query:
            return SearchResponse()

        index = await self.ensure_fresh_index()
        hits = apply_filters(index.search(query), filters)
        total = len(hits)

        ranked = diversify(
            rank(hits, query, self.clock()),
            max_per_category=self.settings.max_per_category,
        )
        page = ranked[offset : offset + limit]
        results = await self._assemble(page)

        logger.info(
            "search_completed",
            extra={
                "query": query,
                "total": total,
                "returned": len(results),
                "offset": offset,
                "limit": limit,
            },
        )
        return SearchResponse(results=results, total=total, has_more=offset + limit < total)

    async def _assemble(self, page: list[RankedHit]) -> list[SearchResult]:
        """Resolve full articles for a page, dropping hits that fail."""
        resolved = await asyncio.gather(
            *(self._resolve(ranked.record.id) for ranked in page), return_exceptions=True
        )

        results: list[SearchResult] = []
        for ranked, article in zip(page, resolved):
            if isinstance(article, BaseException):
                if not isinstance(article, Exception):
                    raise article
                logger.warning(
                    "record_resolution_failed",
                    extra={"id": ranked.record.id, "error": str(article)},
                )
                continue
            results.append(
                SearchResult(
                    record=article,
                    relevance_score=ranked.relevance_score,
                    highlighted_snippets=extract_highlighted_snippets(
                        ranked.hit.matches,
                        context=self.settings.snippet_context,
                        max_snippets=min(3, self.settings.max_snippets),
                    ),
                )
            )
        return results

    async def _resolve(self, record_id: str) -> Article:
        """Resolve one record to its full article.

        Raises:
            RecordResolutionFailed: If the source errors or no longer has it
        """
        try:
            article = await self.source.resolve_full_record(record_id)
        except Exception as e:
            raise RecordResolutionFailed(f"Could not resolve {record_id}: {e}") from e
        if article is None:
            raise RecordResolutionFailed(f"Record no longer exists: {record_id}")
        return article

    async def get_suggestions(self, partial_query: str, limit: int = 5) -> list[str]:
        """Completions for a partial query; [] on any failure."""
        partial_query = partial_query.strip()[:MAX_QUERY_LENGTH]
        if len(partial_query) < 2:
            return []
        try:
            index = await self.ensure_fresh_index()
            return suggest(index, partial_query, limit)
        except Exception as e:
            logger.warning("search_suggestions_failed", extra={"error": str(e)})
            return []

    async def get_popular_terms(self, limit: int = 10) -> list[str]:
        """Most frequent tags and title words; [] on any failure."""
        try:
            index = await self.ensure_fresh_index()
            return popular_terms(index.records, limit)
        except Exception as e:
            logger.warning("search_popular_terms_failed", extra={"error": str(e)})
            return []

    async def get_filter_options(self) -> FilterOptions:
        """Divisions, authors and tags present in the index, with counts.

        Raises:
            SourceUnavailable: If no index exists and none can be built
        """
        index = await self.ensure_fresh_index()
        return FilterOptions(
            divisions=facet_counts(r.category_name for r in index.records),
            authors=facet_counts(name for r in index.records for name in r.author_names),
            tags=facet_counts(tag for r in index.records for tag in set(r.tags)),
        )

    def get_stats(self) -> SearchStats:
        """Statistics for the current index; never triggers a build."""
        index = self._index
        if index is None:
            return SearchStats()
        return SearchStats(
            total_records=index.size,
            last_index_update=index.built_at,
            index_size=index.size,
            status="healthy",
        )


@lru_cache
def get_search_service() -> SearchService:
    """FastAPI dependency provider for the process-wide SearchService."""
    settings = get_settings()
    source = LibraryContentSource(ContentLibrary(content_path=settings.content_path))
    return SearchService(source, settings)
