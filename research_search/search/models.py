"""Pydantic models for the search index and its results.

SearchableRecord is the denormalised projection the index is built
from; SearchResult carries the fully resolved Article back to callers.
"""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from research_search.content.models import Article

MAX_QUERY_LENGTH = 256


class SearchableRecord(BaseModel):
    """Flattened, search-optimised copy of one published article.

    Immutable for the lifetime of one index generation.

    Attributes:
        id: Stable identifier, unique within an index
        title: Article title
        body: Full article body
        summary: Short abstract
        tags: Tags (order irrelevant for matching)
        author_names: Author names
        category_name: Research division label
        published_at: Publication timestamp (None means not visible)
        slug: External identifier for linking
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    body: str = ""
    summary: str = ""
    tags: tuple[str, ...] = ()
    author_names: tuple[str, ...] = ()
    category_name: str = ""
    published_at: datetime | None = None
    slug: str = ""

    @field_validator("published_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Treat naive datetimes as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v


class DateRange(BaseModel):
    """Inclusive publication date range. A missing bound is open."""

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Treat naive datetimes as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        """Reject ranges whose start is after their end."""
        if self.start and self.end and self.start > self.end:
            raise ValueError("date_range start must not be after end")
        return self


class SearchFilters(BaseModel):
    """Caller-supplied constraints applied after fuzzy matching.

    An empty list for any dimension means unconstrained. Dimensions
    combine with AND; values within one dimension combine with OR.
    Names and tags compare case-insensitively.
    """

    divisions: list[str] = Field(default_factory=list, description="Division names")
    authors: list[str] = Field(default_factory=list, description="Author names")
    tags: list[str] = Field(default_factory=list, description="Tags")
    date_range: DateRange | None = Field(default=None, description="Publication window")


class SearchResult(BaseModel):
    """A single ranked hit.

    Attributes:
        record: The full article resolved from the content source
        relevance_score: Score from 0.0 to 1.0, higher is more relevant
        highlighted_snippets: Up to three snippets with matches marked
    """

    record: Article
    relevance_score: float = Field(default=0.0, ge=0.0, le=1.0, description="Relevance score")
    highlighted_snippets: list[str] = Field(
        default_factory=list, max_length=3, description="Snippets with <mark> spans"
    )


class SearchResponse(BaseModel):
    """One page of search results."""

    results: list[SearchResult] = Field(default_factory=list, description="Ranked results")
    total: int = Field(default=0, ge=0, description="Matches after filtering")
    has_more: bool = Field(default=False, description="More pages are available")


class SearchStats(BaseModel):
    """Index statistics.

    Attributes:
        total_records: Records in the current index
        last_index_update: When the current index was built
        index_size: Size of the current index in records
        status: 'healthy' once an index exists, otherwise 'unbuilt'
    """

    total_records: int = Field(default=0, ge=0)
    last_index_update: datetime | None = None
    index_size: int = Field(default=0, ge=0)
    status: Literal["healthy", "unbuilt"] = "unbuilt"


class FacetCount(BaseModel):
    """A filter value with the number of indexed records carrying it."""

    name: str
    count: int = Field(default=0, ge=0)


class FilterOptions(BaseModel):
    """Filter values available in the current index."""

    divisions: list[FacetCount] = Field(default_factory=list)
    authors: list[FacetCount] = Field(default_factory=list)
    tags: list[FacetCount] = Field(default_factory=list)


# =============================================================================
# HTTP request/response models
# =============================================================================


class SearchRequest(BaseModel):
    """Body of POST /v1/search."""

    query: str = Field(
        ..., min_length=1, max_length=MAX_QUERY_LENGTH, description="Search query"
    )
    limit: int = Field(default=20, ge=1, le=100, description="Page size")
    offset: int = Field(default=0, ge=0, description="Results to skip")
    filters: SearchFilters | None = Field(default=None, description="Optional filters")


class SearchApiResponse(SearchResponse):
    """Search page wrapped for the HTTP API."""

    success: bool = True
    query: str = ""


class SuggestionsResponse(BaseModel):
    """Completions for a partial query."""

    success: bool = True
    query: str = ""
    suggestions: list[str] = Field(default_factory=list)


class PopularTermsResponse(BaseModel):
    """Most frequent terms in the index."""

    success: bool = True
    popular_terms: list[str] = Field(default_factory=list)


class StatsResponse(BaseModel):
    """Index statistics, optionally after a forced refresh."""

    success: bool = True
    message: str | None = None
    stats: SearchStats = Field(default_factory=SearchStats)


class FilterOptionsResponse(BaseModel):
    """Available filter values."""

    success: bool = True
    filters: FilterOptions = Field(default_factory=FilterOptions)


class ErrorResponse(BaseModel):
    """Error payload; never carries raw exception text."""

    error: str
    code: str = "search_error"
