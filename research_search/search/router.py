"""FastAPI router for the /v1/search endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from research_search.dependencies import SourceUnavailable, logger
from research_search.search.models import (
    MAX_QUERY_LENGTH,
    ErrorResponse,
    FilterOptionsResponse,
    PopularTermsResponse,
    SearchApiResponse,
    SearchFilters,
    SearchRequest,
    StatsResponse,
    SuggestionsResponse,
)
from research_search.search.service import SearchService, get_search_service

router = APIRouter(prefix="/v1/search", tags=["search"])

UNAVAILABLE_MESSAGE = "Search is temporarily unavailable. Please try again shortly."


def unavailable() -> HTTPException:
    """503 with a generic retry message."""
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=ErrorResponse(error=UNAVAILABLE_MESSAGE, code="search_unavailable").model_dump(),
    )


async def run_search(
    service: SearchService,
    query: str,
    limit: int,
    offset: int,
    filters: SearchFilters | None,
) -> SearchApiResponse:
    """Run a search and wrap it for the API.

    Raises:
        HTTPException: 503 if the index cannot be built
    """
    try:
        page = await service.search(query, limit=limit, offset=offset, filters=filters)
    except SourceUnavailable as e:
        logger.error("search_request_failed", extra={"query": query, "error": str(e)})
        raise unavailable()
    return SearchApiResponse(
        query=query, results=page.results, total=page.total, has_more=page.has_more
    )


@router.get("", response_model=None)
async def search_get(
    q: str = Query(
        ..., min_length=1, max_length=MAX_QUERY_LENGTH, description="Search query"
    ),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    filters: str | None = Query(default=None, description="JSON-encoded SearchFilters"),
    service: SearchService = Depends(get_search_service),
) -> SearchApiResponse | JSONResponse:
    """Search articles with query-string parameters.

    Filters arrive as a JSON object in the ``filters`` parameter, e.g.
    ``{"divisions": ["Economics"], "tags": ["trade"]}``.
    """
    parsed_filters: SearchFilters | None = None
    if filters:
        try:
            parsed_filters = SearchFilters.model_validate_json(filters)
        except ValidationError:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=ErrorResponse(
                    error="Invalid filters format", code="invalid_filters"
                ).model_dump(),
            )

    return await run_search(service, q, limit, offset, parsed_filters)


@router.post("")
async def search_post(
    request: SearchRequest,
    service: SearchService = Depends(get_search_service),
) -> SearchApiResponse:
    """Search articles with a JSON body."""
    return await run_search(
        service, request.query, request.limit, request.offset, request.filters
    )


@router.get("/suggestions")
async def suggestions(
    q: str = Query(..., min_length=1, max_length=MAX_QUERY_LENGTH),
    limit: int = Query(default=5, ge=1, le=20),
    service: SearchService = Depends(get_search_service),
) -> SuggestionsResponse:
    """Completions for a partial query."""
    return SuggestionsResponse(query=q, suggestions=await service.get_suggestions(q, limit))


@router.get("/popular")
async def popular(
    limit: int = Query(default=10, ge=1, le=50),
    service: SearchService = Depends(get_search_service),
) -> PopularTermsResponse:
    """Popular terms drawn from indexed tags and titles."""
    return PopularTermsResponse(popular_terms=await service.get_popular_terms(limit))


@router.get("/stats")
async def stats(service: SearchService = Depends(get_search_service)) -> StatsResponse:
    """Index statistics; does not trigger a build."""
    return StatsResponse(stats=service.get_stats())


@router.post("/stats")
async def refresh_index(service: SearchService = Depends(get_search_service)) -> StatsResponse:
    """Force a full index rebuild."""
    try:
        new_stats = await service.refresh()
    except SourceUnavailable as e:
        logger.error("search_refresh_failed", extra={"error": str(e)})
        raise unavailable()
    return StatsResponse(message="Search index refreshed successfully", stats=new_stats)


@router.get("/filters")
async def filter_options(
    service: SearchService = Depends(get_search_service),
) -> FilterOptionsResponse:
    """Divisions, authors and tags available for filtering."""
    try:
        options = await service.get_filter_options()
    except SourceUnavailable as e:
        logger.error("search_filters_failed", extra={"error": str(e)})
        raise unavailable()
    return FilterOptionsResponse(filters=options)
