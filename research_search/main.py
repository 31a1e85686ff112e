"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from research_search.config import get_settings
from research_search.dependencies import logger
from research_search.search.router import router as search_router
from research_search.search.service import SearchService, get_search_service

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Warm the search index at startup; failures only log."""
    await get_search_service().warm_up()
    yield


app = FastAPI(title="Research Search", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search_router)


@app.get("/health")
async def health(service: SearchService = Depends(get_search_service)) -> dict[str, str]:
    """Health check endpoint."""
    stats = service.get_stats()
    return {
        "status": "healthy",
        "version": "0.1.0",
        "index_status": stats.status,
        "content_path": str(settings.content_path),
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API info."""
    return {"name": "Research Search", "version": "0.1.0", "docs": "/docs"}


logger.info("app_startup", extra={"host": settings.host, "port": settings.port})
