"""Shared pytest fixtures."""

import asyncio
import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load environment variables before importing app modules
load_dotenv()

# Set test defaults if not provided
if not os.environ.get("CONTENT_PATH"):
    os.environ["CONTENT_PATH"] = "/tmp/test-content"

from fastapi.testclient import TestClient  # noqa: E402

from research_search.config import Settings  # noqa: E402
from research_search.content.models import Article  # noqa: E402
from research_search.main import app  # noqa: E402
from research_search.search.models import SearchableRecord  # noqa: E402
from research_search.search.service import SearchService, get_search_service  # noqa: E402


class FakeContentSource:
    """In-memory ContentSource with switchable failures and call counters."""

    def __init__(self, records: list[SearchableRecord] | None = None) -> None:
        self.records: list[SearchableRecord] = list(records or [])
        self.changed = False
        self.fail_fetch = False
        self.fail_check = False
        self.fail_resolve: set[str] = set()
        self.missing: set[str] = set()
        self.fetch_calls = 0
        self.check_calls = 0

    async def fetch_publishable_content(self) -> list[SearchableRecord]:
        self.fetch_calls += 1
        await asyncio.sleep(0)
        if self.fail_fetch:
            raise ConnectionError("database unreachable")
        self.changed = False
        return list(self.records)

    async def has_content_changed_since(self, timestamp: datetime) -> bool:
        self.check_calls += 1
        if self.fail_check:
            raise ConnectionError("database unreachable")
        return self.changed

    async def resolve_full_record(self, record_id: str) -> Article | None:
        if record_id in self.fail_resolve:
            raise ConnectionError("database unreachable")
        if record_id in self.missing:
            return None
        for record in self.records:
            if record.id == record_id:
                return Article(
                    id=record.id,
                    slug=record.slug or record.id,
                    title=record.title,
                    summary=record.summary,
                    content=record.body,
                    tags=list(record.tags),
                    authors=list(record.author_names),
                    division=record.category_name,
                    status="PUBLISHED",
                    published_at=record.published_at,
                )
        return None


@pytest.fixture
def now() -> datetime:
    """Current UTC time, captured once per test."""
    return datetime.now(UTC)


@pytest.fixture
def make_record(now: datetime) -> Callable[..., SearchableRecord]:
    """Factory for SearchableRecords published a given number of days ago."""

    def _make(
        record_id: str,
        title: str,
        days_ago: float | None = 10,
        body: str = "",
        summary: str = "",
        tags: tuple[str, ...] = (),
        authors: tuple[str, ...] = ("Amina Otieno",),
        category: str = "Economics",
    ) -> SearchableRecord:
        return SearchableRecord(
            id=record_id,
            title=title,
            body=body,
            summary=summary,
            tags=tags,
            author_names=authors,
            category_name=category,
            published_at=None if days_ago is None else now - timedelta(days=days_ago),
            slug=record_id,
        )

    return _make


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at an empty temporary content directory."""
    return Settings(content_path=tmp_path)


@pytest.fixture
def fake_source() -> FakeContentSource:
    """Empty in-memory content source."""
    return FakeContentSource()


@pytest.fixture
def service(fake_source: FakeContentSource, test_settings: Settings) -> SearchService:
    """SearchService over the fake source."""
    return SearchService(fake_source, test_settings)


@pytest.fixture
def client(service: SearchService):
    """FastAPI test client wired to the fake-source service."""
    app.dependency_overrides[get_search_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
