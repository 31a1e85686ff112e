"""Tests for the HTTP endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from research_search.search.models import MAX_QUERY_LENGTH, SearchRequest


@pytest.fixture
def published(fake_source, make_record):
    """Populate the fake source with a small published library."""
    fake_source.records = [
        make_record("kenya", "Climate Policy in Kenya", tags=("policy",), category="Environment"),
        make_record("finance", "Climate Finance Mechanisms", tags=("finance",)),
        make_record("storage", "Energy Storage Advances", category="Energy"),
    ]
    return fake_source


class TestSearchRequest:
    """Tests for the POST body model."""

    def test_defaults(self) -> None:
        """Test default paging values."""
        request = SearchRequest(query="climate")

        assert request.limit == 20
        assert request.offset == 0
        assert request.filters is None

    def test_limit_bounds(self) -> None:
        """Test limit must be between 1 and 100."""
        with pytest.raises(ValueError):
            SearchRequest(query="climate", limit=0)
        with pytest.raises(ValueError):
            SearchRequest(query="climate", limit=101)

    def test_query_required(self) -> None:
        """Test an empty query is rejected."""
        with pytest.raises(ValueError):
            SearchRequest(query="")

    def test_query_max_length(self) -> None:
        """Test an oversized query is rejected."""
        SearchRequest(query="a" * MAX_QUERY_LENGTH)
        with pytest.raises(ValueError):
            SearchRequest(query="a" * (MAX_QUERY_LENGTH + 1))


class TestSearchEndpoints:
    """Tests for GET and POST /v1/search."""

    def test_get_search(self, client: TestClient, published) -> None:
        """Test a query-string search returns ranked results."""
        r = client.get("/v1/search", params={"q": "climate", "limit": 10})

        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["query"] == "climate"
        assert body["total"] == 2
        assert body["has_more"] is False
        assert {item["record"]["id"] for item in body["results"]} == {"kenya", "finance"}
        assert all(item["highlighted_snippets"] for item in body["results"])

    def test_get_search_with_filters(self, client: TestClient, published) -> None:
        """Test JSON-encoded filters narrow the results."""
        filters = json.dumps({"divisions": ["environment"]})

        r = client.get("/v1/search", params={"q": "climate", "filters": filters})

        assert r.status_code == 200
        assert [item["record"]["id"] for item in r.json()["results"]] == ["kenya"]

    @pytest.mark.parametrize(
        "filters",
        [
            "not json",
            '{"divisions": "Economics"}',
            '{"date_range": {"start": "2025-02-01T00:00:00Z", "end": "2025-01-01T00:00:00Z"}}',
        ],
    )
    def test_invalid_filters(self, client: TestClient, published, filters: str) -> None:
        """Test malformed filters get a 400 with a stable message."""
        r = client.get("/v1/search", params={"q": "climate", "filters": filters})

        assert r.status_code == 400
        assert r.json() == {"error": "Invalid filters format", "code": "invalid_filters"}

    def test_query_required(self, client: TestClient) -> None:
        """Test a missing query is a validation error."""
        r = client.get("/v1/search")

        assert r.status_code == 422

    @pytest.mark.parametrize("path", ["/v1/search", "/v1/search/suggestions"])
    def test_query_too_long(self, client: TestClient, fake_source, path: str) -> None:
        """Test an oversized query is rejected before any index work."""
        r = client.get(path, params={"q": "climate " * 40})

        assert r.status_code == 422
        assert fake_source.fetch_calls == 0

    def test_post_query_too_long(self, client: TestClient, fake_source) -> None:
        """Test an oversized body query is a validation error."""
        r = client.post("/v1/search", json={"query": "x" * 300})

        assert r.status_code == 422
        assert fake_source.fetch_calls == 0

    def test_limit_out_of_range(self, client: TestClient) -> None:
        """Test an oversized limit is a validation error."""
        r = client.get("/v1/search", params={"q": "climate", "limit": 500})

        assert r.status_code == 422

    def test_post_search(self, client: TestClient, published) -> None:
        """Test a JSON-body search with paging."""
        r = client.post("/v1/search", json={"query": "climate", "limit": 1, "offset": 0})

        assert r.status_code == 200
        body = r.json()
        assert len(body["results"]) == 1
        assert body["total"] == 2
        assert body["has_more"] is True

    def test_post_search_with_filters(self, client: TestClient, published) -> None:
        """Test filters in the JSON body are applied."""
        r = client.post(
            "/v1/search",
            json={"query": "climate", "filters": {"tags": ["finance"]}},
        )

        assert [item["record"]["id"] for item in r.json()["results"]] == ["finance"]

    def test_post_search_invalid_body(self, client: TestClient) -> None:
        """Test an invalid body is a validation error."""
        r = client.post("/v1/search", json={"query": "", "limit": 10})

        assert r.status_code == 422

    def test_source_unavailable(self, client: TestClient, fake_source) -> None:
        """Test a cold index with a dead source returns a generic 503."""
        fake_source.fail_fetch = True

        r = client.get("/v1/search", params={"q": "climate"})

        assert r.status_code == 503
        detail = r.json()["detail"]
        assert detail["code"] == "search_unavailable"
        assert "database unreachable" not in detail["error"]


class TestAuxiliaryEndpoints:
    """Tests for suggestions, popular terms, stats and filters."""

    def test_suggestions(self, client: TestClient, published) -> None:
        """Test completions for a partial query."""
        r = client.get("/v1/search/suggestions", params={"q": "clim"})

        assert r.status_code == 200
        assert r.json() == {"success": True, "query": "clim", "suggestions": ["climate"]}

    def test_suggestions_short_query(self, client: TestClient, published) -> None:
        """Test a one-character query returns no suggestions."""
        r = client.get("/v1/search/suggestions", params={"q": "c"})

        assert r.json()["suggestions"] == []

    def test_suggestions_degrade(self, client: TestClient, fake_source) -> None:
        """Test suggestion failures still return 200."""
        fake_source.fail_fetch = True

        r = client.get("/v1/search/suggestions", params={"q": "climate"})

        assert r.status_code == 200
        assert r.json()["suggestions"] == []

    def test_popular(self, client: TestClient, published) -> None:
        """Test popular terms are returned."""
        r = client.get("/v1/search/popular", params={"limit": 1})

        assert r.status_code == 200
        assert r.json()["popular_terms"] == ["policy"]

    def test_stats_unbuilt(self, client: TestClient, fake_source) -> None:
        """Test stats before any build."""
        r = client.get("/v1/search/stats")

        assert r.status_code == 200
        stats = r.json()["stats"]
        assert stats["status"] == "unbuilt"
        assert stats["total_records"] == 0
        assert fake_source.fetch_calls == 0

    def test_refresh(self, client: TestClient, published) -> None:
        """Test a forced refresh rebuilds and reports new stats."""
        r = client.post("/v1/search/stats")

        assert r.status_code == 200
        body = r.json()
        assert body["message"] == "Search index refreshed successfully"
        assert body["stats"]["total_records"] == 3
        assert body["stats"]["status"] == "healthy"
        assert published.fetch_calls == 1

    def test_refresh_unavailable(self, client: TestClient, fake_source) -> None:
        """Test a failed refresh returns 503."""
        fake_source.fail_fetch = True

        r = client.post("/v1/search/stats")

        assert r.status_code == 503

    def test_filters(self, client: TestClient, published) -> None:
        """Test available filter values with counts."""
        r = client.get("/v1/search/filters")

        assert r.status_code == 200
        filters = r.json()["filters"]
        assert filters["divisions"] == [
            {"name": "Economics", "count": 1},
            {"name": "Energy", "count": 1},
            {"name": "Environment", "count": 1},
        ]
        assert filters["authors"] == [{"name": "Amina Otieno", "count": 3}]


class TestAppEndpoints:
    """Tests for the application-level endpoints."""

    def test_health(self, client: TestClient) -> None:
        """Test health check endpoint."""
        r = client.get("/health")

        assert r.status_code == 200
        assert r.json()["status"] == "healthy"
        assert r.json()["index_status"] == "unbuilt"

    def test_root(self, client: TestClient) -> None:
        """Test root endpoint."""
        r = client.get("/")

        assert r.status_code == 200
        assert r.json()["name"] == "Research Search"
