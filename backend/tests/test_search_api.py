"""
API tests for search, suggestion and health endpoints.

Tests cover:
- Availability search over the cached in-stock catalog
- Did-you-mean resolution against the full catalog
- Whole-catalog search with scores
- Cache invalidation
- Readiness check
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from vaxtlistan.main import app
from vaxtlistan.routes.search import get_catalog_source
from vaxtlistan.services.availability_search import get_available_catalog_cache
from vaxtlistan.services.import_orchestrator import (
    ImportSession,
    ImportSessionStore,
    get_session_store,
)


@pytest.fixture
def search_client(client, memory_catalog, available_cache):
    app.dependency_overrides[get_catalog_source] = lambda: memory_catalog
    app.dependency_overrides[get_available_catalog_cache] = lambda: available_cache
    return client


class TestSearchEndpoint:
    """Tests for GET /search"""

    def test_lists_everything_in_stock(self, search_client):
        response = search_client.get("/search")

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["total_count"] == 4
        assert [plant["id"] for plant in data["results"]] == [3, 1, 9, 6]

    def test_genus_search(self, search_client):
        response = search_client.get("/search", params={"q": "acer", "sort_by": "name_asc"})

        data = response.json()
        assert [plant["name"] for plant in data["results"]] == [
            "Acer palmatum",
            "Acer platanoides",
        ]
        assert data["results"][0]["nursery_count"] == 3
        assert data["results"][0]["prices"] == [129.0, 199.0]

    def test_pagination(self, search_client):
        response = search_client.get("/search", params={"limit": 1, "offset": 3})

        data = response.json()
        assert [plant["id"] for plant in data["results"]] == [6]
        assert data["total_count"] == 4

    def test_invalid_sort(self, search_client):
        response = search_client.get("/search", params={"sort_by": "price"})

        assert response.status_code == 422


class TestSuggestEndpoint:
    """Tests for GET /plants/suggest"""

    def test_exact_name_found(self, search_client):
        response = search_client.get("/plants/suggest", params={"name": "acer palmatum"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "found"
        assert data["normalized"] == "Acer Palmatum"
        assert [s["id"] for s in data["suggestions"]] == [1]

    def test_typo_gets_suggestion(self, search_client):
        response = search_client.get("/plants/suggest", params={"name": "Acer palmatun"})

        data = response.json()
        assert data["status"] == "notFound"
        assert data["suggestions"][0]["id"] == 1
        assert data["suggestions"][0]["common_name"] == "Japansk lönn"

    def test_blank_name(self, search_client):
        response = search_client.get("/plants/suggest", params={"name": "   "})

        data = response.json()
        assert data["status"] == "empty"
        assert data["suggestions"] == []

    def test_name_required(self, search_client):
        assert search_client.get("/plants/suggest").status_code == 422


class TestCatalogSearchEndpoint:
    """Tests for GET /plants/search"""

    def test_scored_results(self, search_client):
        response = search_client.get("/plants/search", params={"q": "Acer palmatun"})

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["normalized"] == "Acer Palmatun"
        top = data["results"][0]
        assert top["id"] == 1
        assert top["score"] >= 0.85
        assert top["common_name"] == "Japansk lönn"

    def test_synonym_reported(self, search_client):
        response = search_client.get("/plants/search", params={"q": "hosta glauca"})

        results = response.json()["results"]
        assert results[0]["id"] == 6
        assert results[0]["matched_synonym"] == "Hosta glauca"
        assert 7 not in [hit["id"] for hit in results]

    def test_short_query_is_empty(self, search_client):
        response = search_client.get("/plants/search", params={"q": "a"})

        assert response.status_code == 200
        assert response.json()["results"] == []

    @pytest.mark.parametrize("limit", [0, 101])
    def test_limit_bounds(self, search_client, limit):
        response = search_client.get("/plants/search", params={"q": "acer", "limit": limit})

        assert response.status_code == 422


class TestInvalidateEndpoint:
    """Tests for POST /catalog/invalidate"""

    def test_next_search_reloads(self, search_client, available_cache):
        search_client.get("/search", params={"q": "acer"})
        assert available_cache.is_loaded(False)

        response = search_client.post("/catalog/invalidate")

        assert response.status_code == 200
        assert response.json()["invalidated"] is True
        assert not available_cache.is_loaded(False)

        search_client.get("/search", params={"q": "acer"})
        assert available_cache.load_count == 2


class TestHealthEndpoints:
    """Tests for /health"""

    def test_health(self, client):
        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @patch("vaxtlistan.routes.health.check_catalog_connection", new_callable=AsyncMock)
    def test_ready(self, mock_check, client):
        mock_check.return_value = True

        response = client.get("/health/ready")

        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["catalog"] is True

    @patch("vaxtlistan.routes.health.check_catalog_connection", new_callable=AsyncMock)
    def test_not_ready_when_catalog_unreachable(self, mock_check, client):
        from vaxtlistan.errors import CatalogLookupError

        mock_check.side_effect = CatalogLookupError("unreachable", operation="check")

        response = client.get("/health/ready")

        data = response.json()
        assert data["status"] == "not_ready"
        assert data["ok"] is False

    @patch("vaxtlistan.routes.health.check_catalog_connection", new_callable=AsyncMock)
    def test_ready_reports_import_sessions(
        self, mock_check, client, memory_catalog, name_mapping
    ):
        mock_check.return_value = True
        store = ImportSessionStore(max_sessions=5)
        session = ImportSession([{"Namn": "Acer palmatum"}], name_mapping, memory_catalog)
        asyncio.run(store.add(session))
        asyncio.run(store.get(session.session_id))
        app.dependency_overrides[get_session_store] = lambda: store

        response = client.get("/health/ready")

        sessions = response.json()["import_sessions"]
        assert sessions["size"] == 1
        assert sessions["max_size"] == 5
        assert sessions["hits"] == 1
