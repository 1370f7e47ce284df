"""
Pytest configuration and shared fixtures for testing
"""

import os

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test_key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from vaxtlistan.main import app
from vaxtlistan.schemas.catalog import CatalogEntry, PlantWithAvailability
from vaxtlistan.schemas.importing import ColumnMapping
from vaxtlistan.services.catalog_source import InMemoryCatalog
from vaxtlistan.utils.cache import CatalogCache


@pytest.fixture
def client():
    """
    FastAPI test client fixture

    Usage:
        def test_health(client):
            response = client.get("/health")
            assert response.status_code == 200
    """
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def test_settings():
    """
    Settings for orchestration tests: small batches, no pause between them

    Returns:
        Settings: Settings instance
    """
    from vaxtlistan.config import Settings

    return Settings(
        env="development",
        debug=True,
        supabase_url="https://test.supabase.co",
        supabase_service_key="test_key",
        sentry_dsn=None,
        import_batch_size=2,
        import_batch_pause_seconds=0.0,
    )


@pytest.fixture
def catalog_rows():
    """
    facit rows as the database returns them (sv_name, synonym_to_id, pipe lists)

    Returns:
        list[dict]: Raw catalog rows
    """
    return [
        {"id": 1, "name": "Acer palmatum", "sv_name": "Japansk lönn", "popularity_score": 80},
        {"id": 2, "name": "Acer palmatum 'Osakazuki'", "popularity_score": 60},
        {"id": 3, "name": "Acer platanoides", "sv_name": "Skogslönn", "popularity_score": 90},
        {"id": 4, "name": "Acer platanoides 'Crimson King'", "popularity_score": 40},
        {"id": 5, "name": "Pinus cembra 'Stricta'", "popularity_score": 10},
        {
            "id": 6,
            "name": "Hosta sieboldiana",
            "has_synonyms": "Hosta glauca | Funkia sieboldiana",
            "has_synonyms_id": "7",
            "popularity_score": 30,
        },
        {
            "id": 7,
            "name": "Hosta glauca",
            "synonym_to": "Hosta sieboldiana",
            "synonym_to_id": 6,
            "popularity_score": None,
        },
        {"id": 8, "name": "Rosa gallica 'Charles de Mills'", "popularity_score": 20},
        {"id": 9, "name": "Betula pendula", "sv_name": "Vårtbjörk", "popularity_score": 50},
    ]


@pytest.fixture
def catalog_entries(catalog_rows):
    return [CatalogEntry.model_validate(row) for row in catalog_rows]


@pytest.fixture
def memory_catalog(catalog_entries):
    """Full test catalog with trigram similarity"""
    return InMemoryCatalog(catalog_entries)


@pytest.fixture
def fallback_catalog(catalog_entries):
    """Test catalog whose similarity index is unavailable"""
    return InMemoryCatalog(catalog_entries, trigram_enabled=False)


@pytest.fixture
def available_plants():
    """
    In-stock join rows (catalog_available_plants output)

    Returns:
        list[PlantWithAvailability]: Plants with availability
    """
    rows = [
        {
            "id": 1,
            "name": "Acer palmatum",
            "sv_name": "Japansk lönn",
            "popularity_score": 80,
            "available_count": 12,
            "plantskolor_count": 3,
            "prices": [199, 129, 129],
        },
        {
            "id": 3,
            "name": "Acer platanoides",
            "sv_name": "Skogslönn",
            "popularity_score": 90,
            "available_count": 4,
            "plantskolor_count": 1,
            "prices": [349],
        },
        {
            "id": 9,
            "name": "Betula pendula",
            "sv_name": "Vårtbjörk",
            "popularity_score": 50,
            "available_count": 7,
            "plantskolor_count": 2,
            "prices": [],
        },
        {
            "id": 6,
            "name": "Hosta sieboldiana",
            "has_synonyms": "Hosta glauca",
            "popularity_score": 30,
            "available_count": 20,
            "plantskolor_count": 2,
            "prices": [89],
        },
    ]
    return [PlantWithAvailability.model_validate(row) for row in rows]


@pytest.fixture
def available_cache(available_plants):
    """CatalogCache holding the in-stock test catalog"""

    async def load(include_hidden):
        return InMemoryCatalog(available_plants)

    return CatalogCache(load, name="test_available")


@pytest.fixture
def name_mapping():
    return ColumnMapping(
        name="Namn",
        comment="Kommentar",
        pot="Kruka",
        height="Höjd",
        price="Pris",
        stock="Antal",
        extra=["Zon"],
    )
