"""
Tests for Supabase integration layer
"""

import httpx
import pytest
from unittest.mock import MagicMock, patch
from postgrest.exceptions import APIError
from tenacity import wait_none

from vaxtlistan.errors import CatalogLookupError, SimilarityUnavailableError


def make_response(data):
    response = MagicMock()
    response.data = data
    return response


@pytest.fixture
def no_backoff():
    """Retry without sleeping between attempts"""
    from vaxtlistan.integrations.supabase import _execute_with_retry

    with patch.object(_execute_with_retry.retry, "wait", wait_none()):
        yield


class TestGetSupabaseClient:
    """Tests for get_supabase_client function"""

    def test_returns_client(self):
        """Should return a configured Supabase client"""
        with patch("vaxtlistan.integrations.supabase.create_client") as mock_create:
            with patch("vaxtlistan.integrations.supabase.get_settings") as mock_settings:
                mock_settings.return_value.supabase_url = "https://test.supabase.co"
                mock_settings.return_value.supabase_service_key = "test_key"
                mock_create.return_value = MagicMock()

                from vaxtlistan.integrations.supabase import get_supabase_client
                get_supabase_client.cache_clear()

                client = get_supabase_client()
                again = get_supabase_client()

                mock_create.assert_called_once_with(
                    "https://test.supabase.co", "test_key"
                )
                assert client is again
                get_supabase_client.cache_clear()


class TestCatalogMatching:
    """Tests for the catalog RPC wrappers"""

    @pytest.mark.asyncio
    async def test_match_catalog_exact(self):
        """Should call catalog_match_exact with the key"""
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.rpc.return_value.execute.return_value = make_response(
                [{"id": 6, "name": "Hosta sieboldiana", "matched_synonym": "Hosta glauca"}]
            )

            from vaxtlistan.integrations.supabase import match_catalog_exact

            rows = await match_catalog_exact("hosta glauca")

            assert rows[0]["id"] == 6
            mock_client.return_value.rpc.assert_called_once_with(
                "catalog_match_exact",
                {"search_key": "hosta glauca", "include_synonyms": False},
            )

    @pytest.mark.asyncio
    async def test_match_catalog_prefix(self):
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.rpc.return_value.execute.return_value = make_response([])

            from vaxtlistan.integrations.supabase import match_catalog_prefix

            rows = await match_catalog_prefix("pinus cembra", include_synonyms=True, limit=5)

            assert rows == []
            mock_client.return_value.rpc.assert_called_once_with(
                "catalog_match_prefix",
                {"search_key": "pinus cembra", "include_synonyms": True, "max_results": 5},
            )

    @pytest.mark.asyncio
    async def test_match_catalog_similarity(self):
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.rpc.return_value.execute.return_value = make_response(
                [{"id": 1, "name": "Acer palmatum", "score": 0.75}]
            )

            from vaxtlistan.integrations.supabase import match_catalog_similarity

            rows = await match_catalog_similarity("Acer Palmatun", threshold=0.3)

            assert rows[0]["score"] == 0.75
            mock_client.return_value.rpc.assert_called_once_with(
                "catalog_match_similarity",
                {
                    "search_term": "Acer Palmatun",
                    "min_score": 0.3,
                    "max_results": 20,
                    "include_synonyms": False,
                },
            )

    @pytest.mark.asyncio
    async def test_similarity_error_is_unavailable(self):
        """A missing pg_trgm function should send callers to the fallback"""
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.rpc.return_value.execute.side_effect = APIError(
                {"message": "function similarity(text, text) does not exist", "code": "42883"}
            )

            from vaxtlistan.integrations.supabase import match_catalog_similarity

            with pytest.raises(SimilarityUnavailableError) as exc_info:
                await match_catalog_similarity("Acer Palmatun", threshold=0.3)

            assert exc_info.value.operation == "catalog_match_similarity"

    @pytest.mark.asyncio
    async def test_search_catalog_containing(self):
        """Should send catalog keys to the ordered substring RPC"""
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.rpc.return_value.execute.return_value = make_response(
                [{"id": 1, "name": "Acer palmatum", "token_hits": 2}]
            )

            from vaxtlistan.integrations.supabase import search_catalog_containing

            rows = await search_catalog_containing(["Acer", "acer", "Palmatüm"], limit=50)

            assert rows[0]["id"] == 1
            mock_client.return_value.rpc.assert_called_once_with(
                "catalog_match_containing",
                {
                    "search_tokens": ["acer", "palmatum"],
                    "include_synonyms": False,
                    "max_results": 50,
                },
            )
            mock_client.return_value.table.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_catalog_containing_without_usable_tokens(self):
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            from vaxtlistan.integrations.supabase import search_catalog_containing

            assert await search_catalog_containing(["", "  "]) == []
            mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_catalog_entry_not_found(self):
        """Should return None for non-existent entry"""
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.table.return_value.select.return_value.eq.return_value.execute.return_value = make_response([])

            from vaxtlistan.integrations.supabase import get_catalog_entry

            assert await get_catalog_entry(404) is None


class TestRetries:
    """Tests for transport retries"""

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self, no_backoff):
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.rpc.return_value.execute.side_effect = [
                httpx.ConnectError("connection refused"),
                make_response([{"id": 1, "name": "Acer palmatum"}]),
            ]

            from vaxtlistan.integrations.supabase import fetch_available_plants

            rows = await fetch_available_plants()

            assert rows[0]["id"] == 1
            assert mock_client.return_value.rpc.return_value.execute.call_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_lookup_error(self, no_backoff):
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.rpc.return_value.execute.side_effect = httpx.ConnectError(
                "connection refused"
            )

            from vaxtlistan.integrations.supabase import fetch_available_plants

            with pytest.raises(CatalogLookupError):
                await fetch_available_plants(include_hidden=True)

            assert mock_client.return_value.rpc.return_value.execute.call_count == 3

    @pytest.mark.asyncio
    async def test_database_error_is_not_retried(self, no_backoff):
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.rpc.return_value.execute.side_effect = APIError(
                {"message": "permission denied", "code": "42501"}
            )

            from vaxtlistan.integrations.supabase import match_catalog_exact

            with pytest.raises(CatalogLookupError):
                await match_catalog_exact("acer palmatum")

            assert mock_client.return_value.rpc.return_value.execute.call_count == 1


class TestInventoryOperations:
    """Tests for totallager writes"""

    @pytest.mark.asyncio
    async def test_insert_inventory_rows(self):
        """Should insert rows and report how many were written"""
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            mock_client.return_value.table.return_value.insert.return_value.execute.return_value = make_response(
                [{"id": 100}, {"id": 101}]
            )

            from vaxtlistan.integrations.supabase import insert_inventory_rows

            rows = [{"facit_id": 1, "plantskola_id": 7}, {"facit_id": 6, "plantskola_id": 7}]
            written = await insert_inventory_rows(rows)

            assert written == 2
            mock_client.return_value.table.assert_called_with("totallager")
            mock_client.return_value.table.return_value.insert.assert_called_once_with(rows)

    @pytest.mark.asyncio
    async def test_insert_nothing(self):
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            from vaxtlistan.integrations.supabase import insert_inventory_rows

            assert await insert_inventory_rows([]) == 0
            mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_insert_sent_once_on_timeout(self, no_backoff):
        """A timed-out insert may have landed, so it must not be sent again"""
        with patch("vaxtlistan.integrations.supabase.get_supabase_client") as mock_client:
            execute = mock_client.return_value.table.return_value.insert.return_value.execute
            execute.side_effect = [
                httpx.ReadTimeout("read timed out"),
                make_response([{"id": 100}]),
            ]

            from vaxtlistan.integrations.supabase import insert_inventory_rows

            with pytest.raises(CatalogLookupError) as exc_info:
                await insert_inventory_rows([{"facit_id": 1, "plantskola_id": 7}])

            assert exc_info.value.operation == "insert_inventory_rows"
            assert execute.call_count == 1


class TestSupabaseCatalog:
    """Tests for the catalog source backed by the RPC wrappers"""

    @pytest.mark.asyncio
    async def test_find_exact_skips_degenerate_rows(self):
        with patch(
            "vaxtlistan.integrations.supabase.match_catalog_exact"
        ) as mock_match:
            mock_match.return_value = [
                {"id": 6, "name": "Hosta sieboldiana", "matched_synonym": "Hosta glauca"},
                {"id": 12, "name": ""},
                {"name": "Nameless id"},
            ]

            from vaxtlistan.services.catalog_source import SupabaseCatalog

            hits = await SupabaseCatalog().find_exact("hosta glauca", exclude_synonyms=False)

            assert [hit.entry.id for hit in hits] == [6]
            assert hits[0].matched_synonym == "Hosta glauca"
            assert hits[0].score == 1.0
            mock_match.assert_called_once_with("hosta glauca", include_synonyms=True)

    @pytest.mark.asyncio
    async def test_similar_passes_scores_through(self):
        with patch(
            "vaxtlistan.integrations.supabase.match_catalog_similarity"
        ) as mock_similar:
            mock_similar.return_value = [{"id": 1, "name": "Acer palmatum", "score": 0.75}]

            from vaxtlistan.services.catalog_source import SupabaseCatalog

            hits = await SupabaseCatalog().similar("Acer Palmatun", threshold=0.3)

            assert hits[0].score == 0.75
