"""
Supabase client for database operations

Tables:
- facit: Canonical plant catalog (scientific names, synonyms, popularity)
- totallager: Nursery inventory listings linked to facit
- plantskolor: Nurseries (verified / hidden flags)

RPC functions (supabase/migrations/):
- catalog_match_exact: key equality on name and has_synonyms
- catalog_match_prefix: name starts with key
- catalog_match_similarity: pg_trgm similarity on name and has_synonyms
- catalog_match_containing: substring match on name and has_synonyms, most
  tokens matched first
- catalog_available_plants: facit joined with in-stock totallager rows

The client is synchronous; every call is pushed to a worker thread so the
event loop keeps serving other rows and requests while a query runs.
Reads are retried on transport errors; writes are sent once.
"""

import asyncio
from functools import lru_cache
from typing import Any

import httpx
import structlog
from postgrest.exceptions import APIError
from supabase import create_client, Client

from vaxtlistan.config import get_settings
from vaxtlistan.errors import CatalogLookupError, SimilarityUnavailableError
from vaxtlistan.utils.resilience import with_retry
from vaxtlistan.utils.text import catalog_key

logger = structlog.get_logger()

FACIT_COLUMNS = (
    "id,name,sv_name,synonym_to,synonym_to_id,has_synonyms,has_synonyms_id,"
    "plant_type,popularity_score"
)


@lru_cache
def get_supabase_client() -> Client:
    """
    Get singleton Supabase client instance

    Returns:
        Client: Configured Supabase client with service key
    """
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)


@with_retry()
async def _execute_with_retry(query) -> Any:
    return await asyncio.to_thread(query.execute)


async def _execute(query, operation: str, *, retry: bool = True) -> list[dict]:
    """
    Run a query builder off the event loop.

    Transport failures are retried unless retry is False; database errors and
    exhausted retries surface as CatalogLookupError.

    Args:
        query: Supabase/PostgREST request builder
        operation: Name used in logs and on the raised error
        retry: Retry transport failures (only safe for reads)

    Returns:
        list[dict]: Response rows (empty list when none)
    """
    try:
        if retry:
            response = await _execute_with_retry(query)
        else:
            response = await asyncio.to_thread(query.execute)
    except APIError as exc:
        logger.error(
            "catalog_query_failed",
            operation=operation,
            code=exc.code,
            error=exc.message,
        )
        raise CatalogLookupError(exc.message or str(exc), operation=operation) from exc
    except httpx.TransportError as exc:
        logger.error("catalog_store_unreachable", operation=operation, error=str(exc))
        raise CatalogLookupError(
            f"Catalog store unreachable: {exc}", operation=operation
        ) from exc

    return response.data if response.data else []


# ============================================
# CATALOG (facit)
# ============================================

async def match_catalog_exact(key: str, include_synonyms: bool = False) -> list[dict]:
    """
    Entries whose name or one of whose synonyms has the given catalog key

    Args:
        key: catalog_key() of the searched name
        include_synonyms: Also return entries that are themselves synonyms

    Returns:
        list[dict]: facit rows plus matched_synonym
    """
    supabase = get_supabase_client()
    query = supabase.rpc(
        "catalog_match_exact",
        {"search_key": key, "include_synonyms": include_synonyms},
    )
    return await _execute(query, "catalog_match_exact")


async def match_catalog_prefix(
    key: str, include_synonyms: bool = False, limit: int = 10
) -> list[dict]:
    """
    Entries whose name key starts with the given key, shortest first

    Args:
        key: catalog_key() of the searched name
        include_synonyms: Also return entries that are themselves synonyms
        limit: Maximum rows

    Returns:
        list[dict]: facit rows
    """
    supabase = get_supabase_client()
    query = supabase.rpc(
        "catalog_match_prefix",
        {"search_key": key, "include_synonyms": include_synonyms, "max_results": limit},
    )
    return await _execute(query, "catalog_match_prefix")


async def match_catalog_similarity(
    term: str,
    threshold: float,
    limit: int = 20,
    include_synonyms: bool = False,
) -> list[dict]:
    """
    Trigram-indexed similarity search on name and has_synonyms

    Args:
        term: Normalized search name
        threshold: Minimum pg_trgm similarity
        limit: Maximum rows
        include_synonyms: Also return entries that are themselves synonyms

    Returns:
        list[dict]: facit rows plus score and matched_synonym

    Raises:
        SimilarityUnavailableError: RPC or pg_trgm missing, or any error from it
    """
    supabase = get_supabase_client()
    query = supabase.rpc(
        "catalog_match_similarity",
        {
            "search_term": term,
            "min_score": threshold,
            "max_results": limit,
            "include_synonyms": include_synonyms,
        },
    )
    try:
        return await _execute(query, "catalog_match_similarity")
    except CatalogLookupError as exc:
        raise SimilarityUnavailableError(str(exc), operation=exc.operation) from exc


async def search_catalog_containing(
    tokens: list[str], include_synonyms: bool = False, limit: int = 200
) -> list[dict]:
    """
    Substring search on name and has_synonyms for any of the tokens

    Used when the similarity index cannot be queried. Rows matching more
    tokens come first, then shorter names, so the limit keeps the best rows.

    Args:
        tokens: Search tokens (3+ characters)
        include_synonyms: Also return entries that are themselves synonyms
        limit: Maximum rows

    Returns:
        list[dict]: facit rows plus token_hits
    """
    keys = [key for key in dict.fromkeys(catalog_key(token) for token in tokens) if key]
    if not keys:
        return []

    supabase = get_supabase_client()
    query = supabase.rpc(
        "catalog_match_containing",
        {"search_tokens": keys, "include_synonyms": include_synonyms, "max_results": limit},
    )
    return await _execute(query, "catalog_match_containing")


async def get_catalog_entry(entry_id: int) -> dict | None:
    """
    Get catalog entry by ID

    Args:
        entry_id: facit id

    Returns:
        dict | None: facit row or None if not found
    """
    supabase = get_supabase_client()
    query = supabase.table("facit").select(FACIT_COLUMNS).eq("id", entry_id)
    rows = await _execute(query, "get_catalog_entry")
    return rows[0] if rows else None


async def check_catalog_connection() -> bool:
    """Cheap round-trip used by /health/ready"""
    supabase = get_supabase_client()
    await _execute(supabase.table("facit").select("id").limit(1), "check_catalog_connection")
    return True


# ============================================
# INVENTORY (totallager)
# ============================================

async def fetch_available_plants(include_hidden: bool = False) -> list[dict]:
    """
    Catalog entries with stock at verified, visible nurseries

    Args:
        include_hidden: Include inventory rows the nursery marked hidden

    Returns:
        list[dict]: facit rows plus available_count, plantskolor_count, prices
    """
    supabase = get_supabase_client()
    query = supabase.rpc("catalog_available_plants", {"include_hidden": include_hidden})
    return await _execute(query, "catalog_available_plants")


async def insert_inventory_rows(rows: list[dict]) -> int:
    """
    Insert committed import rows into totallager

    Sent once: a timed-out insert may still have been applied, so it is
    reported as a failure rather than repeated.

    Args:
        rows: InventoryRow payloads (one per committed row)

    Returns:
        int: Number of rows written
    """
    if not rows:
        return 0

    supabase = get_supabase_client()
    query = supabase.table("totallager").insert(rows)
    inserted = await _execute(query, "insert_inventory_rows", retry=False)
    logger.info("inventory_rows_inserted", requested=len(rows), inserted=len(inserted))
    return len(inserted)
