"""
Plant search endpoints

Endpoints:
- GET /search - Plants in stock, filtered by a free-text name
- GET /plants/suggest - Resolve one name, with did-you-mean suggestions
- GET /plants/search - Search the whole catalog by name, with scores
- POST /catalog/invalidate - Drop the cached in-stock catalog
"""

from fastapi import APIRouter, Depends, Query, Request, status

from vaxtlistan.config import get_settings
from vaxtlistan.middleware.rate_limit import LIGHT_LIMIT, STANDARD_LIMIT, limiter
from vaxtlistan.schemas.catalog import (
    CatalogSearchResult,
    SearchResult,
    SortBy,
    SuggestionResponse,
)
from vaxtlistan.services.availability_search import (
    get_available_catalog_cache,
    search_available,
)
from vaxtlistan.services.catalog_search import search_catalog
from vaxtlistan.services.catalog_source import CatalogSource, SupabaseCatalog
from vaxtlistan.services.resolver import resolve_name
from vaxtlistan.utils.cache import CatalogCache

router = APIRouter()


def get_catalog_source() -> CatalogSource:
    """Full catalog behind the hosted RPC functions"""
    return SupabaseCatalog()


@router.get("/search", response_model=SearchResult)
@limiter.limit(LIGHT_LIMIT)
async def search_plants(
    request: Request,
    q: str = Query("", max_length=200, description="Plant name, may be misspelled"),
    limit: int | None = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    sort_by: SortBy = SortBy.POPULARITY,
    include_hidden: bool = False,
    cache: CatalogCache = Depends(get_available_catalog_cache),
):
    """
    Search plants currently in stock at verified nurseries

    An empty query lists everything in stock. Lookup failures come back as
    an empty page with `error` set rather than an HTTP error, so the client
    can show them inline.

    Returns:
        SearchResult: Page of plants with availability
    """
    settings = get_settings()
    return await search_available(
        q,
        cache=cache,
        limit=limit or settings.search_default_limit,
        offset=offset,
        sort_by=sort_by,
        include_hidden=include_hidden,
        settings=settings,
    )


@router.get("/plants/suggest", response_model=SuggestionResponse)
@limiter.limit(STANDARD_LIMIT)
async def suggest_plants(
    request: Request,
    name: str = Query(..., max_length=300),
    include_synonyms: bool = False,
    source: CatalogSource = Depends(get_catalog_source),
):
    """
    Resolve a name against the full catalog

    Args:
        name: Free-text plant name
        include_synonyms: Allow synonym entries as targets (redirected to
            their accepted entry)

    Returns:
        SuggestionResponse: status found with one suggestion, notFound with
            up to four, or empty when nothing usable was typed
    """
    resolution = await resolve_name(
        name,
        source,
        exclude_synonyms=not include_synonyms,
        follow_redirects=include_synonyms,
    )
    return SuggestionResponse(
        query=name,
        normalized=resolution.normalized,
        status=resolution.status.value,
        suggestions=resolution.suggestions,
    )


@router.get("/plants/search", response_model=CatalogSearchResult)
@limiter.limit(STANDARD_LIMIT)
async def search_all_plants(
    request: Request,
    q: str = Query("", max_length=200, description="Plant name, may be misspelled"),
    limit: int | None = Query(None, ge=1, le=100),
    min_score: float | None = Query(None, ge=0.0, le=1.0),
    source: CatalogSource = Depends(get_catalog_source),
):
    """
    Search every catalog entry, in stock or not

    Queries shorter than two characters return no results. Lookup failures
    come back with `error` set, like /search.

    Returns:
        CatalogSearchResult: Entries with score and matched synonym, best first
    """
    return await search_catalog(q, source, limit=limit, min_score=min_score)


@router.post("/catalog/invalidate", status_code=status.HTTP_200_OK)
async def invalidate_catalog(cache: CatalogCache = Depends(get_available_catalog_cache)):
    """
    Drop the cached in-stock catalog; the next search reloads it

    Returns:
        dict: Confirmation
    """
    cache.invalidate()
    return {"invalidated": True, "ok": True}
