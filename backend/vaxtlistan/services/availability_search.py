"""
Live search over plants that are in stock at verified nurseries

The in-stock join is loaded once into a CatalogCache and searched in memory:
- empty query: every in-stock plant
- otherwise: exact then fuzzy resolution restricted to the in-stock set, plus
  word-wise substring matches on scientific and common name ("acer" lists
  every Acer in stock)

Relevance is the best score an entry got from any of those strategies.
"""

import time
from functools import lru_cache

import structlog

from vaxtlistan.config import Settings, get_settings
from vaxtlistan.errors import CatalogLookupError
from vaxtlistan.integrations.supabase import fetch_available_plants
from vaxtlistan.schemas.catalog import PlantWithAvailability, SearchResult, SortBy
from vaxtlistan.services.catalog_source import InMemoryCatalog, entry_from_row
from vaxtlistan.services.exact_matcher import ExactMatchPolicy, match_exact
from vaxtlistan.services.fuzzy_matcher import FuzzyPolicy, match_fuzzy
from vaxtlistan.utils.cache import CatalogCache
from vaxtlistan.utils.text import catalog_key, local_similarity, normalize_plant_name

logger = structlog.get_logger()


async def load_available_catalog(include_hidden=False) -> InMemoryCatalog:
    """
    Load the in-stock join into a searchable catalog

    Args:
        include_hidden: Include inventory rows the nursery marked hidden

    Returns:
        InMemoryCatalog: Entries are PlantWithAvailability
    """
    rows = await fetch_available_plants(include_hidden=bool(include_hidden))
    plants = [
        plant
        for plant in (entry_from_row(row, PlantWithAvailability) for row in rows)
        if plant is not None
    ]
    logger.info("available_catalog_loaded", plants=len(plants), include_hidden=bool(include_hidden))
    return InMemoryCatalog(plants)


@lru_cache
def get_available_catalog_cache() -> CatalogCache:
    """
    Process-wide cache of the in-stock catalog

    Returns:
        CatalogCache: Keyed by include_hidden
    """
    settings = get_settings()
    return CatalogCache(
        load_available_catalog,
        ttl=settings.available_catalog_ttl_seconds,
        name="available_plants",
    )


def _words_contained(words: list[str], plant: PlantWithAvailability) -> bool:
    names = [catalog_key(plant.name), catalog_key(plant.common_name)]
    return all(any(word in name for name in names if name) for word in words)


async def _score_matches(
    normalized: str, catalog: InMemoryCatalog, settings: Settings, limit: int
) -> dict[int, float]:
    scores: dict[int, float] = {}

    def keep(entry_id: int, score: float) -> None:
        scores[entry_id] = max(score, scores.get(entry_id, 0.0))

    exact = await match_exact(
        normalized,
        catalog,
        exclude_synonyms=True,
        policy=ExactMatchPolicy.from_settings(settings),
    )
    if exact is not None:
        keep(exact.entry.id, exact.score)
    else:
        fuzzy = await match_fuzzy(
            normalized,
            catalog,
            limit=max(limit, settings.fuzzy_candidate_limit),
            exclude_synonyms=True,
            policy=FuzzyPolicy.from_settings(settings),
        )
        for candidate in fuzzy:
            keep(candidate.entry.id, candidate.score)

    words = catalog_key(normalized).split()
    for plant in catalog.entries:
        if _words_contained(words, plant):
            score = max(
                local_similarity(normalized, plant.name),
                local_similarity(normalized, plant.common_name or ""),
            )
            keep(plant.id, score)

    return scores


def sort_plants(
    plants: list[PlantWithAvailability], sort_by: SortBy
) -> list[PlantWithAvailability]:
    """
    Order search results; ties broken by name

    Args:
        plants: Results to sort
        sort_by: relevance, popularity, name_asc or name_desc

    Returns:
        list[PlantWithAvailability]: New sorted list
    """
    if sort_by == SortBy.RELEVANCE:
        return sorted(
            plants,
            key=lambda p: (-(p.relevance or 0.0), -p.popularity_score, catalog_key(p.name)),
        )
    if sort_by == SortBy.NAME_ASC:
        return sorted(plants, key=lambda p: (catalog_key(p.name), p.id))
    if sort_by == SortBy.NAME_DESC:
        return sorted(plants, key=lambda p: (catalog_key(p.name), p.id), reverse=True)
    return sorted(plants, key=lambda p: (-p.popularity_score, catalog_key(p.name)))


async def search_available(
    query: str | None,
    *,
    cache: CatalogCache,
    limit: int = 60,
    offset: int = 0,
    sort_by: SortBy = SortBy.POPULARITY,
    include_hidden: bool = False,
    settings: Settings | None = None,
) -> SearchResult:
    """
    Search plants currently in stock

    Args:
        query: Free-text name (empty = list everything in stock)
        cache: Holder of the in-stock catalog
        limit: Page size
        offset: Page start
        sort_by: Result order (relevance falls back to popularity when the
            query is empty)
        include_hidden: Include inventory rows the nursery marked hidden
        settings: Tunables (defaults to get_settings())

    Returns:
        SearchResult: Page of results; error is set when a lookup failed
    """
    settings = settings or get_settings()
    started = time.perf_counter()

    def elapsed() -> float:
        return round((time.perf_counter() - started) * 1000, 2)

    try:
        catalog: InMemoryCatalog = await cache.get(include_hidden)
        normalized = normalize_plant_name(query or "")

        if not normalized:
            matched = list(catalog.entries)
            if sort_by == SortBy.RELEVANCE:
                sort_by = SortBy.POPULARITY
        else:
            scores = await _score_matches(normalized, catalog, settings, limit + offset)
            matched = []
            for entry_id, score in scores.items():
                plant = await catalog.get(entry_id)
                if plant is not None:
                    matched.append(plant.model_copy(update={"relevance": round(score, 4)}))
    except CatalogLookupError as exc:
        logger.error("available_search_failed", query=query, error=str(exc))
        return SearchResult(error=str(exc), elapsed_ms=elapsed(), ok=False)

    ordered = sort_plants(matched, sort_by)
    result = SearchResult(
        results=ordered[offset: offset + limit],
        total_count=len(ordered),
        elapsed_ms=elapsed(),
    )
    logger.info(
        "available_search_done",
        query=query,
        sort_by=sort_by.value,
        total_count=result.total_count,
        elapsed_ms=result.elapsed_ms,
    )
    return result
