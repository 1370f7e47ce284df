"""
Search over the whole catalog (facit), whether or not anything is in stock

Exact and fuzzy matches are merged per entry, keeping the higher score.
Synonym entries are never returned; when a synonym of an accepted entry
scored better than its own names it is reported as matched_synonym.

Unlike the did-you-mean list there is no truncation by score gaps: every
entry at or above the minimum score comes back, best first, up to the limit.
"""

import dataclasses
import time

import structlog

from vaxtlistan.config import Settings, get_settings
from vaxtlistan.errors import CatalogLookupError
from vaxtlistan.schemas.catalog import CatalogSearchHit, CatalogSearchResult, MatchCandidate
from vaxtlistan.services.catalog_source import CatalogSource
from vaxtlistan.services.exact_matcher import ExactMatchPolicy, match_exact
from vaxtlistan.services.fuzzy_matcher import FuzzyPolicy, match_fuzzy
from vaxtlistan.utils.text import normalize_plant_name

logger = structlog.get_logger()

MIN_QUERY_LENGTH = 2
MAX_LIMIT = 100
MIN_SCORE_FLOOR = 0.1


def _merge(candidates: list[MatchCandidate]) -> list[MatchCandidate]:
    best: dict[int, MatchCandidate] = {}
    for candidate in candidates:
        current = best.get(candidate.entry.id)
        if current is None or candidate.score > current.score:
            best[candidate.entry.id] = candidate
    return sorted(
        best.values(),
        key=lambda candidate: (-candidate.score, len(candidate.name), candidate.name),
    )


async def search_catalog(
    query: str | None,
    source: CatalogSource,
    *,
    limit: int | None = None,
    min_score: float | None = None,
    settings: Settings | None = None,
) -> CatalogSearchResult:
    """
    Find catalog entries by (possibly misspelled) name

    Args:
        query: Free-text plant name
        source: Catalog to query
        limit: Maximum results, clamped to 1..100 (default from settings)
        min_score: Lowest score returned, never below 0.1 (default from settings)
        settings: Tunables (defaults to get_settings())

    Returns:
        CatalogSearchResult: Hits sorted by score, then shorter name; error is
            set when the catalog could not be queried
    """
    settings = settings or get_settings()
    started = time.perf_counter()

    def elapsed() -> float:
        return round((time.perf_counter() - started) * 1000, 2)

    limit = min(max(limit or settings.catalog_search_limit, 1), MAX_LIMIT)
    min_score = settings.catalog_search_min_score if min_score is None else min_score
    min_score = max(min_score, MIN_SCORE_FLOOR)

    normalized = normalize_plant_name(query or "")
    if len(normalized) < MIN_QUERY_LENGTH:
        return CatalogSearchResult(query=query or "", normalized=normalized, elapsed_ms=elapsed())

    # Whole-catalog search answers from two characters on
    fuzzy_policy = dataclasses.replace(
        FuzzyPolicy.from_settings(settings), min_length=MIN_QUERY_LENGTH
    )
    try:
        exact = await match_exact(
            normalized,
            source,
            exclude_synonyms=True,
            policy=ExactMatchPolicy.from_settings(settings),
        )
        fuzzy = await match_fuzzy(
            normalized,
            source,
            threshold=min_score,
            limit=limit,
            exclude_synonyms=True,
            policy=fuzzy_policy,
        )
    except CatalogLookupError as exc:
        logger.error("catalog_search_failed", query=query, error=str(exc))
        return CatalogSearchResult(
            query=query or "",
            normalized=normalized,
            error=str(exc),
            elapsed_ms=elapsed(),
            ok=False,
        )

    candidates = _merge(([exact] if exact is not None else []) + fuzzy)
    hits = [CatalogSearchHit.from_candidate(candidate) for candidate in candidates[:limit]]

    result = CatalogSearchResult(
        query=query or "",
        normalized=normalized,
        results=hits,
        total_count=len(hits),
        elapsed_ms=elapsed(),
    )
    logger.info(
        "catalog_search_done",
        query=normalized,
        total_count=result.total_count,
        top_score=hits[0].score if hits else None,
        elapsed_ms=result.elapsed_ms,
    )
    return result
