"""
Fuzzy similarity matching for names the exact tiers missed

Indexed path: the catalog's trigram similarity search, queried with a
threshold that depends only on input length (short strings share fewer
trigrams). Each index candidate is then rescored with the component-weighted
plant name scorer so that species typos rank above genus mismatches.

Fallback path: when the index cannot be used, substring search on the input
tokens (3+ characters) scored locally.

The caller's threshold filters the final scores; raising it can only remove
candidates.
"""

from dataclasses import dataclass

import structlog

from vaxtlistan.config import Settings, get_settings
from vaxtlistan.errors import CatalogLookupError
from vaxtlistan.schemas.catalog import CatalogEntry, MatchCandidate, MatchStrategy
from vaxtlistan.services.catalog_source import CatalogSource
from vaxtlistan.services.exact_matcher import follow_synonym_redirect
from vaxtlistan.services.name_scorer import plant_name_similarity
from vaxtlistan.utils.text import catalog_key, local_similarity

logger = structlog.get_logger()

MIN_TOKEN_LENGTH = 3
FALLBACK_SCAN_FACTOR = 10


@dataclass(frozen=True)
class FuzzyPolicy:
    """Thresholds and limits of the fuzzy tier"""

    min_length: int = 4
    short_input_length: int = 8
    threshold_short: float = 0.2
    threshold_long: float = 0.3
    candidate_limit: int = 20
    redirect_synonyms: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "FuzzyPolicy":
        return cls(
            min_length=settings.fuzzy_min_length,
            short_input_length=settings.fuzzy_short_input_length,
            threshold_short=settings.fuzzy_threshold_short,
            threshold_long=settings.fuzzy_threshold_long,
            candidate_limit=settings.fuzzy_candidate_limit,
            redirect_synonyms=settings.redirect_fuzzy_synonyms,
        )


def adaptive_threshold(name: str, policy: FuzzyPolicy | None = None) -> float:
    """Lower threshold for short inputs"""
    policy = policy or FuzzyPolicy.from_settings(get_settings())
    if len(name.strip()) < policy.short_input_length:
        return policy.threshold_short
    return policy.threshold_long


def _best_name_score(query: str, entry: CatalogEntry, scorer) -> tuple[float, str | None]:
    best_score = scorer(query, entry.name)
    best_synonym = None
    for synonym in entry.has_synonyms:
        score = scorer(query, synonym)
        if score > best_score:
            best_score, best_synonym = score, synonym
    if entry.common_name:
        best_score = max(best_score, scorer(query, entry.common_name))
    return best_score, best_synonym


async def _indexed_candidates(
    name: str,
    source: CatalogSource,
    *,
    threshold: float,
    limit: int,
    exclude_synonyms: bool,
) -> list[MatchCandidate]:
    hits = await source.similar(
        name, threshold=threshold, limit=limit, exclude_synonyms=exclude_synonyms
    )
    candidates = []
    for hit in hits:
        score, synonym = _best_name_score(name, hit.entry, plant_name_similarity)
        candidates.append(
            MatchCandidate(
                entry=hit.entry,
                score=max(score, hit.score),
                strategy=MatchStrategy.FUZZY,
                matched_synonym=synonym or hit.matched_synonym,
            )
        )
    return candidates


async def _fallback_candidates(
    name: str,
    source: CatalogSource,
    *,
    limit: int,
    exclude_synonyms: bool,
) -> list[MatchCandidate]:
    tokens = [token for token in catalog_key(name).split() if len(token) >= MIN_TOKEN_LENGTH]
    if not tokens:
        return []

    entries = await source.containing(
        tokens, limit=limit * FALLBACK_SCAN_FACTOR, exclude_synonyms=exclude_synonyms
    )
    candidates = []
    for entry in entries:
        score, synonym = _best_name_score(name, entry, local_similarity)
        candidates.append(
            MatchCandidate(
                entry=entry,
                score=score,
                strategy=MatchStrategy.FALLBACK,
                matched_synonym=synonym,
            )
        )
    return candidates


async def _redirect_synonyms(
    candidates: list[MatchCandidate], source: CatalogSource
) -> list[MatchCandidate]:
    best: dict[int, MatchCandidate] = {}
    for candidate in candidates:
        if candidate.entry.is_synonym:
            accepted = await follow_synonym_redirect(candidate.entry, source)
            candidate = MatchCandidate(
                entry=accepted,
                score=candidate.score,
                strategy=candidate.strategy,
                matched_synonym=candidate.matched_synonym or candidate.entry.name,
            )
        current = best.get(candidate.entry.id)
        if current is None or candidate.score > current.score:
            best[candidate.entry.id] = candidate
    return list(best.values())


def _sort_key(candidate: MatchCandidate) -> tuple:
    return (-candidate.score, len(candidate.name), candidate.name)


async def match_fuzzy(
    normalized_name: str,
    source: CatalogSource,
    *,
    threshold: float | None = None,
    limit: int | None = None,
    exclude_synonyms: bool = True,
    policy: FuzzyPolicy | None = None,
) -> list[MatchCandidate]:
    """
    Similar catalog entries for a name without an exact match

    Args:
        normalized_name: Output of normalize_plant_name
        source: Catalog to query
        threshold: Minimum final score (None = adaptive by input length)
        limit: Maximum candidates returned
        exclude_synonyms: Synonym entries are not targets
        policy: Thresholds and limits (defaults from settings)

    Returns:
        list[MatchCandidate]: Sorted by score, then shorter name
    """
    policy = policy or FuzzyPolicy.from_settings(get_settings())
    name = (normalized_name or "").strip()
    if len(name) < policy.min_length:
        return []

    index_threshold = adaptive_threshold(name, policy)
    min_score = index_threshold if threshold is None else threshold
    limit = limit or policy.candidate_limit
    query_excludes = exclude_synonyms and not policy.redirect_synonyms

    try:
        candidates = await _indexed_candidates(
            name,
            source,
            threshold=index_threshold,
            limit=max(limit, policy.candidate_limit),
            exclude_synonyms=query_excludes,
        )
    except CatalogLookupError as exc:
        logger.warning(
            "fuzzy_index_unavailable",
            name=name,
            error=str(exc),
            fallback="substring",
        )
        candidates = await _fallback_candidates(
            name, source, limit=max(limit, policy.candidate_limit), exclude_synonyms=query_excludes
        )

    if exclude_synonyms and policy.redirect_synonyms:
        candidates = await _redirect_synonyms(candidates, source)

    candidates = [candidate for candidate in candidates if candidate.score >= min_score]
    candidates.sort(key=_sort_key)

    logger.debug(
        "fuzzy_match_done",
        name=name,
        threshold=min_score,
        candidates=len(candidates),
        top_score=candidates[0].score if candidates else None,
    )
    return candidates[:limit]
