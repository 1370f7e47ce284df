"""
Name resolution pipeline: normalize -> exact -> fuzzy -> rank

Shared by the bulk import orchestrator (synonyms allowed, redirects
followed) and the did-you-mean endpoint.
"""

from dataclasses import dataclass, field
from enum import Enum

import structlog

from vaxtlistan.config import Settings, get_settings
from vaxtlistan.schemas.catalog import MatchCandidate, Suggestion
from vaxtlistan.services.catalog_source import CatalogSource
from vaxtlistan.services.exact_matcher import (
    ExactMatchPolicy,
    follow_synonym_redirect,
    match_exact,
)
from vaxtlistan.services.fuzzy_matcher import FuzzyPolicy, match_fuzzy
from vaxtlistan.services.ranker import RankingPolicy, rank
from vaxtlistan.utils.text import normalize_plant_name

logger = structlog.get_logger()


class ResolutionStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "notFound"
    EMPTY = "empty"


@dataclass
class Resolution:
    """Outcome of resolving one free-text name"""

    query: str
    normalized: str
    status: ResolutionStatus
    match: MatchCandidate | None = None
    candidates: list[MatchCandidate] = field(default_factory=list)

    @property
    def suggestions(self) -> list[Suggestion]:
        return [candidate.to_suggestion() for candidate in self.candidates]


async def resolve_name(
    raw_name: str,
    source: CatalogSource,
    *,
    exclude_synonyms: bool = True,
    follow_redirects: bool = False,
    threshold: float | None = None,
    settings: Settings | None = None,
) -> Resolution:
    """
    Resolve a raw name to one catalog entry or a short suggestion list

    Fuzzy matching only runs when every exact tier misses.

    Args:
        raw_name: Name as typed or uploaded
        source: Catalog to query
        exclude_synonyms: Synonym entries are not match targets
        follow_redirects: Swap an exact synonym hit for its accepted entry
        threshold: Fuzzy score threshold (None = adaptive)
        settings: Tunables (defaults to get_settings())

    Returns:
        Resolution: found with one candidate, or notFound with 0-4 candidates
    """
    settings = settings or get_settings()
    normalized = normalize_plant_name(raw_name)
    if not normalized:
        return Resolution(query=raw_name, normalized="", status=ResolutionStatus.EMPTY)

    exact = await match_exact(
        normalized,
        source,
        exclude_synonyms=exclude_synonyms,
        policy=ExactMatchPolicy.from_settings(settings),
    )
    if exact is not None:
        if follow_redirects and exact.entry.is_synonym:
            accepted = await follow_synonym_redirect(exact.entry, source)
            exact = MatchCandidate(
                entry=accepted,
                score=exact.score,
                strategy=exact.strategy,
                matched_synonym=exact.matched_synonym or exact.entry.name,
            )
        return Resolution(
            query=raw_name,
            normalized=normalized,
            status=ResolutionStatus.FOUND,
            match=exact,
            candidates=[exact],
        )

    fuzzy = await match_fuzzy(
        normalized,
        source,
        threshold=threshold,
        exclude_synonyms=exclude_synonyms,
        policy=FuzzyPolicy.from_settings(settings),
    )
    ranked = rank(fuzzy, len(normalized), RankingPolicy.from_settings(settings))

    logger.info(
        "name_not_found",
        name=normalized,
        fuzzy_candidates=len(fuzzy),
        suggestions=len(ranked),
    )
    return Resolution(
        query=raw_name,
        normalized=normalized,
        status=ResolutionStatus.NOT_FOUND,
        candidates=ranked,
    )
