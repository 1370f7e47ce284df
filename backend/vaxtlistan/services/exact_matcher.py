"""
Exact and near-exact catalog matching

Tiers, cheapest first; the first hit wins:
1. Key equality against name and has_synonyms
2. Structural variants of the input (punctuation stripped, taxonomic
   qualifiers stripped, both), each queried by key equality
3. Prefix match, only for multi-word inputs of 6+ characters and only when
   the matched name is at most 15 characters longer than the input
"""

from dataclasses import dataclass

import structlog

from vaxtlistan.config import Settings, get_settings
from vaxtlistan.schemas.catalog import CatalogEntry, CatalogHit, MatchCandidate, MatchStrategy
from vaxtlistan.services.catalog_source import CatalogSource
from vaxtlistan.utils.text import catalog_key, strip_punctuation, strip_qualifiers

logger = structlog.get_logger()

MAX_REDIRECT_HOPS = 5


@dataclass(frozen=True)
class ExactMatchPolicy:
    """Guards on the prefix tier"""

    prefix_min_length: int = 6
    prefix_max_excess: int = 15
    prefix_candidate_limit: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExactMatchPolicy":
        return cls(
            prefix_min_length=settings.prefix_min_length,
            prefix_max_excess=settings.prefix_max_excess,
        )


def name_variants(normalized_name: str) -> list[tuple[str, MatchStrategy]]:
    """
    Catalog keys to try by equality, in order, without repeats

    Args:
        normalized_name: Output of normalize_plant_name

    Returns:
        list[tuple[str, MatchStrategy]]: (key, strategy) pairs
    """
    candidates = [
        (normalized_name, MatchStrategy.EXACT),
        (strip_punctuation(normalized_name), MatchStrategy.VARIANT),
        (strip_qualifiers(normalized_name), MatchStrategy.VARIANT),
        (strip_qualifiers(strip_punctuation(normalized_name)), MatchStrategy.VARIANT),
    ]

    variants: list[tuple[str, MatchStrategy]] = []
    seen: set[str] = set()
    for name, strategy in candidates:
        key = catalog_key(name)
        if key and key not in seen:
            seen.add(key)
            variants.append((key, strategy))
    return variants


def _preference(hit: CatalogHit) -> tuple:
    # Accepted entries matched by name, then accepted entries matched through
    # a synonym, then synonym entries; shorter and alphabetical after that
    return (
        hit.entry.is_synonym,
        hit.matched_synonym is not None,
        len(hit.entry.name),
        hit.entry.name,
    )


def pick_best_hit(hits: list[CatalogHit]) -> CatalogHit | None:
    return min(hits, key=_preference) if hits else None


async def match_exact(
    normalized_name: str,
    source: CatalogSource,
    *,
    exclude_synonyms: bool = True,
    policy: ExactMatchPolicy | None = None,
) -> MatchCandidate | None:
    """
    Resolve a normalized name to a single catalog entry

    Args:
        normalized_name: Output of normalize_plant_name
        source: Catalog to query
        exclude_synonyms: Synonym entries are not targets (their names still
            resolve through the accepted entry's has_synonyms)
        policy: Prefix tier guards (defaults from settings)

    Returns:
        MatchCandidate | None: Best hit, or None when every tier misses
    """
    if not normalized_name or not normalized_name.strip():
        return None

    policy = policy or ExactMatchPolicy.from_settings(get_settings())

    for key, strategy in name_variants(normalized_name):
        hit = pick_best_hit(await source.find_exact(key, exclude_synonyms=exclude_synonyms))
        if hit is not None:
            logger.debug(
                "exact_match_hit",
                name=normalized_name,
                entry_id=hit.entry.id,
                strategy=strategy.value,
                matched_synonym=hit.matched_synonym,
            )
            return MatchCandidate(
                entry=hit.entry,
                score=1.0,
                strategy=strategy,
                matched_synonym=hit.matched_synonym,
            )

    key = catalog_key(normalized_name)
    if len(key) < policy.prefix_min_length or " " not in key:
        return None

    hits = await source.find_prefix(
        key, exclude_synonyms=exclude_synonyms, limit=policy.prefix_candidate_limit
    )
    hits = [
        hit
        for hit in hits
        if len(catalog_key(hit.entry.name)) - len(key) <= policy.prefix_max_excess
    ]
    hit = pick_best_hit(hits)
    if hit is None:
        return None

    score = round(len(key) / max(len(catalog_key(hit.entry.name)), 1), 4)
    logger.debug("prefix_match_hit", name=normalized_name, entry_id=hit.entry.id, score=score)
    return MatchCandidate(entry=hit.entry, score=score, strategy=MatchStrategy.PREFIX)


async def follow_synonym_redirect(entry: CatalogEntry, source: CatalogSource) -> CatalogEntry:
    """
    Swap a synonym entry for the accepted entry it points to

    Entries that are not synonyms come back unchanged, as does a synonym
    whose target cannot be loaded.

    Args:
        entry: Matched catalog entry
        source: Catalog to load the accepted entry from

    Returns:
        CatalogEntry: Accepted entry
    """
    current = entry
    seen = {current.id}
    for _ in range(MAX_REDIRECT_HOPS):
        if current.synonym_of is None:
            return current

        target = await source.get(current.synonym_of)
        if target is None or target.id in seen:
            logger.warning(
                "synonym_redirect_broken",
                entry_id=current.id,
                synonym_of=current.synonym_of,
            )
            return current

        seen.add(target.id)
        current = target
    return current
