"""
Component-weighted plant name similarity

Candidates coming back from the similarity index are re-scored here so that a
typo in the species epithet still scores high while a different genus scores
low, which plain trigram overlap does not separate well.

Components (weights sum to 1.0):
- genus: 0.35 (first word)
- species: 0.10 (second word)
- cultivar: 0.40 (single-quoted epithet or ALL-CAPS trade name, interchangeable)
- full name: 0.15 (whole-string similarity)

When neither name carries a cultivar or trade name the cultivar weight is
dropped and the rest renormalized, so two bare binomials are judged on genus,
species and full name only.
"""

import re
from dataclasses import dataclass, field

from vaxtlistan.utils.text import calculate_similarity, catalog_key

_SORT_NAME = re.compile(r"'([^']+)'")
_TRADE_NAME = re.compile(r"\b[A-Z]{3,}(?:\s+[A-Z]{3,})*\b")


@dataclass(frozen=True)
class NameWeights:
    """Relative weight of each name component"""

    genus: float = 0.35
    species: float = 0.10
    cultivar: float = 0.40
    full_name: float = 0.15


DEFAULT_WEIGHTS = NameWeights()


@dataclass
class PlantNameComponents:
    """Parts of a botanical name"""

    genus: str = ""
    species: str = ""
    cultivars: list[str] = field(default_factory=list)
    remaining: str = ""
    full_name: str = ""


def parse_plant_name(name: str) -> PlantNameComponents:
    """
    Split a plant name into genus, species and cultivar parts

    Args:
        name: Raw or normalized name (e.g. "Rosa gallica 'Charles de Mills'")

    Returns:
        PlantNameComponents: Lowercased, accent-folded components
    """
    if not name or not name.strip():
        return PlantNameComponents()

    working = name.strip().replace('"', "'")

    cultivars = [match.strip() for match in _SORT_NAME.findall(working)]
    working = _SORT_NAME.sub(" ", working)

    # Trade names are only recognizable before case folding
    cultivars.extend(_TRADE_NAME.findall(working))
    working = _TRADE_NAME.sub(" ", working)

    words = working.split()
    return PlantNameComponents(
        genus=catalog_key(words[0]) if words else "",
        species=catalog_key(words[1]) if len(words) > 1 else "",
        cultivars=[catalog_key(c) for c in cultivars if c.strip()],
        remaining=catalog_key(" ".join(words[2:])),
        full_name=catalog_key(name),
    )


def _component_score(left: str, right: str) -> float:
    if not left or not right:
        return 0.0
    return calculate_similarity(left, right)


def _cultivar_score(left: list[str], right: list[str]) -> float:
    if not left or not right:
        return 0.0
    return max(calculate_similarity(a, b) for a in left for b in right)


def plant_name_similarity(
    query: str,
    candidate: str,
    weights: NameWeights = DEFAULT_WEIGHTS,
) -> float:
    """
    Weighted similarity between a searched name and a catalog name

    Args:
        query: Normalized search name
        candidate: Catalog name (scientific, common or synonym)
        weights: Component weights

    Returns:
        float: Score in [0, 1], rounded to 4 decimals
    """
    q = parse_plant_name(query)
    c = parse_plant_name(candidate)
    if not q.full_name or not c.full_name:
        return 0.0
    if q.full_name == c.full_name:
        return 1.0

    scores = {
        "genus": _component_score(q.genus, c.genus),
        "species": _component_score(q.species, c.species),
        "full_name": _component_score(q.full_name, c.full_name),
    }
    active = {
        "genus": weights.genus,
        "species": weights.species,
        "full_name": weights.full_name,
    }

    if q.cultivars or c.cultivars:
        scores["cultivar"] = _cultivar_score(q.cultivars, c.cultivars)
        active["cultivar"] = weights.cultivar

    total_weight = sum(active.values())
    if total_weight <= 0:
        return 0.0

    weighted = sum(scores[key] * weight for key, weight in active.items())
    return round(min(weighted / total_weight, 1.0), 4)
