"""
Catalog (facit) and search schemas

Database column names differ from the field names used in the API
(sv_name -> common_name, synonym_to_id -> synonym_of, plantskolor_count ->
nursery_count); both spellings are accepted on input, the field names are
used on output.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import AliasChoices, BaseModel, Field, field_validator

SYNONYM_SEPARATOR = " | "


class MatchStrategy(str, Enum):
    """How a candidate was found"""

    EXACT = "exact"
    VARIANT = "variant"
    PREFIX = "prefix"
    FUZZY = "fuzzy"
    FALLBACK = "fallback"


class SortBy(str, Enum):
    """Sort keys for availability search"""

    RELEVANCE = "relevance"
    POPULARITY = "popularity"
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"


def _split_pipe_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(SYNONYM_SEPARATOR.strip()) if part.strip()]
    return [str(part).strip() for part in value if part is not None and str(part).strip()]


class CatalogEntry(BaseModel):
    """Canonical taxonomic reference record (one row of facit)"""

    id: int
    name: str
    common_name: str | None = Field(
        None, validation_alias=AliasChoices("common_name", "sv_name")
    )
    synonym_of: int | None = Field(
        None, validation_alias=AliasChoices("synonym_of", "synonym_to_id")
    )
    synonym_to: str | None = None
    has_synonyms: list[str] = Field(default_factory=list)
    has_synonyms_id: list[int] = Field(default_factory=list)
    plant_type: str | None = None
    popularity_score: float = 0.0

    @field_validator("has_synonyms", mode="before")
    @classmethod
    def split_synonyms(cls, value):
        return _split_pipe_list(value)

    @field_validator("has_synonyms_id", mode="before")
    @classmethod
    def split_synonym_ids(cls, value):
        return [int(part) for part in _split_pipe_list(value) if part.isdigit()]

    @field_validator("synonym_of", mode="before")
    @classmethod
    def parse_synonym_of(cls, value):
        if value is None or isinstance(value, int):
            return value
        text = str(value).strip()
        return int(text) if text.isdigit() else None

    @field_validator("popularity_score", mode="before")
    @classmethod
    def default_popularity(cls, value):
        return 0.0 if value is None else value

    @property
    def is_synonym(self) -> bool:
        return self.synonym_of is not None


class PlantWithAvailability(CatalogEntry):
    """Catalog entry joined with live nursery stock"""

    available_count: int = 0
    nursery_count: int = Field(
        0, validation_alias=AliasChoices("nursery_count", "plantskolor_count")
    )
    prices: list[float] = Field(default_factory=list)
    relevance: float | None = None

    @field_validator("available_count", "nursery_count", mode="before")
    @classmethod
    def default_count(cls, value):
        return 0 if value is None else value

    @field_validator("prices", mode="before")
    @classmethod
    def clean_prices(cls, value):
        if not value:
            return []
        return sorted({float(price) for price in value if price is not None})

    @property
    def lowest_price(self) -> float | None:
        return self.prices[0] if self.prices else None


class Suggestion(BaseModel):
    """One entry of a did-you-mean list"""

    id: int
    name: str
    common_name: str | None = None
    score: float | None = None


@dataclass(frozen=True)
class CatalogHit:
    """Row returned by a catalog source query"""

    entry: CatalogEntry
    score: float = 1.0
    matched_synonym: str | None = None


@dataclass(frozen=True)
class MatchCandidate:
    """Scored catalog entry produced by a matcher, consumed by the ranker"""

    entry: CatalogEntry
    score: float
    strategy: MatchStrategy
    matched_synonym: str | None = None

    @property
    def name(self) -> str:
        return self.entry.name

    def to_suggestion(self) -> Suggestion:
        return Suggestion(
            id=self.entry.id,
            name=self.entry.name,
            common_name=self.entry.common_name,
            score=round(self.score, 4),
        )


class SearchResult(BaseModel):
    """Availability search response"""

    results: list[PlantWithAvailability] = Field(default_factory=list)
    total_count: int = 0
    elapsed_ms: float = 0.0
    error: str | None = None
    ok: bool = True


class SuggestionResponse(BaseModel):
    """Did-you-mean response for a single name"""

    query: str
    normalized: str
    status: str
    suggestions: list[Suggestion] = Field(default_factory=list)
    ok: bool = True


class CatalogSearchHit(BaseModel):
    """One catalog entry found by a whole-catalog search"""

    id: int
    name: str
    common_name: str | None = None
    plant_type: str | None = None
    popularity_score: float = 0.0
    score: float
    strategy: MatchStrategy
    matched_synonym: str | None = None

    @classmethod
    def from_candidate(cls, candidate: MatchCandidate) -> "CatalogSearchHit":
        entry = candidate.entry
        return cls(
            id=entry.id,
            name=entry.name,
            common_name=entry.common_name,
            plant_type=entry.plant_type,
            popularity_score=entry.popularity_score,
            score=round(candidate.score, 4),
            strategy=candidate.strategy,
            matched_synonym=candidate.matched_synonym,
        )


class CatalogSearchResult(BaseModel):
    """Whole-catalog search response"""

    query: str
    normalized: str = ""
    results: list[CatalogSearchHit] = Field(default_factory=list)
    total_count: int = 0
    elapsed_ms: float = 0.0
    error: str | None = None
    ok: bool = True
