"""
Catalog sources queried by the matchers

Both implementations answer the same five questions:
- find_exact: entries whose name or synonym has a given catalog key
- find_prefix: entries whose name key starts with a key
- similar: trigram-similar entries (raises SimilarityUnavailableError when
  the indexed path cannot be used)
- containing: entries whose names contain any of a set of tokens
- get: one entry by id

SupabaseCatalog calls the hosted RPC functions. InMemoryCatalog runs the same
queries over a loaded list, which is how availability search restricts
matching to the in-stock subset.
"""

from typing import Iterable, Protocol, Sequence

import structlog
from pydantic import ValidationError

from vaxtlistan.errors import SimilarityUnavailableError
from vaxtlistan.integrations import supabase as store
from vaxtlistan.schemas.catalog import CatalogEntry, CatalogHit
from vaxtlistan.utils.text import catalog_key, trigram_similarity

logger = structlog.get_logger()


class CatalogSource(Protocol):
    async def find_exact(self, key: str, *, exclude_synonyms: bool) -> list[CatalogHit]: ...

    async def find_prefix(
        self, key: str, *, exclude_synonyms: bool, limit: int
    ) -> list[CatalogHit]: ...

    async def similar(
        self, term: str, *, threshold: float, limit: int, exclude_synonyms: bool
    ) -> list[CatalogHit]: ...

    async def containing(
        self, tokens: Sequence[str], *, limit: int, exclude_synonyms: bool
    ) -> list[CatalogEntry]: ...

    async def get(self, entry_id: int) -> CatalogEntry | None: ...


def entry_from_row(row: dict, model: type[CatalogEntry] = CatalogEntry) -> CatalogEntry | None:
    """
    Build a catalog model from a database row

    Rows missing a name or id are skipped with a warning.
    """
    if not row or row.get("id") is None or not (row.get("name") or "").strip():
        logger.warning(
            "catalog_row_skipped",
            reason="missing name or id",
            row_id=row.get("id") if row else None,
        )
        return None
    try:
        return model.model_validate(row)
    except ValidationError as exc:
        logger.warning(
            "catalog_row_skipped", reason="invalid", row_id=row.get("id"), error=str(exc)
        )
        return None


def _hits_from_rows(rows: Iterable[dict]) -> list[CatalogHit]:
    hits = []
    for row in rows:
        entry = entry_from_row(row)
        if entry is None:
            continue
        score = row.get("score")
        hits.append(
            CatalogHit(
                entry=entry,
                score=float(score) if score is not None else 1.0,
                matched_synonym=row.get("matched_synonym") or None,
            )
        )
    return hits


class SupabaseCatalog:
    """Full catalog (facit) behind the hosted RPC functions"""

    async def find_exact(self, key: str, *, exclude_synonyms: bool = True) -> list[CatalogHit]:
        rows = await store.match_catalog_exact(key, include_synonyms=not exclude_synonyms)
        return _hits_from_rows(rows)

    async def find_prefix(
        self, key: str, *, exclude_synonyms: bool = True, limit: int = 10
    ) -> list[CatalogHit]:
        rows = await store.match_catalog_prefix(
            key, include_synonyms=not exclude_synonyms, limit=limit
        )
        return _hits_from_rows(rows)

    async def similar(
        self,
        term: str,
        *,
        threshold: float,
        limit: int = 20,
        exclude_synonyms: bool = True,
    ) -> list[CatalogHit]:
        rows = await store.match_catalog_similarity(
            term, threshold=threshold, limit=limit, include_synonyms=not exclude_synonyms
        )
        return _hits_from_rows(rows)

    async def containing(
        self, tokens: Sequence[str], *, limit: int = 200, exclude_synonyms: bool = True
    ) -> list[CatalogEntry]:
        rows = await store.search_catalog_containing(
            list(tokens), include_synonyms=not exclude_synonyms, limit=limit
        )
        return [hit.entry for hit in _hits_from_rows(rows)]

    async def get(self, entry_id: int) -> CatalogEntry | None:
        row = await store.get_catalog_entry(entry_id)
        return entry_from_row(row) if row else None


class InMemoryCatalog:
    """
    Catalog queries over a loaded list of entries

    Args:
        entries: Catalog entries (any CatalogEntry subclass)
        trigram_enabled: When False, similar() raises SimilarityUnavailableError
            so callers take their substring fallback
    """

    def __init__(self, entries: Iterable[CatalogEntry], trigram_enabled: bool = True):
        self.entries: list[CatalogEntry] = [entry for entry in entries if entry.name]
        self.trigram_enabled = trigram_enabled
        self._by_id = {entry.id: entry for entry in self.entries}
        self._name_keys = {entry.id: catalog_key(entry.name) for entry in self.entries}

        # key -> [(entry, matched_synonym)]
        self._key_index: dict[str, list[tuple[CatalogEntry, str | None]]] = {}
        for entry in self.entries:
            self._key_index.setdefault(self._name_keys[entry.id], []).append((entry, None))
            for synonym in entry.has_synonyms:
                self._key_index.setdefault(catalog_key(synonym), []).append((entry, synonym))

    def __len__(self) -> int:
        return len(self.entries)

    def _eligible(self, entry: CatalogEntry, exclude_synonyms: bool) -> bool:
        return not (exclude_synonyms and entry.is_synonym)

    async def find_exact(self, key: str, *, exclude_synonyms: bool = True) -> list[CatalogHit]:
        return [
            CatalogHit(entry=entry, matched_synonym=synonym)
            for entry, synonym in self._key_index.get(key, [])
            if self._eligible(entry, exclude_synonyms)
        ]

    async def find_prefix(
        self, key: str, *, exclude_synonyms: bool = True, limit: int = 10
    ) -> list[CatalogHit]:
        matches = [
            entry
            for entry in self.entries
            if self._eligible(entry, exclude_synonyms)
            and self._name_keys[entry.id].startswith(key)
        ]
        matches.sort(key=lambda entry: (len(entry.name), entry.name))
        return [CatalogHit(entry=entry) for entry in matches[:limit]]

    async def similar(
        self,
        term: str,
        *,
        threshold: float,
        limit: int = 20,
        exclude_synonyms: bool = True,
    ) -> list[CatalogHit]:
        if not self.trigram_enabled:
            raise SimilarityUnavailableError(
                "Trigram similarity is disabled for this catalog", operation="similar"
            )

        hits = []
        for entry in self.entries:
            if not self._eligible(entry, exclude_synonyms):
                continue
            best_score = trigram_similarity(term, entry.name)
            best_synonym = None
            for synonym in entry.has_synonyms:
                score = trigram_similarity(term, synonym)
                if score > best_score:
                    best_score, best_synonym = score, synonym
            if best_score >= threshold:
                hits.append(CatalogHit(entry=entry, score=best_score, matched_synonym=best_synonym))

        hits.sort(key=lambda hit: (-hit.score, len(hit.entry.name), hit.entry.name))
        return hits[:limit]

    async def containing(
        self, tokens: Sequence[str], *, limit: int = 200, exclude_synonyms: bool = True
    ) -> list[CatalogEntry]:
        keys = [catalog_key(token) for token in tokens if catalog_key(token)]
        if not keys:
            return []

        matches = []
        for entry in self.entries:
            if not self._eligible(entry, exclude_synonyms):
                continue
            names = [self._name_keys[entry.id], *(catalog_key(s) for s in entry.has_synonyms)]
            hits = sum(1 for key in dict.fromkeys(keys) if any(key in name for name in names))
            if hits:
                matches.append((hits, entry))

        # Most tokens matched, then shortest name, like catalog_match_containing
        matches.sort(key=lambda match: (-match[0], len(match[1].name), match[1].name))
        return [entry for _, entry in matches[:limit]]

    async def get(self, entry_id: int) -> CatalogEntry | None:
        return self._by_id.get(entry_id)
