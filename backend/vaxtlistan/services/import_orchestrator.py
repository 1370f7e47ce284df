"""
Bulk import orchestration for nursery inventory uploads

Each uploaded row gets an ImportRowState and moves through:

    pending --(exact hit)--> found
    pending --(miss)-------> notFound (0-4 suggestions)
    pending --(name < 2)---> skip
    found | notFound | manual --select--> manual
    found | notFound | manual | skip --skip--> skip
    manual | skip --revert--> notFound

Commit writes the found/manual rows once, after processing has finished;
committed rows take no further transitions.

Rows are resolved in batches; rows inside a batch run concurrently and the
loop yields between batches. A lookup that times out leaves the row notFound
without suggestions, any other failure skips the row with the error recorded,
so one bad row never loses the others.
"""

import asyncio
import inspect
import math
import re
import uuid
from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional

import structlog

from vaxtlistan.config import Settings, get_settings
from vaxtlistan.errors import (
    CommitInProgressError,
    ImportAlreadyCommittedError,
    ImportNotReadyError,
    ImportRowNotFoundError,
    ImportSessionNotFoundError,
    InvalidTransitionError,
)
from vaxtlistan.schemas.catalog import Suggestion
from vaxtlistan.schemas.importing import (
    ColumnMapping,
    ImportProgress,
    ImportRowState,
    ImportRowStatus,
    ImportSessionResponse,
    ImportSummary,
    InventoryRow,
)
from vaxtlistan.services.catalog_source import CatalogSource
from vaxtlistan.services.resolver import ResolutionStatus, resolve_name
from vaxtlistan.utils.cache import TTLCache
from vaxtlistan.utils.resilience import with_timeout
from vaxtlistan.utils.text import normalize_plant_name, sanitize_display_text

logger = structlog.get_logger()

MIN_NAME_LENGTH = 2
TIMEOUT_MESSAGE = "Lookup timed out"

ProgressCallback = Callable[[ImportProgress], Optional[Awaitable[None]]]
InventoryWriter = Callable[[list[InventoryRow]], Awaitable[int]]

_SELECTABLE = {ImportRowStatus.FOUND, ImportRowStatus.NOT_FOUND, ImportRowStatus.MANUAL}
_SKIPPABLE = {
    ImportRowStatus.FOUND,
    ImportRowStatus.NOT_FOUND,
    ImportRowStatus.MANUAL,
    ImportRowStatus.SKIP,
}
_REVERTIBLE = {ImportRowStatus.MANUAL, ImportRowStatus.SKIP}
_COMMITTABLE = {ImportRowStatus.FOUND, ImportRowStatus.MANUAL}

_PRICE_CLEANUP = re.compile(r"[^\d,.\-]")


# =============================================================================
# Cell parsing
# =============================================================================


def _cell(raw: dict[str, Any], column: str | None) -> str | None:
    if not column:
        return None
    value = raw.get(column)
    if value is None:
        return None
    text = sanitize_display_text(value)
    return text or None


def parse_price(value: str | None) -> float | None:
    """
    Parse a price cell ("129", "129,50", "1 299 kr", "1.299,50")

    When both separators appear the last one is the decimal mark.

    Returns:
        float | None: Price, or None when unreadable or negative
    """
    if not value:
        return None
    text = _PRICE_CLEANUP.sub("", value)
    if "," in text and text.rfind(",") > text.rfind("."):
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "")
    try:
        price = float(text)
    except ValueError:
        return None
    return price if price >= 0 else None


def parse_stock(value: str | None) -> int | None:
    """Parse a stock cell; None when unreadable or negative"""
    if not value:
        return None
    digits = re.sub(r"[^\d\-]", "", value)
    try:
        stock = int(digits)
    except ValueError:
        return None
    return stock if stock >= 0 else None


# =============================================================================
# Session
# =============================================================================


class ImportSession:
    """
    Resolution state for one uploaded dataset

    Usage:
        session = ImportSession(rows, mapping, SupabaseCatalog(), plantskola_id=7)
        await session.process(on_progress=print)
        session.select_candidate(3, 1042)
        summary = await session.commit(insert_inventory_rows_writer)
    """

    def __init__(
        self,
        rows: list[dict[str, Any]],
        mapping: ColumnMapping,
        source: CatalogSource,
        *,
        plantskola_id: int | None = None,
        settings: Settings | None = None,
        session_id: str | None = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.mapping = mapping
        self.source = source
        self.plantskola_id = plantskola_id
        self.settings = settings or get_settings()
        self.rows = [ImportRowState(row_id=index, raw=dict(row)) for index, row in enumerate(rows)]

        batch_size = max(self.settings.import_batch_size, 1)
        self.progress = ImportProgress(
            total_rows=len(self.rows),
            total_batches=math.ceil(len(self.rows) / batch_size),
        )
        self.committed = 0
        self.is_committed = False
        self._committing = False

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def _resolve_row(self, state: ImportRowState) -> None:
        raw_name = state.raw.get(self.mapping.name)
        name = normalize_plant_name(str(raw_name) if raw_name is not None else "")
        state.sanitized_name = name

        if len(name) < MIN_NAME_LENGTH:
            state.status = ImportRowStatus.SKIP
            state.selected_id = None
            state.suggestions = []
            return

        resolution = await with_timeout(
            resolve_name(
                name,
                self.source,
                exclude_synonyms=False,
                follow_redirects=True,
                settings=self.settings,
            ),
            self.settings.import_lookup_timeout_seconds,
            session_id=self.session_id,
            row_id=state.row_id,
            name=name,
        )

        if resolution is None:
            state.status = ImportRowStatus.NOT_FOUND
            state.selected_id = None
            state.suggestions = []
            state.error = TIMEOUT_MESSAGE
            return

        state.suggestions = resolution.suggestions
        if resolution.status == ResolutionStatus.FOUND and resolution.match is not None:
            state.status = ImportRowStatus.FOUND
            state.selected_id = resolution.match.entry.id
        else:
            state.status = ImportRowStatus.NOT_FOUND
            state.selected_id = None

    def _record_failure(self, state: ImportRowState, exc: BaseException) -> None:
        logger.warning(
            "import_row_failed",
            session_id=self.session_id,
            row_id=state.row_id,
            name=state.sanitized_name,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        state.status = ImportRowStatus.SKIP
        state.selected_id = None
        state.suggestions = []
        state.error = str(exc) or type(exc).__name__

    async def _notify(self, on_progress: ProgressCallback | None) -> None:
        if on_progress is None:
            return
        outcome = on_progress(self.progress.model_copy())
        if inspect.isawaitable(outcome):
            await outcome

    async def process(self, on_progress: ProgressCallback | None = None) -> ImportSummary:
        """
        Resolve every pending row

        Args:
            on_progress: Called after each batch (sync or async)

        Returns:
            ImportSummary: Counts per status
        """
        settings = self.settings
        batch_size = max(settings.import_batch_size, 1)
        pending = [state for state in self.rows if state.status == ImportRowStatus.PENDING]
        batches = [pending[i:i + batch_size] for i in range(0, len(pending), batch_size)]

        self.progress = ImportProgress(
            total_rows=len(self.rows),
            total_batches=len(batches),
            rows_processed=len(self.rows) - len(pending),
        )
        logger.info(
            "import_processing_start",
            session_id=self.session_id,
            rows=len(pending),
            batches=len(batches),
        )

        for index, batch in enumerate(batches):
            results = await asyncio.gather(
                *(self._resolve_row(state) for state in batch),
                return_exceptions=True,
            )
            for state, result in zip(batch, results):
                if isinstance(result, BaseException):
                    self._record_failure(state, result)

            self.progress.batch_index = index + 1
            self.progress.rows_processed += len(batch)
            self.progress.current_name = batch[-1].sanitized_name or None
            await self._notify(on_progress)

            if index < len(batches) - 1:
                await asyncio.sleep(settings.import_batch_pause_seconds)

        self.progress.done = True
        await self._notify(on_progress)

        summary = self.summary()
        logger.info(
            "import_processing_complete",
            session_id=self.session_id,
            **summary.model_dump(),
        )
        return summary

    # -------------------------------------------------------------------------
    # User decisions
    # -------------------------------------------------------------------------

    def row(self, row_id: int) -> ImportRowState:
        if row_id < 0 or row_id >= len(self.rows):
            raise ImportRowNotFoundError(f"Row {row_id} does not exist in import {self.session_id}")
        return self.rows[row_id]

    def _editable_row(self, row_id: int, requested: ImportRowStatus) -> ImportRowState:
        # Written rows are final
        state = self.row(row_id)
        if state.committed:
            raise InvalidTransitionError(row_id, "committed", requested.value)
        return state

    def select_candidate(self, row_id: int, entry_id: int) -> ImportRowState:
        """found | notFound | manual -> manual with the chosen entry"""
        state = self._editable_row(row_id, ImportRowStatus.MANUAL)
        if state.status not in _SELECTABLE:
            raise InvalidTransitionError(row_id, state.status.value, ImportRowStatus.MANUAL.value)
        state.status = ImportRowStatus.MANUAL
        state.selected_id = entry_id
        state.error = None
        return state

    def skip(self, row_id: int) -> ImportRowState:
        """Any resolved state -> skip, clearing the selection"""
        state = self._editable_row(row_id, ImportRowStatus.SKIP)
        if state.status not in _SKIPPABLE:
            raise InvalidTransitionError(row_id, state.status.value, ImportRowStatus.SKIP.value)
        state.status = ImportRowStatus.SKIP
        state.selected_id = None
        return state

    def revert(self, row_id: int) -> ImportRowState:
        """manual | skip -> notFound, keeping suggestions"""
        state = self._editable_row(row_id, ImportRowStatus.NOT_FOUND)
        if state.status not in _REVERTIBLE:
            raise InvalidTransitionError(
                row_id, state.status.value, ImportRowStatus.NOT_FOUND.value
            )
        state.status = ImportRowStatus.NOT_FOUND
        state.selected_id = None
        return state

    def add_suggestion(self, row_id: int, suggestion: Suggestion) -> None:
        """Keep a manually chosen entry visible among the row's suggestions"""
        state = self.row(row_id)
        if all(existing.id != suggestion.id for existing in state.suggestions):
            state.suggestions = [*state.suggestions, suggestion]

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def _committable(self) -> list[ImportRowState]:
        return [
            state
            for state in self.rows
            if state.status in _COMMITTABLE
            and state.selected_id is not None
            and not state.committed
        ]

    def _inventory_row(self, state: ImportRowState, plantskola_id: int) -> InventoryRow:
        mapping = self.mapping
        raw = state.raw
        extra = {column: raw[column] for column in mapping.extra if raw.get(column) is not None}
        return InventoryRow(
            facit_id=state.selected_id,
            plantskola_id=plantskola_id,
            name_by_plantskola=_cell(raw, mapping.name),
            description_by_plantskola=_cell(raw, mapping.comment),
            pot=_cell(raw, mapping.pot),
            height=_cell(raw, mapping.height),
            price=parse_price(_cell(raw, mapping.price)),
            stock=parse_stock(_cell(raw, mapping.stock)),
            extra_fields=extra,
        )

    def inventory_rows(self, plantskola_id: int) -> list[InventoryRow]:
        """Payloads for every found/manual row with a selection, not yet written"""
        return [self._inventory_row(state, plantskola_id) for state in self._committable()]

    async def commit(
        self, writer: InventoryWriter, plantskola_id: int | None = None
    ) -> ImportSummary:
        """
        Hand committed rows to the inventory writer

        A session is written once. The rows handed to the writer are marked
        committed only after the writer returns, so a failed write can be
        retried.

        Args:
            writer: Persists the rows, returns how many were written
            plantskola_id: Nursery (defaults to the session's)

        Returns:
            ImportSummary: Counts per status plus rows written

        Raises:
            CommitInProgressError: A commit for this session is running
            ImportNotReadyError: Rows are still being resolved
            ImportAlreadyCommittedError: The session was already written
            ValueError: No nursery given
        """
        if self._committing:
            raise CommitInProgressError(f"Import {self.session_id} is already being committed")
        if self.is_committed:
            raise ImportAlreadyCommittedError(
                f"Import {self.session_id} has already been committed"
            )
        if not self.progress.done:
            raise ImportNotReadyError(f"Import {self.session_id} is still being processed")

        nursery = plantskola_id if plantskola_id is not None else self.plantskola_id
        if nursery is None:
            raise ValueError("plantskola_id is required to commit an import")

        self._committing = True
        try:
            states = self._committable()
            payloads = [self._inventory_row(state, nursery) for state in states]
            logger.info(
                "import_commit_start",
                session_id=self.session_id,
                plantskola_id=nursery,
                rows=len(payloads),
            )
            self.committed = await writer(payloads)
            for state in states:
                state.committed = True
            self.is_committed = True
        finally:
            self._committing = False

        summary = self.summary()
        logger.info("import_commit_complete", session_id=self.session_id, committed=self.committed)
        return summary

    @property
    def is_committing(self) -> bool:
        return self._committing

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def summary(self) -> ImportSummary:
        counts = {status: 0 for status in ImportRowStatus}
        for state in self.rows:
            counts[state.status] += 1
        return ImportSummary(
            total=len(self.rows),
            found=counts[ImportRowStatus.FOUND],
            not_found=counts[ImportRowStatus.NOT_FOUND],
            manual=counts[ImportRowStatus.MANUAL],
            skipped=counts[ImportRowStatus.SKIP],
            pending=counts[ImportRowStatus.PENDING],
            committed=self.committed,
        )

    def to_response(self, include_rows: bool = True) -> ImportSessionResponse:
        return ImportSessionResponse(
            session_id=self.session_id,
            progress=self.progress,
            summary=self.summary(),
            rows=self.rows if include_rows else [],
        )


# =============================================================================
# Session store
# =============================================================================


class ImportSessionStore:
    """Import sessions kept in memory until they expire"""

    def __init__(self, ttl_seconds: int = 7200, max_sessions: int = 200):
        self._cache = TTLCache(max_size=max_sessions, default_ttl=ttl_seconds)

    async def add(self, session: ImportSession) -> None:
        expired = await self._cache.cleanup_expired()
        if expired:
            logger.info("import_sessions_expired", count=expired)
        await self._cache.set(session.session_id, session)

    async def get(self, session_id: str) -> ImportSession:
        session = await self._cache.get(session_id)
        if session is None:
            raise ImportSessionNotFoundError(f"Import session not found: {session_id}")
        return session

    async def remove(self, session_id: str) -> bool:
        return await self._cache.delete(session_id)

    @property
    def stats(self) -> dict[str, Any]:
        """Session count, capacity and lookup hit rate"""
        return self._cache.stats


@lru_cache
def get_session_store() -> ImportSessionStore:
    settings = get_settings()
    return ImportSessionStore(ttl_seconds=settings.import_session_ttl_seconds)
