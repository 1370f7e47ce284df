"""
Nursery bulk import API routes.

Endpoints:
- POST /imports - Start resolving already-parsed rows
- GET /imports/{session_id} - Progress, row states and summary
- POST /imports/{session_id}/rows/{row_id}/select - Pick a catalog entry
- POST /imports/{session_id}/rows/{row_id}/skip - Leave a row out
- POST /imports/{session_id}/rows/{row_id}/revert - Undo select/skip
- POST /imports/{session_id}/commit - Write resolved rows to totallager
"""

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status

from vaxtlistan.integrations.supabase import insert_inventory_rows
from vaxtlistan.middleware.rate_limit import HEAVY_LIMIT, LIGHT_LIMIT, STANDARD_LIMIT, limiter
from vaxtlistan.routes.search import get_catalog_source
from vaxtlistan.schemas.catalog import Suggestion
from vaxtlistan.schemas.importing import (
    ImportProgress,
    ImportRequest,
    ImportRowState,
    ImportSessionResponse,
    InventoryRow,
    SelectCandidateRequest,
)
from vaxtlistan.services.catalog_source import CatalogSource
from vaxtlistan.services.import_orchestrator import (
    ImportSession,
    ImportSessionStore,
    InventoryWriter,
    get_session_store,
)

router = APIRouter()

logger = structlog.get_logger()


# =============================================================================
# Helper Functions
# =============================================================================


async def write_inventory(rows: list[InventoryRow]) -> int:
    """Persist committed rows into totallager"""
    payloads = [row.model_dump(mode="json", by_alias=True) for row in rows]
    return await insert_inventory_rows(payloads)


def get_inventory_writer() -> InventoryWriter:
    return write_inventory


async def _log_progress(progress: ImportProgress) -> None:
    logger.debug(
        "import_progress",
        batch=progress.batch_index,
        total_batches=progress.total_batches,
        percent=progress.percent,
        current_name=progress.current_name,
    )


async def _process_session(session: ImportSession) -> None:
    await session.process(on_progress=_log_progress)


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=ImportSessionResponse)
@limiter.limit(HEAVY_LIMIT)
async def start_import(
    request: Request,
    payload: ImportRequest,
    background_tasks: BackgroundTasks,
    source: CatalogSource = Depends(get_catalog_source),
    store: ImportSessionStore = Depends(get_session_store),
):
    """
    Start resolving an uploaded dataset

    Resolution runs in the background; poll GET /imports/{session_id}.

    Returns:
        ImportSessionResponse: Session id and initial progress (no rows yet)
    """
    session = ImportSession(
        payload.rows,
        payload.mapping,
        source,
        plantskola_id=payload.plantskola_id,
    )
    await store.add(session)
    background_tasks.add_task(_process_session, session)

    logger.info(
        "import_started",
        session_id=session.session_id,
        plantskola_id=payload.plantskola_id,
        rows=len(payload.rows),
    )
    return session.to_response(include_rows=False)


@router.get("/{session_id}", response_model=ImportSessionResponse)
@limiter.limit(LIGHT_LIMIT)
async def get_import(
    request: Request,
    session_id: str,
    include_rows: bool = True,
    store: ImportSessionStore = Depends(get_session_store),
):
    """
    Progress and row states of an import

    Returns:
        ImportSessionResponse: Current snapshot
    """
    session = await store.get(session_id)
    return session.to_response(include_rows=include_rows)


@router.post("/{session_id}/rows/{row_id}/select", response_model=ImportRowState)
@limiter.limit(STANDARD_LIMIT)
async def select_row_candidate(
    request: Request,
    session_id: str,
    row_id: int,
    payload: SelectCandidateRequest,
    store: ImportSessionStore = Depends(get_session_store),
):
    """
    Pick a catalog entry for a row (found | notFound | manual -> manual)

    Raises:
        400: Entry does not exist, or the row cannot be selected
        404: Unknown session or row
    """
    session = await store.get(session_id)
    entry = await session.source.get(payload.entry_id)
    if entry is None:
        raise ValueError(f"Catalog entry {payload.entry_id} does not exist")

    state = session.select_candidate(row_id, entry.id)
    session.add_suggestion(
        row_id, Suggestion(id=entry.id, name=entry.name, common_name=entry.common_name)
    )
    return state


@router.post("/{session_id}/rows/{row_id}/skip", response_model=ImportRowState)
@limiter.limit(STANDARD_LIMIT)
async def skip_row(
    request: Request,
    session_id: str,
    row_id: int,
    store: ImportSessionStore = Depends(get_session_store),
):
    """Leave a row out of the commit"""
    session = await store.get(session_id)
    return session.skip(row_id)


@router.post("/{session_id}/rows/{row_id}/revert", response_model=ImportRowState)
@limiter.limit(STANDARD_LIMIT)
async def revert_row(
    request: Request,
    session_id: str,
    row_id: int,
    store: ImportSessionStore = Depends(get_session_store),
):
    """Undo a manual choice or a skip (-> notFound, suggestions kept)"""
    session = await store.get(session_id)
    return session.revert(row_id)


@router.post("/{session_id}/commit", status_code=status.HTTP_200_OK)
@limiter.limit(HEAVY_LIMIT)
async def commit_import(
    request: Request,
    session_id: str,
    store: ImportSessionStore = Depends(get_session_store),
    writer: InventoryWriter = Depends(get_inventory_writer),
):
    """
    Write every found/manual row to the nursery's inventory

    Raises:
        409: A commit is already running, rows are still being resolved,
            or the import was already committed
    """
    session = await store.get(session_id)
    summary = await session.commit(writer)
    return {"session_id": session.session_id, "summary": summary, "ok": True}
