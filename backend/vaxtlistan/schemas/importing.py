"""
Pydantic schemas for nursery bulk import (CSV/Excel/JSON rows already parsed).

These schemas handle:
- Import requests with a user-defined column mapping
- Per-row resolution state
- Progress reporting while batches run
- Inventory rows handed to the writer on commit
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from vaxtlistan.schemas.catalog import Suggestion
from vaxtlistan.utils.text import sanitize_display_text

MAX_EXTRA_FIELDS = 30
MAX_EXTRA_KEY_LENGTH = 60
MAX_EXTRA_VALUE_LENGTH = 500


class ImportRowStatus(str, Enum):
    """Resolution states of an uploaded row."""

    PENDING = "pending"
    FOUND = "found"
    NOT_FOUND = "notFound"
    MANUAL = "manual"
    SKIP = "skip"


# =============================================================================
# Request Schemas
# =============================================================================


class ColumnMapping(BaseModel):
    """Which uploaded column feeds which inventory field."""

    name: str = Field(..., description="Column holding the plant name")
    comment: Optional[str] = Field(None, description="Column for the nursery's comment")
    pot: Optional[str] = Field(None, description="Column for pot size")
    height: Optional[str] = Field(None, description="Column for plant height")
    price: Optional[str] = Field(None, description="Column for price (SEK)")
    stock: Optional[str] = Field(None, description="Column for units in stock")
    extra: list[str] = Field(
        default_factory=list, description="Columns kept as nursery-defined extension fields"
    )


class ImportRequest(BaseModel):
    """Start resolving an uploaded dataset."""

    plantskola_id: int = Field(..., description="Nursery the rows belong to")
    mapping: ColumnMapping
    rows: list[dict[str, Any]] = Field(..., max_length=5000)


class SelectCandidateRequest(BaseModel):
    """User picks a catalog entry for a row."""

    entry_id: int


# =============================================================================
# Row State Schemas
# =============================================================================


class ImportRowState(BaseModel):
    """Resolution state of one uploaded row."""

    row_id: int
    raw: dict[str, Any] = Field(default_factory=dict)
    sanitized_name: str = ""
    status: ImportRowStatus = ImportRowStatus.PENDING
    selected_id: Optional[int] = None
    suggestions: list[Suggestion] = Field(default_factory=list)
    error: Optional[str] = None
    committed: bool = False


class ImportProgress(BaseModel):
    """Progress of batch processing."""

    batch_index: int = 0
    total_batches: int = 0
    rows_processed: int = 0
    total_rows: int = 0
    current_name: Optional[str] = None
    done: bool = False

    @property
    def percent(self) -> int:
        if not self.total_rows:
            return 100 if self.done else 0
        return int(self.rows_processed / self.total_rows * 100)


class ImportSummary(BaseModel):
    """Counts per status, plus the number of rows written on commit."""

    total: int = 0
    found: int = 0
    not_found: int = 0
    manual: int = 0
    skipped: int = 0
    pending: int = 0
    committed: int = 0


class ImportSessionResponse(BaseModel):
    """Snapshot of an import session."""

    session_id: str
    progress: ImportProgress
    summary: ImportSummary
    rows: list[ImportRowState] = Field(default_factory=list)
    ok: bool = True


# =============================================================================
# Inventory Schemas
# =============================================================================


class InventoryRow(BaseModel):
    """A nursery's stock listing (totallager insert payload)."""

    facit_id: int = Field(..., description="Resolved catalog entry")
    plantskola_id: int
    name_by_plantskola: Optional[str] = None
    description_by_plantskola: Optional[str] = None
    pot: Optional[str] = None
    height: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    hidden: bool = False
    extra_fields: dict[str, str] = Field(
        default_factory=dict, serialization_alias="own_columns"
    )

    @field_validator("extra_fields", mode="before")
    @classmethod
    def sanitize_extra_fields(cls, value):
        """Open key/value data, made display-safe and bounded."""
        if not value:
            return {}
        cleaned: dict[str, str] = {}
        for key, item in dict(value).items():
            clean_key = sanitize_display_text(key, MAX_EXTRA_KEY_LENGTH)
            if not clean_key:
                continue
            cleaned[clean_key] = sanitize_display_text(item, MAX_EXTRA_VALUE_LENGTH)
            if len(cleaned) >= MAX_EXTRA_FIELDS:
                break
        return cleaned
