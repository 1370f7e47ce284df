"""
Exception types raised by the plant-name resolution core

Lookup failures are caught by the callers (import batches, live search) and
surfaced as data; the HTTP layer maps the remaining ones in
middleware/error_handler.py.
"""


class CatalogLookupError(Exception):
    """The catalog or inventory store could not answer a query"""

    def __init__(self, message: str, *, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class SimilarityUnavailableError(CatalogLookupError):
    """The trigram-indexed similarity path cannot be used"""


class InvalidTransitionError(ValueError):
    """An import row was asked to move to a state it cannot reach"""

    def __init__(self, row_id: int, current: str, requested: str):
        super().__init__(
            f"Row {row_id} cannot go from '{current}' to '{requested}'"
        )
        self.row_id = row_id
        self.current = current
        self.requested = requested


class CommitInProgressError(RuntimeError):
    """A commit for the same import session is already running"""


class ImportSessionNotFoundError(KeyError):
    """No import session with the given id (expired or never created)"""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ImportRowNotFoundError(KeyError):
    """Row index outside the uploaded dataset"""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ImportNotReadyError(RuntimeError):
    """Commit requested before every row has been resolved"""


class ImportAlreadyCommittedError(RuntimeError):
    """The import session's rows have already been written"""
