"""
Import pipeline exception hierarchy.

Every stage of the MS Project pipeline raises one of these types so the
blueprint can register a single handler per type and callers can present
the message directly:

    ValidationError  — missing scope context; raised before any I/O
    ParseError       — malformed document or missing required structure
    LoadError        — a snapshot / usage read failed; nothing written yet
    WriteError       — a chunked write failed; earlier chunks stay committed
    StoreError       — a single structured-store call failed (adapter level)

Usage:
    from app.core.exceptions import ParseError, WriteError

    raise ParseError("Invalid XML. Please upload a valid MS Project XML file.")
    raise WriteError("msproject_task_details", cause=exc, chunk_index=2, chunk_count=3)
"""


class ImportPipelineError(Exception):
    """Base class for every error the import pipeline surfaces to callers.

    Args:
        message: Human-readable explanation, safe to show to the user.
        details: Optional structured breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ImportPipelineError):
    """Raised when the required scope context is missing or malformed.

    Checked before the file is read or the store is touched.
    """


class ParseError(ImportPipelineError):
    """Raised when the uploaded document cannot be turned into records.

    Covers malformed markup, unreadable workbooks and missing required
    column headers. Always raised before any write.
    """


class LoadError(ImportPipelineError):
    """Raised when reading the persisted snapshot (or usage rows) fails.

    No partial snapshot is ever used; the whole reconciliation aborts.
    """


class StoreError(ImportPipelineError):
    """Raised by a structured-store adapter when a single call fails.

    Args:
        message: Description of the failed call.
        table: Table the call targeted.
        operation: select | insert | update | delete.
    """

    def __init__(self, message: str, table: str | None = None, operation: str | None = None) -> None:
        self.table = table
        self.operation = operation
        super().__init__(message, details={"table": table, "operation": operation})


class WriteError(ImportPipelineError):
    """Raised when a chunked write fails.

    Chunks written before the failing one remain persisted; there is no
    compensating rollback. Re-running the reconciliation converges.

    Args:
        table: Table the write targeted.
        cause: Underlying error (usually a StoreError).
        chunk_index: 1-based index of the failing chunk.
        chunk_count: Total chunks planned for the write.
    """

    def __init__(
        self,
        table: str,
        cause: Exception | str | None = None,
        *,
        operation: str = "write",
        chunk_index: int | None = None,
        chunk_count: int | None = None,
    ) -> None:
        self.table = table
        self.cause = cause
        self.operation = operation
        self.chunk_index = chunk_index
        self.chunk_count = chunk_count
        reason = getattr(cause, "message", None) or (str(cause) if cause else "unknown error")
        msg = f"Failed {_GERUNDS.get(operation, operation)} {table}: {reason}"
        details = {"table": table, "operation": operation}
        if chunk_index is not None:
            details["chunk"] = f"{chunk_index}/{chunk_count}"
        super().__init__(msg, details=details)


_GERUNDS = {
    "insert": "inserting into",
    "update": "updating",
    "delete": "deleting from",
}
