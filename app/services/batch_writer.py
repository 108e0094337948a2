"""
Batch writer — chunked, strictly sequential writes against a StructuredStore.

Rules:
  - Rows are split into consecutive chunks of at most ``chunk_size``.
  - One store call per chunk, in order; the next chunk is only issued once
    the previous one has returned. No parallel chunks.
  - The first failing chunk raises WriteError naming the table. Chunks
    already written stay written (no compensating rollback).
  - ``on_progress`` (optional) receives ``"<label> (N/M)..."`` before each
    chunk.

The same chunking discipline bounds ``in(...)`` filter lists for updates,
deletes and batched reads, since the store limits filter-list size.
"""

import logging
from typing import Callable, Sequence

from app.core.exceptions import StoreError, WriteError
from app.services.helpers.structured_store import StructuredStore, eq, in_

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 250

_OPERATIONS = ("insert", "update", "delete")


def chunk_list(items: Sequence, size: int | None) -> list[list]:
    """Split ``items`` into consecutive chunks of at most ``size`` (min 1)."""
    if not items:
        return []
    try:
        n = max(1, int(size or 1))
    except (TypeError, ValueError):
        n = 1
    items = list(items)
    return [items[i:i + n] for i in range(0, len(items), n)]


class BatchWriter:
    """Issues chunked insert/update/delete calls and aggregates the returned rows."""

    def __init__(
        self,
        store: StructuredStore,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_progress: Callable[[str], None] | None = None,
    ):
        self.store = store
        self.chunk_size = chunk_size
        self.on_progress = on_progress

    def _progress(self, message: str) -> None:
        if callable(self.on_progress):
            self.on_progress(message)

    def write(
        self,
        operation: str,
        table: str,
        rows: Sequence,
        *,
        column: str = "id",
        patch: dict | None = None,
        label: str | None = None,
        chunk_size: int | None = None,
    ) -> list[dict]:
        """Write ``rows`` to ``table`` chunk by chunk.

        For ``insert`` the rows are row dicts. For ``update`` and ``delete``
        they are key values matched with ``in(column, chunk)``; ``update``
        applies the same ``patch`` to every matched row.
        """
        if operation not in _OPERATIONS:
            raise ValueError(f"Unsupported batch operation {operation!r}")
        if operation == "update" and not patch:
            raise ValueError("update requires a non-empty patch")

        chunks = chunk_list(rows, chunk_size or self.chunk_size)
        written: list[dict] = []
        for idx, chunk in enumerate(chunks, start=1):
            if label:
                self._progress(f"{label} ({idx}/{len(chunks)})...")
            try:
                if operation == "insert":
                    result = self.store.insert(table, chunk)
                elif operation == "update":
                    result = self.store.update(table, patch, [in_(column, chunk)])
                else:
                    result = self.store.delete(table, [in_(column, chunk)])
            except StoreError as exc:
                logger.error(
                    "Batch %s on %s failed at chunk %d/%d: %s",
                    operation, table, idx, len(chunks), exc.message,
                )
                raise WriteError(
                    table, exc, operation=operation, chunk_index=idx, chunk_count=len(chunks),
                ) from exc
            written.extend(result or [])
            logger.debug("Batch %s on %s chunk %d/%d: %d rows", operation, table, idx, len(chunks), len(chunk))
        return written

    # ── conveniences ─────────────────────────────────────────────────────

    def insert(self, table: str, rows: Sequence[dict], label: str | None = None) -> list[dict]:
        return self.write("insert", table, rows, label=label)

    def update_in(self, table: str, patch: dict, column: str, values: Sequence, label: str | None = None) -> list[dict]:
        return self.write("update", table, values, column=column, patch=patch, label=label)

    def delete_in(self, table: str, column: str, values: Sequence, label: str | None = None) -> list[dict]:
        return self.write("delete", table, values, column=column, label=label)

    def update_one(self, table: str, patch: dict, row_id) -> list[dict]:
        """Patch a single row by id (no chunking, same error translation)."""
        try:
            return self.store.update(table, patch, [eq("id", row_id)])
        except StoreError as exc:
            raise WriteError(table, exc, operation="update") from exc

    def delete_where(self, table: str, column: str, value) -> list[dict]:
        """Delete every row whose ``column`` equals ``value``."""
        try:
            return self.store.delete(table, [eq(column, value)])
        except StoreError as exc:
            raise WriteError(table, exc, operation="delete") from exc
