"""
Structured store — the minimal table-level interface the import pipeline
talks to.

The pipeline uses four verbs (select, insert, update, delete) and three
filter predicates (eq, in, is null). It builds no ORM queries of its own.

Contract:
  - Every method returns a list of plain row dicts (column name → value).
  - A failed call raises StoreError; nothing else escapes.
  - Each call is committed on its own. There is no transaction spanning
    two calls, so callers must order their writes (children before parents
    on delete, parents before children on insert).

Usage:
    store = SqlAlchemyStore()
    rows = store.select("msproject_task_details", [eq("organization_id", 1), eq("project_id", 7)])
    store.update("lessons_learned_metadata_list", {"metadata_source": "ms project - old"},
                 [in_("id", [3, 4])])
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from sqlalchemy import delete as sa_delete
from sqlalchemy import insert as sa_insert
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import StoreError
from app.models import db

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
# Filter predicates
# ═════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Filter:
    """A single column predicate: eq | in | is (null)."""

    op: str
    column: str
    value: Any = None


def eq(column: str, value: Any) -> Filter:
    return Filter("eq", column, value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter("in", column, tuple(values))


def is_null(column: str) -> Filter:
    return Filter("is", column, None)


# ═════════════════════════════════════════════════════════════════════════
# Interface
# ═════════════════════════════════════════════════════════════════════════


class StructuredStore:
    """Abstract table store. Subclasses implement the four verbs."""

    def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: Sequence[str] | None = None,
    ) -> list[dict]:
        raise NotImplementedError

    def insert(self, table: str, rows: Sequence[dict]) -> list[dict]:
        raise NotImplementedError

    def update(self, table: str, patch: dict, filters: Sequence[Filter]) -> list[dict]:
        raise NotImplementedError

    def delete(self, table: str, filters: Sequence[Filter]) -> list[dict]:
        raise NotImplementedError


# ═════════════════════════════════════════════════════════════════════════
# SQLAlchemy implementation
# ═════════════════════════════════════════════════════════════════════════


class SqlAlchemyStore(StructuredStore):
    """StructuredStore over SQLAlchemy Core tables registered on ``db.metadata``.

    Each call runs in its own transaction: commit on success, rollback and
    StoreError on failure.
    """

    def __init__(self, session=None, metadata=None):
        self.session = session if session is not None else db.session
        self.metadata = metadata if metadata is not None else db.metadata

    # ── helpers ──────────────────────────────────────────────────────────

    def _table(self, name: str, operation: str):
        table = self.metadata.tables.get(name)
        if table is None:
            raise StoreError(f"Unknown table {name!r}", table=name, operation=operation)
        return table

    def _column(self, table, name: str, operation: str):
        if name not in table.c:
            raise StoreError(
                f"Table {table.name!r} has no column {name!r}",
                table=table.name,
                operation=operation,
            )
        return table.c[name]

    def _where(self, table, filters: Sequence[Filter], operation: str) -> list:
        clauses = []
        for f in filters:
            col = self._column(table, f.column, operation)
            if f.op == "eq":
                clauses.append(col == f.value)
            elif f.op == "in":
                clauses.append(col.in_(list(f.value)))
            elif f.op == "is":
                clauses.append(col.is_(None))
            else:
                raise StoreError(f"Unsupported filter op {f.op!r}", table=table.name, operation=operation)
        return clauses

    def _run(self, table_name: str, operation: str, stmt, params=None) -> list[dict]:
        try:
            if params is None:
                result = self.session.execute(stmt)
            else:
                result = self.session.execute(stmt, params)
            rows = [dict(r._mapping) for r in result]
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            reason = str(getattr(exc, "orig", None) or exc)
            logger.warning("Store %s on %s failed: %s", operation, table_name, reason)
            raise StoreError(reason, table=table_name, operation=operation) from exc
        return rows

    # ── verbs ────────────────────────────────────────────────────────────

    def select(self, table, filters=(), columns=None):
        t = self._table(table, "select")
        cols = [self._column(t, c, "select") for c in columns] if columns else list(t.c)
        stmt = sa_select(*cols).where(*self._where(t, filters, "select"))
        if "id" in t.c:
            stmt = stmt.order_by(t.c.id)
        return self._run(table, "select", stmt)

    def insert(self, table, rows):
        if not rows:
            return []
        t = self._table(table, "insert")
        for key in rows[0]:
            self._column(t, key, "insert")
        stmt = sa_insert(t).returning(*t.c, sort_by_parameter_order=True)
        return self._run(table, "insert", stmt, [dict(r) for r in rows])

    def update(self, table, patch, filters):
        t = self._table(table, "update")
        if not filters:
            raise StoreError("Refusing unfiltered update", table=table, operation="update")
        values = {self._column(t, k, "update").name: v for k, v in patch.items()}
        stmt = (
            sa_update(t)
            .where(*self._where(t, filters, "update"))
            .values(values)
            .returning(*t.c)
        )
        return self._run(table, "update", stmt)

    def delete(self, table, filters):
        t = self._table(table, "delete")
        if not filters:
            raise StoreError("Refusing unfiltered delete", table=table, operation="delete")
        stmt = sa_delete(t).where(*self._where(t, filters, "delete")).returning(*t.c)
        return self._run(table, "delete", stmt)
