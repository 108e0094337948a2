"""
Tests for SqlAlchemyStore (the StructuredStore adapter).
"""

import pytest

from app.core.exceptions import StoreError
from app.models.lessons_learned import LessonsLearnedMetadataList
from app.services.helpers.structured_store import eq, in_, is_null

TABLE = LessonsLearnedMetadataList.__tablename__


def _meta(scope, label, source="ms project"):
    return {
        **scope.row_scope(),
        "metadata_source": source,
        "metadata": label,
        "metadata_type": "task",
        "created_by": scope.created_by,
    }


class TestSqlAlchemyStore:
    def test_insert_returns_generated_ids(self, scope, store):
        rows = store.insert(TABLE, [_meta(scope, "A"), _meta(scope, "B")])
        assert [r["metadata"] for r in rows] == ["A", "B"]
        assert rows[0]["id"] < rows[1]["id"]

    def test_select_filters_and_columns(self, scope, store):
        store.insert(TABLE, [_meta(scope, "A"), _meta(scope, "B", source="ms project - old")])
        rows = store.select(
            TABLE,
            [eq("project_id", scope.project_id), eq("metadata_source", "ms project - old")],
            columns=["id", "metadata"],
        )
        assert len(rows) == 1
        assert set(rows[0]) == {"id", "metadata"}
        assert rows[0]["metadata"] == "B"

    def test_in_and_is_null(self, scope, store):
        inserted = store.insert(TABLE, [_meta(scope, "A"), _meta(scope, None), _meta(scope, "C")])
        ids = [r["id"] for r in inserted]
        assert len(store.select(TABLE, [in_("id", ids[:2])])) == 2
        nulls = store.select(TABLE, [is_null("metadata")])
        assert [r["id"] for r in nulls] == [ids[1]]

    def test_update_returns_rows(self, scope, store):
        row = store.insert(TABLE, [_meta(scope, "A")])[0]
        updated = store.update(TABLE, {"metadata": "A2"}, [eq("id", row["id"])])
        assert updated[0]["metadata"] == "A2"
        assert store.select(TABLE, [eq("id", row["id"])])[0]["metadata"] == "A2"

    def test_delete_returns_rows(self, scope, store):
        row = store.insert(TABLE, [_meta(scope, "A")])[0]
        deleted = store.delete(TABLE, [eq("id", row["id"])])
        assert [r["id"] for r in deleted] == [row["id"]]
        assert store.select(TABLE) == []

    def test_unfiltered_delete_refused(self, store):
        with pytest.raises(StoreError, match="unfiltered"):
            store.delete(TABLE, [])

    def test_unknown_table(self, store):
        with pytest.raises(StoreError, match="Unknown table"):
            store.select("nope")

    def test_unknown_column(self, store):
        with pytest.raises(StoreError, match="no column"):
            store.select(TABLE, [eq("bogus", 1)])

    def test_database_error_becomes_store_error(self, scope, store):
        bad = _meta(scope, "A")
        bad["project_id"] = None  # NOT NULL
        with pytest.raises(StoreError) as exc_info:
            store.insert(TABLE, [bad])
        assert exc_info.value.table == TABLE
        assert exc_info.value.operation == "insert"
        # Session usable after the rollback.
        assert store.select(TABLE) == []
