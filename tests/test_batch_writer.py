"""
Tests for the chunked batch writer.

Covers:
  - chunk_list boundaries
  - 600 rows / chunk 250 → three sequential inserts (250, 250, 100)
  - progress labels "<label> (N/M)..."
  - first failing chunk raises WriteError; earlier chunks stay persisted
  - update / delete through in(...) chunks
"""

import pytest

from app.core.exceptions import WriteError
from app.models import db
from app.models.msproject import MsProjectAssignment
from app.services.batch_writer import BatchWriter, chunk_list

TABLE = MsProjectAssignment.__tablename__


def _rows(scope, n):
    return [
        {
            **scope.row_scope(),
            "created_by": scope.created_by,
            "uid": str(i),
            "task_uid": str(i),
            "resource_uid": "1",
        }
        for i in range(1, n + 1)
    ]


class TestChunkList:
    def test_split(self):
        assert chunk_list([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert chunk_list([], 10) == []

    def test_minimum_size_one(self):
        assert chunk_list([1, 2], 0) == [[1], [2]]


class TestInsert:
    def test_600_rows_three_calls(self, scope, recording_store):
        writer = BatchWriter(recording_store, chunk_size=250)
        written = writer.insert(TABLE, _rows(scope, 600))

        assert [c[2] for c in recording_store.calls_for("insert", TABLE)] == [250, 250, 100]
        assert len(written) == 600
        assert MsProjectAssignment.query.count() == 600

    def test_returned_rows_keep_input_order(self, scope, store):
        written = BatchWriter(store, chunk_size=2).insert(TABLE, _rows(scope, 5))
        assert [r["uid"] for r in written] == ["1", "2", "3", "4", "5"]
        assert all(r["id"] for r in written)

    def test_progress_labels(self, scope, store):
        messages = []
        writer = BatchWriter(store, chunk_size=2, on_progress=messages.append)
        writer.insert(TABLE, _rows(scope, 5), label="Saving assignments")
        assert messages == [
            "Saving assignments (1/3)...",
            "Saving assignments (2/3)...",
            "Saving assignments (3/3)...",
        ]

    def test_failure_keeps_earlier_chunks(self, scope, recording_store_factory):
        store = recording_store_factory({("insert", TABLE): 2})
        writer = BatchWriter(store, chunk_size=250)

        with pytest.raises(WriteError) as exc_info:
            writer.insert(TABLE, _rows(scope, 600))

        err = exc_info.value
        assert err.table == TABLE
        assert err.message.startswith(f"Failed inserting into {TABLE}:")
        assert err.details["chunk"] == "2/3"
        # Third chunk never issued; first chunk committed.
        assert len(store.calls_for("insert", TABLE)) == 2
        db.session.expire_all()
        assert MsProjectAssignment.query.count() == 250

    def test_empty_rows_no_call(self, recording_store):
        assert BatchWriter(recording_store).insert(TABLE, []) == []
        assert recording_store.calls == []


class TestUpdateDelete:
    def test_update_in_chunks(self, scope, recording_store):
        writer = BatchWriter(recording_store, chunk_size=2)
        ids = [r["id"] for r in writer.insert(TABLE, _rows(scope, 5))]

        updated = writer.update_in(TABLE, {"resource_uid": "9"}, "id", ids)

        assert len(updated) == 5
        assert len(recording_store.calls_for("update", TABLE)) == 3
        assert {a.resource_uid for a in MsProjectAssignment.query.all()} == {"9"}

    def test_delete_in_chunks(self, scope, store):
        writer = BatchWriter(store, chunk_size=2)
        ids = [r["id"] for r in writer.insert(TABLE, _rows(scope, 3))]
        deleted = writer.delete_in(TABLE, "id", ids[:2])
        assert len(deleted) == 2
        assert MsProjectAssignment.query.count() == 1

    def test_update_requires_patch(self, store):
        with pytest.raises(ValueError):
            BatchWriter(store).write("update", TABLE, [1], patch={})

    def test_unknown_operation(self, store):
        with pytest.raises(ValueError):
            BatchWriter(store).write("upsert", TABLE, [1])

    def test_update_one_translates_store_error(self, store):
        with pytest.raises(WriteError, match="Failed updating"):
            BatchWriter(store).update_one(TABLE, {"no_such_column": 1}, 1)
