"""
Tests for the snapshot loader and the usage guard.

Covers:
  - build_snapshot indexes by UID / list id and separates UID-less assignments
  - load_snapshot reads only the requested organization/project
  - read failures surface as LoadError
  - find_used_metadata_ids returns referenced ids only, scoped, batched
"""

import pytest

from app.core.exceptions import LoadError
from app.models.lessons_learned import LessonsLearnedMetadata
from app.services.msproject_snapshot import (
    ASSIGNMENTS_TABLE,
    METADATA_LIST_TABLE,
    PREDECESSORS_TABLE,
    RESOURCE_DETAILS_TABLE,
    TASK_DETAILS_TABLE,
    build_snapshot,
    load_snapshot,
)
from app.services.usage_guard import USAGE_TABLE, find_used_metadata_ids


def _seed_task(store, scope, uid, name, links=(), source="ms project"):
    meta = store.insert(METADATA_LIST_TABLE, [{
        **scope.row_scope(),
        "metadata_source": source,
        "metadata": name,
        "metadata_type": "task",
        "created_by": scope.created_by,
    }])[0]
    detail = store.insert(TASK_DETAILS_TABLE, [{
        **scope.row_scope(),
        "lessons_learned_metadata_list_id": meta["id"],
        "created_by": scope.created_by,
        "uid": uid,
        "task_name": name,
        "predecessors": bool(links),
    }])[0]
    if links:
        store.insert(PREDECESSORS_TABLE, [
            {
                **scope.row_scope(),
                "msproject_task_details_id": detail["id"],
                "lessons_learned_metadata_list_id": meta["id"],
                "predecessor_uid": p_uid,
                "predecessor_type": p_type,
            }
            for p_uid, p_type in links
        ])
    return meta, detail


def _seed_resource(store, scope, uid, name):
    meta = store.insert(METADATA_LIST_TABLE, [{
        **scope.row_scope(),
        "metadata_source": "ms project",
        "metadata": name,
        "metadata_type": "resource",
    }])[0]
    store.insert(RESOURCE_DETAILS_TABLE, [{
        **scope.row_scope(),
        "lessons_learned_metadata_list_id": meta["id"],
        "uid": uid,
        "resource_name": name,
    }])
    return meta


def _mark_used(store, scope, list_id):
    store.insert(USAGE_TABLE, [{
        **scope.row_scope(),
        "lessons_learned_metadata_list_id": list_id,
        "lesson": "Order long-lead items early",
    }])


class TestBuildSnapshot:
    def test_indexes(self):
        snap = build_snapshot(
            task_details=[{"id": 1, "uid": "10", "lessons_learned_metadata_list_id": 5}],
            resource_details=[{"id": 2, "uid": "20", "lessons_learned_metadata_list_id": 6}],
            assignments=[{"id": 3, "uid": "30"}, {"id": 4, "uid": None}],
            predecessors=[
                {"id": 7, "lessons_learned_metadata_list_id": 5, "predecessor_uid": "9", "predecessor_type": "1"},
            ],
            metadata_rows=[{"id": 5, "metadata": "Design"}, {"id": 6, "metadata": "Crane"}],
        )
        assert snap.tasks_by_uid["10"].metadata["metadata"] == "Design"
        assert snap.tasks_by_uid["10"].list_id == 5
        assert snap.resources_by_uid["20"].metadata["metadata"] == "Crane"
        assert set(snap.assignments_by_uid) == {"30"}
        assert [r["id"] for r in snap.assignments_without_uid] == [4]
        assert [l.key() for l in snap.predecessors_by_list_id["5"]] == ["9|1"]

    def test_missing_metadata_row_tolerated(self):
        snap = build_snapshot([{"id": 1, "uid": "1", "lessons_learned_metadata_list_id": 99}], [], [], [], [])
        assert snap.tasks_by_uid["1"].metadata is None


class TestLoadSnapshot:
    def test_scoped_load(self, scope, scope_factory, store):
        other = scope_factory(name="Other", slug="other")
        meta, _ = _seed_task(store, scope, "1", "Design", links=[("2", "1")])
        _seed_task(store, scope, "2", "Build", source="ms project - old")
        _seed_resource(store, scope, "7", "Crane")
        _seed_task(store, other, "1", "Foreign task")
        store.insert(ASSIGNMENTS_TABLE, [
            {**scope.row_scope(), "uid": "100", "task_uid": "1", "resource_uid": "7"},
            {**scope.row_scope(), "uid": None, "task_uid": "2", "resource_uid": "7"},
        ])

        snap = load_snapshot(store, scope, chunk_size=1)

        assert set(snap.tasks_by_uid) == {"1", "2"}
        assert snap.tasks_by_uid["1"].detail["task_name"] == "Design"
        assert snap.tasks_by_uid["1"].metadata["id"] == meta["id"]
        assert set(snap.resources_by_uid) == {"7"}
        assert set(snap.assignments_by_uid) == {"100"}
        assert len(snap.assignments_without_uid) == 1
        assert [l.key() for l in snap.predecessors_by_list_id[str(meta["id"])]] == ["2|1"]
        assert snap.counts() == {
            "tasks": 2,
            "resources": 1,
            "assignments": 2,
            "predecessors": 1,
            "archived_metadata": 1,
        }

    def test_metadata_read_chunked(self, scope, recording_store):
        for uid in ("1", "2", "3"):
            _seed_task(recording_store, scope, uid, f"Task {uid}")
        recording_store.calls.clear()

        load_snapshot(recording_store, scope, chunk_size=2)

        tables = [c[1] for c in recording_store.calls_for("select")]
        assert tables == [
            TASK_DETAILS_TABLE,
            RESOURCE_DETAILS_TABLE,
            ASSIGNMENTS_TABLE,
            METADATA_LIST_TABLE,
            METADATA_LIST_TABLE,
            PREDECESSORS_TABLE,
        ]

    def test_read_failure_is_load_error(self, scope, recording_store_factory):
        store = recording_store_factory({("select", ASSIGNMENTS_TABLE): 1})
        with pytest.raises(LoadError, match="Failed loading assignments"):
            load_snapshot(store, scope)


class TestUsageGuard:
    def test_returns_referenced_ids_as_strings(self, scope, store):
        used, _ = _seed_task(store, scope, "1", "Design")
        unused, _ = _seed_task(store, scope, "2", "Build")
        _mark_used(store, scope, used["id"])

        result = find_used_metadata_ids(store, [used["id"], unused["id"]], scope)

        assert result == {str(used["id"])}

    def test_scoped_to_project(self, scope, scope_factory, store):
        other = scope_factory(name="Other", slug="other")
        meta, _ = _seed_task(store, scope, "1", "Design")
        _mark_used(store, other, meta["id"])
        assert find_used_metadata_ids(store, [meta["id"]], scope) == set()

    def test_batched(self, scope, recording_store):
        ids = [_seed_task(recording_store, scope, str(i), f"T{i}")[0]["id"] for i in range(5)]
        recording_store.calls.clear()
        find_used_metadata_ids(recording_store, ids, scope, chunk_size=2)
        assert len(recording_store.calls_for("select", USAGE_TABLE)) == 3

    def test_empty_candidates_no_reads(self, scope, recording_store):
        assert find_used_metadata_ids(recording_store, [], scope) == set()
        assert recording_store.calls == []

    def test_failure_is_load_error(self, scope, recording_store_factory):
        store = recording_store_factory({("select", USAGE_TABLE): 1})
        with pytest.raises(LoadError, match="Failed checking metadata usage"):
            find_used_metadata_ids(store, [1], scope)


def test_usage_table_is_lessons_learned_metadata():
    assert USAGE_TABLE == LessonsLearnedMetadata.__tablename__
