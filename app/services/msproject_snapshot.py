"""
Snapshot loader — everything already stored for one organization/project.

Reads, in order:
  1. msproject_task_details       (scoped)
  2. msproject_resource_details   (scoped)
  3. msproject_assignments        (scoped)
  4. lessons_learned_metadata_list (by the ids collected from 1 + 2, chunked)
  5. msproject_task_predecessors  (scoped)

and indexes them by external UID and by metadata list id. Any failed read
raises LoadError; a partial snapshot is never returned.
"""

import logging
from dataclasses import dataclass, field

from app.core.exceptions import LoadError, StoreError
from app.models.lessons_learned import METADATA_SOURCE_MS_PROJECT_OLD, LessonsLearnedMetadataList
from app.models.msproject import (
    MsProjectAssignment,
    MsProjectResourceDetail,
    MsProjectTaskDetail,
    MsProjectTaskPredecessor,
)
from app.services.batch_writer import DEFAULT_CHUNK_SIZE, chunk_list
from app.services.helpers.structured_store import StructuredStore, eq, in_
from app.services.import_scope import ImportScope
from app.services.msproject_parser import PredecessorLink

logger = logging.getLogger(__name__)

TASK_DETAILS_TABLE = MsProjectTaskDetail.__tablename__
RESOURCE_DETAILS_TABLE = MsProjectResourceDetail.__tablename__
ASSIGNMENTS_TABLE = MsProjectAssignment.__tablename__
PREDECESSORS_TABLE = MsProjectTaskPredecessor.__tablename__
METADATA_LIST_TABLE = LessonsLearnedMetadataList.__tablename__

TASK_DETAIL_COLUMNS = (
    "id", "lessons_learned_metadata_list_id", "uid", "task_name", "wbs", "wbs_parent",
    "outline_level", "start", "finish", "duration", "percent_complete", "actual_start",
    "actual_finish", "fixed_cost", "notes", "predecessors", "baseline_start", "baseline_finish",
)
RESOURCE_DETAIL_COLUMNS = (
    "id", "lessons_learned_metadata_list_id", "uid", "row_id", "resource_name", "type",
    "max_units", "standard_rate",
)
ASSIGNMENT_COLUMNS = ("id", "uid", "task_uid", "resource_uid")
PREDECESSOR_COLUMNS = ("id", "lessons_learned_metadata_list_id", "predecessor_uid", "predecessor_type")
METADATA_COLUMNS = ("id", "metadata", "metadata_type", "metadata_source")


@dataclass
class SnapshotRecord:
    """A stored task/resource detail row and its metadata list row (if found)."""

    detail: dict
    metadata: dict | None = None

    @property
    def list_id(self):
        return self.detail.get("lessons_learned_metadata_list_id")


@dataclass
class Snapshot:
    task_details: list[dict] = field(default_factory=list)
    resource_details: list[dict] = field(default_factory=list)
    assignments: list[dict] = field(default_factory=list)
    predecessors: list[dict] = field(default_factory=list)
    metadata_by_id: dict[str, dict] = field(default_factory=dict)

    tasks_by_uid: dict[str, SnapshotRecord] = field(default_factory=dict)
    resources_by_uid: dict[str, SnapshotRecord] = field(default_factory=dict)
    assignments_by_uid: dict[str, dict] = field(default_factory=dict)
    assignments_without_uid: list[dict] = field(default_factory=list)
    predecessors_by_list_id: dict[str, list[PredecessorLink]] = field(default_factory=dict)

    def counts(self) -> dict:
        return {
            "tasks": len(self.task_details),
            "resources": len(self.resource_details),
            "assignments": len(self.assignments),
            "predecessors": len(self.predecessors),
            "archived_metadata": sum(
                1 for m in self.metadata_by_id.values()
                if m.get("metadata_source") == METADATA_SOURCE_MS_PROJECT_OLD
            ),
        }


def _key(value) -> str | None:
    return str(value) if value is not None and value != "" else None


def build_snapshot(
    task_details: list[dict],
    resource_details: list[dict],
    assignments: list[dict],
    predecessors: list[dict],
    metadata_rows: list[dict],
) -> Snapshot:
    """Index raw rows. Pure; later rows win on duplicate stored UIDs."""
    snap = Snapshot(
        task_details=list(task_details or []),
        resource_details=list(resource_details or []),
        assignments=list(assignments or []),
        predecessors=list(predecessors or []),
        metadata_by_id={str(r["id"]): r for r in metadata_rows or []},
    )

    for row in snap.predecessors:
        list_id = _key(row.get("lessons_learned_metadata_list_id"))
        if not list_id:
            continue
        snap.predecessors_by_list_id.setdefault(list_id, []).append(
            PredecessorLink(
                predecessor_uid=row.get("predecessor_uid") or None,
                predecessor_type=row.get("predecessor_type") or None,
            )
        )

    for rows, index in (
        (snap.task_details, snap.tasks_by_uid),
        (snap.resource_details, snap.resources_by_uid),
    ):
        for row in rows:
            uid = _key(row.get("uid"))
            if not uid:
                continue
            meta = snap.metadata_by_id.get(_key(row.get("lessons_learned_metadata_list_id")) or "")
            index[uid] = SnapshotRecord(detail=row, metadata=meta)

    for row in snap.assignments:
        uid = _key(row.get("uid"))
        if not uid:
            snap.assignments_without_uid.append(row)
            continue
        snap.assignments_by_uid[uid] = row

    return snap


def _scoped_select(store: StructuredStore, table: str, scope: ImportScope, columns, what: str) -> list[dict]:
    try:
        return store.select(
            table,
            [eq("organization_id", scope.organization_id), eq("project_id", scope.project_id)],
            columns=columns,
        )
    except StoreError as exc:
        raise LoadError(f"Failed loading {what}: {exc.message}", details={"table": table}) from exc


def fetch_metadata_rows_by_ids(
    store: StructuredStore,
    ids,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> list[dict]:
    """Batched ``in(id, ...)`` read of metadata list rows."""
    rows: list[dict] = []
    for chunk in chunk_list(list(ids), chunk_size):
        try:
            rows.extend(store.select(METADATA_LIST_TABLE, [in_("id", chunk)], columns=METADATA_COLUMNS))
        except StoreError as exc:
            raise LoadError(
                f"Failed loading metadata list rows: {exc.message}",
                details={"table": METADATA_LIST_TABLE},
            ) from exc
    return rows


def load_snapshot(
    store: StructuredStore,
    scope: ImportScope,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Snapshot:
    """Load and index the stored MS Project data for ``scope``.

    Raises:
        LoadError: any underlying read failed.
    """
    task_details = _scoped_select(store, TASK_DETAILS_TABLE, scope, TASK_DETAIL_COLUMNS, "task details")
    resource_details = _scoped_select(
        store, RESOURCE_DETAILS_TABLE, scope, RESOURCE_DETAIL_COLUMNS, "resource details",
    )
    assignments = _scoped_select(store, ASSIGNMENTS_TABLE, scope, ASSIGNMENT_COLUMNS, "assignments")

    metadata_ids = [
        r["lessons_learned_metadata_list_id"]
        for r in task_details + resource_details
        if r.get("lessons_learned_metadata_list_id") is not None
    ]
    metadata_rows = fetch_metadata_rows_by_ids(store, metadata_ids, chunk_size) if metadata_ids else []

    predecessors = _scoped_select(store, PREDECESSORS_TABLE, scope, PREDECESSOR_COLUMNS, "predecessor links")

    snap = build_snapshot(task_details, resource_details, assignments, predecessors, metadata_rows)
    logger.info(
        "Loaded MS Project snapshot: %d tasks, %d resources, %d assignments, %d predecessor links",
        len(task_details), len(resource_details), len(assignments), len(predecessors),
        extra=scope.log_extra(),
    )
    return snap
