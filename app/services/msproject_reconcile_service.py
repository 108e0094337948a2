"""
MS Project reconciliation service — differential update of a re-imported file.

Given a freshly parsed export and the rows already stored for one
organization/project, the engine:

    1. Update pass (tasks → resources → assignments)
         matched UID → field diff → single-row update when something differs
         task predecessor sets compared as sorted "uid|type" lists and
         replaced wholesale on any difference
         metadata label re-synced; archived sentinel restored to live
    2. Insert pass
         tasks:     metadata rows → detail rows → predecessor links
         resources: metadata rows → detail rows
         assignments directly
    3. Deletion / protection pass
         unseen task/resource whose metadata row is referenced → archived
         (rows already carrying the sentinel are left as they are)
         unseen and unreferenced → predecessors → details → metadata deleted
         unseen assignment → deleted by id

Writes are strictly sequential and independently committed; a failure
leaves earlier writes in place and re-running converges.

Usage:
    from app.services.msproject_reconcile_service import reconcile_msproject_file

    result = reconcile_msproject_file(store, content, context, file_name="plan.xml")
    result.summary_lines   # canonical human-readable report
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from app.core.exceptions import WriteError
from app.models.lessons_learned import (
    METADATA_SOURCE_MS_PROJECT,
    METADATA_SOURCE_MS_PROJECT_OLD,
    METADATA_TYPE_RESOURCE,
    METADATA_TYPE_TASK,
)
from app.services.batch_writer import DEFAULT_CHUNK_SIZE, BatchWriter, chunk_list
from app.services.helpers.structured_store import StructuredStore
from app.services.import_scope import ImportScope, resolve_import_scope
from app.services.msproject_parser import (
    ParsedProject,
    PredecessorLink,
    Resource,
    Task,
    parse_msproject_file,
)
from app.services.msproject_snapshot import (
    ASSIGNMENTS_TABLE,
    METADATA_LIST_TABLE,
    PREDECESSORS_TABLE,
    RESOURCE_DETAILS_TABLE,
    TASK_DETAILS_TABLE,
    Snapshot,
    SnapshotRecord,
    load_snapshot,
)
from app.services.msproject_summary import ReconcileSummary, build_summary_lines
from app.services.usage_guard import find_used_metadata_ids

logger = logging.getLogger(__name__)

LIST_ID = "lessons_learned_metadata_list_id"


# ═════════════════════════════════════════════════════════════════════════
# Pure classification
# ═════════════════════════════════════════════════════════════════════════


class RecordFate(enum.Enum):
    """Outcome for a stored task/resource after a re-import."""

    KEEP = "keep"
    ARCHIVE = "archive"
    DELETE = "delete"


def decide_fate(uid, list_id, seen_uids: set, used_ids: set) -> RecordFate:
    """Seen in the file → KEEP; unseen but referenced → ARCHIVE; else DELETE."""
    if uid is not None and str(uid) in seen_uids:
        return RecordFate.KEEP
    if list_id is not None and str(list_id) in used_ids:
        return RecordFate.ARCHIVE
    return RecordFate.DELETE


def coerce_comparable(value):
    """Normalize a value for equality checks.

    None and "" collapse to None. Booleans, numbers and strings are tagged
    so ``False``, ``0`` and ``"0"`` stay distinct.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (int, float)):
        return ("num", float(value))
    s = str(value).strip()
    if s == "":
        return None
    return ("str", s)


def values_equal(a, b) -> bool:
    return coerce_comparable(a) == coerce_comparable(b)


def diff_fields(existing_row: dict, fields: dict) -> tuple[dict, dict]:
    """Return ``(payload, changes)`` for every field whose value differs."""
    payload: dict = {}
    changes: dict = {}
    for name, next_value in fields.items():
        prev_value = existing_row.get(name)
        if not values_equal(prev_value, next_value):
            payload[name] = next_value
            changes[name] = {"from": prev_value, "to": next_value}
    return payload, changes


def normalize_link_list(links: Iterable[PredecessorLink] | None) -> list[str]:
    return sorted(link.key() for link in links or [])


def _link_labels(links: list[PredecessorLink]) -> list[str]:
    return [f"{l.predecessor_uid or ''}:{l.predecessor_type or ''}" for l in links]


@dataclass
class UidPartition:
    """First-UID-wins split of parsed records against stored ones."""

    matched: list[tuple] = field(default_factory=list)   # (record, stored)
    new: list = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    seen_uids: set = field(default_factory=set)


def partition_by_uid(items: Iterable, existing_by_uid: dict, name_attr: str | None = None) -> UidPartition:
    """Classify parsed records by UID.

    Records with no UID, or whose UID appeared earlier in the same file,
    are skipped. The rest are matched to a stored row or queued as new.
    """
    part = UidPartition()
    for item in items or []:
        if item is None or not item.uid:
            entry = {"reason": "missing uid"}
            if name_attr:
                entry[name_attr] = getattr(item, name_attr, None) if item is not None else None
            part.skipped.append(entry)
            continue
        uid = str(item.uid)
        if uid in part.seen_uids:
            part.skipped.append({"uid": uid, "reason": "duplicate uid"})
            continue
        part.seen_uids.add(uid)
        stored = existing_by_uid.get(uid)
        if stored is None:
            part.new.append(item)
        else:
            part.matched.append((item, stored))
    return part


def task_fields(task: Task) -> dict:
    return {
        "task_name": task.task_name or None,
        "wbs": task.wbs or None,
        "wbs_parent": task.wbs_parent or None,
        "outline_level": task.outline_level,
        "start": task.start or None,
        "finish": task.finish or None,
        "duration": task.duration or None,
        "percent_complete": task.percent_complete,
        "actual_start": task.actual_start or None,
        "actual_finish": task.actual_finish or None,
        "fixed_cost": task.fixed_cost,
        "notes": task.notes or None,
        "predecessors": bool(task.predecessors),
        "baseline_start": task.baseline_start or None,
        "baseline_finish": task.baseline_finish or None,
    }


def resource_fields(resource: Resource) -> dict:
    return {
        "row_id": resource.row_id or None,
        "resource_name": resource.resource_name or None,
        "type": resource.type or None,
        "max_units": resource.max_units,
        "standard_rate": resource.standard_rate,
    }


def metadata_patch(metadata: dict | None, label) -> dict:
    """Label re-sync plus sentinel restore for a matched record's metadata row."""
    if not metadata:
        return {}
    patch = {}
    if not values_equal(metadata.get("metadata"), label or None):
        patch["metadata"] = label or None
    if metadata.get("metadata_source") == METADATA_SOURCE_MS_PROJECT_OLD:
        patch["metadata_source"] = METADATA_SOURCE_MS_PROJECT
    return patch


# ═════════════════════════════════════════════════════════════════════════
# Result
# ═════════════════════════════════════════════════════════════════════════


@dataclass
class ReconcileResult:
    parsed: ParsedProject
    summary: ReconcileSummary
    summary_lines: list[str]

    def to_dict(self, include_records: bool = False) -> dict:
        return {
            "parsed": self.parsed.to_dict(include_records=include_records),
            "summary": self.summary.to_dict(),
            "summaryLines": self.summary_lines,
        }


# ═════════════════════════════════════════════════════════════════════════
# Engine
# ═════════════════════════════════════════════════════════════════════════


class MsProjectReconciler:
    """Applies one parsed file to the stored rows of one scope.

    Instances are single-use: construct, call :meth:`run`, read
    :attr:`summary`.
    """

    def __init__(
        self,
        store: StructuredStore,
        scope: ImportScope,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_progress: Callable[[str], None] | None = None,
    ):
        self.store = store
        self.scope = scope
        self.chunk_size = chunk_size
        self.on_progress = on_progress
        self.writer = BatchWriter(store, chunk_size=chunk_size, on_progress=on_progress)
        self.summary = ReconcileSummary()

    def _progress(self, message: str) -> None:
        if callable(self.on_progress):
            self.on_progress(message)

    def run(self, parsed: ParsedProject, snapshot: Snapshot) -> ReconcileSummary:
        self._progress("Updating task records...")
        tasks = partition_by_uid(parsed.tasks, snapshot.tasks_by_uid, name_attr="task_name")
        self.summary.skipped_tasks.extend(tasks.skipped)
        for task, record in tasks.matched:
            self._update_task(task, record, snapshot)

        self._progress("Updating resource records...")
        resources = partition_by_uid(parsed.resources, snapshot.resources_by_uid, name_attr="resource_name")
        self.summary.skipped_resources.extend(resources.skipped)
        for resource, record in resources.matched:
            self._update_resource(resource, record)

        self._progress("Updating assignment records...")
        assignments = partition_by_uid(parsed.assignments, snapshot.assignments_by_uid)
        self.summary.skipped_assignments.extend(assignments.skipped)
        for assignment, row in assignments.matched:
            self._update_assignment(assignment, row)

        self._progress("Inserting new items...")
        self._insert_tasks(tasks.new)
        self._insert_resources(resources.new)
        self._insert_assignments(assignments.new)

        self._progress("Deleting missing items...")
        self._remove_missing(snapshot, tasks.seen_uids, resources.seen_uids, assignments.seen_uids)

        if snapshot.assignments_without_uid:
            self.summary.notes.append(
                f"{len(snapshot.assignments_without_uid)} existing assignment rows had no UID "
                "and were left unchanged."
            )
        return self.summary

    # ── update pass ──────────────────────────────────────────────────────

    def _sync_metadata(self, record: SnapshotRecord, label, changes: dict) -> None:
        patch = metadata_patch(record.metadata, label)
        if not patch:
            return
        self.writer.update_one(METADATA_LIST_TABLE, patch, record.metadata["id"])
        if "metadata_source" in patch:
            changes["metadata_source"] = {
                "from": record.metadata.get("metadata_source"),
                "to": patch["metadata_source"],
            }
        if "metadata" in patch:
            changes["metadata"] = {"from": record.metadata.get("metadata"), "to": patch["metadata"]}

    def _update_task(self, task: Task, record: SnapshotRecord, snapshot: Snapshot) -> None:
        detail = record.detail
        payload, changes = diff_fields(detail, task_fields(task))

        list_id = record.list_id
        existing_links = snapshot.predecessors_by_list_id.get(str(list_id), [])
        next_links = task.predecessor_links or []
        links_changed = normalize_link_list(existing_links) != normalize_link_list(next_links)
        if links_changed:
            changes["predecessor_links"] = {
                "from": _link_labels(existing_links),
                "to": _link_labels(next_links),
            }
            payload["predecessors"] = len(next_links) > 0

        if payload:
            self.writer.update_one(TASK_DETAILS_TABLE, payload, detail["id"])

        if links_changed:
            self.writer.delete_where(PREDECESSORS_TABLE, LIST_ID, list_id)
            if next_links:
                self.writer.insert(
                    PREDECESSORS_TABLE,
                    self._predecessor_rows(detail["id"], list_id, next_links),
                    label="Saving predecessor links",
                )

        self._sync_metadata(record, task.task_name, changes)

        if changes:
            self.summary.updated_tasks.append({
                "uid": str(task.uid),
                "task_name": task.task_name or detail.get("task_name") or None,
                "changes": changes,
            })

    def _update_resource(self, resource: Resource, record: SnapshotRecord) -> None:
        detail = record.detail
        payload, changes = diff_fields(detail, resource_fields(resource))
        if payload:
            self.writer.update_one(RESOURCE_DETAILS_TABLE, payload, detail["id"])

        self._sync_metadata(record, resource.resource_name, changes)

        if changes:
            self.summary.updated_resources.append({
                "uid": str(resource.uid),
                "resource_name": resource.resource_name or detail.get("resource_name") or None,
                "changes": changes,
            })

    def _update_assignment(self, assignment, row: dict) -> None:
        payload, changes = diff_fields(row, {
            "task_uid": assignment.task_uid or None,
            "resource_uid": assignment.resource_uid or None,
        })
        if payload:
            self.writer.update_one(ASSIGNMENTS_TABLE, payload, row["id"])
            self.summary.updated_assignments.append({"uid": str(assignment.uid), "changes": changes})

    # ── insert pass ──────────────────────────────────────────────────────

    def _predecessor_rows(self, detail_id, list_id, links: list[PredecessorLink]) -> list[dict]:
        return [
            {
                "msproject_task_details_id": detail_id,
                LIST_ID: list_id,
                **self.scope.row_scope(),
                "predecessor_uid": link.predecessor_uid or None,
                "predecessor_type": link.predecessor_type or None,
            }
            for link in links
        ]

    def _insert_metadata(self, labels: list, metadata_type: str, label: str) -> list[dict]:
        rows = [
            {
                "metadata_source": METADATA_SOURCE_MS_PROJECT,
                "metadata": name or None,
                "metadata_type": metadata_type,
                "created_by": self.scope.created_by,
                **self.scope.row_scope(),
            }
            for name in labels
        ]
        inserted = self.writer.insert(METADATA_LIST_TABLE, rows, label=label)
        if len(inserted) != len(rows):
            raise WriteError(
                METADATA_LIST_TABLE,
                f"Unexpected mismatch inserting {metadata_type} metadata rows.",
                operation="insert",
            )
        return inserted

    def _insert_tasks(self, new_tasks: list[Task]) -> None:
        if not new_tasks:
            return
        metadata = self._insert_metadata(
            [t.task_name for t in new_tasks], METADATA_TYPE_TASK, "Saving task metadata",
        )
        detail_rows = [
            {
                LIST_ID: meta["id"],
                **self.scope.row_scope(),
                "created_by": self.scope.created_by,
                "uid": str(t.uid),
                **task_fields(t),
            }
            for t, meta in zip(new_tasks, metadata)
        ]
        details = self.writer.insert(TASK_DETAILS_TABLE, detail_rows, label="Saving task details")
        if len(details) != len(detail_rows):
            raise WriteError(
                TASK_DETAILS_TABLE, "Unexpected mismatch inserting task details rows.", operation="insert",
            )
        detail_id_by_list_id = {str(d[LIST_ID]): d["id"] for d in details}

        predecessor_rows = []
        for t, meta in zip(new_tasks, metadata):
            if t.predecessor_links:
                predecessor_rows.extend(self._predecessor_rows(
                    detail_id_by_list_id.get(str(meta["id"])), meta["id"], t.predecessor_links,
                ))
        if predecessor_rows:
            self.writer.insert(PREDECESSORS_TABLE, predecessor_rows, label="Saving predecessor links")

        self.summary.inserted_tasks.extend(
            {"uid": str(t.uid), "task_name": t.task_name or None} for t in new_tasks
        )

    def _insert_resources(self, new_resources: list[Resource]) -> None:
        if not new_resources:
            return
        metadata = self._insert_metadata(
            [r.resource_name for r in new_resources], METADATA_TYPE_RESOURCE, "Saving resource metadata",
        )
        detail_rows = [
            {
                LIST_ID: meta["id"],
                **self.scope.row_scope(),
                "created_by": self.scope.created_by,
                "uid": str(r.uid),
                **resource_fields(r),
            }
            for r, meta in zip(new_resources, metadata)
        ]
        self.writer.insert(RESOURCE_DETAILS_TABLE, detail_rows, label="Saving resource details")
        self.summary.inserted_resources.extend(
            {"uid": str(r.uid), "resource_name": r.resource_name or None} for r in new_resources
        )

    def _insert_assignments(self, new_assignments: list) -> None:
        if not new_assignments:
            return
        rows = [
            {
                **self.scope.row_scope(),
                "created_by": self.scope.created_by,
                "uid": str(a.uid),
                "task_uid": a.task_uid or None,
                "resource_uid": a.resource_uid or None,
            }
            for a in new_assignments
        ]
        self.writer.insert(ASSIGNMENTS_TABLE, rows, label="Saving assignments")
        self.summary.inserted_assignments.extend(
            {"uid": str(a.uid), "task_uid": a.task_uid or None, "resource_uid": a.resource_uid or None}
            for a in new_assignments
        )

    # ── deletion / protection pass ───────────────────────────────────────

    def _remove_missing(self, snapshot: Snapshot, task_uids: set, resource_uids: set, assignment_uids: set) -> None:
        missing_tasks = [r for r in snapshot.task_details if r.get("uid") and str(r["uid"]) not in task_uids]
        missing_resources = [
            r for r in snapshot.resource_details if r.get("uid") and str(r["uid"]) not in resource_uids
        ]
        missing_assignments = [
            r for r in snapshot.assignments if r.get("uid") and str(r["uid"]) not in assignment_uids
        ]

        candidate_ids = [
            r[LIST_ID] for r in missing_tasks + missing_resources if r.get(LIST_ID) is not None
        ]
        used_ids = (
            find_used_metadata_ids(self.store, candidate_ids, self.scope, self.chunk_size)
            if candidate_ids else set()
        )

        protected_tasks, deletable_tasks = self._split_by_fate(missing_tasks, task_uids, used_ids)
        protected_resources, deletable_resources = self._split_by_fate(
            missing_resources, resource_uids, used_ids,
        )
        # Rows archived by an earlier run need no further write.
        protected_tasks = [r for r in protected_tasks if not self._already_archived(r, snapshot)]
        protected_resources = [r for r in protected_resources if not self._already_archived(r, snapshot)]

        if protected_tasks or protected_resources:
            protect_ids = [
                r[LIST_ID] for r in protected_tasks + protected_resources if r.get(LIST_ID) is not None
            ]
            logger.warning(
                "Archiving %d tasks and %d resources still referenced by lessons learned",
                len(protected_tasks), len(protected_resources),
                extra=self.scope.log_extra(),
            )
            self.writer.update_in(
                METADATA_LIST_TABLE, {"metadata_source": METADATA_SOURCE_MS_PROJECT_OLD}, "id", protect_ids,
            )
            self.summary.kept_old_tasks.extend(
                {"uid": str(r["uid"]), "task_name": r.get("task_name") or None} for r in protected_tasks
            )
            self.summary.kept_old_resources.extend(
                {"uid": str(r["uid"]), "resource_name": r.get("resource_name") or None}
                for r in protected_resources
            )

        if deletable_tasks:
            self._delete_owned(deletable_tasks, (PREDECESSORS_TABLE, TASK_DETAILS_TABLE))
            self.summary.deleted_tasks.extend(
                {"uid": str(r["uid"]), "task_name": r.get("task_name") or None} for r in deletable_tasks
            )

        if deletable_resources:
            self._delete_owned(deletable_resources, (RESOURCE_DETAILS_TABLE,))
            self.summary.deleted_resources.extend(
                {"uid": str(r["uid"]), "resource_name": r.get("resource_name") or None}
                for r in deletable_resources
            )

        if missing_assignments:
            ids = [r["id"] for r in missing_assignments if r.get("id") is not None]
            deleted = self.writer.delete_in(ASSIGNMENTS_TABLE, "id", ids)
            self.summary.deleted_assignments.extend({"uid": str(r["uid"])} for r in missing_assignments)
            if len(deleted) != len(missing_assignments):
                self.summary.notes.append("Some assignments could not be deleted (row count mismatch).")

    @staticmethod
    def _already_archived(row: dict, snapshot: Snapshot) -> bool:
        metadata = snapshot.metadata_by_id.get(str(row.get(LIST_ID)))
        return bool(metadata) and metadata.get("metadata_source") == METADATA_SOURCE_MS_PROJECT_OLD

    @staticmethod
    def _split_by_fate(rows: list[dict], seen_uids: set, used_ids: set) -> tuple[list, list]:
        protected, deletable = [], []
        for row in rows:
            fate = decide_fate(row.get("uid"), row.get(LIST_ID), seen_uids, used_ids)
            if fate is RecordFate.ARCHIVE:
                protected.append(row)
            elif fate is RecordFate.DELETE:
                deletable.append(row)
        return protected, deletable

    def _delete_owned(self, rows: list[dict], child_tables: tuple) -> None:
        """Delete child rows by metadata list id, then the metadata rows, chunk by chunk."""
        list_ids = [r[LIST_ID] for r in rows if r.get(LIST_ID) is not None]
        for chunk in chunk_list(list_ids, self.chunk_size):
            for table in child_tables:
                self.writer.delete_in(table, LIST_ID, chunk)
            self.writer.delete_in(METADATA_LIST_TABLE, "id", chunk)


def reconcile_msproject_file(
    store: StructuredStore,
    content,
    context,
    *,
    file_name: str | None = None,
    on_progress: Callable[[str], None] | None = None,
    chunk_size: int | None = None,
) -> ReconcileResult:
    """Parse ``content`` and reconcile it against the stored rows of ``context``.

    Args:
        store: Structured store the rows live in.
        content: Raw file bytes or text (XML or XLSX).
        context: ``organization_id``, ``project_id``, ``project_type_id``,
            ``created_by`` (dict or ImportScope).
        file_name: Used for format dispatch and the summary header.
        on_progress: Optional sink for human-readable status strings.
        chunk_size: Batch size for writes and ``in(...)`` reads.

    Raises:
        ValidationError: context incomplete (before any I/O).
        ParseError: document unreadable (before any write).
        LoadError: snapshot or usage read failed.
        WriteError: a write failed; earlier writes stay committed.
    """
    scope = resolve_import_scope(context)
    chunk_size = chunk_size or DEFAULT_CHUNK_SIZE
    log_extra = {**scope.log_extra(), "file_name": file_name}

    parsed = parse_msproject_file(content, file_name)

    if callable(on_progress):
        on_progress("Loading existing records...")
    snapshot = load_snapshot(store, scope, chunk_size)

    reconciler = MsProjectReconciler(store, scope, chunk_size=chunk_size, on_progress=on_progress)
    try:
        summary = reconciler.run(parsed, snapshot)
    except WriteError as exc:
        logger.error("MS Project reconciliation aborted: %s", exc.message, extra=log_extra)
        raise

    lines = build_summary_lines(summary, file_name)
    logger.info(
        "MS Project reconciliation complete: tasks +%d ~%d -%d kept %d, resources +%d ~%d -%d kept %d, "
        "assignments +%d ~%d -%d",
        len(summary.inserted_tasks), len(summary.updated_tasks),
        len(summary.deleted_tasks), len(summary.kept_old_tasks),
        len(summary.inserted_resources), len(summary.updated_resources),
        len(summary.deleted_resources), len(summary.kept_old_resources),
        len(summary.inserted_assignments), len(summary.updated_assignments),
        len(summary.deleted_assignments),
        extra=log_extra,
    )
    return ReconcileResult(parsed=parsed, summary=summary, summary_lines=lines)
