"""
Change summary for an MS Project update run.

``ReconcileSummary`` collects per-record outcomes while the engine runs;
``build_summary_lines`` renders the canonical human-readable report.
Ordering is fixed so the report is stable for tests and diffs:

    header
    Tasks / Resources / Assignments count lines
    task sections:       updated → new → deleted → kept
    resource sections:   updated → new → deleted → kept
    assignment sections: updated → new → deleted
    notes

Each detail section lists at most ``DETAIL_LIMIT`` entries followed by
"...and N more".
"""

from dataclasses import dataclass, field

from app.models.lessons_learned import METADATA_SOURCE_MS_PROJECT_OLD

DETAIL_LIMIT = 25


@dataclass
class ReconcileSummary:
    updated_tasks: list[dict] = field(default_factory=list)
    inserted_tasks: list[dict] = field(default_factory=list)
    deleted_tasks: list[dict] = field(default_factory=list)
    kept_old_tasks: list[dict] = field(default_factory=list)
    skipped_tasks: list[dict] = field(default_factory=list)

    updated_resources: list[dict] = field(default_factory=list)
    inserted_resources: list[dict] = field(default_factory=list)
    deleted_resources: list[dict] = field(default_factory=list)
    kept_old_resources: list[dict] = field(default_factory=list)
    skipped_resources: list[dict] = field(default_factory=list)

    updated_assignments: list[dict] = field(default_factory=list)
    inserted_assignments: list[dict] = field(default_factory=list)
    deleted_assignments: list[dict] = field(default_factory=list)
    skipped_assignments: list[dict] = field(default_factory=list)

    notes: list[str] = field(default_factory=list)

    def has_changes(self) -> bool:
        return any((
            self.updated_tasks, self.inserted_tasks, self.deleted_tasks, self.kept_old_tasks,
            self.updated_resources, self.inserted_resources, self.deleted_resources,
            self.kept_old_resources, self.updated_assignments, self.inserted_assignments,
            self.deleted_assignments,
        ))

    def to_dict(self) -> dict:
        return {
            "updatedTasks": self.updated_tasks,
            "insertedTasks": self.inserted_tasks,
            "deletedTasks": self.deleted_tasks,
            "keptOldTasks": self.kept_old_tasks,
            "skippedTasks": self.skipped_tasks,
            "updatedResources": self.updated_resources,
            "insertedResources": self.inserted_resources,
            "deletedResources": self.deleted_resources,
            "keptOldResources": self.kept_old_resources,
            "skippedResources": self.skipped_resources,
            "updatedAssignments": self.updated_assignments,
            "insertedAssignments": self.inserted_assignments,
            "deletedAssignments": self.deleted_assignments,
            "skippedAssignments": self.skipped_assignments,
            "notes": self.notes,
        }


# ═════════════════════════════════════════════════════════════════════════
# Formatting
# ═════════════════════════════════════════════════════════════════════════


def format_value(value) -> str:
    if value is None or value == "":
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def format_changes(changes: dict) -> str:
    return "; ".join(
        f"{name}: {format_value(change['from'])} -> {format_value(change['to'])}"
        for name, change in changes.items()
    )


def format_list(items: list, limit: int, format_item) -> list[str]:
    lines = [format_item(item) for item in items[:limit]]
    if len(items) > limit:
        lines.append(f"...and {len(items) - limit} more")
    return lines


def _labelled(item: dict, name_key: str) -> str:
    name = item.get(name_key)
    return f"- {item['uid']}" + (f" ({name})" if name else "")


def build_summary_lines(summary: ReconcileSummary, file_name: str | None = None) -> list[str]:
    lines = [f'Updated "{file_name or "file"}".']
    lines.append(
        f"Tasks: updated {len(summary.updated_tasks)}, added {len(summary.inserted_tasks)}, "
        f"deleted {len(summary.deleted_tasks)}, kept old {len(summary.kept_old_tasks)}."
    )
    lines.append(
        f"Resources: updated {len(summary.updated_resources)}, added {len(summary.inserted_resources)}, "
        f"deleted {len(summary.deleted_resources)}, kept old {len(summary.kept_old_resources)}."
    )
    lines.append(
        f"Assignments: updated {len(summary.updated_assignments)}, "
        f"added {len(summary.inserted_assignments)}, deleted {len(summary.deleted_assignments)}."
    )

    kept_suffix = f' -> metadata_source set to "{METADATA_SOURCE_MS_PROJECT_OLD}"'
    sections = (
        ("Updated tasks (fields):", summary.updated_tasks,
         lambda i: f"{_labelled(i, 'task_name')}: {format_changes(i['changes'])}"),
        ("New tasks:", summary.inserted_tasks, lambda i: _labelled(i, "task_name")),
        ("Deleted tasks:", summary.deleted_tasks, lambda i: _labelled(i, "task_name")),
        ("Tasks kept (tagged in lessons learned):", summary.kept_old_tasks,
         lambda i: _labelled(i, "task_name") + kept_suffix),
        ("Updated resources (fields):", summary.updated_resources,
         lambda i: f"{_labelled(i, 'resource_name')}: {format_changes(i['changes'])}"),
        ("New resources:", summary.inserted_resources, lambda i: _labelled(i, "resource_name")),
        ("Deleted resources:", summary.deleted_resources, lambda i: _labelled(i, "resource_name")),
        ("Resources kept (tagged in lessons learned):", summary.kept_old_resources,
         lambda i: _labelled(i, "resource_name") + kept_suffix),
        ("Updated assignments:", summary.updated_assignments,
         lambda i: f"- {i['uid']}: {format_changes(i['changes'])}"),
        ("New assignments:", summary.inserted_assignments, lambda i: f"- {i['uid']}"),
        ("Deleted assignments:", summary.deleted_assignments, lambda i: f"- {i['uid']}"),
    )
    for title, items, fmt in sections:
        if items:
            lines.append(title)
            lines.extend(format_list(items, DETAIL_LIMIT, fmt))

    if summary.notes:
        lines.append("Notes:")
        lines.extend(f"- {note}" for note in summary.notes)
    return lines
