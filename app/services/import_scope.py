"""Scope context for MS Project imports: who is importing into which project."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

REQUIRED_CONTEXT_FIELDS = ("organization_id", "created_by", "project_id", "project_type_id")


@dataclass(frozen=True)
class ImportScope:
    """Resolved (organization, project, project type) tuple plus the acting user."""

    organization_id: int
    project_id: int
    project_type_id: int
    created_by: str

    def row_scope(self) -> dict:
        """Scope columns stamped on every inserted row."""
        return {
            "organization_id": self.organization_id,
            "project_id": self.project_id,
            "project_type_id": self.project_type_id,
        }

    def log_extra(self) -> dict:
        return {"organization_id": self.organization_id, "project_id": self.project_id}


def _as_int(context: dict, key: str) -> int:
    raw = context.get(key)
    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be an integer", details={key: "invalid"})
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} must be an integer", details={key: "invalid"}) from exc


def resolve_import_scope(context: dict | ImportScope | None) -> ImportScope:
    """Validate the caller-supplied context before any I/O happens.

    Raises:
        ValidationError: context missing, or any of organization_id,
            created_by, project_id, project_type_id absent / not parseable.
    """
    if isinstance(context, ImportScope):
        return context
    if not context:
        raise ValidationError("Context is required.")

    missing = [
        k for k in REQUIRED_CONTEXT_FIELDS
        if context.get(k) is None or str(context.get(k)).strip() == ""
    ]
    if missing:
        raise ValidationError(
            "Missing required context: " + ", ".join(REQUIRED_CONTEXT_FIELDS) + ".",
            details={k: "required" for k in missing},
        )

    return ImportScope(
        organization_id=_as_int(context, "organization_id"),
        project_id=_as_int(context, "project_id"),
        project_type_id=_as_int(context, "project_type_id"),
        created_by=str(context["created_by"]).strip(),
    )
