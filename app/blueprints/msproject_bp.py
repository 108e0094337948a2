"""
MS Project Blueprint

Upload endpoints for MS Project exports (XML / Excel workbook / TXT).

Endpoints:
  POST /api/v1/msproject/parse      — Parse a file and return a preview (no writes)
  POST /api/v1/msproject/update     — Reconcile a re-imported file against stored rows
  GET  /api/v1/msproject/snapshot   — Counts of stored rows for one organization/project
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from app.core.exceptions import LoadError, ParseError, ValidationError, WriteError
from app.models import db
from app.models.organization import Project
from app.services.helpers.structured_store import SqlAlchemyStore
from app.services.import_scope import ImportScope, resolve_import_scope
from app.services.msproject_parser import inspect_txt_sections, parse_msproject_file
from app.services.msproject_reconcile_service import reconcile_msproject_file
from app.services.msproject_snapshot import load_snapshot
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

msproject_bp = Blueprint("msproject", __name__, url_prefix="/api/v1/msproject")


# ═══════════════════════════════════════════════════════════════
# Error Handlers
# ═══════════════════════════════════════════════════════════════
@msproject_bp.errorhandler(ValidationError)
def handle_validation_error(e):
    code = E.VALIDATION_REQUIRED if "required" in e.message.lower() else E.VALIDATION_INVALID
    return api_error(code, e.message, details=e.details)


@msproject_bp.errorhandler(ParseError)
def handle_parse_error(e):
    return api_error(E.PARSE, e.message, details=e.details)


@msproject_bp.errorhandler(LoadError)
def handle_load_error(e):
    logger.error("MS Project load failed: %s", e.message)
    return api_error(E.LOAD, e.message, details=e.details)


@msproject_bp.errorhandler(WriteError)
def handle_write_error(e):
    logger.error("MS Project write failed: %s", e.message)
    return api_error(E.WRITE, e.message, details=e.details)


# ═══════════════════════════════════════════════════════════════
# Parse (preview)
# ═══════════════════════════════════════════════════════════════
@msproject_bp.route("/parse", methods=["POST"])
def parse_file():
    """Parse an uploaded export and return its records without writing."""
    file_name, content = _extract_upload()
    if content is None:
        return api_error(E.VALIDATION_REQUIRED, "A file upload is required (form field 'file').")

    if file_name.lower().endswith(".txt"):
        return jsonify(inspect_txt_sections(content, file_name)), 200

    parsed = parse_msproject_file(content, file_name)
    include_records = request.args.get("records", "true").lower() != "false"
    return jsonify(parsed.to_dict(include_records=include_records)), 200


# ═══════════════════════════════════════════════════════════════
# Update (reconcile)
# ═══════════════════════════════════════════════════════════════
@msproject_bp.route("/update", methods=["POST"])
def update_from_file():
    """Reconcile an uploaded export against the stored rows of one project."""
    scope = resolve_import_scope(request.form.to_dict())

    file_name, content = _extract_upload()
    if content is None:
        return api_error(E.VALIDATION_REQUIRED, "A file upload is required (form field 'file').")
    if file_name.lower().endswith(".txt"):
        raise ParseError("TXT exports can only be previewed. Upload the XML or Excel export to update.")

    if _find_project(scope.organization_id, scope.project_id) is None:
        return api_error(E.NOT_FOUND, "Project not found for this organization.")

    progress: list[str] = []
    result = reconcile_msproject_file(
        SqlAlchemyStore(db.session),
        content,
        scope,
        file_name=file_name,
        on_progress=progress.append,
        chunk_size=current_app.config.get("MSPROJECT_CHUNK_SIZE"),
    )
    body = result.to_dict()
    body["progress"] = progress
    return jsonify(body), 200


# ═══════════════════════════════════════════════════════════════
# Snapshot counts
# ═══════════════════════════════════════════════════════════════
@msproject_bp.route("/snapshot", methods=["GET"])
def snapshot_counts():
    """Counts of stored tasks, resources, assignments and links for a project."""
    organization_id = request.args.get("organization_id", type=int)
    project_id = request.args.get("project_id", type=int)
    if organization_id is None or project_id is None:
        return api_error(E.VALIDATION_REQUIRED, "organization_id and project_id are required.")

    project = _find_project(organization_id, project_id)
    if project is None:
        return api_error(E.NOT_FOUND, "Project not found for this organization.")

    scope = ImportScope(
        organization_id=organization_id,
        project_id=project_id,
        project_type_id=project.project_type_id,
        created_by="",
    )
    snap = load_snapshot(
        SqlAlchemyStore(db.session),
        scope,
        chunk_size=current_app.config.get("MSPROJECT_CHUNK_SIZE"),
    )
    return jsonify({
        "organization_id": organization_id,
        "project_id": project_id,
        "counts": snap.counts(),
    }), 200


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════
def _extract_upload() -> tuple[str, bytes | None]:
    """Return ``(file_name, bytes)`` from the multipart ``file`` field."""
    file = request.files.get("file")
    if not file:
        return "", None
    return file.filename or "", file.read()


def _find_project(organization_id: int, project_id: int):
    return Project.query.filter_by(id=project_id, organization_id=organization_id).first()
