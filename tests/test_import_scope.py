"""
Tests for scope resolution, pipeline exceptions and the api_error helper.
"""

import pytest

from app.core.exceptions import StoreError, ValidationError, WriteError
from app.services.import_scope import ImportScope, resolve_import_scope
from app.utils.errors import E, api_error

CONTEXT = {
    "organization_id": "3",
    "project_id": 11,
    "project_type_id": " 2 ",
    "created_by": " planner@acme.test ",
}


class TestResolveImportScope:
    def test_coerces_values(self):
        scope = resolve_import_scope(CONTEXT)
        assert scope == ImportScope(
            organization_id=3, project_id=11, project_type_id=2, created_by="planner@acme.test",
        )
        assert scope.row_scope() == {"organization_id": 3, "project_id": 11, "project_type_id": 2}

    def test_scope_passthrough(self):
        scope = ImportScope(1, 2, 3, "me")
        assert resolve_import_scope(scope) is scope

    @pytest.mark.parametrize("context", [None, {}])
    def test_empty_context(self, context):
        with pytest.raises(ValidationError, match="Context is required"):
            resolve_import_scope(context)

    @pytest.mark.parametrize("key", ["organization_id", "created_by", "project_id", "project_type_id"])
    def test_each_field_required(self, key):
        ctx = {**CONTEXT, key: "  "}
        with pytest.raises(ValidationError) as exc_info:
            resolve_import_scope(ctx)
        assert exc_info.value.message == (
            "Missing required context: organization_id, created_by, project_id, project_type_id."
        )
        assert exc_info.value.details == {key: "required"}

    @pytest.mark.parametrize("value", ["abc", True, "1.5"])
    def test_non_integer_ids(self, value):
        with pytest.raises(ValidationError, match="project_id must be an integer"):
            resolve_import_scope({**CONTEXT, "project_id": value})


class TestWriteError:
    def test_message_and_details(self):
        cause = StoreError("disk full", table="msproject_assignments", operation="insert")
        err = WriteError("msproject_assignments", cause, operation="insert", chunk_index=2, chunk_count=3)
        assert err.message == "Failed inserting into msproject_assignments: disk full"
        assert err.details == {"table": "msproject_assignments", "operation": "insert", "chunk": "2/3"}
        assert err.cause is cause

    def test_plain_string_cause(self):
        err = WriteError("msproject_task_details", "timeout", operation="delete")
        assert err.message == "Failed deleting from msproject_task_details: timeout"
        assert "chunk" not in err.details


class TestApiError:
    def test_default_status(self, app):
        with app.test_request_context():
            resp, status = api_error(E.PARSE, "bad file", details={"reason": "x"})
        assert status == 422
        assert resp.get_json() == {"error": "bad file", "code": "ERR_PARSE", "details": {"reason": "x"}}

    def test_status_override(self, app):
        with app.test_request_context():
            _, status = api_error(E.VALIDATION_INVALID, "too big", status=413)
        assert status == 413
