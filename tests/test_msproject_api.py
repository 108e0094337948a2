"""
HTTP tests for the MS Project and health blueprints.

Covers:
  - POST /api/v1/msproject/parse   XML preview, TXT section check, missing file
  - POST /api/v1/msproject/update  success, context validation, bad XML, unknown project
  - GET  /api/v1/msproject/snapshot counts
  - GET  /api/v1/health/ready | /live
"""

import io

from app.models.msproject import MsProjectTaskDetail

SAMPLE_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<Project xmlns="http://schemas.microsoft.com/project">
  <Tasks>
    <Task><UID>1</UID><Name>Excavation</Name><WBS>1</WBS><Duration>PT16H0M0S</Duration></Task>
    <Task><UID>2</UID><Name>Foundations</Name><WBS>2</WBS>
      <PredecessorLink><PredecessorUID>1</PredecessorUID><Type>1</Type></PredecessorLink>
    </Task>
  </Tasks>
  <Resources>
    <Resource><UID>5</UID><ID>1</ID><Name>Excavator</Name><Type>1</Type></Resource>
  </Resources>
  <Assignments>
    <Assignment><UID>9</UID><TaskUID>1</TaskUID><ResourceUID>5</ResourceUID></Assignment>
  </Assignments>
</Project>
"""

SAMPLE_TXT = b"<Tasks>\n1\tExcavation\n</Tasks>\n<Resources>\n5\tExcavator\n</Resources>\n"


def _upload(content, name="plan.xml", **form):
    return {"file": (io.BytesIO(content), name), **{k: str(v) for k, v in form.items()}}


def _context(scope):
    return {
        "organization_id": scope.organization_id,
        "project_id": scope.project_id,
        "project_type_id": scope.project_type_id,
        "created_by": scope.created_by,
    }


# ── /parse ──────────────────────────────────────────────────────────────────


class TestParseEndpoint:
    def test_xml_preview(self, client):
        res = client.post("/api/v1/msproject/parse", data=_upload(SAMPLE_XML),
                          content_type="multipart/form-data")
        assert res.status_code == 200
        body = res.get_json()
        assert body["counts"] == {"tasks": 2, "resources": 1, "assignments": 1}
        assert body["tasks"][0]["duration"] == "16 hours"
        assert body["tasks"][1]["predecessor_links"] == [
            {"predecessor_uid": "1", "predecessor_type": "1"},
        ]

    def test_preview_without_records(self, client):
        res = client.post("/api/v1/msproject/parse?records=false", data=_upload(SAMPLE_XML),
                          content_type="multipart/form-data")
        body = res.get_json()
        assert "tasks" not in body
        assert body["counts"]["tasks"] == 2

    def test_txt_sections(self, client):
        res = client.post("/api/v1/msproject/parse", data=_upload(SAMPLE_TXT, "plan.txt"),
                          content_type="multipart/form-data")
        assert res.status_code == 200
        body = res.get_json()
        assert body["present_sections"] == ["Resources", "Tasks"]
        assert body["has_assignments"] is False

    def test_missing_file(self, client):
        res = client.post("/api/v1/msproject/parse", data={}, content_type="multipart/form-data")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_invalid_xml(self, client):
        res = client.post("/api/v1/msproject/parse", data=_upload(b"<Project><Tasks>"),
                          content_type="multipart/form-data")
        assert res.status_code == 422
        assert res.get_json()["error"] == "Invalid XML. Please upload a valid MS Project XML file."


# ── /update ─────────────────────────────────────────────────────────────────


class TestUpdateEndpoint:
    def test_success(self, client, scope):
        res = client.post("/api/v1/msproject/update", data=_upload(SAMPLE_XML, **_context(scope)),
                          content_type="multipart/form-data")
        assert res.status_code == 200
        body = res.get_json()
        assert body["summaryLines"][0] == 'Updated "plan.xml".'
        assert body["summaryLines"][1] == "Tasks: updated 0, added 2, deleted 0, kept old 0."
        assert [t["uid"] for t in body["summary"]["insertedTasks"]] == ["1", "2"]
        assert body["progress"][0] == "Loading existing records..."
        assert "tasks" not in body["parsed"]
        assert MsProjectTaskDetail.query_for_scope(scope.organization_id, scope.project_id).count() == 2

    def test_second_upload_reports_no_changes(self, client, scope):
        for _ in range(2):
            res = client.post("/api/v1/msproject/update", data=_upload(SAMPLE_XML, **_context(scope)),
                              content_type="multipart/form-data")
        body = res.get_json()
        assert body["summaryLines"][1:] == [
            "Tasks: updated 0, added 0, deleted 0, kept old 0.",
            "Resources: updated 0, added 0, deleted 0, kept old 0.",
            "Assignments: updated 0, added 0, deleted 0.",
        ]

    def test_missing_context(self, client, scope):
        form = _context(scope)
        del form["created_by"]
        res = client.post("/api/v1/msproject/update", data=_upload(SAMPLE_XML, **form),
                          content_type="multipart/form-data")
        assert res.status_code == 400
        body = res.get_json()
        assert body["error"] == (
            "Missing required context: organization_id, created_by, project_id, project_type_id."
        )
        assert body["details"] == {"created_by": "required"}
        assert MsProjectTaskDetail.query.count() == 0

    def test_non_integer_context(self, client, scope):
        form = _context(scope)
        form["project_id"] = "abc"
        res = client.post("/api/v1/msproject/update", data=_upload(SAMPLE_XML, **form),
                          content_type="multipart/form-data")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_bad_xml_writes_nothing(self, client, scope):
        res = client.post("/api/v1/msproject/update", data=_upload(b"not xml", **_context(scope)),
                          content_type="multipart/form-data")
        assert res.status_code == 422
        assert MsProjectTaskDetail.query.count() == 0

    def test_txt_rejected(self, client, scope):
        res = client.post("/api/v1/msproject/update",
                          data=_upload(SAMPLE_TXT, "plan.txt", **_context(scope)),
                          content_type="multipart/form-data")
        assert res.status_code == 422

    def test_unknown_project(self, client, scope):
        form = _context(scope)
        form["project_id"] = scope.project_id + 999
        res = client.post("/api/v1/msproject/update", data=_upload(SAMPLE_XML, **form),
                          content_type="multipart/form-data")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Project not found for this organization."

    def test_project_of_another_organization(self, client, scope, scope_factory):
        other = scope_factory(name="Other", slug="other")
        form = _context(scope)
        form["project_id"] = other.project_id
        res = client.post("/api/v1/msproject/update", data=_upload(SAMPLE_XML, **form),
                          content_type="multipart/form-data")
        assert res.status_code == 404


# ── /snapshot ───────────────────────────────────────────────────────────────


class TestSnapshotEndpoint:
    def test_counts_after_import(self, client, scope):
        client.post("/api/v1/msproject/update", data=_upload(SAMPLE_XML, **_context(scope)),
                    content_type="multipart/form-data")
        res = client.get(
            f"/api/v1/msproject/snapshot?organization_id={scope.organization_id}"
            f"&project_id={scope.project_id}"
        )
        assert res.status_code == 200
        assert res.get_json()["counts"] == {
            "tasks": 2,
            "resources": 1,
            "assignments": 1,
            "predecessors": 1,
            "archived_metadata": 0,
        }

    def test_requires_ids(self, client):
        res = client.get("/api/v1/msproject/snapshot?organization_id=1")
        assert res.status_code == 400

    def test_unknown_project(self, client, scope):
        res = client.get(f"/api/v1/msproject/snapshot?organization_id={scope.organization_id}&project_id=999")
        assert res.status_code == 404


# ── Health ──────────────────────────────────────────────────────────────────


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["tables"]["msproject_task_details"] == {"status": "ok", "rows": 0}

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
