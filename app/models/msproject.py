"""
MS Project detail tables.

Task and resource rows are keyed by the external UID from the exported
file and point at their lessons-learned metadata list row. Predecessor
links are owned by a task and carry the metadata list id as well so they
can be deleted by list id without a join. Assignments are plain links.

Timestamps are kept as the ISO text MS Project writes
(``2024-01-15T08:00:00``); durations are normalized interval phrases
(``2 days 3 hours``).
"""

from app.models import db
from app.models.base import ScopedModel


class MsProjectTaskDetail(ScopedModel):
    __tablename__ = "msproject_task_details"

    id = db.Column(db.Integer, primary_key=True)
    lessons_learned_metadata_list_id = db.Column(
        db.Integer,
        db.ForeignKey("lessons_learned_metadata_list.id"),
        nullable=False,
        index=True,
    )
    created_by = db.Column(db.String(64), nullable=True)
    uid = db.Column(db.String(64), nullable=True, index=True)
    task_name = db.Column(db.Text, nullable=True)
    wbs = db.Column(db.String(100), nullable=True)
    wbs_parent = db.Column(db.String(100), nullable=True)
    outline_level = db.Column(db.Integer, nullable=True)
    start = db.Column(db.String(40), nullable=True)
    finish = db.Column(db.String(40), nullable=True)
    duration = db.Column(db.String(100), nullable=True, comment="Interval phrase, e.g. '2 days 3 hours'")
    percent_complete = db.Column(db.Float, nullable=True)
    actual_start = db.Column(db.String(40), nullable=True)
    actual_finish = db.Column(db.String(40), nullable=True)
    fixed_cost = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    predecessors = db.Column(db.Boolean, nullable=False, default=False)
    baseline_start = db.Column(db.String(40), nullable=True)
    baseline_finish = db.Column(db.String(40), nullable=True)

    __table_args__ = (
        db.Index("ix_msproject_task_details_scope_uid", "organization_id", "project_id", "uid"),
    )


class MsProjectTaskPredecessor(ScopedModel):
    __tablename__ = "msproject_task_predecessors"

    id = db.Column(db.Integer, primary_key=True)
    msproject_task_details_id = db.Column(
        db.Integer,
        db.ForeignKey("msproject_task_details.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    lessons_learned_metadata_list_id = db.Column(
        db.Integer,
        db.ForeignKey("lessons_learned_metadata_list.id"),
        nullable=False,
        index=True,
    )
    predecessor_uid = db.Column(db.String(64), nullable=True)
    predecessor_type = db.Column(db.String(20), nullable=True, comment="0=FF 1=FS 2=SF 3=SS")


class MsProjectResourceDetail(ScopedModel):
    __tablename__ = "msproject_resource_details"

    id = db.Column(db.Integer, primary_key=True)
    lessons_learned_metadata_list_id = db.Column(
        db.Integer,
        db.ForeignKey("lessons_learned_metadata_list.id"),
        nullable=False,
        index=True,
    )
    created_by = db.Column(db.String(64), nullable=True)
    uid = db.Column(db.String(64), nullable=True, index=True)
    row_id = db.Column(db.String(64), nullable=True)
    resource_name = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(20), nullable=True, comment="0=Material 1=Work 2=Cost")
    max_units = db.Column(db.Integer, nullable=True)
    standard_rate = db.Column(db.Float, nullable=True)


class MsProjectAssignment(ScopedModel):
    __tablename__ = "msproject_assignments"

    id = db.Column(db.Integer, primary_key=True)
    created_by = db.Column(db.String(64), nullable=True)
    uid = db.Column(db.String(64), nullable=True, index=True, comment="NULL on legacy rows")
    task_uid = db.Column(db.String(64), nullable=True)
    resource_uid = db.Column(db.String(64), nullable=True)
