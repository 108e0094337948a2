"""
Lessons-learned index tables.

Every imported MS Project task and resource owns exactly one row in
``lessons_learned_metadata_list``; the row is the lightweight index entry
that the tagging / lessons-learned features reference. Those references
live in ``lessons_learned_metadata``: once a list row is referenced there,
the import pipeline archives it instead of deleting it.
"""

from app.models import db
from app.models.base import ScopedModel

METADATA_SOURCE_MS_PROJECT = "ms project"
METADATA_SOURCE_MS_PROJECT_OLD = "ms project - old"

METADATA_TYPE_TASK = "task"
METADATA_TYPE_RESOURCE = "resource"
METADATA_TYPES = {METADATA_TYPE_TASK, METADATA_TYPE_RESOURCE}


class LessonsLearnedMetadataList(ScopedModel):
    __tablename__ = "lessons_learned_metadata_list"

    id = db.Column(db.Integer, primary_key=True)
    metadata_source = db.Column(
        db.String(100), nullable=True,
        comment="ms project | ms project - old | excel ...",
    )
    # "metadata" is reserved on declarative classes, hence the attribute alias.
    label = db.Column("metadata", db.Text, nullable=True)
    metadata_type = db.Column(db.String(50), nullable=True, comment="task | resource")
    created_by = db.Column(db.String(64), nullable=True)

    __table_args__ = (
        db.Index("ix_ll_metadata_list_scope_source", "organization_id", "project_id", "metadata_source"),
    )


class LessonsLearnedMetadata(ScopedModel):
    """Usage row: a lessons-learned entry tagged with a metadata list item."""

    __tablename__ = "lessons_learned_metadata"

    id = db.Column(db.Integer, primary_key=True)
    lessons_learned_metadata_list_id = db.Column(
        db.Integer,
        db.ForeignKey("lessons_learned_metadata_list.id"),
        nullable=False,
        index=True,
    )
    lesson = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
