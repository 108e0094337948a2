"""
ScopedModel — Abstract base class for organization/project-scoped models.

Every MS Project and lessons-learned table is filtered by the
(organization, project, project type) tuple. Inheriting from ScopedModel
instead of db.Model directly adds:
  - organization_id / project_id / project_type_id FK columns with indexes
  - query_for_scope(organization_id, project_id) classmethod
"""

from datetime import datetime, timezone

from app.models import db


class ScopedModel(db.Model):
    """Abstract base for scope-filtered tables."""
    __abstract__ = True

    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_type_id = db.Column(
        db.Integer,
        db.ForeignKey("project_types.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @classmethod
    def query_for_scope(cls, organization_id, project_id):
        """Return a query filtered by organization_id and project_id."""
        return cls.query.filter_by(organization_id=organization_id, project_id=project_id)
