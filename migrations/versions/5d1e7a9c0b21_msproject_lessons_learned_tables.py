"""msproject_lessons_learned_tables

Create scope owner tables (organizations, project_types, projects), the
lessons-learned index tables and the MS Project detail tables.

Revision ID: 5d1e7a9c0b21
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5d1e7a9c0b21"
down_revision = None
branch_labels = None
depends_on = None


def _scope_columns():
    return [
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("project_type_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _scope_constraints():
    return [
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["project_type_id"], ["project_types.id"], ondelete="SET NULL"),
    ]


def _scope_indexes(table):
    op.create_index(f"ix_{table}_organization_id", table, ["organization_id"])
    op.create_index(f"ix_{table}_project_id", table, ["project_id"])


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "organizations" not in existing_tables:
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "project_types" not in existing_tables:
        op.create_table(
            "project_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=True, comment="NULL for public project types"),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_types_organization_id", "project_types", ["organization_id"])

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("project_type_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_type_id"], ["project_types.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_organization_id", "projects", ["organization_id"])

    if "lessons_learned_metadata_list" not in existing_tables:
        op.create_table(
            "lessons_learned_metadata_list",
            sa.Column("id", sa.Integer(), nullable=False),
            *_scope_columns(),
            sa.Column("metadata_source", sa.String(length=100), nullable=True),
            sa.Column("metadata", sa.Text(), nullable=True),
            sa.Column("metadata_type", sa.String(length=50), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            *_scope_constraints(),
            sa.PrimaryKeyConstraint("id"),
        )
        _scope_indexes("lessons_learned_metadata_list")
        op.create_index(
            "ix_ll_metadata_list_scope_source",
            "lessons_learned_metadata_list",
            ["organization_id", "project_id", "metadata_source"],
        )

    if "lessons_learned_metadata" not in existing_tables:
        op.create_table(
            "lessons_learned_metadata",
            sa.Column("id", sa.Integer(), nullable=False),
            *_scope_columns(),
            sa.Column("lessons_learned_metadata_list_id", sa.Integer(), nullable=False),
            sa.Column("lesson", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            *_scope_constraints(),
            sa.ForeignKeyConstraint(["lessons_learned_metadata_list_id"], ["lessons_learned_metadata_list.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _scope_indexes("lessons_learned_metadata")
        op.create_index(
            "ix_lessons_learned_metadata_lessons_learned_metadata_list_id",
            "lessons_learned_metadata",
            ["lessons_learned_metadata_list_id"],
        )

    if "msproject_task_details" not in existing_tables:
        op.create_table(
            "msproject_task_details",
            sa.Column("id", sa.Integer(), nullable=False),
            *_scope_columns(),
            sa.Column("lessons_learned_metadata_list_id", sa.Integer(), nullable=False),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            sa.Column("uid", sa.String(length=64), nullable=True),
            sa.Column("task_name", sa.Text(), nullable=True),
            sa.Column("wbs", sa.String(length=100), nullable=True),
            sa.Column("wbs_parent", sa.String(length=100), nullable=True),
            sa.Column("outline_level", sa.Integer(), nullable=True),
            sa.Column("start", sa.String(length=40), nullable=True),
            sa.Column("finish", sa.String(length=40), nullable=True),
            sa.Column("duration", sa.String(length=100), nullable=True),
            sa.Column("percent_complete", sa.Float(), nullable=True),
            sa.Column("actual_start", sa.String(length=40), nullable=True),
            sa.Column("actual_finish", sa.String(length=40), nullable=True),
            sa.Column("fixed_cost", sa.Float(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("predecessors", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("baseline_start", sa.String(length=40), nullable=True),
            sa.Column("baseline_finish", sa.String(length=40), nullable=True),
            *_scope_constraints(),
            sa.ForeignKeyConstraint(["lessons_learned_metadata_list_id"], ["lessons_learned_metadata_list.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _scope_indexes("msproject_task_details")
        op.create_index(
            "ix_msproject_task_details_lessons_learned_metadata_list_id",
            "msproject_task_details",
            ["lessons_learned_metadata_list_id"],
        )
        op.create_index("ix_msproject_task_details_uid", "msproject_task_details", ["uid"])
        op.create_index(
            "ix_msproject_task_details_scope_uid",
            "msproject_task_details",
            ["organization_id", "project_id", "uid"],
        )

    if "msproject_task_predecessors" not in existing_tables:
        op.create_table(
            "msproject_task_predecessors",
            sa.Column("id", sa.Integer(), nullable=False),
            *_scope_columns(),
            sa.Column("msproject_task_details_id", sa.Integer(), nullable=False),
            sa.Column("lessons_learned_metadata_list_id", sa.Integer(), nullable=False),
            sa.Column("predecessor_uid", sa.String(length=64), nullable=True),
            sa.Column("predecessor_type", sa.String(length=20), nullable=True),
            *_scope_constraints(),
            sa.ForeignKeyConstraint(
                ["msproject_task_details_id"], ["msproject_task_details.id"], ondelete="CASCADE",
            ),
            sa.ForeignKeyConstraint(["lessons_learned_metadata_list_id"], ["lessons_learned_metadata_list.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _scope_indexes("msproject_task_predecessors")
        op.create_index(
            "ix_msproject_task_predecessors_msproject_task_details_id",
            "msproject_task_predecessors",
            ["msproject_task_details_id"],
        )
        op.create_index(
            "ix_msproject_task_predecessors_lessons_learned_metadata_list_id",
            "msproject_task_predecessors",
            ["lessons_learned_metadata_list_id"],
        )

    if "msproject_resource_details" not in existing_tables:
        op.create_table(
            "msproject_resource_details",
            sa.Column("id", sa.Integer(), nullable=False),
            *_scope_columns(),
            sa.Column("lessons_learned_metadata_list_id", sa.Integer(), nullable=False),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            sa.Column("uid", sa.String(length=64), nullable=True),
            sa.Column("row_id", sa.String(length=64), nullable=True),
            sa.Column("resource_name", sa.Text(), nullable=True),
            sa.Column("type", sa.String(length=20), nullable=True),
            sa.Column("max_units", sa.Integer(), nullable=True),
            sa.Column("standard_rate", sa.Float(), nullable=True),
            *_scope_constraints(),
            sa.ForeignKeyConstraint(["lessons_learned_metadata_list_id"], ["lessons_learned_metadata_list.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _scope_indexes("msproject_resource_details")
        op.create_index(
            "ix_msproject_resource_details_lessons_learned_metadata_list_id",
            "msproject_resource_details",
            ["lessons_learned_metadata_list_id"],
        )
        op.create_index("ix_msproject_resource_details_uid", "msproject_resource_details", ["uid"])

    if "msproject_assignments" not in existing_tables:
        op.create_table(
            "msproject_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            *_scope_columns(),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            sa.Column("uid", sa.String(length=64), nullable=True),
            sa.Column("task_uid", sa.String(length=64), nullable=True),
            sa.Column("resource_uid", sa.String(length=64), nullable=True),
            *_scope_constraints(),
            sa.PrimaryKeyConstraint("id"),
        )
        _scope_indexes("msproject_assignments")
        op.create_index("ix_msproject_assignments_uid", "msproject_assignments", ["uid"])


def downgrade():
    for table in (
        "msproject_assignments",
        "msproject_resource_details",
        "msproject_task_predecessors",
        "msproject_task_details",
        "lessons_learned_metadata",
        "lessons_learned_metadata_list",
        "projects",
        "project_types",
        "organizations",
    ):
        op.drop_table(table)
