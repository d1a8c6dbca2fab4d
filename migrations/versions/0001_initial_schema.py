"""initial_schema

Create organizations, projects, board columns, phases, sprints, work items,
checklists, activities, dependency edges and sprint snapshots.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _project_fk():
    return sa.Column(
        "project_id", sa.Integer(),
        sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
    )


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "organizations" not in existing_tables:
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint("slug"),
        )

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "organization_id", sa.Integer(),
                sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("key", sa.String(length=10), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("methodology", sa.String(length=20), nullable=False, server_default="AGILE"),
            sa.Column("item_counter", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("start_date", sa.Date(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("organization_id", "key", name="uq_project_org_key"),
            sa.CheckConstraint(
                "methodology IN ('AGILE','WATERFALL','HYBRID')", name="ck_project_methodology",
            ),
        )
        op.create_index("ix_projects_organization_id", "projects", ["organization_id"])

    if "board_columns" not in existing_tables:
        op.create_table(
            "board_columns",
            sa.Column("id", sa.Integer(), primary_key=True),
            _project_fk(),
            sa.Column("name", sa.String(length=50), nullable=False),
            sa.Column("col_type", sa.String(length=20), nullable=False, server_default="TODO"),
            sa.Column("board_type", sa.String(length=20), nullable=False, server_default="KANBAN"),
            sa.Column("wip_limit", sa.Integer(), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.CheckConstraint(
                "col_type IN ('BACKLOG','TODO','DOING','DONE')", name="ck_board_column_type",
            ),
            sa.CheckConstraint(
                "wip_limit IS NULL OR wip_limit > 0", name="ck_board_column_wip_positive",
            ),
        )
        op.create_index("ix_board_columns_project_id", "board_columns", ["project_id"])

    if "phases" not in existing_tables:
        op.create_table(
            "phases",
            sa.Column("id", sa.Integer(), primary_key=True),
            _project_fk(),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("baseline_start_date", sa.Date(), nullable=True),
            sa.Column("baseline_end_date", sa.Date(), nullable=True),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_gate", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("color", sa.String(length=20), nullable=False, server_default="#3B82F6"),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.CheckConstraint("progress BETWEEN 0 AND 100", name="ck_phase_progress"),
        )
        op.create_index("ix_phases_project_id", "phases", ["project_id"])

    if "sprints" not in existing_tables:
        op.create_table(
            "sprints",
            sa.Column("id", sa.Integer(), primary_key=True),
            _project_fk(),
            sa.Column(
                "phase_id", sa.Integer(),
                sa.ForeignKey("phases.id", ondelete="SET NULL"), nullable=True,
            ),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("goal", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PLANNING"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("velocity", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.CheckConstraint(
                "status IN ('PLANNING','ACTIVE','CLOSED')", name="ck_sprint_status",
            ),
        )
        op.create_index("ix_sprints_project_id", "sprints", ["project_id"])

    if "work_items" not in existing_tables:
        op.create_table(
            "work_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            _project_fk(),
            sa.Column("number", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="BACKLOG"),
            sa.Column(
                "column_id", sa.Integer(),
                sa.ForeignKey("board_columns.id", ondelete="SET NULL"), nullable=True,
            ),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column(
                "sprint_id", sa.Integer(),
                sa.ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True,
            ),
            sa.Column(
                "phase_id", sa.Integer(),
                sa.ForeignKey("phases.id", ondelete="SET NULL"), nullable=True,
            ),
            sa.Column("duration", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("baseline_start_date", sa.Date(), nullable=True),
            sa.Column("baseline_end_date", sa.Date(), nullable=True),
            sa.Column("is_milestone", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("constraint_type", sa.String(length=30), nullable=False, server_default="ASAP"),
            sa.Column("constraint_date", sa.Date(), nullable=True),
            sa.Column(
                "parent_id", sa.Integer(),
                sa.ForeignKey("work_items.id", ondelete="SET NULL"), nullable=True,
            ),
            sa.Column("outline_level", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("outline_position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("wbs_index", sa.String(length=50), nullable=True),
            sa.Column("story_points", sa.Integer(), nullable=True),
            sa.Column("user_business_value", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("time_criticality", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("risk_reduction", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("job_size", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("project_id", "number", name="uq_work_item_number"),
            sa.CheckConstraint("outline_level >= 1", name="ck_work_item_outline_level"),
            sa.CheckConstraint("duration >= 0", name="ck_work_item_duration"),
        )
        for column in ("project_id", "column_id", "sprint_id", "phase_id",
                       "parent_id", "archived_at"):
            op.create_index(f"ix_work_items_{column}", "work_items", [column])

    if "checklist_items" not in existing_tables:
        op.create_table(
            "checklist_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "work_item_id", sa.Integer(),
                sa.ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("type", sa.String(length=3), nullable=False),
            sa.Column("checked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("type IN ('DOR','DOD')", name="ck_checklist_type"),
        )
        op.create_index("ix_checklist_items_work_item_id", "checklist_items", ["work_item_id"])

    if "activities" not in existing_tables:
        op.create_table(
            "activities",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "work_item_id", sa.Integer(),
                sa.ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("data", sa.JSON(), nullable=True),
            sa.Column("actor", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_activities_work_item_id", "activities", ["work_item_id"])

    for table, node_table, prefix in (
        ("phase_dependencies", "phases", "phase_dep"),
        ("work_item_dependencies", "work_items", "work_item_dep"),
    ):
        if table in existing_tables:
            continue
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True),
            _project_fk(),
            sa.Column(
                "predecessor_id", sa.Integer(),
                sa.ForeignKey(f"{node_table}.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column(
                "successor_id", sa.Integer(),
                sa.ForeignKey(f"{node_table}.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("dependency_type", sa.String(length=2), nullable=False, server_default="FS"),
            sa.Column("lag_days", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.UniqueConstraint("predecessor_id", "successor_id", name=f"uq_{prefix}"),
            sa.CheckConstraint(
                "predecessor_id != successor_id", name=f"ck_{prefix}_no_self_loop",
            ),
        )
        for column in ("project_id", "predecessor_id", "successor_id"):
            op.create_index(f"ix_{table}_{column}", table, [column])

    if "sprint_snapshots" not in existing_tables:
        op.create_table(
            "sprint_snapshots",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "sprint_id", sa.Integer(),
                sa.ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("completed_points", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_value", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("completed_value", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint("sprint_id", "date", name="uq_sprint_snapshot_date"),
        )
        op.create_index("ix_sprint_snapshots_sprint_id", "sprint_snapshots", ["sprint_id"])


def downgrade():
    for table in (
        "sprint_snapshots",
        "work_item_dependencies",
        "phase_dependencies",
        "activities",
        "checklist_items",
        "work_items",
        "sprints",
        "phases",
        "board_columns",
        "projects",
        "organizations",
    ):
        op.drop_table(table)
