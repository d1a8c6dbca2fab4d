"""
Sprintify
Project domain models.

Models:
    - Organization: tenant boundary; every project belongs to exactly one
    - Project:      methodology (AGILE | WATERFALL | HYBRID) + item sequence
    - BoardColumn:  one lane of a board, with semantic type and WIP limit

Architecture:
    Organization ──1:N──▶ Project ──1:N──▶ BoardColumn
"""

from sprintify.models import db
from sprintify.models.base import ProjectScopedModel, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

METHODOLOGIES = {"AGILE", "WATERFALL", "HYBRID"}

SCHEDULED_METHODOLOGIES = {"WATERFALL", "HYBRID"}

COLUMN_TYPES = {"BACKLOG", "TODO", "DOING", "DONE"}

BOARD_TYPES = {"KANBAN", "SPRINT", "WATERFALL"}

# Default board columns for new projects (renameable)
DEFAULT_BOARD_COLUMNS = [
    {"name": "Backlog", "col_type": "BACKLOG", "position": 0},
    {"name": "To Do", "col_type": "TODO", "position": 1},
    {"name": "In Progress", "col_type": "DOING", "position": 2},
    {"name": "Review", "col_type": "DOING", "position": 3},
    {"name": "Done", "col_type": "DONE", "position": 4},
]


class Organization(db.Model):
    """Tenant. Lookups scoped to one organization never see another's rows."""

    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    projects = db.relationship("Project", backref="organization", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.slug}>"


class Project(db.Model):
    """
    A board + timeline owner.

    ``item_counter`` is the source of project-scoped WorkItem numbers;
    ``start_date`` anchors undated root nodes during schedule recalculation.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key = db.Column(db.String(10), nullable=False, comment="Uppercase alphanumeric, e.g. WEB")
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, default="")
    methodology = db.Column(
        db.String(20), nullable=False, default="AGILE",
        comment="AGILE | WATERFALL | HYBRID",
    )
    item_counter = db.Column(db.Integer, nullable=False, default=0)
    start_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.UniqueConstraint("organization_id", "key", name="uq_project_org_key"),
        db.CheckConstraint(
            "methodology IN ('AGILE','WATERFALL','HYBRID')",
            name="ck_project_methodology",
        ),
    )

    columns = db.relationship(
        "BoardColumn", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="BoardColumn.position",
    )

    @property
    def is_waterfall(self):
        return self.methodology == "WATERFALL"

    def to_dict(self, include_columns=False):
        result = {
            "id": self.id,
            "organization_id": self.organization_id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "methodology": self.methodology,
            "item_counter": self.item_counter,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_columns:
            result["columns"] = [c.to_dict() for c in self.columns]
        return result

    def __repr__(self):
        return f"<Project {self.id}: {self.key}>"


class BoardColumn(ProjectScopedModel):
    """
    One lane of a board.

    ``col_type`` is semantic (BACKLOG / TODO / DOING / DONE), not display.
    A DONE-type column enforces the Definition-of-Done gate on entry;
    ``wip_limit`` caps the number of non-archived items it may hold.
    """

    __tablename__ = "board_columns"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    col_type = db.Column(
        db.String(20), nullable=False, default="TODO",
        comment="BACKLOG | TODO | DOING | DONE",
    )
    board_type = db.Column(db.String(20), nullable=False, default="KANBAN")
    wip_limit = db.Column(db.Integer, nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint(
            "col_type IN ('BACKLOG','TODO','DOING','DONE')",
            name="ck_board_column_type",
        ),
        db.CheckConstraint(
            "wip_limit IS NULL OR wip_limit > 0",
            name="ck_board_column_wip_positive",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "col_type": self.col_type,
            "board_type": self.board_type,
            "wip_limit": self.wip_limit,
            "position": self.position,
        }

    def __repr__(self):
        return f"<BoardColumn {self.id}: {self.name} [{self.col_type}]>"
