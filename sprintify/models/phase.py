"""
Sprintify
Timeline domain models — phases and precedence edges.

Models:
    - Phase:              Waterfall / Hybrid timeline segment (may own sprints and work items)
    - PhaseDependency:    predecessor → successor edge between phases
    - WorkItemDependency: predecessor → successor edge between WBS tasks

Both edge tables share the same shape: dependency type + signed lag in days,
unique per ordered pair, no self-loops.  Acyclicity is enforced in the
service layer (schedule_service.add_dependency) under a project lock.
"""

from sprintify.models import db
from sprintify.models.base import ProjectScopedModel

# ── Constants ────────────────────────────────────────────────────────────────

DEPENDENCY_TYPES = {"FS", "SS", "FF", "SF"}

DEFAULT_PHASE_COLOR = "#3B82F6"


class Phase(ProjectScopedModel):
    """Timeline segment. ``is_gate`` marks a stage-gate review phase."""

    __tablename__ = "phases"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, default="")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    baseline_start_date = db.Column(db.Date, nullable=True)
    baseline_end_date = db.Column(db.Date, nullable=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    is_gate = db.Column(db.Boolean, nullable=False, default=False)
    color = db.Column(db.String(20), nullable=False, default=DEFAULT_PHASE_COLOR)
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint("progress BETWEEN 0 AND 100", name="ck_phase_progress"),
    )

    sprints = db.relationship("Sprint", backref="phase", lazy="dynamic")
    work_items = db.relationship("WorkItem", backref="phase", lazy="dynamic")
    predecessors = db.relationship(
        "PhaseDependency",
        foreign_keys="PhaseDependency.successor_id",
        backref="successor",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )
    successors = db.relationship(
        "PhaseDependency",
        foreign_keys="PhaseDependency.predecessor_id",
        backref="predecessor",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def duration(self):
        """Span in days; 0 when either end is undated."""
        if self.start_date and self.end_date:
            return (self.end_date - self.start_date).days
        return 0

    def to_dict(self, include_dependencies=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "baseline_start_date": (
                self.baseline_start_date.isoformat() if self.baseline_start_date else None
            ),
            "baseline_end_date": (
                self.baseline_end_date.isoformat() if self.baseline_end_date else None
            ),
            "progress": self.progress,
            "is_gate": self.is_gate,
            "color": self.color,
            "position": self.position,
        }
        if include_dependencies:
            result["predecessor_ids"] = [d.predecessor_id for d in self.predecessors]
            result["successor_ids"] = [d.successor_id for d in self.successors]
        return result

    def __repr__(self):
        return f"<Phase {self.id}: {self.name}>"


class _EdgeColumns:
    """Columns shared by both dependency edge tables."""

    id = db.Column(db.Integer, primary_key=True)
    dependency_type = db.Column(
        db.String(2), nullable=False, default="FS",
        comment="FS | SS | FF | SF",
    )
    lag_days = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "predecessor_id": self.predecessor_id,
            "successor_id": self.successor_id,
            "dependency_type": self.dependency_type,
            "lag_days": self.lag_days,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (
            f"<{type(self).__name__} {self.predecessor_id} → {self.successor_id} "
            f"{self.dependency_type}{self.lag_days:+d}>"
        )


class PhaseDependency(_EdgeColumns, ProjectScopedModel):
    __tablename__ = "phase_dependencies"

    predecessor_id = db.Column(
        db.Integer, db.ForeignKey("phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    successor_id = db.Column(
        db.Integer, db.ForeignKey("phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    __table_args__ = (
        db.UniqueConstraint("predecessor_id", "successor_id", name="uq_phase_dep"),
        db.CheckConstraint("predecessor_id != successor_id", name="ck_phase_dep_no_self_loop"),
    )


class WorkItemDependency(_EdgeColumns, ProjectScopedModel):
    __tablename__ = "work_item_dependencies"

    predecessor_id = db.Column(
        db.Integer, db.ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    successor_id = db.Column(
        db.Integer, db.ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    __table_args__ = (
        db.UniqueConstraint("predecessor_id", "successor_id", name="uq_work_item_dep"),
        db.CheckConstraint(
            "predecessor_id != successor_id", name="ck_work_item_dep_no_self_loop",
        ),
    )
