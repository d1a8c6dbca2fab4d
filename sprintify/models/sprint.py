"""
Sprintify
Sprint domain models.

Models:
    - Sprint:         bounded Agile iteration
    - SprintSnapshot: one burndown sample per sprint per day (upserted)

Lifecycle:
    Sprint: PLANNING → ACTIVE → CLOSED (terminal, no reopening)

Invariant: at most one ACTIVE sprint per project.  Checked by
sprint_service.start_sprint under a project row lock.
"""

from sprintify.models import db
from sprintify.models.base import ProjectScopedModel, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

SPRINT_STATUSES = {"PLANNING", "ACTIVE", "CLOSED"}

SPRINT_TRANSITIONS = {
    "PLANNING": ["ACTIVE"],
    "ACTIVE":   ["CLOSED"],
    "CLOSED":   [],
}

ROLLOVER_ACTIONS = {"NEXT_SPRINT", "BACKLOG"}


def validate_sprint_transition(old_status, new_status):
    """Return True if Sprint status transition is valid."""
    return new_status in SPRINT_TRANSITIONS.get(old_status, [])


class Sprint(ProjectScopedModel):
    """
    Iteration container for work items.

    In Hybrid projects a sprint may sit inside a Phase.
    """

    __tablename__ = "sprints"

    id = db.Column(db.Integer, primary_key=True)
    phase_id = db.Column(
        db.Integer, db.ForeignKey("phases.id", ondelete="SET NULL"), nullable=True,
    )
    name = db.Column(db.String(100), nullable=False, comment="e.g. Sprint 1")
    goal = db.Column(db.Text, default="", comment="Sprint goal / objective")
    status = db.Column(
        db.String(20), nullable=False, default="PLANNING",
        comment="PLANNING | ACTIVE | CLOSED",
    )
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    velocity = db.Column(
        db.Integer, nullable=True,
        comment="Completed points — set at sprint close",
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PLANNING','ACTIVE','CLOSED')",
            name="ck_sprint_status",
        ),
    )

    # ── Relationships
    items = db.relationship("WorkItem", backref="sprint", lazy="dynamic")
    snapshots = db.relationship(
        "SprintSnapshot", backref="sprint", lazy="dynamic",
        cascade="all, delete-orphan", order_by="SprintSnapshot.date",
    )

    def to_dict(self, include_items=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "phase_id": self.phase_id,
            "name": self.name,
            "goal": self.goal,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "velocity": self.velocity,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            result["items"] = [
                i.to_dict() for i in self.items if i.archived_at is None
            ]
        return result

    def __repr__(self):
        return f"<Sprint {self.id}: {self.name} [{self.status}]>"


class SprintSnapshot(db.Model):
    """Burndown sample. ``(sprint_id, date)`` is unique; rows are overwritten, never deleted."""

    __tablename__ = "sprint_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    sprint_id = db.Column(
        db.Integer, db.ForeignKey("sprints.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    date = db.Column(db.Date, nullable=False)
    total_points = db.Column(db.Integer, nullable=False, default=0)
    completed_points = db.Column(db.Integer, nullable=False, default=0)
    total_value = db.Column(db.Integer, nullable=False, default=0)
    completed_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.UniqueConstraint("sprint_id", "date", name="uq_sprint_snapshot_date"),
    )

    @property
    def remaining_points(self):
        return self.total_points - self.completed_points

    def to_dict(self):
        return {
            "id": self.id,
            "sprint_id": self.sprint_id,
            "date": self.date.isoformat() if self.date else None,
            "total_points": self.total_points,
            "completed_points": self.completed_points,
            "remaining_points": self.remaining_points,
            "total_value": self.total_value,
            "completed_value": self.completed_value,
        }

    def __repr__(self):
        return f"<SprintSnapshot sprint={self.sprint_id} {self.date}>"
