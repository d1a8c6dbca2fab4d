"""
Sprintify
Work item domain models.

Models:
    - WorkItem:      the unit of work; an Agile "story" and a Waterfall "task"
                     are the same row seen through different views
    - ChecklistItem: Definition of Ready / Definition of Done entries
    - Activity:      append-only change log per work item

Architecture:
    Project ──1:N──▶ WorkItem ──1:N──▶ ChecklistItem
    WorkItem ──1:N──▶ Activity
    WorkItem ──N:1──▶ WorkItem        (WBS parent, via parent_id)
    WorkItem ──N:M──▶ WorkItem        (via WorkItemDependency)
"""

from sprintify.models import db
from sprintify.models.base import ArchivableMixin, ProjectScopedModel, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_STATUS = "BACKLOG"

CHECKLIST_TYPES = {"DOR", "DOD"}

CONSTRAINT_TYPES = {"ASAP", "MUST_START_ON", "START_NO_EARLIER_THAN"}

ACTIVITY_TYPES = {
    "STATUS_CHANGE",
    "COLUMN_CHANGE",
    "PRIORITY_CHANGE",
    "SPRINT_CHANGED",
    "HIERARCHY_CHANGED",
    "STORY_ARCHIVED",
    "STORY_RESTORED",
    "WSJF_UPDATED",
}


class WorkItem(ArchivableMixin, ProjectScopedModel):
    """
    Persisted work unit with workflow, scheduling and hierarchy attributes.

    ``number`` is a project-scoped sequence, stable for the item's lifetime.
    WSJF components and story points are forced to neutral values when the
    owning project is WATERFALL (see board_service).
    """

    __tablename__ = "work_items"

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    priority = db.Column(db.String(20), default="NONE")

    # ── Workflow
    status = db.Column(db.String(30), nullable=False, default=DEFAULT_STATUS)
    column_id = db.Column(
        db.Integer, db.ForeignKey("board_columns.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    sprint_id = db.Column(
        db.Integer, db.ForeignKey("sprints.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    phase_id = db.Column(
        db.Integer, db.ForeignKey("phases.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    # ── Scheduling (Waterfall / Hybrid)
    duration = db.Column(db.Integer, nullable=False, default=1, comment="Days")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    baseline_start_date = db.Column(db.Date, nullable=True)
    baseline_end_date = db.Column(db.Date, nullable=True)
    is_milestone = db.Column(db.Boolean, nullable=False, default=False)
    constraint_type = db.Column(
        db.String(30), nullable=False, default="ASAP",
        comment="ASAP | MUST_START_ON | START_NO_EARLIER_THAN",
    )
    constraint_date = db.Column(db.Date, nullable=True)

    # ── WBS hierarchy
    parent_id = db.Column(
        db.Integer, db.ForeignKey("work_items.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    outline_level = db.Column(db.Integer, nullable=False, default=1)
    outline_position = db.Column(db.Integer, nullable=False, default=0)
    wbs_index = db.Column(db.String(50), nullable=True)

    # ── Prioritization (Agile / Hybrid)
    story_points = db.Column(db.Integer, nullable=True)
    user_business_value = db.Column(db.Integer, nullable=False, default=0)
    time_criticality = db.Column(db.Integer, nullable=False, default=0)
    risk_reduction = db.Column(db.Integer, nullable=False, default=0)
    job_size = db.Column(db.Integer, nullable=False, default=1)

    __table_args__ = (
        db.UniqueConstraint("project_id", "number", name="uq_work_item_number"),
        db.CheckConstraint("outline_level >= 1", name="ck_work_item_outline_level"),
        db.CheckConstraint("duration >= 0", name="ck_work_item_duration"),
    )

    # ── Relationships
    column = db.relationship("BoardColumn", foreign_keys=[column_id])
    parent = db.relationship("WorkItem", remote_side=[id], backref="children")
    checklist = db.relationship(
        "ChecklistItem", backref="work_item", lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="ChecklistItem.position",
    )
    activities = db.relationship(
        "Activity", backref="work_item", lazy="dynamic",
        cascade="all, delete-orphan", order_by="desc(Activity.id)",
    )

    @property
    def wsjf_score(self):
        """(business value + time criticality + risk reduction) / job size."""
        size = self.job_size or 1
        return round(
            (self.user_business_value + self.time_criticality + self.risk_reduction) / size, 2
        )

    def to_dict(self, include_checklist=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "number": self.number,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "column_id": self.column_id,
            "position": self.position,
            "sprint_id": self.sprint_id,
            "phase_id": self.phase_id,
            "duration": self.duration,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "baseline_start_date": (
                self.baseline_start_date.isoformat() if self.baseline_start_date else None
            ),
            "baseline_end_date": (
                self.baseline_end_date.isoformat() if self.baseline_end_date else None
            ),
            "is_milestone": self.is_milestone,
            "constraint_type": self.constraint_type,
            "constraint_date": self.constraint_date.isoformat() if self.constraint_date else None,
            "parent_id": self.parent_id,
            "outline_level": self.outline_level,
            "outline_position": self.outline_position,
            "wbs_index": self.wbs_index,
            "story_points": self.story_points,
            "user_business_value": self.user_business_value,
            "time_criticality": self.time_criticality,
            "risk_reduction": self.risk_reduction,
            "job_size": self.job_size,
            "wsjf_score": self.wsjf_score,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_checklist:
            result["checklist"] = [c.to_dict() for c in self.checklist]
        return result

    def __repr__(self):
        return f"<WorkItem {self.id}: #{self.number} {self.title[:30]}>"


class ChecklistItem(db.Model):
    """Quality checklist entry. DOD items gate entry into DONE-type columns."""

    __tablename__ = "checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    work_item_id = db.Column(
        db.Integer, db.ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(3), nullable=False, comment="DOR | DOD")
    checked = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.CheckConstraint("type IN ('DOR','DOD')", name="ck_checklist_type"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "work_item_id": self.work_item_id,
            "title": self.title,
            "type": self.type,
            "checked": self.checked,
            "position": self.position,
        }

    def __repr__(self):
        mark = "x" if self.checked else " "
        return f"<ChecklistItem {self.id}: [{mark}] {self.type} {self.title[:30]}>"


class Activity(db.Model):
    """Append-only change record for a work item."""

    __tablename__ = "activities"

    id = db.Column(db.Integer, primary_key=True)
    work_item_id = db.Column(
        db.Integer, db.ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    type = db.Column(db.String(30), nullable=False)
    data = db.Column(db.JSON, nullable=True)
    actor = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "work_item_id": self.work_item_id,
            "type": self.type,
            "data": self.data,
            "actor": self.actor,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Activity {self.id}: {self.type} on {self.work_item_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_activity(
    work_item: WorkItem,
    activity_type: str,
    data: dict | None = None,
    *,
    actor: str | None = None,
) -> Activity:
    """
    Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.
    """
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {activity_type}")
    activity = Activity(
        work_item_id=work_item.id,
        type=activity_type,
        data=data or {},
        actor=actor,
    )
    db.session.add(activity)
    db.session.flush()
    return activity
