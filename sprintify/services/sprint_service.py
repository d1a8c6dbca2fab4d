"""
Sprint lifecycle manager.

Lifecycle:
    PLANNING ──start──▶ ACTIVE ──close──▶ CLOSED ──rollover──▶ CLOSED

Guards:
    - start:    sprint is PLANNING, no other ACTIVE sprint in the project
                (re-read under the project row lock), end_date > start_date
    - close:    sprint is ACTIVE
    - snapshot: sprint is ACTIVE (otherwise reported as not found)
    - rollover: sprint is CLOSED

Point accounting counts items whose ``status`` equals the configured
DONE_STATUS_LABEL.  The board column is not consulted: an item sitting
in a DONE-type column with another status label counts as incomplete.

Transaction policy: flush only, the route handler commits.
"""

import logging
from datetime import date, timedelta

from flask import current_app

from sprintify.core.exceptions import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from sprintify.models import db
from sprintify.models.phase import Phase
from sprintify.models.sprint import (
    ROLLOVER_ACTIONS,
    Sprint,
    SprintSnapshot,
    validate_sprint_transition,
)
from sprintify.models.work_item import WorkItem, write_activity
from sprintify.services.helpers.scoped_queries import get_project, get_scoped, get_scoped_or_none
from sprintify.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)


def _done_label():
    return current_app.config.get("DONE_STATUS_LABEL", "DONE")


def _log_extra(sprint, event_type):
    return {"project_id": sprint.project_id, "sprint_id": sprint.id, "event_type": event_type}


# ── Point accounting ─────────────────────────────────────────────────────────


def compute_totals(sprint):
    """Sum points and business value over the sprint's live items.

    Returns:
        dict with total_points, completed_points, total_value, completed_value.
    """
    done = _done_label()
    items = sprint.items.filter(WorkItem.archived_at.is_(None)).all()
    totals = {"total_points": 0, "completed_points": 0, "total_value": 0, "completed_value": 0}
    for item in items:
        points = item.story_points or 0
        value = item.user_business_value or 0
        totals["total_points"] += points
        totals["total_value"] += value
        if item.status == done:
            totals["completed_points"] += points
            totals["completed_value"] += value
    return totals


def _upsert_snapshot(sprint, snapshot_date):
    totals = compute_totals(sprint)
    snap = SprintSnapshot.query.filter_by(sprint_id=sprint.id, date=snapshot_date).first()
    if snap is None:
        snap = SprintSnapshot(sprint_id=sprint.id, date=snapshot_date)
        db.session.add(snap)
    for key, value in totals.items():
        setattr(snap, key, value)
    db.session.flush()
    return snap


# ── CRUD ─────────────────────────────────────────────────────────────────────


def create_sprint(project_id, data):
    """Create a PLANNING sprint.

    Missing dates are left empty; a start date alone gets the default
    sprint length.
    """
    project = get_project(project_id)
    name = (data.get("name") or "").strip()
    if not name:
        count = Sprint.query_for_project(project.id).count()
        name = f"Sprint {count + 1}"
    start = parse_date_input(data.get("start_date"), "start_date")
    end = parse_date_input(data.get("end_date"), "end_date")
    if start and end is None:
        end = start + timedelta(days=current_app.config.get("DEFAULT_SPRINT_DURATION_DAYS", 14))
    if start and end and end <= start:
        raise ValidationError("End date must be after start date.")

    phase_id = data.get("phase_id")
    if phase_id is not None:
        phase_id = get_scoped(Phase, phase_id, project_id=project.id).id

    sprint = Sprint(
        project_id=project.id,
        name=name,
        goal=data.get("goal", ""),
        start_date=start,
        end_date=end,
        phase_id=phase_id,
        status="PLANNING",
    )
    db.session.add(sprint)
    db.session.flush()
    logger.info("Sprint created id=%s name=%s", sprint.id, sprint.name,
                extra=_log_extra(sprint, "sprint_created"))
    return sprint


def list_sprints(project_id, status=None):
    get_project(project_id)
    q = Sprint.query_for_project(project_id)
    if status:
        q = q.filter(Sprint.status == status.upper())
    return q.order_by(Sprint.created_at, Sprint.id).all()


def assign_item(project_id, work_item_id, sprint_id, *, actor=None):
    """Put a work item into a sprint (or take it out with ``sprint_id=None``)."""
    item = get_scoped(WorkItem, work_item_id, project_id=project_id)
    if item.is_archived:
        raise NotFoundError(resource="WorkItem", resource_id=work_item_id)
    new_sprint_id = None
    if sprint_id is not None:
        sprint = get_scoped(Sprint, sprint_id, project_id=project_id)
        if sprint.status == "CLOSED":
            raise PreconditionFailedError(f'Sprint "{sprint.name}" is closed.')
        new_sprint_id = sprint.id
    if item.sprint_id != new_sprint_id:
        write_activity(item, "SPRINT_CHANGED", {"from": item.sprint_id, "to": new_sprint_id},
                       actor=actor)
        item.sprint_id = new_sprint_id
        db.session.flush()
    return item


# ── Lifecycle ────────────────────────────────────────────────────────────────


def start_sprint(project_id, sprint_id, start_date, end_date):
    """PLANNING → ACTIVE, recording the opening snapshot on ``start_date``.

    Raises:
        PreconditionFailedError: sprint not in PLANNING.
        ConflictError: another sprint of the project is ACTIVE.
        ValidationError: missing dates or end_date <= start_date.
    """
    # Project row lock: two concurrent starts serialize here
    get_project(project_id, lock=True)
    sprint = get_scoped(Sprint, sprint_id, project_id=project_id)

    if not validate_sprint_transition(sprint.status, "ACTIVE"):
        raise PreconditionFailedError(
            f'Sprint "{sprint.name}" is not in planning state.',
            details={"status": sprint.status},
        )

    active = (
        Sprint.query_for_project(project_id)
        .filter(Sprint.status == "ACTIVE", Sprint.id != sprint.id)
        .first()
    )
    if active is not None:
        logger.info("Start of sprint %s refused: %s already active", sprint.id, active.id,
                    extra=_log_extra(sprint, "sprint_start_conflict"))
        raise ConflictError("Sprint", "status", "ACTIVE",
                            message=f'Sprint "{active.name}" is already active.')

    start = parse_date_input(start_date, "start_date")
    end = parse_date_input(end_date, "end_date")
    if start is None or end is None:
        raise ValidationError("start_date and end_date are required")
    if end <= start:
        raise ValidationError("End date must be after start date.",
                              details={"start_date": start.isoformat(), "end_date": end.isoformat()})

    sprint.status = "ACTIVE"
    sprint.start_date = start
    sprint.end_date = end
    db.session.flush()
    snapshot = _upsert_snapshot(sprint, start)

    logger.info("Sprint %s started (%s → %s)", sprint.id, start, end,
                extra=_log_extra(sprint, "sprint_started"))
    return sprint, snapshot


def close_sprint(project_id, sprint_id, *, today=None):
    """ACTIVE → CLOSED with a same-day snapshot of the final totals.

    ``velocity`` records the completed points at close.
    """
    sprint = get_scoped(Sprint, sprint_id, project_id=project_id)
    if not validate_sprint_transition(sprint.status, "CLOSED"):
        raise PreconditionFailedError(
            f'Sprint "{sprint.name}" is not active.',
            details={"status": sprint.status},
        )
    snapshot = _upsert_snapshot(sprint, today or date.today())
    sprint.status = "CLOSED"
    sprint.velocity = snapshot.completed_points
    db.session.flush()
    logger.info("Sprint %s closed, velocity=%s", sprint.id, sprint.velocity,
                extra=_log_extra(sprint, "sprint_closed"))
    return sprint, snapshot


def record_snapshot(project_id, sprint_id, *, today=None):
    """Upsert today's burndown sample. Safe to call any number of times a day.

    Raises:
        NotFoundError: sprint missing, outside the project, or not ACTIVE.
    """
    sprint = (
        Sprint.query_for_project(project_id)
        .filter(Sprint.id == sprint_id, Sprint.status == "ACTIVE")
        .first()
    )
    if sprint is None:
        raise NotFoundError(resource="Active sprint", resource_id=sprint_id)
    snapshot = _upsert_snapshot(sprint, today or date.today())
    logger.debug("Snapshot recorded sprint=%s date=%s", sprint.id, snapshot.date,
                 extra=_log_extra(sprint, "snapshot_recorded"))
    return snapshot


def record_all_active_snapshots(*, today=None):
    """Record today's snapshot for every ACTIVE sprint. Returns the count."""
    count = 0
    for sprint in Sprint.query.filter(Sprint.status == "ACTIVE").all():
        _upsert_snapshot(sprint, today or date.today())
        count += 1
    return count


# ── Rollover ─────────────────────────────────────────────────────────────────


def _lookup_item(project_id, item_id):
    try:
        item_id = int(item_id)
    except (TypeError, ValueError):
        return None
    return get_scoped_or_none(WorkItem, item_id, project_id=project_id)


def _next_planning_sprint(project_id):
    return (
        Sprint.query_for_project(project_id)
        .filter(Sprint.status == "PLANNING")
        .order_by(Sprint.created_at.desc(), Sprint.id.desc())
        .first()
    )


def rollover_sprint(project_id, sprint_id, decisions, *, actor=None):
    """Redistribute unfinished items of a CLOSED sprint.

    Each decision is ``{"work_item_id": int, "action": "NEXT_SPRINT" | "BACKLOG"}``
    and is applied independently; only the first decision per item counts.
    Decisions that cannot apply are skipped and reported, never fatal.

    Returns:
        {"next_sprint_id": int | None, "moved": [...], "skipped": [...]}
    """
    sprint = get_scoped(Sprint, sprint_id, project_id=project_id)
    if sprint.status != "CLOSED":
        raise PreconditionFailedError(
            f'Sprint "{sprint.name}" must be closed before rollover.',
            details={"status": sprint.status},
        )
    if not isinstance(decisions, list):
        raise ValidationError("decisions must be a list")

    done = _done_label()
    plan = []
    planned_ids = set()
    skipped = []
    for decision in decisions:
        if not isinstance(decision, dict):
            skipped.append({"work_item_id": None, "reason": "malformed decision"})
            continue
        item_id = decision.get("work_item_id")
        action = (decision.get("action") or "").upper()
        reason = None
        item = None
        if action not in ROLLOVER_ACTIONS:
            reason = f"unknown action {decision.get('action')!r}"
        else:
            item = _lookup_item(project_id, item_id)
            if item is None or item.sprint_id != sprint.id:
                reason = "not in this sprint"
            elif item.is_archived:
                reason = "archived"
            elif item.status == done:
                reason = "already done"
            elif item.id in planned_ids:
                reason = "duplicate decision"
        if reason:
            skipped.append({"work_item_id": item_id, "reason": reason})
        else:
            plan.append((item, action))
            planned_ids.add(item.id)

    next_sprint = None
    if any(action == "NEXT_SPRINT" for _, action in plan):
        next_sprint = _next_planning_sprint(project_id)
        if next_sprint is None:
            count = Sprint.query_for_project(project_id).count()
            next_sprint = Sprint(project_id=project_id, name=f"Sprint {count + 1}", status="PLANNING")
            db.session.add(next_sprint)
            db.session.flush()
            logger.info("Rollover created sprint %s", next_sprint.id,
                        extra=_log_extra(next_sprint, "sprint_created"))

    moved = []
    for item, action in plan:
        target = next_sprint.id if action == "NEXT_SPRINT" else None
        write_activity(item, "SPRINT_CHANGED", {"from": item.sprint_id, "to": target}, actor=actor)
        item.sprint_id = target
        moved.append({"work_item_id": item.id, "action": action, "sprint_id": target})
    db.session.flush()

    logger.info("Sprint %s rolled over: %d moved, %d skipped", sprint.id, len(moved), len(skipped),
                extra=_log_extra(sprint, "sprint_rollover"))
    return {
        "next_sprint_id": next_sprint.id if next_sprint else None,
        "moved": moved,
        "skipped": skipped,
    }


# ── Reporting ────────────────────────────────────────────────────────────────


def list_incomplete_items(project_id, sprint_id):
    """Live items of the sprint whose status is not the done label."""
    sprint = get_scoped(Sprint, sprint_id, project_id=project_id)
    return (
        sprint.items
        .filter(WorkItem.archived_at.is_(None), WorkItem.status != _done_label())
        .order_by(WorkItem.position, WorkItem.id)
        .all()
    )


def burndown(project_id, sprint_id):
    sprint = get_scoped(Sprint, sprint_id, project_id=project_id)
    return [s.to_dict() for s in sprint.snapshots]


def sprint_history(project_id):
    """Closed sprints, most recently updated first, each with its latest snapshot."""
    get_project(project_id)
    sprints = (
        Sprint.query_for_project(project_id)
        .filter(Sprint.status == "CLOSED")
        .order_by(Sprint.updated_at.desc(), Sprint.id.desc())
        .all()
    )
    history = []
    for sprint in sprints:
        latest = sprint.snapshots.order_by(None).order_by(SprintSnapshot.date.desc()).first()
        entry = sprint.to_dict()
        entry["item_count"] = sprint.items.count()
        entry["latest_snapshot"] = latest.to_dict() if latest else None
        history.append(entry)
    return history
