"""Board service layer — projects, columns, work items and checklists.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Operations:
- Organization / project creation (project gets the default board columns)
- Board column create / update / delete (delete refused while items remain)
- Work item create / update / archive / restore
    - project-scoped ``number`` from the project's item counter
    - WATERFALL projects force neutral WSJF values and no story points
    - column changes are NOT accepted here; they go through workflow_gate
- Checklist (DOR / DOD) add / toggle / delete
"""
import logging
import re

from sprintify.core.exceptions import ConflictError, NotFoundError, ValidationError
from sprintify.models import db
from sprintify.models.phase import Phase
from sprintify.models.project import (
    BOARD_TYPES,
    COLUMN_TYPES,
    DEFAULT_BOARD_COLUMNS,
    METHODOLOGIES,
    BoardColumn,
    Organization,
    Project,
)
from sprintify.models.sprint import Sprint
from sprintify.models.work_item import (
    CHECKLIST_TYPES,
    DEFAULT_STATUS,
    ChecklistItem,
    WorkItem,
    write_activity,
)
from sprintify.services import hierarchy_service
from sprintify.services.helpers.scoped_queries import get_project, get_scoped
from sprintify.utils.helpers import parse_date_input, parse_int_input

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Z][A-Z0-9]{1,9}$")
_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,99}$")

WSJF_FIELDS = ("user_business_value", "time_criticality", "risk_reduction")

WATERFALL_NEUTRAL = {
    "story_points": None,
    "user_business_value": 0,
    "time_criticality": 0,
    "risk_reduction": 0,
    "job_size": 1,
}


def _int_field(data, field, *, minimum=None, maximum=None, nullable=False):
    value = data.get(field)
    if value is None:
        if nullable:
            return None
        raise ValidationError(f"{field} is required", details={field: "required"})
    value = parse_int_input(value, field)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: value})
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", details={field: value})
    return value


# ── Organizations & projects ─────────────────────────────────────────────────


def create_organization(data):
    name = (data.get("name") or "").strip()
    slug = (data.get("slug") or "").strip().lower()
    if not name:
        raise ValidationError("Organization name is required", details={"name": "required"})
    if not _SLUG_RE.match(slug):
        raise ValidationError("slug must be lowercase alphanumeric with dashes",
                              details={"slug": slug})
    if Organization.query.filter_by(slug=slug).first():
        raise ConflictError("Organization", "slug", slug)
    org = Organization(name=name, slug=slug)
    db.session.add(org)
    db.session.flush()
    logger.info("Organization created id=%s slug=%s", org.id, org.slug,
                extra={"organization_id": org.id, "event_type": "organization_created"})
    return org


def create_project(organization_id, data):
    """Create a project and its default board columns.

    Raises:
        NotFoundError: organization missing.
        ValidationError: bad key / name / methodology.
        ConflictError: key already used in the organization.
    """
    org = db.session.get(Organization, organization_id) if organization_id else None
    if org is None:
        raise NotFoundError(resource="Organization", resource_id=organization_id)

    name = (data.get("name") or "").strip()
    key = (data.get("key") or "").strip().upper()
    methodology = (data.get("methodology") or "AGILE").upper()
    if not name:
        raise ValidationError("Project name is required", details={"name": "required"})
    if not _KEY_RE.match(key):
        raise ValidationError("key must be 2-10 uppercase letters/digits starting with a letter",
                              details={"key": key})
    if methodology not in METHODOLOGIES:
        raise ValidationError(
            f"methodology must be one of: {', '.join(sorted(METHODOLOGIES))}",
            details={"methodology": methodology},
        )
    if Project.query.filter_by(organization_id=org.id, key=key).first():
        raise ConflictError("Project", "key", key)

    project = Project(
        organization_id=org.id,
        key=key,
        name=name,
        description=data.get("description", ""),
        methodology=methodology,
        start_date=parse_date_input(data.get("start_date"), "start_date"),
    )
    db.session.add(project)
    db.session.flush()

    board_type = "WATERFALL" if methodology == "WATERFALL" else "KANBAN"
    for spec in DEFAULT_BOARD_COLUMNS:
        db.session.add(BoardColumn(project_id=project.id, board_type=board_type, **spec))
    db.session.flush()

    logger.info("Project created id=%s key=%s methodology=%s", project.id, key, methodology,
                extra={"organization_id": org.id, "project_id": project.id,
                       "event_type": "project_created"})
    return project


def update_project(project_id, data, *, organization_id=None):
    project = get_project(project_id, organization_id=organization_id)
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Project name is required", details={"name": "required"})
        project.name = name
    if "description" in data:
        project.description = data["description"] or ""
    if "start_date" in data:
        project.start_date = parse_date_input(data["start_date"], "start_date")
    if "methodology" in data:
        methodology = (data["methodology"] or "").upper()
        if methodology not in METHODOLOGIES:
            raise ValidationError(
                f"methodology must be one of: {', '.join(sorted(METHODOLOGIES))}",
                details={"methodology": methodology},
            )
        project.methodology = methodology
        if methodology == "WATERFALL":
            _neutralize_project_items(project.id)
    db.session.flush()
    return project


def _neutralize_project_items(project_id):
    for item in WorkItem.query_for_project(project_id).all():
        for field, value in WATERFALL_NEUTRAL.items():
            setattr(item, field, value)


# ── Columns ──────────────────────────────────────────────────────────────────


def _column_payload(data, *, partial):
    fields = {}
    if not partial or "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Column name is required", details={"name": "required"})
        fields["name"] = name
    if not partial or "col_type" in data:
        col_type = (data.get("col_type") or "TODO").upper()
        if col_type not in COLUMN_TYPES:
            raise ValidationError(
                f"col_type must be one of: {', '.join(sorted(COLUMN_TYPES))}",
                details={"col_type": col_type},
            )
        fields["col_type"] = col_type
    if not partial or "board_type" in data:
        board_type = (data.get("board_type") or "KANBAN").upper()
        if board_type not in BOARD_TYPES:
            raise ValidationError(
                f"board_type must be one of: {', '.join(sorted(BOARD_TYPES))}",
                details={"board_type": board_type},
            )
        fields["board_type"] = board_type
    if not partial or "wip_limit" in data:
        fields["wip_limit"] = _int_field(data, "wip_limit", minimum=1, nullable=True)
    return fields


def create_column(project_id, data):
    project = get_project(project_id)
    fields = _column_payload(data, partial=False)
    if "position" in data:
        fields["position"] = _int_field(data, "position", minimum=0)
    else:
        fields["position"] = project.columns.count()
    column = BoardColumn(project_id=project.id, **fields)
    db.session.add(column)
    db.session.flush()
    logger.info("Column created id=%s name=%s", column.id, column.name,
                extra={"project_id": project.id, "event_type": "column_created"})
    return column


def update_column(project_id, column_id, data):
    """Rename / retype a column or change its WIP limit.

    Lowering a limit below the current count is allowed; it only blocks
    new entrants.
    """
    column = get_scoped(BoardColumn, column_id, project_id=project_id)
    for field, value in _column_payload(data, partial=True).items():
        setattr(column, field, value)
    if "position" in data:
        column.position = _int_field(data, "position", minimum=0)
    db.session.flush()
    return column


def delete_column(project_id, column_id):
    """Delete a column. Refused while it holds any non-archived work item."""
    column = get_scoped(BoardColumn, column_id, project_id=project_id, lock=True)
    live = (
        WorkItem.query
        .filter(WorkItem.column_id == column.id, WorkItem.archived_at.is_(None))
        .count()
    )
    if live:
        raise ValidationError(
            f'Column "{column.name}" still contains {live} work item(s). Move them first.',
            details={"column_id": column.id, "count": live},
        )
    db.session.delete(column)
    db.session.flush()
    logger.info("Column deleted id=%s", column_id,
                extra={"project_id": project_id, "event_type": "column_deleted"})


# ── Work items ───────────────────────────────────────────────────────────────


def _prioritization(project, data, item=None):
    """Resolve points/WSJF fields; WATERFALL projects always get neutral values."""
    if project.methodology == "WATERFALL":
        return dict(WATERFALL_NEUTRAL)
    fields = {}
    if item is None or "story_points" in data:
        fields["story_points"] = _int_field(data, "story_points", minimum=0, nullable=True)
    for field in WSJF_FIELDS:
        if item is None or field in data:
            if data.get(field) is None and item is None:
                fields[field] = 0
            else:
                fields[field] = _int_field(data, field, minimum=0, maximum=10)
    if item is None or "job_size" in data:
        fields["job_size"] = (
            1 if data.get("job_size") is None and item is None
            else _int_field(data, "job_size", minimum=1)
        )
    return fields


def create_work_item(project_id, data, *, actor=None):
    """Create a work item at the end of its column.

    ``column_id`` defaults to the first column by position.
    """
    project = get_project(project_id, lock=True)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Work item title is required", details={"title": "required"})
    if len(title) > 200:
        raise ValidationError("title must be at most 200 characters")

    if data.get("column_id") is not None:
        column = get_scoped(BoardColumn, data["column_id"], project_id=project.id)
    else:
        column = project.columns.first()

    sprint_id = data.get("sprint_id")
    if sprint_id is not None:
        sprint_id = get_scoped(Sprint, sprint_id, project_id=project.id).id

    parent_id = data.get("parent_id")
    if parent_id is not None:
        parent_id = get_scoped(WorkItem, parent_id, project_id=project.id).id

    phase_id = data.get("phase_id")
    if phase_id is not None:
        phase_id = get_scoped(Phase, phase_id, project_id=project.id).id

    start = parse_date_input(data.get("start_date"), "start_date")
    end = parse_date_input(data.get("end_date"), "end_date")
    if start and end and end < start:
        raise ValidationError("end_date must not be before start_date")
    duration = (
        (end - start).days if start and end
        else _int_field({"duration": data.get("duration", 1)}, "duration", minimum=0)
    )

    project.item_counter = (project.item_counter or 0) + 1
    position = (
        WorkItem.query.filter(WorkItem.column_id == column.id).count() if column else 0
    )
    siblings = WorkItem.query_for_project(project.id).filter(WorkItem.parent_id == parent_id)

    item = WorkItem(
        project_id=project.id,
        number=project.item_counter,
        title=title,
        description=data.get("description", ""),
        priority=(data.get("priority") or "NONE").upper(),
        status=DEFAULT_STATUS,
        column_id=column.id if column else None,
        position=position,
        sprint_id=sprint_id,
        phase_id=phase_id,
        parent_id=parent_id,
        outline_position=siblings.count(),
        duration=duration,
        start_date=start,
        end_date=end,
        is_milestone=bool(data.get("is_milestone", False)),
        **_prioritization(project, data),
    )
    db.session.add(item)
    db.session.flush()
    hierarchy_service.renumber_outline(project.id)

    logger.info("Work item created id=%s %s-%s", item.id, project.key, item.number,
                extra={"project_id": project.id, "work_item_id": item.id,
                       "event_type": "work_item_created"})
    return item


_PLAIN_FIELDS = ("description", "is_milestone")


def update_work_item(project_id, work_item_id, data, *, actor=None):
    """Update scalar fields and log status / priority changes.

    ``column_id`` is rejected: board moves must pass the workflow gate.
    """
    if "column_id" in data:
        raise ValidationError("column_id cannot be updated directly; use the move operation",
                              details={"column_id": data["column_id"]})
    project = get_project(project_id)
    item = get_scoped(WorkItem, work_item_id, project_id=project.id)

    if "title" in data:
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("Work item title is required", details={"title": "required"})
        item.title = title
    for field in _PLAIN_FIELDS:
        if field in data:
            setattr(item, field, data[field])

    if "status" in data:
        status = (data.get("status") or "").strip().upper()
        if not status:
            raise ValidationError("status must not be empty")
        if status != item.status:
            write_activity(item, "STATUS_CHANGE", {"from": item.status, "to": status}, actor=actor)
            item.status = status

    if "priority" in data:
        priority = (data.get("priority") or "NONE").upper()
        if priority != item.priority:
            write_activity(item, "PRIORITY_CHANGE", {"from": item.priority, "to": priority},
                           actor=actor)
            item.priority = priority

    if "duration" in data:
        item.duration = _int_field(data, "duration", minimum=0)

    before = {f: getattr(item, f) for f in WSJF_FIELDS + ("job_size",)}
    for field, value in _prioritization(project, data, item).items():
        setattr(item, field, value)
    if project.methodology != "WATERFALL" and any(
        getattr(item, f) != v for f, v in before.items()
    ):
        write_activity(item, "WSJF_UPDATED", {"wsjf_score": item.wsjf_score}, actor=actor)

    db.session.flush()
    return item


def list_work_items(project_id, *, include_archived=False, sprint_id=None, column_id=None):
    get_project(project_id)
    q = WorkItem.query_for_project(project_id)
    if not include_archived:
        q = q.filter(WorkItem.archived_at.is_(None))
    if sprint_id is not None:
        q = q.filter(WorkItem.sprint_id == sprint_id)
    if column_id is not None:
        q = q.filter(WorkItem.column_id == column_id)
    return q.order_by(WorkItem.position, WorkItem.id)


def archive_work_item(project_id, work_item_id, *, actor=None):
    """Soft delete. Archived items leave WIP counts and sprint totals."""
    item = get_scoped(WorkItem, work_item_id, project_id=project_id)
    if item.is_archived:
        return item
    item.archive()
    write_activity(item, "STORY_ARCHIVED", actor=actor)
    hierarchy_service.renumber_outline(project_id)
    logger.info("Work item archived id=%s", item.id,
                extra={"project_id": project_id, "work_item_id": item.id,
                       "event_type": "work_item_archived"})
    return item


def restore_work_item(project_id, work_item_id, *, actor=None):
    """Undo an archive. The WIP limit is not re-checked on restore."""
    item = get_scoped(WorkItem, work_item_id, project_id=project_id)
    if not item.is_archived:
        return item
    item.restore()
    write_activity(item, "STORY_RESTORED", actor=actor)
    hierarchy_service.renumber_outline(project_id)
    return item


# ── Checklists ───────────────────────────────────────────────────────────────


def add_checklist_item(project_id, work_item_id, data):
    item = get_scoped(WorkItem, work_item_id, project_id=project_id)
    title = (data.get("title") or "").strip()
    ctype = (data.get("type") or "").upper()
    if not title:
        raise ValidationError("Checklist title is required", details={"title": "required"})
    if ctype not in CHECKLIST_TYPES:
        raise ValidationError(
            f"type must be one of: {', '.join(sorted(CHECKLIST_TYPES))}",
            details={"type": ctype},
        )
    entry = ChecklistItem(
        work_item_id=item.id,
        title=title,
        type=ctype,
        checked=bool(data.get("checked", False)),
        position=item.checklist.filter(ChecklistItem.type == ctype).count(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def _get_checklist_item(project_id, checklist_item_id):
    entry = db.session.get(ChecklistItem, checklist_item_id)
    if entry is None or entry.work_item.project_id != project_id:
        raise NotFoundError(resource="ChecklistItem", resource_id=checklist_item_id)
    return entry


def toggle_checklist_item(project_id, checklist_item_id, checked=None):
    """Flip (or set) the checked flag of a checklist entry."""
    entry = _get_checklist_item(project_id, checklist_item_id)
    entry.checked = (not entry.checked) if checked is None else bool(checked)
    db.session.flush()
    return entry


def delete_checklist_item(project_id, checklist_item_id):
    entry = _get_checklist_item(project_id, checklist_item_id)
    db.session.delete(entry)
    db.session.flush()
