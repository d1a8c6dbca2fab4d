"""
Workflow gate — board transition guards.

Decides whether a work item may enter a target column and applies the move
together with its activity record, all inside the caller's transaction.

Guards (both evaluated before any write):
    1. Capacity:  a column with ``wip_limit`` refuses a new entrant when it
                  already holds ``wip_limit`` non-archived items.  Reordering
                  inside the same column is never blocked.
    2. Quality:   a DONE-type column refuses an item with unchecked
                  Definition-of-Done entries.  No DOD entries means pass.

Transaction policy: flush only, the route handler commits.
"""

import logging

from sprintify.core.exceptions import NotFoundError, PreconditionFailedError, ValidationError
from sprintify.models import db
from sprintify.models.project import BoardColumn
from sprintify.models.work_item import ChecklistItem, WorkItem, write_activity
from sprintify.services.helpers.scoped_queries import get_scoped
from sprintify.utils.helpers import parse_int_input

logger = logging.getLogger(__name__)


def count_column_items(column_id):
    """Non-archived items currently in the column (the WIP count)."""
    return (
        WorkItem.query
        .filter(WorkItem.column_id == column_id, WorkItem.archived_at.is_(None))
        .count()
    )


def is_dod_complete(work_item):
    """Summarize the Definition-of-Done checklist of a work item."""
    dod = work_item.checklist.filter(ChecklistItem.type == "DOD").all()
    checked = sum(1 for c in dod if c.checked)
    return {"complete": checked == len(dod), "total": len(dod), "checked": checked}


def check_capacity(column, moving_item):
    if column.wip_limit is None or moving_item.column_id == column.id:
        return
    current = count_column_items(column.id)
    if current >= column.wip_limit:
        logger.info(
            "WIP limit blocked move of item %s into column %s (%d/%d)",
            moving_item.id, column.id, current, column.wip_limit,
            extra={"project_id": column.project_id, "work_item_id": moving_item.id,
                   "event_type": "wip_blocked"},
        )
        raise PreconditionFailedError(
            f'WIP Limit Reached! "{column.name}" has a limit of {column.wip_limit}. '
            "Finish existing work first.",
            details={"column_id": column.id, "wip_limit": column.wip_limit, "count": current},
        )


def check_definition_of_done(column, moving_item):
    if column.col_type != "DONE":
        return
    summary = is_dod_complete(moving_item)
    unchecked = summary["total"] - summary["checked"]
    if unchecked > 0:
        logger.info(
            "DoD gate blocked item %s: %d unchecked", moving_item.id, unchecked,
            extra={"project_id": column.project_id, "work_item_id": moving_item.id,
                   "event_type": "dod_blocked"},
        )
        raise PreconditionFailedError(
            f"Cannot move to Done: {unchecked} Definition of Done item(s) not completed.",
            details={"unchecked": unchecked, "total": summary["total"]},
        )


def attempt_move(project_id, work_item_id, target_column_id, target_position=0, *, actor=None):
    """Move a work item onto a board column.

    Args:
        project_id: Owning project; both item and column must belong to it.
        work_item_id: Item to move. Archived items cannot be moved.
        target_column_id: Destination column.
        target_position: Zero-based slot in the destination column.
        actor: Optional name recorded on the activity entry.

    Returns:
        The updated WorkItem.

    Raises:
        NotFoundError: item or column missing, outside the project, or item archived.
        PreconditionFailedError: WIP limit reached or DOD incomplete.
        ValidationError: negative or non-integer target position.
    """
    target_position = parse_int_input(target_position, "target_position")
    if target_position < 0:
        raise ValidationError("target_position must be >= 0")

    item = get_scoped(WorkItem, work_item_id, project_id=project_id)
    if item.is_archived:
        raise NotFoundError(resource="WorkItem", resource_id=work_item_id)

    # Row lock serializes concurrent entrants racing for the last WIP slot
    column = get_scoped(BoardColumn, target_column_id, project_id=project_id, lock=True)

    check_capacity(column, item)
    check_definition_of_done(column, item)

    previous = item.column
    item.column_id = column.id
    item.position = target_position
    db.session.flush()

    if previous is None or previous.id != column.id:
        write_activity(
            item, "COLUMN_CHANGE",
            {"from": previous.name if previous else None, "to": column.name},
            actor=actor,
        )
        logger.info(
            "Item %s moved %s → %s", item.id,
            previous.name if previous else None, column.name,
            extra={"project_id": project_id, "work_item_id": item.id, "event_type": "item_moved"},
        )
    return item
