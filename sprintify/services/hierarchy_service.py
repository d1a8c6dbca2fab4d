"""
WBS hierarchy manager — indent / outdent and outline numbering.

The outline of a project is the forest of non-archived work items linked
by ``parent_id``.  After every structural change the whole outline is
renumbered from the tree, so these hold for every live item:

    outline_level == 1                          for roots
    outline_level == parent.outline_level + 1   otherwise
    wbs_index     == "n" / "{parent.wbs_index}.n"
    outline_position is 0..k-1 among siblings

Items whose parent is archived are numbered as roots until the parent is
restored.

Transaction policy: flush only, the route handler commits.
"""

import logging
from collections import defaultdict

from sprintify.core.exceptions import ValidationError
from sprintify.models import db
from sprintify.models.work_item import WorkItem, write_activity
from sprintify.services.helpers.scoped_queries import get_project, get_scoped

logger = logging.getLogger(__name__)


def _live_items(project_id):
    return (
        WorkItem.query_for_project(project_id)
        .filter(WorkItem.archived_at.is_(None))
        .order_by(WorkItem.outline_position, WorkItem.id)
        .all()
    )


def _children_map(items):
    """parent_id → ordered children; unknown/archived parents fold into the root bucket."""
    live_ids = {i.id for i in items}
    children = defaultdict(list)
    for item in items:
        parent_key = item.parent_id if item.parent_id in live_ids else None
        children[parent_key].append(item)
    return children


def renumber_outline(project_id):
    """Recompute level, position and WBS index for the whole project outline.

    Returns the number of items renumbered.
    """
    items = _live_items(project_id)
    children = _children_map(items)

    # Iterative pre-order walk; the stack holds (item, level, wbs)
    stack = []
    for idx, root in reversed(list(enumerate(children[None], start=1))):
        stack.append((root, 1, str(idx), idx - 1))
    while stack:
        item, level, wbs, position = stack.pop()
        item.outline_level = level
        item.wbs_index = wbs
        item.outline_position = position
        kids = children.get(item.id, [])
        for idx in range(len(kids), 0, -1):
            stack.append((kids[idx - 1], level + 1, f"{wbs}.{idx}", idx - 1))

    db.session.flush()
    return len(items)


def _effective_parent_id(project_id, parent_id):
    """Parent id as the outline shows it: archived or missing parents read as None."""
    if parent_id is None:
        return None
    parent = db.session.get(WorkItem, parent_id)
    if parent is None or parent.project_id != project_id or parent.is_archived:
        return None
    return parent_id


def _siblings(project_id, parent_id):
    """Live children of ``parent_id`` in outline order, as renumber_outline sees them."""
    children = _children_map(_live_items(project_id))
    return children.get(_effective_parent_id(project_id, parent_id), [])


def _next_child_position(project_id, parent_id):
    kids = _siblings(project_id, parent_id)
    return (kids[-1].outline_position + 1) if kids else 0


def indent(project_id, task_id, *, actor=None):
    """Make the task a child of its immediately preceding sibling.

    Raises:
        ValidationError: the task is first among its siblings.
    """
    get_project(project_id, lock=True)
    task = get_scoped(WorkItem, task_id, project_id=project_id)
    if task.is_archived:
        raise ValidationError("Archived work items cannot be re-parented")

    siblings = _siblings(project_id, task.parent_id)
    idx = next(i for i, s in enumerate(siblings) if s.id == task.id)
    if idx == 0:
        raise ValidationError(
            "No preceding sibling to indent under",
            details={"task_id": task.id},
        )
    new_parent = siblings[idx - 1]

    old_parent_id = _effective_parent_id(project_id, task.parent_id)
    task.outline_position = _next_child_position(project_id, new_parent.id)
    task.parent_id = new_parent.id
    db.session.flush()
    renumber_outline(project_id)

    write_activity(task, "HIERARCHY_CHANGED",
                   {"from_parent": old_parent_id, "to_parent": new_parent.id}, actor=actor)
    logger.info("Task %s indented under %s (wbs=%s)", task.id, new_parent.id, task.wbs_index,
                extra={"project_id": project_id, "work_item_id": task.id,
                       "event_type": "task_indented"})
    return task


def outdent(project_id, task_id, *, actor=None):
    """Move the task up one level, directly after its former parent.

    Later siblings stay under the former parent.

    Raises:
        ValidationError: the task is already a root.
    """
    get_project(project_id, lock=True)
    task = get_scoped(WorkItem, task_id, project_id=project_id)
    if task.is_archived:
        raise ValidationError("Archived work items cannot be re-parented")
    parent = task.parent
    if parent is None or parent.is_archived:
        raise ValidationError("Task is already at the top level", details={"task_id": task.id})

    grandparent_id = _effective_parent_id(project_id, parent.parent_id)
    # Open a slot right after the former parent among its siblings
    for sibling in _siblings(project_id, grandparent_id):
        if sibling.outline_position > parent.outline_position:
            sibling.outline_position += 1
    task.parent_id = grandparent_id
    task.outline_position = parent.outline_position + 1
    db.session.flush()
    renumber_outline(project_id)

    write_activity(task, "HIERARCHY_CHANGED",
                   {"from_parent": parent.id, "to_parent": grandparent_id}, actor=actor)
    logger.info("Task %s outdented (wbs=%s)", task.id, task.wbs_index,
                extra={"project_id": project_id, "work_item_id": task.id,
                       "event_type": "task_outdented"})
    return task


def wbs_tree(project_id):
    """Nested outline for display: ``[{item..., "children": [...]}, ...]``."""
    get_project(project_id)
    items = _live_items(project_id)
    children = _children_map(items)

    def build(node):
        data = node.to_dict()
        data["children"] = [build(k) for k in children.get(node.id, [])]
        return data

    return [build(root) for root in children[None]]
