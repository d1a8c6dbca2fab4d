"""
Sprintify
Tests — projects, columns, work items and checklists.
"""

import pytest

from sprintify.core.exceptions import ConflictError, NotFoundError, ValidationError
from sprintify.models import db as _db
from sprintify.models.project import DEFAULT_BOARD_COLUMNS
from sprintify.models.work_item import Activity, WorkItem, write_activity
from sprintify.services import board_service, workflow_gate
from sprintify.services.helpers.scoped_queries import get_project, get_scoped


# ═════════════════════════════════════════════════════════════════════════════
# ORGANIZATIONS / PROJECTS
# ═════════════════════════════════════════════════════════════════════════════


def test_project_gets_default_columns(project):
    cols = project.columns.all()
    assert [c.name for c in cols] == [c["name"] for c in DEFAULT_BOARD_COLUMNS]
    assert cols[-1].col_type == "DONE"
    assert {c.board_type for c in cols} == {"KANBAN"}


def test_waterfall_project_columns_use_waterfall_board(waterfall_project):
    assert {c.board_type for c in waterfall_project.columns} == {"WATERFALL"}


def test_duplicate_project_key_conflicts(organization, project):
    with pytest.raises(ConflictError):
        board_service.create_project(organization.id, {"name": "Again", "key": "WEB"})


@pytest.mark.parametrize("key", ["w", "1WEB", "WEB-1", "TOOLONGKEY1"])
def test_invalid_project_key(organization, key):
    with pytest.raises(ValidationError):
        board_service.create_project(organization.id, {"name": "X", "key": key})


def test_project_scoped_to_organization(project):
    other = board_service.create_organization({"name": "Globex", "slug": "globex"})
    _db.session.commit()
    with pytest.raises(NotFoundError) as exc:
        get_project(project.id, organization_id=other.id)
    assert str(exc.value) == f"Project id={project.id} not found"


def test_unscoped_lookup_refused(project):
    with pytest.raises(ValueError):
        get_scoped(WorkItem, 1)


# ═════════════════════════════════════════════════════════════════════════════
# COLUMNS
# ═════════════════════════════════════════════════════════════════════════════


def test_create_column_appends(project):
    column = board_service.create_column(project.id, {"name": "QA", "col_type": "doing",
                                                      "wip_limit": 3})
    assert column.position == len(DEFAULT_BOARD_COLUMNS)
    assert column.col_type == "DOING"


def test_wip_limit_must_be_positive(project, columns):
    with pytest.raises(ValidationError):
        board_service.update_column(project.id, columns["To Do"].id, {"wip_limit": 0})


@pytest.mark.parametrize("limit", [2.5, "3.5"])
def test_wip_limit_must_be_whole(project, columns, limit):
    with pytest.raises(ValidationError):
        board_service.update_column(project.id, columns["To Do"].id, {"wip_limit": limit})


def test_delete_column_refused_while_occupied(project, columns, make_item):
    make_item(project)
    with pytest.raises(ValidationError) as exc:
        board_service.delete_column(project.id, columns["Backlog"].id)
    assert str(exc.value) == 'Column "Backlog" still contains 1 work item(s). Move them first.'


def test_delete_empty_column(project, columns):
    board_service.delete_column(project.id, columns["Review"].id)
    _db.session.commit()
    assert project.columns.count() == len(DEFAULT_BOARD_COLUMNS) - 1


# ═════════════════════════════════════════════════════════════════════════════
# WORK ITEMS
# ═════════════════════════════════════════════════════════════════════════════


def test_items_numbered_per_project(project, columns, make_item):
    first, second = make_item(project, "one"), make_item(project, "two")

    assert (first.number, second.number) == (1, 2)
    assert first.column_id == columns["Backlog"].id
    assert second.position == 1
    assert first.status == "BACKLOG"


def test_waterfall_items_are_neutral(waterfall_project, make_item):
    item = make_item(waterfall_project, story_points=8, user_business_value=9, job_size=3)

    assert item.story_points is None
    assert item.user_business_value == 0
    assert item.job_size == 1
    assert item.wsjf_score == 0


def test_switch_to_waterfall_neutralizes(project, make_item):
    item = make_item(project, story_points=8, user_business_value=6, time_criticality=3,
                     risk_reduction=3, job_size=2)
    assert item.wsjf_score == 6

    board_service.update_project(project.id, {"methodology": "WATERFALL"})
    _db.session.commit()

    assert item.story_points is None
    assert item.wsjf_score == 0


def test_wsjf_components_bounded(project, make_item):
    item = make_item(project)
    with pytest.raises(ValidationError):
        board_service.update_work_item(project.id, item.id, {"time_criticality": 11})


def test_update_logs_status_priority_and_wsjf(project, make_item):
    item = make_item(project)
    board_service.update_work_item(project.id, item.id, {
        "status": "in review", "priority": "high", "user_business_value": 5,
    }, actor="dana")
    _db.session.commit()

    types = {a.type for a in Activity.query.filter_by(work_item_id=item.id)}
    assert types == {"STATUS_CHANGE", "PRIORITY_CHANGE", "WSJF_UPDATED"}
    assert item.status == "IN REVIEW"


def test_update_refuses_column_change(project, columns, make_item):
    item = make_item(project)
    with pytest.raises(ValidationError):
        board_service.update_work_item(project.id, item.id, {"column_id": columns["Done"].id})


def test_archive_and_restore_are_idempotent(project, make_item):
    item = make_item(project)
    board_service.archive_work_item(project.id, item.id)
    board_service.archive_work_item(project.id, item.id)
    board_service.restore_work_item(project.id, item.id)
    board_service.restore_work_item(project.id, item.id)
    _db.session.commit()

    types = [a.type for a in item.activities]
    assert types == ["STORY_RESTORED", "STORY_ARCHIVED"]
    assert not item.is_archived


def test_restore_ignores_wip_limit(project, columns, make_item):
    doing = columns["In Progress"]
    board_service.update_column(project.id, doing.id, {"wip_limit": 1})
    parked, other = make_item(project, "parked"), make_item(project, "other")
    workflow_gate.attempt_move(project.id, parked.id, doing.id)
    board_service.archive_work_item(project.id, parked.id)
    workflow_gate.attempt_move(project.id, other.id, doing.id)
    _db.session.commit()

    board_service.restore_work_item(project.id, parked.id)
    _db.session.commit()

    assert workflow_gate.count_column_items(doing.id) == 2


def test_unknown_activity_type_refused(project, make_item):
    item = make_item(project)
    with pytest.raises(ValueError):
        write_activity(item, "TELEPORTED")


# ═════════════════════════════════════════════════════════════════════════════
# CHECKLISTS
# ═════════════════════════════════════════════════════════════════════════════


def test_checklist_toggle_and_set(project, make_item):
    item = make_item(project)
    entry = board_service.add_checklist_item(project.id, item.id, {"title": "Tests",
                                                                   "type": "dod"})
    assert entry.type == "DOD"

    assert board_service.toggle_checklist_item(project.id, entry.id).checked is True
    assert board_service.toggle_checklist_item(project.id, entry.id).checked is False
    assert board_service.toggle_checklist_item(project.id, entry.id, True).checked is True


def test_checklist_type_validated(project, make_item):
    item = make_item(project)
    with pytest.raises(ValidationError):
        board_service.add_checklist_item(project.id, item.id, {"title": "x", "type": "TODO"})


def test_checklist_of_other_project_looks_missing(organization, project, make_item):
    other = board_service.create_project(organization.id, {"name": "Other", "key": "OTH"})
    _db.session.commit()
    item = make_item(project)
    entry = board_service.add_checklist_item(project.id, item.id, {"title": "x", "type": "DOR"})
    _db.session.commit()

    with pytest.raises(NotFoundError):
        board_service.delete_checklist_item(other.id, entry.id)
