"""
Sprintify
Tests — sprint lifecycle, point accounting, snapshots and rollover.
"""

from datetime import date

import pytest

from sprintify.core.exceptions import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from sprintify.models import db as _db
from sprintify.models.sprint import Sprint, SprintSnapshot, validate_sprint_transition
from sprintify.models.work_item import Activity, WorkItem
from sprintify.services import board_service, sprint_service, workflow_gate


def _start(project, sprint, start="2025-03-03", end="2025-03-17"):
    result = sprint_service.start_sprint(project.id, sprint.id, start, end)
    _db.session.commit()
    return result


def _set_status(project, item, status):
    board_service.update_work_item(project.id, item.id, {"status": status})
    _db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# CREATE / TRANSITIONS
# ═════════════════════════════════════════════════════════════════════════════


def test_transition_table():
    assert validate_sprint_transition("PLANNING", "ACTIVE")
    assert validate_sprint_transition("ACTIVE", "CLOSED")
    assert not validate_sprint_transition("CLOSED", "ACTIVE")
    assert not validate_sprint_transition("PLANNING", "CLOSED")


def test_create_sprint_defaults(project, make_sprint):
    first = make_sprint(project)
    second = make_sprint(project, start_date="2025-03-03")

    assert first.name == "Sprint 1"
    assert first.status == "PLANNING"
    assert second.name == "Sprint 2"
    assert second.end_date == date(2025, 3, 17)


def test_create_sprint_rejects_inverted_dates(project):
    with pytest.raises(ValidationError):
        sprint_service.create_sprint(project.id, {"start_date": "2025-03-10",
                                                  "end_date": "2025-03-10"})


def test_start_sprint_records_opening_snapshot(project, make_sprint, make_item):
    sprint = make_sprint(project, "Sprint A")
    make_item(project, "a", story_points=3, sprint_id=sprint.id)
    make_item(project, "b", story_points=5, sprint_id=sprint.id)

    started, snapshot = _start(project, sprint)

    assert started.status == "ACTIVE"
    assert snapshot.date == date(2025, 3, 3)
    assert snapshot.total_points == 8
    assert snapshot.completed_points == 0


def test_second_active_sprint_conflicts(project, make_sprint):
    a = make_sprint(project, "Sprint A")
    b = make_sprint(project, "Sprint B")
    _start(project, a)

    with pytest.raises(ConflictError) as exc:
        sprint_service.start_sprint(project.id, b.id, "2025-03-17", "2025-03-31")

    assert str(exc.value) == 'Sprint "Sprint A" is already active.'


def test_start_requires_planning(project, make_sprint):
    sprint = make_sprint(project, "Sprint A")
    _start(project, sprint)
    with pytest.raises(PreconditionFailedError):
        sprint_service.start_sprint(project.id, sprint.id, "2025-03-03", "2025-03-17")


@pytest.mark.parametrize("start,end", [
    ("2025-03-10", "2025-03-10"),
    ("2025-03-10", "2025-03-01"),
    (None, "2025-03-01"),
])
def test_start_rejects_bad_dates(project, make_sprint, start, end):
    sprint = make_sprint(project)
    with pytest.raises(ValidationError):
        sprint_service.start_sprint(project.id, sprint.id, start, end)


def test_close_sets_velocity(project, make_sprint, make_item):
    sprint = make_sprint(project)
    done = make_item(project, "done", story_points=5, user_business_value=7, sprint_id=sprint.id)
    make_item(project, "open", story_points=3, sprint_id=sprint.id)
    _start(project, sprint)
    _set_status(project, done, "done")

    closed, snapshot = sprint_service.close_sprint(project.id, sprint.id, today=date(2025, 3, 17))
    _db.session.commit()

    assert closed.status == "CLOSED"
    assert closed.velocity == 5
    assert snapshot.completed_value == 7
    assert snapshot.remaining_points == 3


def test_close_requires_active(project, make_sprint):
    sprint = make_sprint(project)
    with pytest.raises(PreconditionFailedError):
        sprint_service.close_sprint(project.id, sprint.id)


def test_closed_sprint_rejects_new_items(project, make_sprint, make_item):
    sprint = make_sprint(project)
    _start(project, sprint)
    sprint_service.close_sprint(project.id, sprint.id)
    _db.session.commit()
    item = make_item(project)

    with pytest.raises(PreconditionFailedError):
        sprint_service.assign_item(project.id, item.id, sprint.id)


# ═════════════════════════════════════════════════════════════════════════════
# POINT ACCOUNTING / SNAPSHOTS
# ═════════════════════════════════════════════════════════════════════════════


def test_done_column_with_other_status_counts_incomplete(project, columns, make_sprint,
                                                         make_item):
    sprint = make_sprint(project)
    item = make_item(project, story_points=8, sprint_id=sprint.id)
    workflow_gate.attempt_move(project.id, item.id, columns["Done"].id)
    _db.session.commit()

    totals = sprint_service.compute_totals(sprint)

    assert totals["total_points"] == 8
    assert totals["completed_points"] == 0
    assert [i.id for i in sprint_service.list_incomplete_items(project.id, sprint.id)] == [item.id]


def test_done_status_outside_done_column_counts_complete(project, make_sprint, make_item):
    sprint = make_sprint(project)
    item = make_item(project, story_points=8, sprint_id=sprint.id)
    _set_status(project, item, "DONE")

    assert sprint_service.compute_totals(sprint)["completed_points"] == 8


def test_archived_items_leave_totals(project, make_sprint, make_item):
    sprint = make_sprint(project)
    keep = make_item(project, story_points=2, sprint_id=sprint.id)
    gone = make_item(project, story_points=13, sprint_id=sprint.id)
    board_service.archive_work_item(project.id, gone.id)
    _db.session.commit()

    assert sprint_service.compute_totals(sprint)["total_points"] == 2
    assert keep.sprint_id == sprint.id


def test_snapshot_upserts_one_row_per_day(project, make_sprint, make_item):
    sprint = make_sprint(project)
    item = make_item(project, story_points=5, sprint_id=sprint.id)
    _start(project, sprint)
    day = date(2025, 3, 5)

    sprint_service.record_snapshot(project.id, sprint.id, today=day)
    _set_status(project, item, "DONE")
    snapshot = sprint_service.record_snapshot(project.id, sprint.id, today=day)
    _db.session.commit()

    rows = SprintSnapshot.query.filter_by(sprint_id=sprint.id, date=day).all()
    assert len(rows) == 1
    assert snapshot.completed_points == 5
    assert [s["date"] for s in sprint_service.burndown(project.id, sprint.id)] == [
        "2025-03-03", "2025-03-05",
    ]


def test_snapshot_of_planning_sprint_not_found(project, make_sprint):
    sprint = make_sprint(project)
    with pytest.raises(NotFoundError):
        sprint_service.record_snapshot(project.id, sprint.id)


def test_record_all_active_snapshots(organization, project, make_sprint):
    other = board_service.create_project(organization.id, {"name": "Other", "key": "OTH"})
    _db.session.commit()
    _start(project, make_sprint(project))
    _start(other, make_sprint(other))
    make_sprint(project)

    count = sprint_service.record_all_active_snapshots(today=date(2025, 3, 4))

    assert count == 2
    assert SprintSnapshot.query.filter_by(date=date(2025, 3, 4)).count() == 2


# ═════════════════════════════════════════════════════════════════════════════
# ROLLOVER
# ═════════════════════════════════════════════════════════════════════════════


class TestRollover:
    @pytest.fixture()
    def running_sprint(self, project, make_sprint):
        sprint = make_sprint(project, "Sprint A")
        _start(project, sprint)
        return sprint

    def _close(self, project, sprint):
        sprint_service.close_sprint(project.id, sprint.id)
        _db.session.commit()

    def test_rollover_creates_next_sprint(self, project, running_sprint, make_item):
        carry = make_item(project, "carry", sprint_id=running_sprint.id)
        drop = make_item(project, "drop", sprint_id=running_sprint.id)
        self._close(project, running_sprint)

        result = sprint_service.rollover_sprint(project.id, running_sprint.id, [
            {"work_item_id": carry.id, "action": "NEXT_SPRINT"},
            {"work_item_id": drop.id, "action": "BACKLOG"},
        ])
        _db.session.commit()

        assert result["next_sprint_id"] is not None
        assert _db.session.get(WorkItem, carry.id).sprint_id == result["next_sprint_id"]
        assert _db.session.get(WorkItem, drop.id).sprint_id is None
        assert result["skipped"] == []

    def test_rollover_reuses_planning_sprint(self, project, running_sprint, make_sprint,
                                             make_item):
        upcoming = make_sprint(project, "Sprint B")
        item = make_item(project, sprint_id=running_sprint.id)
        self._close(project, running_sprint)

        result = sprint_service.rollover_sprint(
            project.id, running_sprint.id, [{"work_item_id": item.id, "action": "NEXT_SPRINT"}],
        )

        assert result["next_sprint_id"] == upcoming.id

    def test_rollover_reports_skipped_decisions(self, project, running_sprint, make_sprint,
                                                make_item):
        done = make_item(project, "done", sprint_id=running_sprint.id)
        elsewhere = make_item(project, "elsewhere")
        archived = make_item(project, "archived", sprint_id=running_sprint.id)
        movable = make_item(project, "movable", sprint_id=running_sprint.id)
        _set_status(project, done, "DONE")
        board_service.archive_work_item(project.id, archived.id)
        _db.session.commit()
        self._close(project, running_sprint)

        result = sprint_service.rollover_sprint(project.id, running_sprint.id, [
            {"work_item_id": done.id, "action": "BACKLOG"},
            {"work_item_id": elsewhere.id, "action": "BACKLOG"},
            {"work_item_id": archived.id, "action": "BACKLOG"},
            {"work_item_id": 99999, "action": "BACKLOG"},
            {"work_item_id": movable.id, "action": "SIDEWAYS"},
            "nonsense",
            {"work_item_id": movable.id, "action": "BACKLOG"},
        ])

        reasons = {(s["work_item_id"], s["reason"]) for s in result["skipped"]}
        assert (done.id, "already done") in reasons
        assert (elsewhere.id, "not in this sprint") in reasons
        assert (archived.id, "archived") in reasons
        assert (99999, "not in this sprint") in reasons
        assert (None, "malformed decision") in reasons
        assert any(r.startswith("unknown action") for _, r in reasons)
        assert result["moved"] == [
            {"work_item_id": movable.id, "action": "BACKLOG", "sprint_id": None},
        ]
        assert result["next_sprint_id"] is None

    def test_rollover_first_decision_per_item_wins(self, project, running_sprint, make_item):
        item = make_item(project, sprint_id=running_sprint.id)
        self._close(project, running_sprint)

        result = sprint_service.rollover_sprint(project.id, running_sprint.id, [
            {"work_item_id": item.id, "action": "BACKLOG"},
            {"work_item_id": item.id, "action": "NEXT_SPRINT"},
        ])
        _db.session.commit()

        assert result["moved"] == [
            {"work_item_id": item.id, "action": "BACKLOG", "sprint_id": None},
        ]
        assert result["skipped"] == [{"work_item_id": item.id, "reason": "duplicate decision"}]
        assert result["next_sprint_id"] is None
        assert Sprint.query.filter_by(project_id=project.id).count() == 1
        assert Activity.query.filter_by(work_item_id=item.id, type="SPRINT_CHANGED").count() == 1

    def test_rollover_requires_closed(self, project, running_sprint):
        with pytest.raises(PreconditionFailedError):
            sprint_service.rollover_sprint(project.id, running_sprint.id, [])

    def test_history_lists_running_sprints(self, project, running_sprint, make_item):
        make_item(project, sprint_id=running_sprint.id, story_points=3)
        self._close(project, running_sprint)

        history = sprint_service.sprint_history(project.id)

        assert [h["name"] for h in history] == ["Sprint A"]
        assert history[0]["item_count"] == 1
        assert history[0]["latest_snapshot"]["total_points"] == 3
