"""
Sprintify
Tests — dependency edits, forward-pass recalculation and baselines.

Covers:
    - edge validation: self-loop, duplicate, cycle, bad type
    - FS / SS / FF / SF arithmetic with lag
    - recalculation idempotence and constraints
    - AGILE projects refuse recalculation
    - manual date writes are never refused, only warned about
    - baseline is a copy that later edits don't touch
"""

from datetime import date

import pytest

from sprintify.core.exceptions import ConflictError, PreconditionFailedError, ValidationError
from sprintify.models import db as _db
from sprintify.models.phase import PhaseDependency
from sprintify.services import schedule_service


def _task(make_item, project, title, start, end):
    return make_item(project, title, start_date=start, end_date=end)


def _link(project, pred, succ, dep_type="FS", lag=0, kind="task"):
    edge, warnings = schedule_service.add_dependency(project.id, pred.id, succ.id, kind,
                                                     dependency_type=dep_type, lag_days=lag)
    _db.session.commit()
    return edge, warnings


def _recalc(project):
    result = schedule_service.recalculate_schedule(project.id)
    _db.session.commit()
    return result


# ═════════════════════════════════════════════════════════════════════════════
# EDGE VALIDATION
# ═════════════════════════════════════════════════════════════════════════════


class TestAddDependency:
    def test_self_loop_rejected(self, waterfall_project, make_item):
        a = make_item(waterfall_project, "A")
        with pytest.raises(ValidationError) as exc:
            schedule_service.add_dependency(waterfall_project.id, a.id, a.id)
        assert "cannot depend on itself" in str(exc.value)

    def test_duplicate_rejected(self, waterfall_project, make_item):
        a, b = make_item(waterfall_project, "A"), make_item(waterfall_project, "B")
        _link(waterfall_project, a, b)
        with pytest.raises(ConflictError) as exc:
            schedule_service.add_dependency(waterfall_project.id, a.id, b.id)
        assert str(exc.value) == "Dependency already exists"

    def test_cycle_rejected(self, waterfall_project, make_item):
        a, b, c = (make_item(waterfall_project, t) for t in "ABC")
        _link(waterfall_project, a, b)
        _link(waterfall_project, b, c)

        with pytest.raises(PreconditionFailedError) as exc:
            schedule_service.add_dependency(waterfall_project.id, c.id, a.id)

        assert str(exc.value) == "Adding this dependency would create a cycle"
        _db.session.rollback()
        assert len(schedule_service.list_dependencies(waterfall_project.id)) == 2

    def test_phase_cycle_rejected_and_graph_unchanged(self, hybrid_project):
        design, build, qa = (
            schedule_service.create_phase(hybrid_project.id, {"name": name})
            for name in ("Design", "Build", "QA")
        )
        _db.session.commit()
        _link(hybrid_project, design, build, kind="phase")
        _link(hybrid_project, build, qa, kind="phase")

        with pytest.raises(PreconditionFailedError):
            schedule_service.add_dependency(hybrid_project.id, qa.id, design.id, "phase")
        _db.session.rollback()

        edges = schedule_service.list_dependencies(hybrid_project.id, "phase")
        assert [(e.predecessor_id, e.successor_id) for e in edges] == [
            (design.id, build.id), (build.id, qa.id),
        ]

    def test_phase_duplicate_and_self_loop_rejected(self, hybrid_project):
        design = schedule_service.create_phase(hybrid_project.id, {"name": "Design"})
        build = schedule_service.create_phase(hybrid_project.id, {"name": "Build"})
        _db.session.commit()
        _link(hybrid_project, design, build, kind="phase")

        with pytest.raises(ConflictError):
            schedule_service.add_dependency(hybrid_project.id, design.id, build.id, "phase",
                                            dependency_type="SS")
        _db.session.rollback()
        with pytest.raises(ValidationError):
            schedule_service.add_dependency(hybrid_project.id, build.id, build.id, "phase")
        _db.session.rollback()

        assert PhaseDependency.query.filter_by(project_id=hybrid_project.id).count() == 1

    @pytest.mark.parametrize("lag", [1.5, "2.5", True, "two"])
    def test_non_integer_lag_rejected(self, waterfall_project, make_item, lag):
        a, b = make_item(waterfall_project, "A"), make_item(waterfall_project, "B")
        with pytest.raises(ValidationError):
            schedule_service.add_dependency(waterfall_project.id, a.id, b.id, lag_days=lag)

    def test_integral_lag_accepted(self, waterfall_project, make_item):
        a, b = make_item(waterfall_project, "A"), make_item(waterfall_project, "B")
        edge, _ = _link(waterfall_project, a, b, lag="-2")
        assert edge.lag_days == -2

    def test_unknown_type_rejected(self, waterfall_project, make_item):
        a, b = make_item(waterfall_project, "A"), make_item(waterfall_project, "B")
        with pytest.raises(ValidationError):
            schedule_service.add_dependency(waterfall_project.id, a.id, b.id,
                                            dependency_type="XX")

    def test_undated_endpoints_warn(self, waterfall_project, make_item):
        a, b = make_item(waterfall_project, "A"), make_item(waterfall_project, "B")
        _, warnings = _link(waterfall_project, a, b)
        assert warnings and "no dates" in warnings[0]

    def test_early_successor_warns_but_saves(self, waterfall_project, make_item):
        a = _task(make_item, waterfall_project, "A", "2025-01-01", "2025-01-10")
        b = _task(make_item, waterfall_project, "B", "2025-01-05", "2025-01-07")

        edge, warnings = _link(waterfall_project, a, b)

        assert edge.id is not None
        assert len(warnings) == 1
        assert "Consider adjusting dates" in warnings[0]

    def test_remove_missing_edge_is_noop(self, waterfall_project, make_item):
        a, b = make_item(waterfall_project, "A"), make_item(waterfall_project, "B")
        assert schedule_service.remove_dependency(waterfall_project.id, a.id, b.id) is False
        _link(waterfall_project, a, b)
        assert schedule_service.remove_dependency(waterfall_project.id, a.id, b.id) is True


# ═════════════════════════════════════════════════════════════════════════════
# RECALCULATION
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("dep_type,lag,expected_start", [
    ("FS", 2, date(2025, 1, 12)),
    ("FS", -3, date(2025, 1, 7)),
    ("SS", 1, date(2025, 1, 2)),
    ("FF", 0, date(2025, 1, 6)),
    ("SF", 0, date(2024, 12, 28)),
])
def test_edge_types(waterfall_project, make_item, dep_type, lag, expected_start):
    # predecessor 1 Jan → 10 Jan, successor spans 4 days
    a = _task(make_item, waterfall_project, "A", "2025-01-01", "2025-01-10")
    b = _task(make_item, waterfall_project, "B", "2025-03-01", "2025-03-05")
    _link(waterfall_project, a, b, dep_type, lag)

    _recalc(waterfall_project)

    assert b.start_date == expected_start
    assert (b.end_date - b.start_date).days == 4


def test_recalculate_is_idempotent(waterfall_project, make_item):
    a = _task(make_item, waterfall_project, "A", "2025-01-01", "2025-01-10")
    b = _task(make_item, waterfall_project, "B", "2025-01-01", "2025-01-03")
    c = _task(make_item, waterfall_project, "C", "2025-01-01", "2025-01-02")
    _link(waterfall_project, a, b, lag=2)
    _link(waterfall_project, b, c)

    first = _recalc(waterfall_project)
    second = _recalc(waterfall_project)

    assert first["tasks_updated"] == 2
    assert second["updated"] == 0
    assert c.start_date == date(2025, 1, 14)


def test_latest_predecessor_wins(waterfall_project, make_item):
    a = _task(make_item, waterfall_project, "A", "2025-01-01", "2025-01-05")
    b = _task(make_item, waterfall_project, "B", "2025-01-01", "2025-01-20")
    c = _task(make_item, waterfall_project, "C", "2025-01-01", "2025-01-02")
    _link(waterfall_project, a, c)
    _link(waterfall_project, b, c)

    _recalc(waterfall_project)

    assert c.start_date == date(2025, 1, 20)


def test_undated_successor_gets_dates(waterfall_project, make_item):
    a = _task(make_item, waterfall_project, "A", "2025-02-01", "2025-02-03")
    b = make_item(waterfall_project, "B", duration=5)
    _link(waterfall_project, a, b)

    _recalc(waterfall_project)

    assert b.start_date == date(2025, 2, 3)
    assert b.end_date == date(2025, 2, 8)


def test_undated_root_anchors_on_project_start(waterfall_project, make_item):
    a = make_item(waterfall_project, "A", duration=2)
    b = make_item(waterfall_project, "B", duration=1)
    _link(waterfall_project, a, b)

    _recalc(waterfall_project)

    assert a.start_date == date(2025, 1, 1)
    assert b.start_date == date(2025, 1, 3)


def test_unlinked_undated_items_stay_undated(waterfall_project, make_item):
    loose = make_item(waterfall_project, "Loose")
    _recalc(waterfall_project)
    assert loose.start_date is None


def test_constraints_apply(waterfall_project, make_item):
    a = _task(make_item, waterfall_project, "A", "2025-01-01", "2025-01-10")
    pinned = _task(make_item, waterfall_project, "Pinned", "2025-01-01", "2025-01-02")
    floor = _task(make_item, waterfall_project, "Floor", "2025-01-01", "2025-01-02")
    _link(waterfall_project, a, pinned)
    _link(waterfall_project, a, floor)
    schedule_service.set_task_constraint(waterfall_project.id, pinned.id, "MUST_START_ON",
                                         "2025-01-05")
    schedule_service.set_task_constraint(waterfall_project.id, floor.id,
                                         "START_NO_EARLIER_THAN", "2025-02-01")
    _db.session.commit()

    _recalc(waterfall_project)

    assert pinned.start_date == date(2025, 1, 5)
    assert floor.start_date == date(2025, 2, 1)


def test_constraint_requires_date(waterfall_project, make_item):
    a = make_item(waterfall_project, "A")
    with pytest.raises(ValidationError):
        schedule_service.set_task_constraint(waterfall_project.id, a.id, "MUST_START_ON")


def test_phase_graph_recalculated(hybrid_project):
    design = schedule_service.create_phase(hybrid_project.id, {
        "name": "Design", "start_date": "2025-01-01", "end_date": "2025-01-31",
    })
    build = schedule_service.create_phase(hybrid_project.id, {
        "name": "Build", "start_date": "2025-01-15", "end_date": "2025-03-15",
    })
    _db.session.commit()
    _link(hybrid_project, design, build, kind="phase")

    result = _recalc(hybrid_project)

    assert result["phases_updated"] == 1
    assert build.start_date == date(2025, 1, 31)
    assert build.end_date == date(2025, 3, 31)
    assert PhaseDependency.query.count() == 1


def test_agile_project_refuses_recalculation(project):
    with pytest.raises(PreconditionFailedError) as exc:
        schedule_service.recalculate_schedule(project.id)
    assert "Waterfall and Hybrid" in str(exc.value)


# ═════════════════════════════════════════════════════════════════════════════
# MANUAL EDITS / BASELINE
# ═════════════════════════════════════════════════════════════════════════════


def test_manual_dates_warn_on_predecessor_conflict(waterfall_project, make_item):
    a = _task(make_item, waterfall_project, "Design", "2025-01-01", "2025-01-10")
    b = _task(make_item, waterfall_project, "Build", "2025-01-10", "2025-01-15")
    _link(waterfall_project, a, b)

    node, warnings = schedule_service.update_dates(waterfall_project.id, b.id, "task",
                                                   "2025-01-05", "2025-01-08")
    _db.session.commit()

    assert node.start_date == date(2025, 1, 5)
    assert node.duration == 3
    assert warnings == [
        'Warning: Start date conflicts with predecessor "Design" (ends 2025-01-10).'
    ]


def test_recalculation_overrides_manual_dates(waterfall_project, make_item):
    a = _task(make_item, waterfall_project, "Design", "2025-01-01", "2025-01-10")
    b = _task(make_item, waterfall_project, "Build", "2025-01-10", "2025-01-15")
    _link(waterfall_project, a, b, lag=1)
    schedule_service.update_dates(waterfall_project.id, b.id, "task", "2025-02-01", "2025-02-03")
    _db.session.commit()
    assert b.start_date == date(2025, 2, 1)

    result = _recalc(waterfall_project)

    assert result["tasks_updated"] == 1
    assert b.start_date == date(2025, 1, 11)
    assert b.end_date == date(2025, 1, 13)

    # a later manual edit sticks until the next explicit run
    schedule_service.update_dates(waterfall_project.id, b.id, "task", "2025-03-01", "2025-03-02")
    _db.session.commit()
    assert b.start_date == date(2025, 3, 1)
    _recalc(waterfall_project)
    assert b.start_date == date(2025, 1, 11)


def test_manual_dates_reject_inverted_range(waterfall_project, make_item):
    a = make_item(waterfall_project, "A")
    with pytest.raises(ValidationError):
        schedule_service.update_dates(waterfall_project.id, a.id, "task",
                                      "2025-01-10", "2025-01-01")


def test_phase_dates_warn_about_sprints(hybrid_project, make_sprint):
    phase = schedule_service.create_phase(hybrid_project.id, {
        "name": "Build", "start_date": "2025-01-01", "end_date": "2025-03-31",
    })
    _db.session.commit()
    sprint = make_sprint(hybrid_project, start_date="2025-03-20", end_date="2025-04-03")
    _, warnings = schedule_service.assign_sprint_to_phase(hybrid_project.id, sprint.id, phase.id)
    assert warnings == ["Warning: 1 sprint(s) fall outside the new phase dates."]

    _, warnings = schedule_service.update_phase(hybrid_project.id, phase.id,
                                                {"end_date": "2025-04-30"})

    assert warnings == []


def test_baseline_is_a_copy(waterfall_project, make_item):
    a = _task(make_item, waterfall_project, "A", "2025-01-01", "2025-01-10")
    phase = schedule_service.create_phase(waterfall_project.id, {
        "name": "Phase 1", "start_date": "2025-01-01", "end_date": "2025-02-01",
    })
    _db.session.commit()

    result = schedule_service.save_baseline(waterfall_project.id)
    schedule_service.update_dates(waterfall_project.id, a.id, "task", "2025-02-01", "2025-02-05")
    _db.session.commit()

    assert result == {"saved": 2, "work_items": 1, "phases": 1}
    assert a.baseline_start_date == date(2025, 1, 1)
    assert a.baseline_end_date == date(2025, 1, 10)
    assert a.start_date == date(2025, 2, 1)
    assert phase.baseline_end_date == date(2025, 2, 1)
