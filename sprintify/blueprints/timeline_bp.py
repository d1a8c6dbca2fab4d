"""
Sprintify
Timeline Blueprint — phases, dependencies, schedule recalculation and baselines.

Endpoints:
    Phases:
        GET    /api/v1/projects/<pid>/phases                           — List
        POST   /api/v1/projects/<pid>/phases                           — Create
        PUT    /api/v1/projects/<pid>/phases/<phid>                    — Update (returns warnings)
        PUT    /api/v1/projects/<pid>/sprints/<sid>/phase              — Place sprint in phase

    Dependencies (kind = phase | task):
        GET    /api/v1/projects/<pid>/<kind>-dependencies              — List edges
        POST   /api/v1/projects/<pid>/<kind>-dependencies              — Add edge (412 on cycle, 409 on duplicate)
        DELETE /api/v1/projects/<pid>/<kind>-dependencies              — Remove edge (no-op if absent)

    Schedule:
        PUT    /api/v1/projects/<pid>/work-items/<id>/dates            — Manual task dates
        PUT    /api/v1/projects/<pid>/work-items/<id>/constraint       — Task constraint
        POST   /api/v1/projects/<pid>/schedule/recalculate             — Forward pass
        POST   /api/v1/projects/<pid>/schedule/baseline                — Save baseline
"""

import logging

from flask import Blueprint, abort, jsonify, request

from sprintify.blueprints import organization_scope, register_error_handlers
from sprintify.core.exceptions import ValidationError
from sprintify.services import schedule_service
from sprintify.services.helpers.scoped_queries import get_project
from sprintify.utils.helpers import db_commit, get_json_body

logger = logging.getLogger(__name__)

timeline_bp = register_error_handlers(Blueprint("timeline", __name__, url_prefix="/api/v1"))

_DEPENDENCY_KINDS = {"phase", "task"}


def _scoped_project(project_id):
    return get_project(project_id, organization_id=organization_scope())


def _edge_ids(data):
    try:
        return int(data["predecessor_id"]), int(data["successor_id"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError(
            "predecessor_id and successor_id are required integers",
        ) from None


# ═════════════════════════════════════════════════════════════════════════════
# PHASES
# ═════════════════════════════════════════════════════════════════════════════


@timeline_bp.route("/projects/<int:project_id>/phases", methods=["GET"])
def list_phases(project_id):
    _scoped_project(project_id)
    phases = schedule_service.list_phases(project_id)
    return jsonify([p.to_dict(include_dependencies=True) for p in phases])


@timeline_bp.route("/projects/<int:project_id>/phases", methods=["POST"])
def create_phase(project_id):
    _scoped_project(project_id)
    phase = schedule_service.create_phase(project_id, get_json_body())
    db_commit()
    return jsonify(phase.to_dict()), 201


@timeline_bp.route("/projects/<int:project_id>/phases/<int:phase_id>", methods=["PUT"])
def update_phase(project_id, phase_id):
    """Date conflicts never block the save; they come back in ``warnings``."""
    _scoped_project(project_id)
    phase, warnings = schedule_service.update_phase(project_id, phase_id, get_json_body())
    db_commit()
    return jsonify({"phase": phase.to_dict(), "warnings": warnings})


@timeline_bp.route("/projects/<int:project_id>/sprints/<int:sprint_id>/phase", methods=["PUT"])
def assign_sprint_phase(project_id, sprint_id):
    _scoped_project(project_id)
    sprint, warnings = schedule_service.assign_sprint_to_phase(
        project_id, sprint_id, get_json_body().get("phase_id"),
    )
    db_commit()
    return jsonify({"sprint": sprint.to_dict(), "warnings": warnings})


# ═════════════════════════════════════════════════════════════════════════════
# DEPENDENCIES
# ═════════════════════════════════════════════════════════════════════════════


@timeline_bp.route("/projects/<int:project_id>/<kind>-dependencies", methods=["GET"])
def list_dependencies(project_id, kind):
    if kind not in _DEPENDENCY_KINDS:
        abort(404)
    _scoped_project(project_id)
    edges = schedule_service.list_dependencies(project_id, kind)
    return jsonify([e.to_dict() for e in edges])


@timeline_bp.route("/projects/<int:project_id>/<kind>-dependencies", methods=["POST"])
def add_dependency(project_id, kind):
    """Body: {predecessor_id, successor_id, dependency_type?, lag_days?}."""
    if kind not in _DEPENDENCY_KINDS:
        abort(404)
    _scoped_project(project_id)
    data = get_json_body()
    predecessor_id, successor_id = _edge_ids(data)
    edge, warnings = schedule_service.add_dependency(
        project_id, predecessor_id, successor_id, kind,
        dependency_type=data.get("dependency_type", "FS"),
        lag_days=data.get("lag_days", 0),
    )
    db_commit()
    return jsonify({"dependency": edge.to_dict(), "warnings": warnings}), 201


@timeline_bp.route("/projects/<int:project_id>/<kind>-dependencies", methods=["DELETE"])
def remove_dependency(project_id, kind):
    if kind not in _DEPENDENCY_KINDS:
        abort(404)
    _scoped_project(project_id)
    data = get_json_body() or request.args
    predecessor_id, successor_id = _edge_ids(data)
    removed = schedule_service.remove_dependency(project_id, predecessor_id, successor_id, kind)
    db_commit()
    return jsonify({"removed": removed})


# ═════════════════════════════════════════════════════════════════════════════
# SCHEDULE
# ═════════════════════════════════════════════════════════════════════════════


@timeline_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/dates", methods=["PUT"])
def update_task_dates(project_id, item_id):
    """Body: {start_date, end_date}. Manual writes are never refused for scheduling reasons."""
    _scoped_project(project_id)
    data = get_json_body()
    task, warnings = schedule_service.update_dates(
        project_id, item_id, "task", data.get("start_date"), data.get("end_date"),
    )
    db_commit()
    return jsonify({"work_item": task.to_dict(), "warnings": warnings})


@timeline_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/constraint", methods=["PUT"])
def set_task_constraint(project_id, item_id):
    _scoped_project(project_id)
    data = get_json_body()
    task = schedule_service.set_task_constraint(
        project_id, item_id, data.get("constraint_type"), data.get("constraint_date"),
    )
    db_commit()
    return jsonify(task.to_dict())


@timeline_bp.route("/projects/<int:project_id>/schedule/recalculate", methods=["POST"])
def recalculate(project_id):
    """412 for AGILE projects."""
    _scoped_project(project_id)
    result = schedule_service.recalculate_schedule(project_id)
    db_commit()
    return jsonify(result)


@timeline_bp.route("/projects/<int:project_id>/schedule/baseline", methods=["POST"])
def save_baseline(project_id):
    _scoped_project(project_id)
    result = schedule_service.save_baseline(project_id)
    db_commit()
    return jsonify(result)
