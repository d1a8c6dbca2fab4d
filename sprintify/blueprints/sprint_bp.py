"""
Sprintify
Sprint Blueprint — sprint lifecycle, burndown snapshots and rollover.

Endpoints:
    GET    /api/v1/projects/<pid>/sprints                          — List (filter: status)
    POST   /api/v1/projects/<pid>/sprints                          — Create (PLANNING)
    GET    /api/v1/projects/<pid>/sprints/history                  — Closed sprints + latest snapshot
    GET    /api/v1/projects/<pid>/sprints/<sid>                    — Detail (+ items)
    POST   /api/v1/projects/<pid>/sprints/<sid>/start              — PLANNING → ACTIVE
    POST   /api/v1/projects/<pid>/sprints/<sid>/close              — ACTIVE → CLOSED
    POST   /api/v1/projects/<pid>/sprints/<sid>/snapshots          — Record today's snapshot
    GET    /api/v1/projects/<pid>/sprints/<sid>/burndown           — Snapshot series
    GET    /api/v1/projects/<pid>/sprints/<sid>/incomplete         — Items not done
    POST   /api/v1/projects/<pid>/sprints/<sid>/rollover           — Redistribute unfinished items
    PUT    /api/v1/projects/<pid>/work-items/<id>/sprint           — Assign / unassign sprint
"""

import logging

from flask import Blueprint, jsonify, request

from sprintify.blueprints import organization_scope, register_error_handlers
from sprintify.models.sprint import Sprint
from sprintify.services import sprint_service
from sprintify.services.helpers.scoped_queries import get_project, get_scoped
from sprintify.utils.helpers import db_commit, get_json_body

logger = logging.getLogger(__name__)

sprint_bp = register_error_handlers(Blueprint("sprint", __name__, url_prefix="/api/v1"))


def _scoped_project(project_id):
    return get_project(project_id, organization_id=organization_scope())


@sprint_bp.route("/projects/<int:project_id>/sprints", methods=["GET"])
def list_sprints(project_id):
    _scoped_project(project_id)
    sprints = sprint_service.list_sprints(project_id, status=request.args.get("status"))
    return jsonify([s.to_dict() for s in sprints])


@sprint_bp.route("/projects/<int:project_id>/sprints", methods=["POST"])
def create_sprint(project_id):
    _scoped_project(project_id)
    sprint = sprint_service.create_sprint(project_id, get_json_body())
    db_commit()
    return jsonify(sprint.to_dict()), 201


@sprint_bp.route("/projects/<int:project_id>/sprints/history", methods=["GET"])
def sprint_history(project_id):
    _scoped_project(project_id)
    return jsonify(sprint_service.sprint_history(project_id))


@sprint_bp.route("/projects/<int:project_id>/sprints/<int:sprint_id>", methods=["GET"])
def get_sprint(project_id, sprint_id):
    _scoped_project(project_id)
    sprint = get_scoped(Sprint, sprint_id, project_id=project_id)
    data = sprint.to_dict(include_items=True)
    data["totals"] = sprint_service.compute_totals(sprint)
    return jsonify(data)


@sprint_bp.route("/projects/<int:project_id>/sprints/<int:sprint_id>/start", methods=["POST"])
def start_sprint(project_id, sprint_id):
    """Body: {start_date, end_date}. 409 when another sprint is already active."""
    _scoped_project(project_id)
    data = get_json_body()
    sprint, snapshot = sprint_service.start_sprint(
        project_id, sprint_id, data.get("start_date"), data.get("end_date"),
    )
    db_commit()
    return jsonify({"sprint": sprint.to_dict(), "snapshot": snapshot.to_dict()})


@sprint_bp.route("/projects/<int:project_id>/sprints/<int:sprint_id>/close", methods=["POST"])
def close_sprint(project_id, sprint_id):
    _scoped_project(project_id)
    sprint, snapshot = sprint_service.close_sprint(project_id, sprint_id)
    db_commit()
    return jsonify({"sprint": sprint.to_dict(), "snapshot": snapshot.to_dict()})


@sprint_bp.route("/projects/<int:project_id>/sprints/<int:sprint_id>/snapshots", methods=["POST"])
def record_snapshot(project_id, sprint_id):
    _scoped_project(project_id)
    snapshot = sprint_service.record_snapshot(project_id, sprint_id)
    db_commit()
    return jsonify(snapshot.to_dict())


@sprint_bp.route("/projects/<int:project_id>/sprints/<int:sprint_id>/burndown", methods=["GET"])
def burndown(project_id, sprint_id):
    _scoped_project(project_id)
    return jsonify(sprint_service.burndown(project_id, sprint_id))


@sprint_bp.route("/projects/<int:project_id>/sprints/<int:sprint_id>/incomplete", methods=["GET"])
def incomplete_items(project_id, sprint_id):
    _scoped_project(project_id)
    items = sprint_service.list_incomplete_items(project_id, sprint_id)
    return jsonify([i.to_dict() for i in items])


@sprint_bp.route("/projects/<int:project_id>/sprints/<int:sprint_id>/rollover", methods=["POST"])
def rollover_sprint(project_id, sprint_id):
    """Body: {decisions: [{work_item_id, action: NEXT_SPRINT | BACKLOG}], actor?}."""
    _scoped_project(project_id)
    data = get_json_body()
    result = sprint_service.rollover_sprint(
        project_id, sprint_id, data.get("decisions", []), actor=data.get("actor"),
    )
    db_commit()
    return jsonify(result)


@sprint_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/sprint", methods=["PUT"])
def assign_sprint(project_id, item_id):
    """Body: {sprint_id} — null takes the item back to the backlog."""
    _scoped_project(project_id)
    data = get_json_body()
    item = sprint_service.assign_item(project_id, item_id, data.get("sprint_id"),
                                      actor=data.get("actor"))
    db_commit()
    return jsonify(item.to_dict())
