"""
Sprintify
Board Blueprint — projects, columns, work items, checklists and the move gate.

Endpoints:
    Organizations / Projects:
        POST   /api/v1/organizations                                   — Create organization
        POST   /api/v1/organizations/<oid>/projects                    — Create project (+ default columns)
        GET    /api/v1/projects/<pid>                                  — Detail (+ columns)
        PUT    /api/v1/projects/<pid>                                  — Update

    Columns:
        POST   /api/v1/projects/<pid>/columns                          — Create
        PUT    /api/v1/projects/<pid>/columns/<cid>                    — Update (name / type / WIP)
        DELETE /api/v1/projects/<pid>/columns/<cid>                    — Delete (empty only)

    Work items:
        GET    /api/v1/projects/<pid>/work-items                       — List (paginated)
        POST   /api/v1/projects/<pid>/work-items                       — Create
        GET    /api/v1/projects/<pid>/work-items/<id>                  — Detail (+ checklist)
        PUT    /api/v1/projects/<pid>/work-items/<id>                  — Update
        POST   /api/v1/projects/<pid>/work-items/<id>/move             — Gated column move
        POST   /api/v1/projects/<pid>/work-items/<id>/archive          — Soft delete
        POST   /api/v1/projects/<pid>/work-items/<id>/restore          — Undo archive
        GET    /api/v1/projects/<pid>/work-items/<id>/activities       — Activity log
        POST   /api/v1/projects/<pid>/work-items/<id>/indent           — WBS indent
        POST   /api/v1/projects/<pid>/work-items/<id>/outdent          — WBS outdent
        GET    /api/v1/projects/<pid>/wbs                              — Nested outline

    Checklists:
        POST   /api/v1/projects/<pid>/work-items/<id>/checklist        — Add DOR / DOD entry
        GET    /api/v1/projects/<pid>/work-items/<id>/dod              — DOD completion summary
        POST   /api/v1/projects/<pid>/checklist/<cid>/toggle           — Toggle / set checked
        DELETE /api/v1/projects/<pid>/checklist/<cid>                  — Delete entry
"""

import logging

from flask import Blueprint, jsonify, request

from sprintify.blueprints import organization_scope, paginate_query, register_error_handlers
from sprintify.core.exceptions import ValidationError
from sprintify.models.work_item import WorkItem
from sprintify.services import board_service, hierarchy_service, workflow_gate
from sprintify.services.helpers.scoped_queries import get_project, get_scoped
from sprintify.utils.helpers import db_commit, get_json_body

logger = logging.getLogger(__name__)

board_bp = register_error_handlers(Blueprint("board", __name__, url_prefix="/api/v1"))


def _scoped_project(project_id):
    """Resolve the project inside the caller's organization, when one is named."""
    return get_project(project_id, organization_id=organization_scope())


# ═════════════════════════════════════════════════════════════════════════════
# ORGANIZATIONS / PROJECTS
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/organizations", methods=["POST"])
def create_organization():
    org = board_service.create_organization(get_json_body())
    db_commit()
    return jsonify(org.to_dict()), 201


@board_bp.route("/organizations/<int:organization_id>/projects", methods=["POST"])
def create_project(organization_id):
    project = board_service.create_project(organization_id, get_json_body())
    db_commit()
    return jsonify(project.to_dict(include_columns=True)), 201


@board_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project_detail(project_id):
    project = _scoped_project(project_id)
    return jsonify(project.to_dict(include_columns=True))


@board_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    project = board_service.update_project(
        project_id, get_json_body(), organization_id=organization_scope(),
    )
    db_commit()
    return jsonify(project.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# COLUMNS
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/projects/<int:project_id>/columns", methods=["POST"])
def create_column(project_id):
    _scoped_project(project_id)
    column = board_service.create_column(project_id, get_json_body())
    db_commit()
    return jsonify(column.to_dict()), 201


@board_bp.route("/projects/<int:project_id>/columns/<int:column_id>", methods=["PUT"])
def update_column(project_id, column_id):
    _scoped_project(project_id)
    column = board_service.update_column(project_id, column_id, get_json_body())
    db_commit()
    return jsonify(column.to_dict())


@board_bp.route("/projects/<int:project_id>/columns/<int:column_id>", methods=["DELETE"])
def delete_column(project_id, column_id):
    _scoped_project(project_id)
    board_service.delete_column(project_id, column_id)
    db_commit()
    return jsonify({"message": "Column deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# WORK ITEMS
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/projects/<int:project_id>/work-items", methods=["GET"])
def list_work_items(project_id):
    """List work items. Filters: sprint_id, column_id, include_archived."""
    _scoped_project(project_id)
    query = board_service.list_work_items(
        project_id,
        include_archived=request.args.get("include_archived", "").lower() == "true",
        sprint_id=request.args.get("sprint_id", type=int),
        column_id=request.args.get("column_id", type=int),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [i.to_dict() for i in items], "total": total})


@board_bp.route("/projects/<int:project_id>/work-items", methods=["POST"])
def create_work_item(project_id):
    _scoped_project(project_id)
    data = get_json_body()
    item = board_service.create_work_item(project_id, data, actor=data.get("actor"))
    db_commit()
    return jsonify(item.to_dict()), 201


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>", methods=["GET"])
def get_work_item(project_id, item_id):
    _scoped_project(project_id)
    item = get_scoped(WorkItem, item_id, project_id=project_id)
    return jsonify(item.to_dict(include_checklist=True))


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>", methods=["PUT"])
def update_work_item(project_id, item_id):
    _scoped_project(project_id)
    data = get_json_body()
    item = board_service.update_work_item(project_id, item_id, data, actor=data.get("actor"))
    db_commit()
    return jsonify(item.to_dict())


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/move", methods=["POST"])
def move_work_item(project_id, item_id):
    """Gated move. Body: {target_column_id, target_position?, actor?}.

    412 when the WIP limit is reached or the Definition of Done is incomplete.
    """
    _scoped_project(project_id)
    data = get_json_body()
    if data.get("target_column_id") is None:
        raise ValidationError("target_column_id is required",
                              details={"target_column_id": "required"})
    item = workflow_gate.attempt_move(
        project_id, item_id, data["target_column_id"],
        data.get("target_position", 0), actor=data.get("actor"),
    )
    db_commit()
    return jsonify(item.to_dict())


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/archive", methods=["POST"])
def archive_work_item(project_id, item_id):
    _scoped_project(project_id)
    item = board_service.archive_work_item(project_id, item_id,
                                           actor=get_json_body().get("actor"))
    db_commit()
    return jsonify(item.to_dict())


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/restore", methods=["POST"])
def restore_work_item(project_id, item_id):
    _scoped_project(project_id)
    item = board_service.restore_work_item(project_id, item_id,
                                           actor=get_json_body().get("actor"))
    db_commit()
    return jsonify(item.to_dict())


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/activities", methods=["GET"])
def list_activities(project_id, item_id):
    _scoped_project(project_id)
    item = get_scoped(WorkItem, item_id, project_id=project_id)
    items, total = paginate_query(item.activities, default_limit=50, max_limit=200)
    return jsonify({"items": [a.to_dict() for a in items], "total": total})


# ── WBS hierarchy ────────────────────────────────────────────────────────────


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/indent", methods=["POST"])
def indent_work_item(project_id, item_id):
    _scoped_project(project_id)
    task = hierarchy_service.indent(project_id, item_id, actor=get_json_body().get("actor"))
    db_commit()
    return jsonify(task.to_dict())


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/outdent", methods=["POST"])
def outdent_work_item(project_id, item_id):
    _scoped_project(project_id)
    task = hierarchy_service.outdent(project_id, item_id, actor=get_json_body().get("actor"))
    db_commit()
    return jsonify(task.to_dict())


@board_bp.route("/projects/<int:project_id>/wbs", methods=["GET"])
def get_wbs(project_id):
    _scoped_project(project_id)
    return jsonify({"tree": hierarchy_service.wbs_tree(project_id)})


# ═════════════════════════════════════════════════════════════════════════════
# CHECKLISTS
# ═════════════════════════════════════════════════════════════════════════════


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/checklist", methods=["POST"])
def add_checklist_item(project_id, item_id):
    _scoped_project(project_id)
    entry = board_service.add_checklist_item(project_id, item_id, get_json_body())
    db_commit()
    return jsonify(entry.to_dict()), 201


@board_bp.route("/projects/<int:project_id>/work-items/<int:item_id>/dod", methods=["GET"])
def dod_summary(project_id, item_id):
    _scoped_project(project_id)
    item = get_scoped(WorkItem, item_id, project_id=project_id)
    return jsonify(workflow_gate.is_dod_complete(item))


@board_bp.route("/projects/<int:project_id>/checklist/<int:entry_id>/toggle", methods=["POST"])
def toggle_checklist_item(project_id, entry_id):
    """Body: {checked?}. Without ``checked`` the flag is flipped."""
    _scoped_project(project_id)
    entry = board_service.toggle_checklist_item(project_id, entry_id,
                                                get_json_body().get("checked"))
    db_commit()
    return jsonify(entry.to_dict())


@board_bp.route("/projects/<int:project_id>/checklist/<int:entry_id>", methods=["DELETE"])
def delete_checklist_item(project_id, entry_id):
    _scoped_project(project_id)
    board_service.delete_checklist_item(project_id, entry_id)
    db_commit()
    return jsonify({"message": "Checklist item deleted"}), 200
