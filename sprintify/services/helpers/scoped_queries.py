"""
Project-scoped query helpers.

Every get-by-id inside the engine goes through these helpers instead of
``db.session.get(Model, pk)``. A row that exists but belongs to another
project (or a project of another organization) is indistinguishable from
a missing row: both raise NotFoundError with the same message.

Usage:
    project = get_project(project_id, organization_id=org_id, lock=True)
    column = get_scoped(BoardColumn, column_id, project_id=project_id, lock=True)
    item = get_scoped_or_none(WorkItem, item_id, project_id=project_id)

``lock=True`` issues ``SELECT ... FOR UPDATE``.  On SQLite the clause is
dropped by the dialect and the database file lock serializes writers.
"""

import logging

from sqlalchemy import select

from sprintify.core.exceptions import NotFoundError
from sprintify.models import db
from sprintify.models.project import Project

logger = logging.getLogger(__name__)

_SCOPE_KWARGS = ("project_id", "organization_id", "work_item_id", "sprint_id")


def get_project(project_id: int, *, organization_id: int | None = None, lock: bool = False):
    """Fetch a Project, optionally restricted to one organization.

    The project row doubles as the serialization point for sprint
    activation, dependency edits and schedule recalculation.
    """
    stmt = select(Project).where(Project.id == project_id)
    if organization_id is not None:
        stmt = stmt.where(Project.organization_id == organization_id)
    if lock:
        stmt = stmt.with_for_update()
    project = db.session.execute(stmt).scalar_one_or_none()
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def get_scoped(model, pk: int, *, lock: bool = False, **scopes):
    """Fetch a single entity by PK with mandatory scope filter.

    Args:
        model: SQLAlchemy model class with an ``id`` PK.
        pk: Primary key value to look up.
        lock: Acquire a row lock for the rest of the transaction.
        **scopes: One or more of project_id / organization_id / work_item_id /
            sprint_id. Each must name a column that exists on ``model``.

    Raises:
        ValueError: No scope given, or a scope names a column the model lacks.
        NotFoundError: Entity missing OR outside the given scope.
    """
    provided = {k: v for k, v in scopes.items() if v is not None}
    unknown = set(provided) - set(_SCOPE_KWARGS)
    if unknown:
        raise ValueError(f"Unsupported scope field(s): {sorted(unknown)}")
    if not provided:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter. "
            "Unscoped lookups are forbidden."
        )
    missing = [field for field in provided if not hasattr(model, field)]
    if missing:
        raise ValueError(
            f"{model.__name__} has no scope column(s) {sorted(missing)}; "
            "refusing to perform an unscoped lookup."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in provided.items():
        stmt = stmt.where(getattr(model, field) == value)
    if lock:
        stmt = stmt.with_for_update()

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in scope %s", model.__name__, pk, provided)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result


def get_scoped_or_none(model, pk: int, *, lock: bool = False, **scopes):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(model, pk, lock=lock, **scopes)
    except NotFoundError:
        return None
