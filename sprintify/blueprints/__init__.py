"""
Sprintify
Blueprint registry and shared route helpers.

Every mutating route runs as one transaction: services flush, the route
commits, and any error rolls the session back in the handlers below.
"""

import logging

from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from sprintify.core.exceptions import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from sprintify.models import db

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=None):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit or API_PAGE_SIZE_MAX)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    if max_limit is None:
        max_limit = current_app.config["API_PAGE_SIZE_MAX"]
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def organization_scope():
    """organization_id from query string or JSON body, when supplied."""
    oid = request.args.get("organization_id", type=int)
    if oid:
        return oid
    data = request.get_json(silent=True) or {}
    value = data.get("organization_id") if isinstance(data, dict) else None
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def register_error_handlers(bp):
    """Map the domain exception taxonomy to JSON responses for one blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return jsonify({"error": str(error)}), 404

    @bp.errorhandler(PreconditionFailedError)
    def _handle_precondition(error: PreconditionFailedError):
        db.session.rollback()
        return jsonify({"error": str(error), "details": error.details}), 412

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return jsonify({"error": str(error), "details": error.details}), 422

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        db.session.rollback()
        return jsonify({"error": str(error)}), 409

    @bp.errorhandler(SQLAlchemyError)
    def _handle_db(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Database error"}), 500

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        db.session.rollback()
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Internal server error"}), 500

    return bp
