"""Shared utility functions for blueprints and services.

parse_date:        lenient, returns None on bad input
parse_date_input:  strict, raises ValidationError on bad input
parse_int_input:   strict, raises ValidationError instead of truncating
get_json_body:     request body as dict, never None
db_commit:         commit, mapping constraint violations to ConflictError
"""
import logging
from datetime import date, datetime

from flask import request
from sqlalchemy.exc import IntegrityError

from sprintify.core.exceptions import ConflictError, ValidationError
from sprintify.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field="date"):
    """Parse a date, raising ValidationError when a non-empty value is unparseable."""
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: str(value)},
        )
    return parsed


def parse_int_input(value, field="value"):
    """Parse an integer, raising ValidationError instead of truncating.

    Accepts ints, integral floats (2.0) and integer strings ("-3").
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: value})
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer", details={field: value})
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: value}) from None


def get_json_body():
    """Return the JSON request body, or an empty dict when absent or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit():
    """Commit the current session; constraint violations surface as ConflictError.

    Usage::

        item = board_service.create_work_item(project_id, data)
        db_commit()

    IntegrityError → rollback + ConflictError (HTTP 409)
    anything else  → propagates to the blueprint error handlers (rollback + 500)
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise ConflictError("Record", "constraint",
                            message="Duplicate or constraint violation") from exc
