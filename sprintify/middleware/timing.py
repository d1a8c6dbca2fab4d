"""
Request timing middleware.

Records request duration and logs slow requests.
Adds X-Request-Duration-Ms and X-Request-ID headers to all responses.
Binds the request id and the ids addressed by the URL to ``g.log_scope``,
which RequestScopeFilter stamps onto every record of the request.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Endpoints excluded from timing logs (high frequency, low value)
_SKIP_LOG = frozenset({"/api/v1/health"})

# Slow request threshold (ms)
SLOW_THRESHOLD_MS = 1000

# URL variable → log scope field
_VIEW_ARG_SCOPE = {
    "organization_id": "organization_id",
    "project_id": "project_id",
    "sprint_id": "sprint_id",
    "item_id": "work_item_id",
}


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing and log scope."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:12])
        g.log_scope = {"request_id": g.request_id, **request_log_scope()}

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")

        if request.path in _SKIP_LOG:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
        }
        if duration_ms > SLOW_THRESHOLD_MS:
            logger.warning("Slow request: %s %s %d (%.0fms)",
                           request.method, request.path,
                           response.status_code, duration_ms, extra=extra)
        elif response.status_code >= 500:
            logger.error("Server error: %s %s %d (%.0fms)",
                         request.method, request.path,
                         response.status_code, duration_ms, extra=extra)
        else:
            logger.debug("Request: %s %s %d (%.0fms)",
                         request.method, request.path,
                         response.status_code, duration_ms, extra=extra)

        return response


def request_log_scope() -> dict:
    """Scope ids from the matched URL, falling back to ``?project_id=``."""
    view_args = request.view_args or {}
    scope = {
        field: view_args[arg]
        for arg, field in _VIEW_ARG_SCOPE.items()
        if view_args.get(arg) is not None
    }
    if "project_id" not in scope:
        project_id = request.args.get("project_id", type=int)
        if project_id is not None:
            scope["project_id"] = project_id
    return scope
