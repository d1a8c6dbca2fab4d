"""
Shared pytest fixtures for the Sprintify test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - organization / project / waterfall_project / hybrid_project: committed entities
    - make_item / make_sprint: factories that flush + commit through the services
"""

import pytest

from sprintify import create_app
from sprintify.models import db as _db
from sprintify.services import board_service, sprint_service


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def organization():
    org = board_service.create_organization({"name": "Acme", "slug": "acme"})
    _db.session.commit()
    return org


def _project(organization, key, methodology, **extra):
    data = {"name": f"{key} project", "key": key, "methodology": methodology}
    data.update(extra)
    project = board_service.create_project(organization.id, data)
    _db.session.commit()
    return project


@pytest.fixture()
def project(organization):
    """AGILE project with the five default columns."""
    return _project(organization, "WEB", "AGILE")


@pytest.fixture()
def waterfall_project(organization):
    return _project(organization, "PLAN", "WATERFALL", start_date="2025-01-01")


@pytest.fixture()
def hybrid_project(organization):
    return _project(organization, "HYB", "HYBRID", start_date="2025-01-01")


@pytest.fixture()
def columns(project):
    """Default columns of ``project`` keyed by name."""
    return {c.name: c for c in project.columns}


@pytest.fixture()
def make_item():
    def _make(project, title="Story", **fields):
        data = {"title": title}
        data.update(fields)
        item = board_service.create_work_item(project.id, data)
        _db.session.commit()
        return item
    return _make


@pytest.fixture()
def make_sprint():
    def _make(project, name=None, **fields):
        data = dict(fields)
        if name:
            data["name"] = name
        sprint = sprint_service.create_sprint(project.id, data)
        _db.session.commit()
        return sprint
    return _make
