"""
Shared model building blocks.

ProjectScopedModel — abstract base for every table that lives inside a
project boundary. Adds:
  - project_id FK column with index
  - query_for_project(project_id) classmethod
  - created_at / updated_at audit columns

ArchivableMixin — soft delete via ``archived_at``. Archived rows are kept
while anything still references them and are excluded from capacity and
point accounting.
"""

from datetime import datetime, timezone

from sprintify.models import db


def utcnow():
    return datetime.now(timezone.utc)


class ProjectScopedModel(db.Model):
    """Abstract base for project-scoped tables."""
    __abstract__ = True

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @classmethod
    def query_for_project(cls, project_id):
        """Return a query filtered by project_id."""
        return cls.query.filter_by(project_id=project_id)


class ArchivableMixin:
    """Mixin that adds soft delete (archive) support."""

    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def archive(self):
        self.archived_at = utcnow()

    def restore(self):
        self.archived_at = None

    @property
    def is_archived(self):
        return self.archived_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes archived records."""
        return cls.query.filter(cls.archived_at.is_(None))
