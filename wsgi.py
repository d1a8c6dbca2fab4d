"""
Flask-Migrate / Alembic entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi record-snapshots   # daily, from cron
"""

from sprintify import create_app

app = create_app()
