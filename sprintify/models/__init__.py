"""
Sprintify
Model package — shared SQLAlchemy extension instance.

Usage:
    from sprintify.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
