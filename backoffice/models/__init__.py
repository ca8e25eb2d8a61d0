"""
Training Back-Office
SQLAlchemy database instance shared by all models.

Model modules are imported in create_app() so Alembic sees every table.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
