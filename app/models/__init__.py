"""
Model package.

Exposes the shared Flask-SQLAlchemy handle. Model modules import ``db``
from here and are registered in ``create_app`` so that ``db.create_all()``
and Alembic see every table.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
