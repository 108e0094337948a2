"""
WSGI entry point; also the Flask-Migrate / Alembic app.

Usage:
    gunicorn wsgi:app
    FLASK_APP=wsgi.py flask db upgrade
"""

from app import create_app

app = create_app()
