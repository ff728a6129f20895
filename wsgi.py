"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db init       # first time only (creates migrations/ scaffolding)
    flask db upgrade
    gunicorn wsgi:app
"""

from printshop import create_app

app = create_app()
