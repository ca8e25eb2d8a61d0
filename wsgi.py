"""
WSGI entry point (gunicorn wsgi:app) and Flask CLI target.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-reference-data
    flask --app wsgi process-email-queue --batch-size 20
"""

from backoffice import create_app

app = create_app()
