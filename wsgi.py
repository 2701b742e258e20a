"""
WSGI entry point for the approval workflow service.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade        # apply migrations/
    flask --app wsgi create-admin --username admin --email admin@example.com --password ...
"""

from app import create_app

app = create_app()
