# backend/wsgi.py
"""WSGI entry point, e.g. ``gunicorn --worker-class eventlet -w 1 wsgi:app``"""

from app import create_app
from services.permit_alerts import start_permit_checks

app = create_app()
start_permit_checks(app)
