# backend/services/permit_alerts.py
import logging

from flask import current_app

from models import Project
from models.project import ACTIVE_STATUSES
from services.date_utils import days_from_now
from services.realtime import socketio, notify_user

logger = logging.getLogger(__name__)


def check_expiring_permits(days=None):
    """
    Alert contractors whose active projects have a permit expiring within
    PERMIT_ALERT_DAYS (already expired permits included).

    Returns:
        list: the projects an alert was sent for
    """
    days = days if days is not None else current_app.config.get('PERMIT_ALERT_DAYS', 30)
    cutoff = days_from_now(days)

    projects = Project.query.filter(
        Project.permit_expiry_date.isnot(None),
        Project.permit_expiry_date <= cutoff,
        Project.status.in_(ACTIVE_STATUSES)
    ).order_by(Project.permit_expiry_date.asc()).all()

    for project in projects:
        notify_user(project.contractor_id, 'license_expiry_alert', {
            'project_id': project.id,
            'title': project.title,
            'permit_expiry_date': project.permit_expiry_date.isoformat()
        })

    logger.info(f"Permit check: {len(projects)} project(s) with permits expiring within {days} days")
    return projects


def run_permit_checks(app):
    """Background loop started by the Socket.IO server when the interval is positive"""
    interval_hours = app.config.get('PERMIT_CHECK_INTERVAL_HOURS', 0)
    if not interval_hours or interval_hours <= 0:
        logger.info("Periodic permit checks disabled")
        return

    logger.info(f"Periodic permit checks every {interval_hours} hour(s)")
    while True:
        with app.app_context():
            try:
                check_expiring_permits()
            except Exception as e:
                logger.error(f"Permit check failed: {str(e)}")
        socketio.sleep(interval_hours * 3600)


def start_permit_checks(app):
    if app.config.get('PERMIT_CHECK_INTERVAL_HOURS', 0) > 0:
        return socketio.start_background_task(run_permit_checks, app)
    return None
