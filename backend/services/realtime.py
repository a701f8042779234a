# backend/services/realtime.py
"""
Socket.IO server and the helpers HTTP routes use to push events.

Every authenticated socket sits in its own ``user_<id>`` room. Project
screens additionally join ``project_<id>``. Delivery is best effort: an
event emitted while nobody is listening is simply dropped.
"""

import logging

from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

socketio = SocketIO()


def user_room(user_id):
    return f"user_{user_id}"


def project_room(project_id):
    return f"project_{project_id}"


def _emit(event, payload, room):
    try:
        socketio.emit(event, payload, to=room)
        logger.debug(f"Emitted {event} to {room}")
    except Exception as e:
        # Callers have already committed
        logger.error(f"Failed to emit {event} to {room}: {str(e)}")


def notify_user(user_id, event, payload):
    _emit(event, payload, user_room(user_id))


def notify_project(project_id, event, payload):
    _emit(event, payload, project_room(project_id))


def notify_low_stock(material):
    """Warn the owning vendor that a material reached its minimum stock level"""
    if not material.is_low_stock:
        return False
    notify_user(material.vendor_id, 'low_stock_alert', material.to_dict())
    logger.info(f"Low stock alert for material {material.id} (stock {material.stock_level})")
    return True
