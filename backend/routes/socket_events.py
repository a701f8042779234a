# backend/routes/socket_events.py
"""
Socket.IO event handlers.

Clients connect with ``auth={"token": "<bearer token>"}`` and are placed in
their own ``user_<id>`` room. They may additionally join the room of a
project they take part in (owner, task assignee or accepted bidder).
"""

import logging

from flask import request, session
from flask_socketio import emit, join_room, leave_room

from models import db, Project, User, ValidationError
from middleware.auth import load_user_from_token
from routes.utils import parse_int
from services.realtime import socketio, user_room, project_room

logger = logging.getLogger(__name__)


def _socket_user():
    user_id = session.get('user_id')
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def _requested_rooms(user, data):
    """Validate a join/leave payload. Returns (rooms, error)"""
    if not isinstance(data, dict):
        return [], 'Invalid room request'

    try:
        user_id = parse_int(data.get('user_id'), 'user_id')
        project_id = parse_int(data.get('project_id'), 'project_id')
    except ValidationError as e:
        return [], e.message

    rooms = []
    if user_id is not None:
        if user_id != user.id:
            return [], 'Not allowed to join another user\'s room'
        rooms.append(user_room(user.id))

    if project_id is not None:
        project = db.session.get(Project, project_id)
        if project is None:
            return [], 'Project not found'
        # Project rooms carry bids, messages and task updates
        if user.id not in project.participant_ids():
            return [], 'Not authorized to join this project room'
        rooms.append(project_room(project.id))

    return rooms, None


@socketio.on('connect')
def handle_connect(auth=None):
    token = auth.get('token') if isinstance(auth, dict) else None
    user = load_user_from_token(token)
    if user is None:
        logger.warning(f"Rejected socket connection {request.sid}: invalid token")
        raise ConnectionRefusedError('Please authenticate')

    session['user_id'] = user.id
    join_room(user_room(user.id))
    logger.info(f"Socket {request.sid} connected for user {user.id}")


@socketio.on('disconnect')
def handle_disconnect(*args):
    logger.info(f"Socket {request.sid} disconnected (user {session.get('user_id')})")


@socketio.on('join_room')
def handle_join_room(data=None):
    user = _socket_user()
    if user is None:
        return {'error': 'Please authenticate'}

    rooms, error = _requested_rooms(user, data)
    if error:
        logger.warning(f"User {user.id} join_room refused: {error}")
        return {'error': error}

    for room in rooms:
        join_room(room)
    logger.debug(f"User {user.id} joined {rooms}")
    return {'joined': rooms}


@socketio.on('leave_room')
def handle_leave_room(data=None):
    user = _socket_user()
    if user is None:
        return {'error': 'Please authenticate'}

    rooms, error = _requested_rooms(user, data)
    if error:
        return {'error': error}

    for room in rooms:
        leave_room(room)
    return {'left': rooms}


@socketio.on('typing')
def handle_typing(data=None):
    user = _socket_user()
    if user is None or not isinstance(data, dict):
        return

    try:
        receiver_id = parse_int(data.get('receiver_id'), 'receiver_id')
    except ValidationError:
        return
    if receiver_id is None:
        return

    emit('user_typing', {
        'sender_id': user.id,
        'typing': bool(data.get('typing'))
    }, to=user_room(receiver_id), include_self=False)
