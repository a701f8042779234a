# backend/routes/messages.py
from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from sqlalchemy import or_, and_
from datetime import datetime
import logging

from models import db, Message, Project, User, ValidationError
from middleware.errors import handle_write_errors, server_error, validation_error, not_found, forbidden
from routes.utils import get_json_body, require_fields, parse_int
from services.file_utils import save_upload, remove_upload, is_image_upload, DOCUMENT_EXTENSIONS
from services.realtime import notify_user, notify_project

messages_bp = Blueprint('messages', __name__)
logger = logging.getLogger(__name__)


def _message_payload():
    """Fields and optional attachment from either a JSON or a multipart request"""
    if request.files or request.form:
        return request.form.to_dict(), request.files.get('attachment')
    return get_json_body(), None


def _page_limit(raw):
    default = current_app.config.get('MESSAGE_PAGE_LIMIT', 50)
    maximum = current_app.config.get('MESSAGE_PAGE_MAX', 200)
    limit = parse_int(raw, 'limit')
    if limit is None or limit < 1:
        return default
    return min(limit, maximum)


@messages_bp.route('', methods=['POST'])
@login_required
def send_message():
    """Send a direct or project message, optionally with one attachment"""
    saved_upload = None
    try:
        data, attachment = _message_payload()
        require_fields(data, 'receiver_id')

        receiver = db.session.get(User, parse_int(data['receiver_id'], 'receiver_id'))
        if not receiver or not receiver.is_active:
            return not_found('Receiver')

        project_id = parse_int(data.get('project_id'), 'project_id')
        if project_id is not None:
            project = db.session.get(Project, project_id)
            if not project:
                return not_found('Project')
            participants = project.participant_ids()
            if current_user.id not in participants:
                return forbidden('You are not involved in this project')
            if receiver.id not in participants:
                return forbidden('Receiver is not involved in the project')

        message_type = data.get('type') or 'text'
        attachment_url = data.get('attachment_url')
        content = data.get('content')

        if attachment is not None and attachment.filename:
            attachment_url = saved_upload = save_upload(
                attachment, 'messages', prefix='message',
                max_bytes=current_app.config['ATTACHMENT_MAX_BYTES'],
                allowed_extensions=DOCUMENT_EXTENSIONS
            )
            message_type = 'image' if is_image_upload(attachment) else 'file'
            content = content or attachment.filename

        if not content:
            raise ValidationError('content is required', 'content')

        message = Message(
            sender_id=current_user.id,
            receiver_id=receiver.id,
            project_id=project_id,
            content=content,
            type=message_type,
            attachment_url=attachment_url
        )
        db.session.add(message)
        db.session.commit()

        payload = message.to_dict()
        notify_user(receiver.id, 'new_message', payload)
        if project_id is not None:
            notify_project(project_id, 'new_project_message', payload)

        logger.info(f"Message {message.id} sent from {current_user.id} to {receiver.id}")
        return jsonify(payload), 201

    except Exception as e:
        if saved_upload:
            remove_upload(saved_upload)
        return handle_write_errors(e, 'Failed to send message')


@messages_bp.route('', methods=['GET'])
@login_required
def get_messages():
    """
    Query parameters:
        user_id     two-way conversation with that user
        project_id  messages of a project (participants only)
        limit       page size, capped at MESSAGE_PAGE_MAX
    """
    try:
        user_id = parse_int(request.args.get('user_id'), 'user_id')
        project_id = parse_int(request.args.get('project_id'), 'project_id')
        limit = _page_limit(request.args.get('limit'))

        query = Message.query

        if user_id is not None:
            query = query.filter(or_(
                and_(Message.sender_id == current_user.id, Message.receiver_id == user_id),
                and_(Message.sender_id == user_id, Message.receiver_id == current_user.id)
            ))

        if project_id is not None:
            project = db.session.get(Project, project_id)
            if not project:
                return not_found('Project')
            if current_user.id not in project.participant_ids():
                return forbidden('Not authorized to read messages of this project')
            query = query.filter(Message.project_id == project_id)

        if user_id is None and project_id is None:
            query = query.filter(or_(
                Message.sender_id == current_user.id,
                Message.receiver_id == current_user.id
            ))

        messages = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all()
        return jsonify([message.to_dict() for message in messages])

    except ValidationError as e:
        return validation_error(e)
    except Exception as e:
        logger.error(f"Error retrieving messages: {str(e)}")
        return server_error('Failed to retrieve messages', e)


@messages_bp.route('/unread', methods=['GET'])
@login_required
def get_unread_count():
    try:
        count = Message.query.filter_by(receiver_id=current_user.id, read=False).count()
        return jsonify({'unread_count': count})

    except Exception as e:
        logger.error(f"Error counting unread messages: {str(e)}")
        return server_error('Failed to count unread messages', e)


@messages_bp.route('/read', methods=['POST'])
@login_required
def mark_as_read():
    """Mark messages as read. Ids of messages the caller did not receive are ignored."""
    try:
        data = get_json_body()
        message_ids = data.get('message_ids')
        if not isinstance(message_ids, list):
            raise ValidationError('message_ids must be a list', 'message_ids')
        ids = [parse_int(value, 'message_ids') for value in message_ids]

        updated = 0
        if ids:
            updated = Message.query.filter(
                Message.id.in_(ids),
                Message.receiver_id == current_user.id,
                Message.read.is_(False)
            ).update({'read': True, 'read_at': datetime.utcnow()}, synchronize_session=False)
        db.session.commit()

        return jsonify({'message': 'Messages marked as read', 'updated': updated})

    except Exception as e:
        return handle_write_errors(e, 'Failed to mark messages as read')


@messages_bp.route('/conversations', methods=['GET'])
@login_required
def get_conversations():
    """One entry per counterpart, most recent conversation first"""
    try:
        messages = Message.query.filter(or_(
            Message.sender_id == current_user.id,
            Message.receiver_id == current_user.id
        )).order_by(Message.created_at.desc(), Message.id.desc()).all()

        conversations = {}
        for message in messages:
            counterpart = message.receiver if message.sender_id == current_user.id else message.sender
            entry = conversations.get(counterpart.id)
            if entry is None:
                entry = conversations[counterpart.id] = {
                    'user': counterpart.to_summary(),
                    'last_message_at': message.created_at.isoformat() if message.created_at else None,
                    'last_message': message.content,
                    'unread_count': 0
                }
            if message.receiver_id == current_user.id and not message.read:
                entry['unread_count'] += 1

        return jsonify(list(conversations.values()))

    except Exception as e:
        logger.error(f"Error retrieving conversations: {str(e)}")
        return server_error('Failed to retrieve conversations', e)
