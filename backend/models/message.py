# backend/models/message.py

from datetime import datetime

from sqlalchemy.orm import validates

from .base import db, ValidationError, isoformat, require_choice

MESSAGE_TYPES = ('text', 'image', 'file')


class Message(db.Model):
    __tablename__ = 'messages'

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), index=True)
    content = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(10), default='text', nullable=False)
    attachment_url = db.Column(db.String(512))
    read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sender = db.relationship('User', foreign_keys=[sender_id])
    receiver = db.relationship('User', foreign_keys=[receiver_id])
    project = db.relationship('Project')

    @validates('content')
    def validate_content(self, key, value):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError('content is required', 'content')
        return value

    @validates('type')
    def validate_type(self, key, value):
        return require_choice('type', value or 'text', MESSAGE_TYPES)

    def to_dict(self):
        return {
            'id': self.id,
            'sender_id': self.sender_id,
            'receiver_id': self.receiver_id,
            'project_id': self.project_id,
            'sender': self.sender.to_summary() if self.sender else None,
            'receiver': self.receiver.to_summary() if self.receiver else None,
            'content': self.content,
            'type': self.type,
            'attachment_url': self.attachment_url,
            'read': self.read,
            'read_at': isoformat(self.read_at),
            'created_at': isoformat(self.created_at)
        }

    def __repr__(self):
        return f'<Message id={self.id} sender={self.sender_id} receiver={self.receiver_id}>'
