# backend/models/dispute.py

from datetime import datetime

from sqlalchemy.orm import validates

from .base import db, ValidationError, isoformat, require_choice, require_list

DISPUTE_STATUSES = ('open', 'in_review', 'resolved', 'closed')
OPEN_DISPUTE_STATUSES = ('open', 'in_review')


class Dispute(db.Model):
    __tablename__ = 'disputes'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False, index=True)
    raised_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    against_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    reason = db.Column(db.Text, nullable=False)
    evidence_photos = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), default='open', nullable=False)
    resolution = db.Column(db.Text)
    resolved_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    raised_by = db.relationship('User', foreign_keys=[raised_by_id])
    against = db.relationship('User', foreign_keys=[against_id])

    @validates('reason')
    def validate_reason(self, key, value):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError('reason is required', 'reason')
        return value.strip()

    @validates('status')
    def validate_status(self, key, value):
        return require_choice('status', value, DISPUTE_STATUSES)

    @validates('evidence_photos')
    def validate_evidence(self, key, value):
        return require_list('evidence_photos', value)

    def is_party(self, user):
        return user.id in (self.raised_by_id, self.against_id)

    def can_view(self, user):
        return self.is_party(user) or self.project.is_owner(user)

    def resolve(self, resolution):
        if not isinstance(resolution, str) or not resolution.strip():
            raise ValidationError('resolution is required', 'resolution')
        self.status = 'resolved'
        self.resolution = resolution.strip()
        self.resolved_at = datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'project': {'id': self.project.id, 'title': self.project.title} if self.project else None,
            'raised_by_id': self.raised_by_id,
            'against_id': self.against_id,
            'raised_by': self.raised_by.to_summary() if self.raised_by else None,
            'against': self.against.to_summary() if self.against else None,
            'reason': self.reason,
            'evidence_photos': self.evidence_photos or [],
            'status': self.status,
            'resolution': self.resolution,
            'resolved_at': isoformat(self.resolved_at),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<Dispute id={self.id} project_id={self.project_id} status={self.status}>'
