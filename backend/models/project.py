# backend/models/project.py

from datetime import datetime

from sqlalchemy.orm import validates

from .base import db, ValidationError, isoformat, require_choice, require_number, require_list

PROJECT_STATUSES = ('draft', 'bidding', 'in_progress', 'completed', 'cancelled')

# Transitions a project owner may request directly. bidding -> in_progress
# only happens when a bid is accepted.
MANUAL_TRANSITIONS = {
    'draft': ('bidding', 'cancelled'),
    'bidding': ('draft', 'cancelled'),
    'in_progress': ('completed', 'cancelled'),
    'completed': (),
    'cancelled': (),
}

ACTIVE_STATUSES = ('draft', 'bidding', 'in_progress')


class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    budget = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)
    status = db.Column(db.String(20), default='draft', nullable=False, index=True)
    location = db.Column(db.String(255), nullable=False)
    permit_required = db.Column(db.Boolean, default=False, nullable=False)
    permit_url = db.Column(db.String(512))
    blueprint_url = db.Column(db.String(512))
    permit_expiry_date = db.Column(db.DateTime)
    milestones = db.Column(db.JSON, default=list)
    contractor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    contractor = db.relationship('User', foreign_keys=[contractor_id], backref=db.backref('contracted_projects', lazy='dynamic'))
    customer = db.relationship('User', foreign_keys=[customer_id], backref=db.backref('customer_projects', lazy='dynamic'))
    bids = db.relationship('Bid', backref='project', lazy='dynamic', cascade="all, delete-orphan")
    tasks = db.relationship('Task', backref='project', lazy='dynamic', cascade="all, delete-orphan")
    disputes = db.relationship('Dispute', backref='project', lazy='dynamic', cascade="all, delete-orphan")

    @validates('title', 'description', 'location')
    def validate_text(self, key, value):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{key} is required", key)
        return value.strip()

    @validates('budget')
    def validate_budget(self, key, value):
        return require_number('budget', value, strictly_positive=True)

    @validates('status')
    def validate_status(self, key, value):
        return require_choice('status', value, PROJECT_STATUSES)

    @validates('milestones')
    def validate_milestones(self, key, value):
        return require_list('milestones', value)

    def set_schedule(self, start_date, end_date):
        if start_date and end_date and end_date < start_date:
            raise ValidationError('end_date must not be before start_date', 'end_date')
        self.start_date = start_date
        self.end_date = end_date

    def is_owner(self, user):
        """Contractor or customer of the project"""
        return user.id in (self.contractor_id, self.customer_id)

    def participant_ids(self):
        """Users taking part in the project: owners, task assignees and the accepted bidder"""
        from .bid import Bid
        from .task import Task

        ids = {self.contractor_id}
        if self.customer_id:
            ids.add(self.customer_id)
        assignees = db.session.query(Task.assigned_to).filter(
            Task.project_id == self.id, Task.assigned_to.isnot(None))
        ids.update(row[0] for row in assignees)
        accepted = db.session.query(Bid.bidder_id).filter_by(project_id=self.id, status='accepted')
        ids.update(row[0] for row in accepted)
        return ids

    def has_bid_from(self, user):
        return self.bids.filter_by(bidder_id=user.id).count() > 0

    def can_view(self, user):
        if user.id in self.participant_ids() or self.has_bid_from(user):
            return True
        if self.status == 'bidding':
            return True
        return user.role == 'vendor' and self.status == 'in_progress'

    def can_transition_to(self, status):
        return status == self.status or status in MANUAL_TRANSITIONS.get(self.status, ())

    def to_dict(self, bids=None, include_tasks=False):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'budget': self.budget,
            'start_date': isoformat(self.start_date),
            'end_date': isoformat(self.end_date),
            'status': self.status,
            'location': self.location,
            'permit_required': self.permit_required,
            'permit_url': self.permit_url,
            'blueprint_url': self.blueprint_url,
            'permit_expiry_date': isoformat(self.permit_expiry_date),
            'milestones': self.milestones or [],
            'contractor_id': self.contractor_id,
            'customer_id': self.customer_id,
            'contractor': self.contractor.to_summary() if self.contractor else None,
            'customer': self.customer.to_summary() if self.customer else None,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
        if bids is not None:
            data['bids'] = [bid.to_dict() for bid in bids]
        if include_tasks:
            data['tasks'] = [task.to_dict() for task in self.tasks]
        return data

    def __repr__(self):
        return f'<Project id={self.id} title={self.title} status={self.status}>'
