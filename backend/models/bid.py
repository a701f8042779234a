# backend/models/bid.py

from datetime import datetime

from sqlalchemy.orm import validates

from .base import db, ValidationError, isoformat, require_choice, require_number, require_list

BID_STATUSES = ('pending', 'accepted', 'rejected')

# Fields a bidder may change while the bid is still pending
EDITABLE_BID_FIELDS = ('amount', 'timeline', 'description', 'material_costs',
                       'labor_costs', 'start_date', 'documents')


class Bid(db.Model):
    __tablename__ = 'bids'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False, index=True)
    bidder_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    timeline = db.Column(db.Integer, nullable=False)  # in days
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), default='pending', nullable=False, index=True)
    material_costs = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    labor_costs = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    start_date = db.Column(db.DateTime)
    documents = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    bidder = db.relationship('User', backref=db.backref('bids', lazy='dynamic'))

    @validates('amount')
    def validate_amount(self, key, value):
        return require_number('amount', value, strictly_positive=True)

    @validates('timeline')
    def validate_timeline(self, key, value):
        return require_number('timeline', value, strictly_positive=True, integer=True)

    @validates('material_costs', 'labor_costs')
    def validate_costs(self, key, value):
        return require_number(key, value, minimum=0)

    @validates('description')
    def validate_description(self, key, value):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError('description is required', 'description')
        return value.strip()

    @validates('status')
    def validate_status(self, key, value):
        return require_choice('status', value, BID_STATUSES)

    @validates('documents')
    def validate_documents(self, key, value):
        return require_list('documents', value)

    def to_dict(self, include_project=False):
        data = {
            'id': self.id,
            'project_id': self.project_id,
            'bidder_id': self.bidder_id,
            'bidder': self.bidder.to_summary() if self.bidder else None,
            'amount': self.amount,
            'timeline': self.timeline,
            'description': self.description,
            'status': self.status,
            'material_costs': self.material_costs,
            'labor_costs': self.labor_costs,
            'start_date': isoformat(self.start_date),
            'documents': self.documents or [],
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
        if include_project and self.project:
            data['project'] = {
                'id': self.project.id,
                'title': self.project.title,
                'status': self.project.status,
                'contractor_id': self.project.contractor_id
            }
        return data

    def __repr__(self):
        return f'<Bid id={self.id} project_id={self.project_id} status={self.status}>'
