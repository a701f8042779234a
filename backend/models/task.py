# backend/models/task.py

from datetime import datetime

from sqlalchemy.orm import validates

from .base import db, ValidationError, isoformat, require_choice, require_number, require_list

TASK_STATUSES = ('pending', 'in_progress', 'completed', 'blocked')
TASK_PRIORITIES = ('low', 'medium', 'high')

EDITABLE_TASK_FIELDS = ('title', 'description', 'status', 'priority', 'start_date',
                        'due_date', 'assigned_to', 'dependencies', 'attachments')


class Task(db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), default='pending', nullable=False, index=True)
    priority = db.Column(db.String(10), default='medium', nullable=False)
    start_date = db.Column(db.DateTime)
    due_date = db.Column(db.DateTime)
    assigned_to = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    completed_at = db.Column(db.DateTime)
    dependencies = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list)
    progress = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    assignee = db.relationship('User', backref=db.backref('assigned_tasks', lazy='dynamic'))

    @validates('title')
    def validate_title(self, key, value):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError('title is required', 'title')
        return value.strip()

    @validates('status')
    def validate_status(self, key, value):
        return require_choice('status', value, TASK_STATUSES)

    @validates('priority')
    def validate_priority(self, key, value):
        return require_choice('priority', value or 'medium', TASK_PRIORITIES)

    @validates('progress')
    def validate_progress(self, key, value):
        progress = require_number('progress', value, minimum=0, integer=True)
        if progress > 100:
            raise ValidationError('progress must be between 0 and 100', 'progress')
        return progress

    @validates('dependencies', 'attachments')
    def validate_lists(self, key, value):
        return require_list(key, value)

    def set_status(self, status):
        """Change status, keeping completed_at and progress consistent with it"""
        previous = self.status
        self.status = status
        if status == 'completed':
            if previous != 'completed' or not self.completed_at:
                self.completed_at = datetime.utcnow()
            self.progress = 100
        elif previous == 'completed':
            # progress 100 only ever means completed
            self.completed_at = None
            if status == 'pending':
                self.progress = 0
            elif self.progress == 100:
                self.progress = 99

    def apply_progress(self, progress):
        self.progress = progress
        if self.progress == 100:
            self.set_status('completed')
            return
        self.completed_at = None
        if self.status == 'completed' or (self.status == 'pending' and self.progress > 0):
            self.status = 'in_progress'

    def to_dict(self, include_project=False):
        data = {
            'id': self.id,
            'project_id': self.project_id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'start_date': isoformat(self.start_date),
            'due_date': isoformat(self.due_date),
            'assigned_to': self.assigned_to,
            'assignee': self.assignee.to_summary() if self.assignee else None,
            'completed_at': isoformat(self.completed_at),
            'dependencies': self.dependencies or [],
            'attachments': self.attachments or [],
            'progress': self.progress,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
        if include_project and self.project:
            data['project'] = {
                'id': self.project.id,
                'title': self.project.title,
                'status': self.project.status
            }
        return data

    def __repr__(self):
        return f'<Task id={self.id} project_id={self.project_id} status={self.status}>'
