# backend/models/user.py

from datetime import datetime

from flask_login import UserMixin
from sqlalchemy.orm import validates
from werkzeug.security import generate_password_hash, check_password_hash

from .base import db, EMAIL_PATTERN, ValidationError, isoformat, require_choice

ROLES = ('contractor', 'vendor', 'subcontractor', 'customer')
LANGUAGES = ('en', 'fr')


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), index=True, unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(64))
    last_name = db.Column(db.String(64))
    phone = db.Column(db.String(32))
    role = db.Column(db.String(20), nullable=False)
    language = db.Column(db.String(2), default='en', nullable=False)
    two_factor_secret = db.Column(db.String(64))
    two_factor_enabled = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @validates('email')
    def validate_email(self, key, value):
        email = (value or '').strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError('Please enter a valid email address', 'email')
        return email

    @validates('role')
    def validate_role(self, key, value):
        return require_choice('role', value, ROLES)

    @validates('language')
    def validate_language(self, key, value):
        return require_choice('language', value or 'en', LANGUAGES)

    def set_password(self, password):
        """Creates a hashed password."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Checks a password against the stored hash."""
        return check_password_hash(self.password_hash, password)

    def get_full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_summary(self):
        """Short form used when a user is embedded in another resource"""
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.get_full_name(),
            'phone': self.phone,
            'language': self.language,
            'two_factor_enabled': self.two_factor_enabled,
            'is_active': self.is_active,
            'last_login': isoformat(self.last_login),
            'created_at': isoformat(self.created_at)
        }

    def __repr__(self):
        return f'<User id={self.id} email={self.email} role={self.role}>'
