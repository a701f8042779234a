# backend/models/base.py

import re

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


class ValidationError(Exception):
    """Raised when a field value breaks a model rule. Rendered as HTTP 400."""

    def __init__(self, message, field=None, details=None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details or [{'field': field, 'message': message}]


def isoformat(value):
    return value.isoformat() if value else None


def require_choice(field, value, choices):
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}", field)
    return value


def require_number(field, value, minimum=None, strictly_positive=False, integer=False):
    """Coerce a JSON value to a number and enforce its lower bound"""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field)
    try:
        number = int(value) if integer else float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field)
    if integer and float(value) != number:
        raise ValidationError(f"{field} must be a whole number", field)
    if strictly_positive and number <= 0:
        raise ValidationError(f"{field} must be greater than 0", field)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", field)
    return number


def require_list(field, value):
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list", field)
    return value
