# backend/routes/utils.py
from flask import request

from models import ValidationError
from services.date_utils import parse_datetime


def get_json_body():
    """Request JSON as a dict; a missing or non-object body is a validation error"""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def require_fields(data, *fields):
    missing = [field for field in fields if data.get(field) in (None, '')]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            missing[0],
            [{'field': field, 'message': f'{field} is required'} for field in missing]
        )


def parse_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_int(value, field):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field)


def apply_fields(obj, data, fields, date_fields=()):
    """Copy whitelisted keys from a payload onto a model, parsing date fields"""
    changed = []
    for field in fields:
        if field not in data:
            continue
        value = data[field]
        if field in date_fields:
            value = parse_datetime(value, field)
        setattr(obj, field, value)
        changed.append(field)
    return changed
