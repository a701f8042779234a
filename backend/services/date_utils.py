# backend/services/date_utils.py
import logging
from datetime import datetime, date, timedelta

import pytz
from flask import current_app

from models import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'America/Toronto'


def server_timezone():
    """Timezone used for human-facing dates (reports, alerts)"""
    name = DEFAULT_TIMEZONE
    try:
        name = current_app.config.get('TIMEZONE', DEFAULT_TIMEZONE)
    except RuntimeError:
        # Outside an application context
        pass
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{name}', falling back to {DEFAULT_TIMEZONE}")
        return pytz.timezone(DEFAULT_TIMEZONE)


def parse_datetime(value, field='date'):
    """
    Parse a date or datetime from a JSON payload into a naive UTC datetime.

    Accepted forms:
        2025-05-21                 -> midnight of that day (date preserved as-is)
        2025-05-21T10:00:00        -> taken as UTC
        2025-05-21T10:00:00Z       -> converted to UTC
        2025-05-21T10:00:00+02:00  -> converted to UTC

    Empty values return None; anything else raises ValidationError.
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        try:
            if 'T' not in text and ' ' not in text:
                parsed_date = date.fromisoformat(text)
                return datetime(parsed_date.year, parsed_date.month, parsed_date.day)
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f"{field} must be an ISO 8601 date", field)
    else:
        raise ValidationError(f"{field} must be an ISO 8601 date", field)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(pytz.utc).replace(tzinfo=None)
    return parsed


def days_from_now(days):
    return datetime.utcnow() + timedelta(days=days)


def format_local_date(value=None, fmt="%B %d, %Y"):
    """Format a naive UTC datetime (default: now) in the server timezone"""
    value = value or datetime.utcnow()
    localized = pytz.utc.localize(value).astimezone(server_timezone())
    return localized.strftime(fmt)
