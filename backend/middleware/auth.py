# backend/middleware/auth.py
"""
Bearer-token authentication and role checks.

Tokens are signed, timestamped payloads produced by itsdangerous. Flask-Login
resolves ``current_user`` from the ``Authorization`` header through a request
loader, so ``@login_required`` works exactly as it does for session logins.
"""

from functools import wraps
import logging

from flask import jsonify, request, current_app
from flask_login import LoginManager, current_user, login_required
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from models import db, User

logger = logging.getLogger(__name__)

AUTH_TOKEN_SALT = 'auth-token'
TWO_FACTOR_TOKEN_SALT = 'two-factor-login'
PASSWORD_RESET_SALT = 'password-reset'

login_manager = LoginManager()


def _serializer(salt):
    return URLSafeTimedSerializer(secret_key=current_app.config['SECRET_KEY'], salt=salt)


def generate_token(user):
    """Issue the bearer token returned by login, register and 2FA verification"""
    return _serializer(AUTH_TOKEN_SALT).dumps({'uid': user.id, 'role': user.role})


def generate_two_factor_token(user):
    """Short-lived proof that the password step of a 2FA login succeeded"""
    return _serializer(TWO_FACTOR_TOKEN_SALT).dumps({'uid': user.id})


def generate_password_reset_token(user):
    # Binding the token to the current hash makes it single use
    return _serializer(PASSWORD_RESET_SALT).dumps({'uid': user.id, 'ph': user.password_hash[-12:]})


def _load_payload(token, salt, max_age):
    if not token:
        return None
    try:
        return _serializer(salt).loads(token, max_age=max_age)
    except SignatureExpired:
        logger.info(f"Expired token presented for salt '{salt}'")
        return None
    except BadSignature:
        logger.warning(f"Invalid token presented for salt '{salt}'")
        return None


def _active_user(user_id):
    try:
        user = db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None
    if user is None or not user.is_active:
        return None
    return user


def load_user_from_token(token):
    payload = _load_payload(token, AUTH_TOKEN_SALT, current_app.config['TOKEN_MAX_AGE'])
    return _active_user(payload.get('uid')) if payload else None


def load_user_from_two_factor_token(token):
    payload = _load_payload(token, TWO_FACTOR_TOKEN_SALT, current_app.config['TWO_FACTOR_TOKEN_MAX_AGE'])
    return _active_user(payload.get('uid')) if payload else None


def load_user_from_reset_token(token):
    payload = _load_payload(token, PASSWORD_RESET_SALT, current_app.config['PASSWORD_RESET_MAX_AGE'])
    if not payload:
        return None
    user = _active_user(payload.get('uid'))
    if user is None or user.password_hash[-12:] != payload.get('ph'):
        return None
    return user


def bearer_token():
    """Extract the token from an ``Authorization: Bearer <token>`` header"""
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return None
    return header[len('Bearer '):].strip() or None


def init_auth(app):
    """Wire Flask-Login to bearer tokens with JSON (never redirect) failures"""
    login_manager.init_app(app)
    login_manager.session_protection = None

    @login_manager.request_loader
    def load_user_from_request(req):
        token = bearer_token()
        if not token:
            return None
        return load_user_from_token(token)

    @login_manager.user_loader
    def load_user(user_id):
        return _active_user(user_id)

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        logger.warning(f"Unauthorized API access attempt to {request.path} from {request.remote_addr}")
        return jsonify({'error': 'Please authenticate'}), 401


def roles_required(*roles):
    """
    Decorator to require one of the given roles. Implies @login_required.

    Usage:
        @bp.route('', methods=['POST'])
        @roles_required('contractor')
        def create_project():
            ...
    """
    allowed = set(roles)

    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if current_user.role not in allowed:
                logger.warning(f"User {current_user.id} (role: {current_user.role}) attempted to access {request.endpoint}")
                return jsonify({'error': 'You do not have permission to perform this action'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def api_key_required(f):
    """
    Decorator for API key authentication (for external integrations).
    Checks the 'X-API-Key' header against ERP_API_KEYS.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        api_key = request.headers.get('X-API-Key')

        if not api_key:
            logger.warning(f"API request without key to endpoint: {request.endpoint}")
            return jsonify({'error': 'API key required'}), 401

        if api_key not in current_app.config.get('ERP_API_KEYS', []):
            logger.warning(f"Invalid API key used for endpoint: {request.endpoint}")
            return jsonify({'error': 'Invalid API key'}), 401

        return f(*args, **kwargs)
    return decorated_function


WEAK_PASSWORDS = {
    'password', '123456', 'password123', 'admin', 'qwerty',
    'letmein', 'welcome', 'monkey', '1234567890'
}


def check_password_strength(password):
    """
    Validate password strength.

    Returns:
        tuple: (is_valid, error_message)
    """
    if not isinstance(password, str) or len(password) < 6:
        return False, "Password must be at least 6 characters long"

    if len(password) > 128:
        return False, "Password must be less than 128 characters long"

    if not any(c.isalpha() for c in password):
        return False, "Password must contain at least one letter"

    if not any(c.isdigit() for c in password):
        return False, "Password must contain at least one number"

    if password.lower() in WEAK_PASSWORDS:
        return False, "Password is too common. Please choose a stronger password"

    return True, "Password is valid"
