# backend/routes/auth.py
from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from datetime import datetime
import logging

from models import db, User, ValidationError
from middleware.auth import (
    generate_token, generate_two_factor_token, generate_password_reset_token,
    load_user_from_two_factor_token, load_user_from_reset_token, check_password_strength
)
from middleware.errors import handle_write_errors, server_error, error_response
from routes.utils import get_json_body, require_fields
from services import two_factor

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


def _session_payload(user):
    return {'user': user.to_dict(), 'token': generate_token(user)}


def _validate_password(password):
    is_valid, message = check_password_strength(password)
    if not is_valid:
        raise ValidationError(message, 'password')


@auth_bp.route('/register', methods=['POST'])
def register():
    """Create an account and return a bearer token"""
    try:
        data = get_json_body()
        require_fields(data, 'email', 'password', 'role')
        _validate_password(data['password'])

        email = str(data['email']).strip().lower()
        if User.query.filter_by(email=email).first():
            logger.warning(f"Registration attempt with existing email {email}")
            return error_response('Email already registered', 400)

        user = User(
            email=email,
            role=data['role'],
            first_name=data.get('first_name'),
            last_name=data.get('last_name'),
            phone=data.get('phone'),
            language=data.get('language') or 'en'
        )
        user.set_password(data['password'])

        db.session.add(user)
        db.session.commit()

        logger.info(f"Registered user {user.id} with role {user.role}")
        return jsonify(_session_payload(user)), 201

    except Exception as e:
        return handle_write_errors(e, 'Failed to register user')


@auth_bp.route('/login', methods=['POST'])
def login():
    try:
        data = get_json_body()
        email = str(data.get('email') or '').strip().lower()
        password = data.get('password') or ''

        user = User.query.filter_by(email=email).first() if email else None
        if not user or not user.is_active or not user.check_password(password):
            logger.warning(f"Failed login for '{email}' from {request.remote_addr}")
            return error_response('Invalid credentials', 401)

        if user.two_factor_enabled:
            logger.info(f"User {user.id} passed password step, awaiting 2FA code")
            return jsonify({
                'requires_two_factor': True,
                'user_id': user.id,
                'two_factor_token': generate_two_factor_token(user)
            })

        user.last_login = datetime.utcnow()
        db.session.commit()

        logger.info(f"User {user.id} logged in")
        return jsonify(_session_payload(user))

    except Exception as e:
        return handle_write_errors(e, 'Login failed')


@auth_bp.route('/setup-2fa', methods=['POST'])
@login_required
def setup_two_factor():
    """Generate a TOTP secret for the current user. 2FA turns on after the first verified code."""
    try:
        secret = two_factor.generate_secret()
        current_user.two_factor_secret = secret
        db.session.commit()

        otpauth_url = two_factor.provisioning_uri(current_user, secret)
        logger.info(f"Generated 2FA secret for user {current_user.id}")

        return jsonify({
            'secret': secret,
            'otpauth_url': otpauth_url,
            'qr_code': two_factor.qr_code_data_url(otpauth_url)
        })

    except Exception as e:
        return handle_write_errors(e, 'Failed to set up two-factor authentication')


@auth_bp.route('/verify-2fa', methods=['POST'])
def verify_two_factor():
    """
    Verify a TOTP code.

    Two callers:
        login completion  -> {"two_factor_token": "...", "code": "123456"}
        setup confirmation -> authenticated request with {"code": "123456"}
    """
    try:
        data = get_json_body()
        code = data.get('code')

        if data.get('two_factor_token'):
            user = load_user_from_two_factor_token(data['two_factor_token'])
            if user is None:
                return error_response('Invalid or expired two-factor token', 401)
        elif current_user.is_authenticated:
            user = current_user._get_current_object()
        else:
            return error_response('Please authenticate', 401)

        if not user.two_factor_secret:
            return error_response('Two-factor authentication has not been set up', 400)

        if not two_factor.verify_code(user.two_factor_secret, code):
            logger.warning(f"Invalid 2FA code for user {user.id}")
            return error_response('Invalid 2FA code', 401)

        if not user.two_factor_enabled:
            user.two_factor_enabled = True
            logger.info(f"Enabled 2FA for user {user.id}")
        user.last_login = datetime.utcnow()
        db.session.commit()

        return jsonify(_session_payload(user))

    except Exception as e:
        return handle_write_errors(e, 'Failed to verify two-factor code')


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password():
    try:
        data = get_json_body()
        email = str(data.get('email') or '').strip().lower()

        user = User.query.filter_by(email=email).first() if email else None
        if not user or not user.is_active:
            return error_response('User not found', 404)

        token = generate_password_reset_token(user)
        # No mail transport is configured; the link would be built from FRONTEND_URL
        logger.info(f"Password reset requested for user {user.id}")

        response = {'message': 'Password reset email sent'}
        if current_app.config.get('DEBUG') or current_app.config.get('TESTING'):
            response['reset_token'] = token
        return jsonify(response)

    except Exception as e:
        logger.error(f"Error requesting password reset: {str(e)}")
        return server_error('Failed to request password reset', e)


@auth_bp.route('/reset-password/confirm', methods=['POST'])
def confirm_reset_password():
    try:
        data = get_json_body()
        require_fields(data, 'token', 'password')

        user = load_user_from_reset_token(data['token'])
        if user is None:
            return error_response('Invalid or expired reset token', 400)

        _validate_password(data['password'])
        user.set_password(data['password'])
        db.session.commit()

        logger.info(f"Password reset completed for user {user.id}")
        return jsonify({'message': 'Password updated successfully'})

    except Exception as e:
        return handle_write_errors(e, 'Failed to reset password')


@auth_bp.route('/language', methods=['PATCH'])
@login_required
def update_language():
    try:
        data = get_json_body()
        language = data.get('language')

        if language not in current_app.config.get('SUPPORTED_LANGUAGES', ['en', 'fr']):
            return error_response('Invalid language', 400)

        current_user.language = language
        db.session.commit()

        return jsonify({'message': 'Language updated successfully', 'language': language})

    except Exception as e:
        return handle_write_errors(e, 'Failed to update language')


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_current_user():
    return jsonify({'user': current_user.to_dict()})


@auth_bp.route('/account', methods=['DELETE'])
@login_required
def delete_account():
    """Deactivate the account. Its projects, bids and messages are kept for the other parties."""
    try:
        current_user.is_active = False
        current_user.two_factor_enabled = False
        current_user.two_factor_secret = None
        db.session.commit()

        logger.info(f"Deactivated account {current_user.id}")
        return jsonify({'message': 'Account deleted successfully'})

    except Exception as e:
        return handle_write_errors(e, 'Failed to delete account')
