# backend/services/two_factor.py
import base64
import logging
from io import BytesIO

import pyotp
import qrcode
from flask import current_app

logger = logging.getLogger(__name__)


def generate_secret():
    return pyotp.random_base32()


def provisioning_uri(user, secret):
    """otpauth:// URL understood by authenticator apps"""
    issuer = current_app.config.get('TOTP_ISSUER', 'Blueprint')
    return pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=issuer)


def qr_code_data_url(uri):
    """Render the provisioning URI as a PNG data URL"""
    image = qrcode.make(uri)
    buffer = BytesIO()
    image.save(buffer, format='PNG')
    encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
    return f"data:image/png;base64,{encoded}"


def verify_code(secret, code):
    """Check a 6 digit TOTP code, allowing one step of clock drift"""
    if not secret or code is None:
        return False
    code = str(code).strip().replace(' ', '')
    if not code.isdigit():
        return False
    valid = pyotp.TOTP(secret).verify(code, valid_window=1)
    if not valid:
        logger.info("Rejected TOTP code")
    return valid
