"""
Authentication Helpers
Admin shared-secret login, JWT session tokens and the cron bearer check.
"""

import hmac
import jwt
from datetime import datetime, timedelta, timezone
import os
from functools import wraps
from flask import request, jsonify

# JWT configuration
JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY')
if not JWT_SECRET_KEY:
    raise RuntimeError(
        "JWT_SECRET_KEY is not set. Admin sessions cannot be signed without it; "
        "add a long random value to .env before starting the API."
    )

JWT_ALGORITHM = 'HS256'
JWT_EXPIRATION_HOURS = 12

ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD')
CRON_SECRET = os.environ.get('CRON_SECRET')


def _secrets_match(provided, expected) -> bool:
    return hmac.compare_digest(str(provided).encode('utf-8'), str(expected).encode('utf-8'))


def check_admin_password(password: str) -> bool:
    """Compare a login attempt with the configured shared secret"""
    if not ADMIN_PASSWORD or not password:
        return False
    return _secrets_match(password, ADMIN_PASSWORD)


def generate_token() -> dict:
    """Generate a JWT access token for an admin session"""
    now = datetime.now(timezone.utc)

    payload = {
        'role': 'admin',
        'type': 'access',
        'exp': now + timedelta(hours=JWT_EXPIRATION_HOURS),
        'iat': now
    }
    access_token = jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

    return {
        'access_token': access_token,
        'token_type': 'Bearer',
        'expires_in': JWT_EXPIRATION_HOURS * 3600  # in seconds
    }


def verify_token(token: str) -> dict:
    """Decode a session token, or return {'error': reason} when it is expired or forged"""
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        return {'error': 'Token expired'}
    except jwt.InvalidTokenError:
        return {'error': 'Invalid token'}


def get_token_from_request():
    """Bearer token from the Authorization header, if any"""
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return None

    try:
        token = auth_header.split(' ')[1]
        return token
    except IndexError:
        return None


def is_cron_request_authorized() -> bool:
    """
    Check the billing trigger's bearer secret.
    With no CRON_SECRET configured the trigger is open.
    """
    if not CRON_SECRET:
        return True
    return _secrets_match(request.headers.get('Authorization', ''), f'Bearer {CRON_SECRET}')


def require_admin(f):
    """Decorator to require an admin session token"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = get_token_from_request()
        if not token:
            return jsonify({
                'success': False,
                'error': 'Authentication required'
            }), 401

        payload = verify_token(token)
        if 'error' in payload:
            return jsonify({
                'success': False,
                'error': payload['error']
            }), 401
        if payload.get('role') != 'admin':
            return jsonify({
                'success': False,
                'error': 'Admin access required'
            }), 403
        return f(payload, *args, **kwargs)
    return decorated_function
