"""Single-owner authentication.

One configured password, compared as-is. A successful login yields an
HS256 JWT for the fixed identity ``admin``; protected routes accept it as
a bearer credential until it expires. Login attempts are throttled per
client IP with flask-limiter; its storage backend is configurable.
"""
import hmac
import logging
import math
import time
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Optional

import jwt
from flask import current_app, g, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from limits import parse

logger = logging.getLogger(__name__)

ADMIN_USER = 'admin'
JWT_ALGORITHM = 'HS256'


def verify_password(submitted: Optional[str], expected: Optional[str]) -> bool:
    if not submitted or not expected:
        return False
    return hmac.compare_digest(submitted.encode('utf-8'), expected.encode('utf-8'))


def generate_token(secret: str, expires_in: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        'userId': ADMIN_USER,
        'timestamp': int(now.timestamp() * 1000),
        'iat': now,
        'exp': now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str) -> dict:
    """Raises jwt.InvalidTokenError on a bad signature, malformed token or expiry."""
    return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])


def verify_token(token: str, secret: str) -> bool:
    try:
        decode_token(token, secret)
        return True
    except jwt.InvalidTokenError:
        return False


def bearer_token() -> Optional[str]:
    header = request.headers.get('Authorization', '')
    parts = header.split(' ')
    if len(parts) < 2 or not parts[1]:
        return None
    return parts[1]


def require_auth(view):
    @wraps(view)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({'error': 'Access denied. No token provided.'}), 401
        try:
            claims = decode_token(token, current_app.config['JWT_SECRET'])
        except jwt.InvalidTokenError:
            return jsonify({'error': 'Invalid or expired token.'}), 403
        g.user_id = claims.get('userId')
        return view(*args, **kwargs)
    return decorated_function


def client_ip() -> str:
    # remote_addr only reflects X-Forwarded-For when TRUSTED_PROXIES enables ProxyFix
    return get_remote_address()


# Login throttling

LOGIN_SCOPE = 'login'

# Storage comes from RATELIMIT_STORAGE_URI: memory:// by default, redis:// etc. when shared
limiter = Limiter(key_func=get_remote_address)


def login_limit() -> str:
    config = current_app.config
    return f"{config['LOGIN_MAX_ATTEMPTS']} per {config['LOGIN_WINDOW_SECONDS']} seconds"


def reset_login_attempts() -> None:
    """Forget the current client's attempts, after a successful login."""
    limiter.limiter.clear(parse(login_limit()), get_remote_address(), LOGIN_SCOPE)


def login_retry_minutes() -> int:
    reset_at, _ = limiter.limiter.get_window_stats(
        parse(login_limit()), get_remote_address(), LOGIN_SCOPE)
    return max(1, math.ceil((reset_at - time.time()) / 60))


def throttled_message() -> str:
    return f"Too many failed attempts. Please try again in {login_retry_minutes()} minutes."
