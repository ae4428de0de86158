"""
Identity - password hashing and opaque signed session tokens.
"""

from functools import wraps
from typing import Optional

from flask import g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from focuslog import config

TOKEN_SALT = 'focuslog-auth'


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(config.SECRET_KEY, salt=TOKEN_SALT)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def issue_token(user_id: str) -> str:
    return _serializer().dumps({'user_id': str(user_id)})


def read_token(token: Optional[str]) -> Optional[str]:
    """Return the user id inside a valid token, None otherwise."""
    if not token:
        return None
    try:
        data = _serializer().loads(token, max_age=config.TOKEN_MAX_AGE_DAYS * 24 * 3600)
    except (SignatureExpired, BadSignature):
        return None
    user_id = data.get('user_id') if isinstance(data, dict) else None
    return str(user_id) if user_id else None


def token_from_request() -> Optional[str]:
    token = request.headers.get('x-auth-token')
    if token:
        return token
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):].strip()
    return None


def login_required(view):
    """Reject requests without a valid token; sets g.owner to the user id."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        owner = read_token(token_from_request())
        if owner is None:
            return jsonify({'msg': 'No token, authorization denied'}), 401
        g.owner = owner
        return view(*args, **kwargs)
    return wrapper
