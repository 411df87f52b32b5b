import logging
from functools import wraps

from flask import g, jsonify, request

from errors import InvalidTokenError


def get_token_from_request():
    """Get the bearer session token from the Authorization header."""
    auth_header = request.headers.get('Authorization')
    if auth_header and auth_header.startswith('Bearer '):
        return auth_header[7:].strip()
    return None


def require_session(tokens, store):
    """
    Decorator factory that requires a valid session token.

    Args:
        tokens: TokenIssuer used to verify the bearer token
        store: AccountStore used to load the account behind it

    The decorated view finds the account in g.current_user and the token
    claims in g.session_claims.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            token = get_token_from_request()
            if not token:
                logging.warning(f"Unauthenticated access attempt to {request.endpoint}")
                return jsonify({'error': 'Authentication required'}), 401

            claims = tokens.read_session(token)
            user = store.get(claims['account_id'])
            if not user:
                logging.warning(f"Session token for missing account used on {request.endpoint}")
                raise InvalidTokenError('Invalid token')

            g.current_user = user
            g.session_claims = claims
            return f(*args, **kwargs)
        return decorated_function
    return decorator
