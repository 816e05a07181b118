"""Decorators for the auth blueprint."""

from functools import wraps

from firebase_admin import auth
from flask import abort, current_app, g, request, session


def current_user_id():
    """Resolve the caller's uid from a bearer token or the session."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        try:
            decoded = auth.verify_id_token(token)
        except Exception as e:
            current_app.logger.warning(f"Rejected ID token: {e}")
            abort(401, description="Invalid auth token.")
        return decoded.get("uid")
    return session.get("user_id")


def login_required(f=None):
    """Reject the request with 401 unless the caller is authenticated.

    Usage:
    @login_required
    def protected_view():
        uid = g.uid
        ...
    """

    def decorator(func):
        @wraps(func)
        def decorated_function(*args, **kwargs):
            uid = current_user_id()
            if not uid:
                abort(401, description="Authentication required.")
            g.uid = uid
            return func(*args, **kwargs)

        return decorated_function

    if f:
        return decorator(f)
    return decorator
