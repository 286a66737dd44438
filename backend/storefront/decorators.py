# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models.auth import ROLE_ADMIN
from .services import session_service


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def is_admin() -> bool:
    return _is_authenticated() and g.current_user.role == ROLE_ADMIN


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user to the authenticated User. Returns 401 when the
    header is missing or the token is invalid, expired, idle or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED", "details": {}}), 401

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(db.session, token)

        if user is None:
            return jsonify({"error": "Invalid or expired token", "code": "UNAUTHENTICATED", "details": {}}), 401

        g.current_user = user
        g.auth_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated user to hold one of `roles`. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED", "details": {}}), 401

            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "code": "FORBIDDEN",
                    "details": {"required_roles": list(roles)},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
