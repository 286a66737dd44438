# Overview: Flask API routes for login, logout and the current user; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Authentication API routes

- Login issues a bearer token; only its SHA-256 is stored
- Logout revokes the presented token
- Accounts are created by an admin through the CLI (no self-registration)
"""

from flask import Blueprint, jsonify, current_app, g

from ..extensions import db
from ..errors import StorefrontError
from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth
from ..validation import error_response, internal_error, json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Request body: {"email": "...", "password": "..."}

    Returns 200 {"user", "token"}, 400 missing fields, 401 bad credentials.
    """
    try:
        data = json_body()
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required", "code": "VALIDATION_ERROR", "details": {}}), 400

        user = auth_service.authenticate(db.session, email, password)
        if user is None:
            current_app.logger.warning("Failed login for %s", email)
            return jsonify({"error": "Invalid credentials", "code": "UNAUTHENTICATED", "details": {}}), 401

        _, token = session_service.create_session(db.session, user.id)

        return jsonify({"user": user.to_dict(), "token": token}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Login failed")
        return internal_error()


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(db.session, g.auth_token)
        return jsonify({"message": "Logged out"}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Logout failed")
        return internal_error()


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
