"""
Decorator: @login_required — enforces a signed-in session.

Reads the JWT from the Authorization Bearer header or the session
cookie, and sets g.current_email. Returns 401 on failure.
"""
from functools import wraps

from flask import g, jsonify

from services.auth_service import current_email, session_token


def login_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if not session_token():
            return jsonify({"success": False, "error": "AUTH_REQUIRED",
                            "message": "Missing or invalid token"}), 401

        email = current_email()
        if not email:
            return jsonify({"success": False, "error": "AUTH_REQUIRED",
                            "message": "Invalid or expired token"}), 401

        g.current_email = email
        return f(*args, **kwargs)

    return decorated
