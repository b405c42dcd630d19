"""
Decorator: @admin_required — enforces the system administrator.

Wraps @login_required, then checks g.current_email against the
ADMIN_EMAIL property (case-insensitive). Returns 403 otherwise.
"""
from functools import wraps

from flask import g, jsonify

from decorators.login_required import login_required
from services.registry import get_registry
from services.user_service import is_administrator


def admin_required(f):
    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not is_administrator(get_registry(), g.current_email):
            return jsonify({"success": False, "error": "FORBIDDEN",
                            "message": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated
