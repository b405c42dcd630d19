"""
Auth routes — login, me, logout.

POST /api/auth/login  — exchange Google ID token for a session JWT
GET  /api/auth/me     — return the session email and its board status
POST /api/auth/logout — clear the session cookie
"""
import logging

from flask import Blueprint, current_app, g, jsonify, request

from decorators.login_required import login_required
from services.auth_service import check_email_domain, generate_jwt, verify_google_token
from services.formatters import mask_email
from services.registry import get_registry
from services.user_service import is_administrator

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


def _session_info(email):
    registry = get_registry()
    user = None
    if registry.properties.is_system_setup():
        user = registry.user_store.find_by_email(email)
    return {
        "email": email,
        "isAdmin": is_administrator(registry, email),
        "registered": user is not None,
        "userId": user.user_id if user else None,
    }


@auth_bp.route("/login", methods=["POST"])
def login():
    """Exchange a Google ID token for a JWT session token."""
    body = request.get_json(silent=True) or {}
    id_token_str = body.get("token") or ""

    if not id_token_str:
        return jsonify({"error": "Missing token"}), 400

    try:
        claims = verify_google_token(id_token_str)
    except ValueError as exc:
        logger.error("[ERR] Google token verification failed: %s", exc)
        return jsonify({"error": "Invalid Google token"}), 401

    try:
        check_email_domain(claims["email"])
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 403

    token = generate_jwt(claims["email"])
    info = _session_info(claims["email"])
    info["name"] = claims["name"]
    info["picture"] = claims["picture"]
    logger.info("[OK] Signed in %s", mask_email(claims["email"]))

    resp = jsonify({"token": token, "user": info})
    resp.set_cookie(
        current_app.config["SESSION_COOKIE_NAME_JWT"],
        token,
        httponly=True,
        samesite="Lax",
        secure=not current_app.config.get("TESTING", False),
        max_age=int(current_app.config["JWT_EXPIRY_HOURS"]) * 3600,
    )
    return resp


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    """Return the session email with admin/registration status."""
    return jsonify(_session_info(g.current_email))


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """Clear the session cookie (Bearer clients drop their token)."""
    resp = jsonify({"message": "logged out"})
    resp.delete_cookie(current_app.config["SESSION_COOKIE_NAME_JWT"])
    return resp
