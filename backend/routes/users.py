"""
User routes — board owner registration.

POST /api/users/register — register the session email as a board owner
  Body (optional): { "config": {...initial config...} }
"""
import logging

from flask import Blueprint, current_app, g, jsonify, request

from decorators.login_required import login_required
from services.config_service import board_urls, validate_config
from services.error_service import ConfigurationError, ValidationError, http_status_for
from services.registry import get_registry
from services.user_service import create_user

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__)


@users_bp.route("/register", methods=["POST"])
@login_required
def register():
    """Create the user row for the signed-in email."""
    registry = get_registry()
    body = request.get_json(silent=True) or {}
    try:
        if not registry.properties.is_system_setup():
            raise ConfigurationError("System is not configured: run setup first")
        initial = body.get("config") or {}
        if not isinstance(initial, dict):
            raise ValidationError("config must be an object")
        validate_config(initial)
        user = create_user(registry, g.current_email, initial_config=initial)
    except Exception as exc:
        envelope = registry.errors.handle(exc, {"operation": "register"})
        return jsonify(envelope), http_status_for(exc)

    data = user.to_dict()
    data["urls"] = board_urls(current_app.config["WEB_APP_URL"], user.user_id)
    return jsonify({"success": True, "data": data}), 201
