"""
RPC routes — named functions called from the admin panel scripts.

POST /api/rpc/<functionName>
  Body: JSON object of arguments (may be empty)
  Response: {success: true, data} or the error envelope

Functions in ADMIN_FUNCTIONS go through @admin_required: 401 without a
session, 403 unless the session email is the system administrator.
Unknown names are refused.
"""
import logging

from flask import Blueprint, g, jsonify, request

from decorators.admin_required import admin_required
from services.app_status_service import (
    get_application_status,
    run_diagnostics,
    set_application_status,
)
from services.auth_service import current_email
from services.error_service import ValidationError, http_status_for
from services.registry import get_registry
from services.user_service import (
    delete_user_account,
    find_user_by_email,
    find_user_by_id,
    get_deletion_logs,
    is_administrator,
    list_users,
    set_user_active,
)

logger = logging.getLogger(__name__)

rpc_bp = Blueprint("rpc", __name__)

MAX_LOG_LIMIT = 500


def get_application_status_for_ui(registry, email, args):
    return get_application_status(registry)


def set_application_status_for_ui(registry, email, args):
    if "enabled" not in args or not isinstance(args["enabled"], bool):
        raise ValidationError("enabled must be true or false")
    return set_application_status(registry, email, args["enabled"], args.get("reason"))


def get_all_users_for_admin_for_ui(registry, email, args):
    users = []
    for record in list_users(registry):
        item = record.to_dict()
        item["config"] = record.config
        item.pop("configJson", None)
        users.append(item)
    return users


def delete_user_account_by_admin_for_ui(registry, email, args):
    user_id = args.get("userId")
    if not user_id:
        raise ValidationError("userId is required")
    return delete_user_account(registry, email, user_id, args.get("reason") or "")


def get_deletion_logs_for_ui(registry, email, args):
    limit = args.get("limit", 50)
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LOG_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LOG_LIMIT}")
    return get_deletion_logs(registry, limit=limit)


def toggle_user_active_status_for_ui(registry, email, args):
    user_id = args.get("userId")
    if not user_id:
        raise ValidationError("userId is required")
    current = find_user_by_id(registry, user_id)
    active = args.get("isActive")
    if active is None and current is not None:
        active = not current.is_active
    return set_user_active(registry, email, user_id, bool(active)).to_dict()


def run_system_diagnosis(registry, email, args):
    return run_diagnostics(registry)


def get_current_user_status(registry, email, args):
    if not email:
        return {"authenticated": False, "email": None, "isAdmin": False,
                "registered": False, "userId": None}
    user = None
    if registry.properties.is_system_setup():
        user = find_user_by_email(registry, email)
    return {
        "authenticated": True,
        "email": email,
        "isAdmin": is_administrator(registry, email),
        "registered": user is not None,
        "userId": user.user_id if user else None,
        "isActive": user.is_active if user else False,
    }


RPC_FUNCTIONS = {
    "getApplicationStatusForUI": get_application_status_for_ui,
    "setApplicationStatusForUI": set_application_status_for_ui,
    "getAllUsersForAdminForUI": get_all_users_for_admin_for_ui,
    "deleteUserAccountByAdminForUI": delete_user_account_by_admin_for_ui,
    "getDeletionLogsForUI": get_deletion_logs_for_ui,
    "toggleUserActiveStatusForUI": toggle_user_active_status_for_ui,
    "testSystemDiagnosis": run_system_diagnosis,
    "getCurrentUserStatus": get_current_user_status,
}

ADMIN_FUNCTIONS = {
    "getApplicationStatusForUI",
    "setApplicationStatusForUI",
    "getAllUsersForAdminForUI",
    "deleteUserAccountByAdminForUI",
    "getDeletionLogsForUI",
    "toggleUserActiveStatusForUI",
    "testSystemDiagnosis",
}


def _run(function_name, email):
    registry = get_registry()
    args = request.get_json(silent=True) or {}
    if not isinstance(args, dict):
        args = {}
    try:
        data = RPC_FUNCTIONS[function_name](registry, email, args)
    except Exception as exc:
        envelope = registry.errors.handle(exc, {"operation": function_name})
        return jsonify(envelope), http_status_for(exc)
    return jsonify({"success": True, "data": data})


@admin_required
def _run_admin(function_name):
    return _run(function_name, g.current_email)


@rpc_bp.route("/<function_name>", methods=["POST"])
def call(function_name):
    """Run one named function with the JSON body as arguments."""
    if function_name not in RPC_FUNCTIONS:
        logger.warning("[--] Unknown RPC function: %s", function_name)
        return jsonify({
            "success": False,
            "error": "UNKNOWN_FUNCTION",
            "message": f"Unknown function: {function_name}",
        }), 404
    if function_name in ADMIN_FUNCTIONS:
        return _run_admin(function_name)
    return _run(function_name, current_email())
