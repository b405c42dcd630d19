"""
View routes — the single page entry point and its JSON action API.

GET  /  — decides which page to render (see services.access_service)
          and renders it. Any failure renders a minimal error page.
POST /  — JSON body {action, ...}; response is always JSON
          {success: true, data} or the error envelope.

Actions:
  getData / refreshData  — the session user's own board
  getBoardData           — any published board (guests allowed)
  addReaction            — toggle the session user's reaction on a row
  toggleHighlight        — owner/admin only
  publishApp / unpublishApp / saveConfig — the session user's config
  getSheetList / getSheetHeaders         — pickers for the admin panel
"""
import json
import logging

from flask import Blueprint, current_app, jsonify, render_template, request
from markupsafe import escape

from services import board_service
from services.access_service import (
    ADMIN,
    BOARD,
    REGISTRATION,
    RESTRICTED,
    SETUP,
    UNPUBLISHED,
    gather_access_facts,
    resolve_view,
)
from services.app_status_service import get_application_status, is_app_disabled
from services.auth_service import current_email
from services.config_service import (
    board_binding,
    board_urls,
    check_etag,
    is_published,
    publish_board,
    save_user_config,
    unpublish_board,
    validate_config,
)
from services.error_service import (
    AuthenticationError,
    AuthorizationError,
    BoardNotPublishedError,
    UserNotFoundError,
    ValidationError,
    http_status_for,
)
from services.formatters import mask_id
from services.registry import get_registry
from services.user_service import (
    find_user_by_email,
    find_user_by_id,
    is_administrator,
    touch_last_accessed,
)

logger = logging.getLogger(__name__)

views_bp = Blueprint("views", __name__)

ERROR_PAGE = (
    "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>Error</title></head>"
    "<body><h1>Something went wrong</h1><p>{message}</p>"
    "<p><small>Error ID: {error_id}</small></p></body></html>"
)


# ---------------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------------

@views_bp.route("/", methods=["GET"])
def index():
    """Render the page the access policy picks for this request."""
    registry = get_registry()
    try:
        params = request.args
        email = current_email()
        facts, user = gather_access_facts(
            registry, params, email, app_disabled=is_app_disabled(registry)
        )
        view = resolve_view(facts)
        logger.info("[OK] GET / -> %s", view)
        return _render(registry, view, facts, user, params)
    except Exception as exc:
        logger.exception("[ERR] Page rendering failed")
        envelope = registry.errors.handle(exc, {"operation": "render_page"})
        html = ERROR_PAGE.format(
            message=escape(envelope["message"]), error_id=escape(envelope["errorId"])
        )
        return html, 500


def _render(registry, view, facts, user, params):
    if view == RESTRICTED:
        status = get_application_status(registry)
        return render_template(
            "access_restricted.html", restriction=status.get("restriction") or {}
        ), 403
    if view == SETUP:
        return render_template(
            "setup.html",
            is_system_setup=registry.properties.has_core_system_props(),
            google_client_id=current_app.config["GOOGLE_CLIENT_ID"],
        )
    if view == REGISTRATION:
        return render_template(
            "registration.html",
            email=facts.email,
            google_client_id=current_app.config["GOOGLE_CLIENT_ID"],
        )
    if view == ADMIN:
        return _render_admin(registry, facts, user)
    if view == UNPUBLISHED:
        return render_template("unpublished.html", user_id=user.user_id, is_owner=True)
    if view == BOARD:
        if facts.direct_access:
            owner = find_user_by_id(registry, params.get("userId"))
            if owner is None:
                raise UserNotFoundError(f"User {mask_id(params.get('userId'))} not found")
        else:
            owner = user
        return _render_board(registry, facts, owner)
    raise ValueError(f"Unknown view: {view}")


def _render_admin(registry, facts, user):
    touch_last_accessed(registry, user.user_id)
    config = user.config
    return render_template(
        "admin_panel.html",
        user=user.to_dict(),
        config=config,
        urls=board_urls(current_app.config["WEB_APP_URL"], user.user_id),
        is_admin=facts.is_admin,
        is_published=is_published(config),
    )


def _render_board(registry, facts, owner):
    config = owner.config
    spreadsheet_id, sheet_name = board_binding(config)
    is_owner = bool(facts.email) and facts.email.strip().lower() == owner.user_email.strip().lower()
    if is_owner:
        touch_last_accessed(registry, owner.user_id)
    page_config = {
        "userId": owner.user_id,
        "spreadsheetId": spreadsheet_id,
        "sheetName": sheet_name,
        "displaySettings": config.get("displaySettings") or {},
        "isOwner": is_owner,
        "isAdmin": facts.is_admin,
        "isPublished": is_published(config),
        "signedIn": bool(facts.email),
    }
    return render_template(
        "page.html",
        page_config=page_config,
        form_title=(config.get("formInfo") or {}).get("title") or "",
    )


# ---------------------------------------------------------------------------
# POST /
# ---------------------------------------------------------------------------

def _require_email(email):
    if not email:
        raise AuthenticationError("Authentication required: sign in first")
    return email


def _own_user(registry, email):
    user = find_user_by_email(registry, _require_email(email))
    if user is None:
        raise UserNotFoundError("No board is registered for this account")
    return user


def _is_editor(registry, email, owner):
    if not email:
        return False
    return (
        email.strip().lower() == owner.user_email.strip().lower()
        or is_administrator(registry, email)
    )


def _target_owner(registry, email, body):
    """Board owner named by body.userId, defaulting to the session user."""
    user_id = body.get("userId")
    if not user_id:
        return _own_user(registry, email)
    owner = find_user_by_id(registry, user_id)
    if owner is None:
        raise UserNotFoundError(f"User {mask_id(user_id)} not found")
    return owner


def _require_viewable(registry, email, owner):
    if _is_editor(registry, email, owner):
        return True
    if not owner.is_active or not is_published(owner.config):
        raise BoardNotPublishedError(f"Board {mask_id(owner.user_id)} is not published")
    return False


def _board_options(body):
    options = body.get("options") or {}
    if not isinstance(options, dict):
        raise ValidationError("options must be an object")
    return options


def _prepare_binding(registry, config):
    """Add the reaction/highlight columns to a newly bound sheet."""
    spreadsheet_id, sheet_name = board_binding(config)
    if spreadsheet_id and sheet_name:
        board_service.ensure_system_columns(registry, spreadsheet_id, sheet_name)


def action_get_data(registry, email, body):
    owner = _own_user(registry, email)
    return board_service.get_board_data(
        registry, owner, email, _board_options(body), is_editor=True
    )


def action_refresh_data(registry, email, body):
    registry.cache.remove_prefix("sheets:")
    return action_get_data(registry, email, body)


def action_get_board_data(registry, email, body):
    owner = _target_owner(registry, email, body)
    is_editor = _require_viewable(registry, email, owner)
    return board_service.get_board_data(
        registry, owner, email, _board_options(body), is_editor=is_editor
    )


def action_add_reaction(registry, email, body):
    _require_email(email)
    owner = _target_owner(registry, email, body)
    _require_viewable(registry, email, owner)
    return board_service.add_reaction(
        registry, owner, body.get("rowIndex"), body.get("reactionType"), email
    )


def action_toggle_highlight(registry, email, body):
    _require_email(email)
    owner = _target_owner(registry, email, body)
    if not _is_editor(registry, email, owner):
        raise AuthorizationError("Permission denied: only the board owner can highlight")
    return board_service.toggle_highlight(registry, owner, body.get("rowIndex"))


def action_publish_app(registry, email, body):
    user = _own_user(registry, email)
    changes = body.get("config") or {}
    if not isinstance(changes, dict):
        raise ValidationError("config must be an object")
    check_etag(user.config, body.get("etag"), user.user_id)
    merged = {**user.config, **changes}
    validate_config(merged)
    _prepare_binding(registry, merged)
    config = publish_board(registry, user.user_id, changes, etag=body.get("etag"))
    return {
        "config": config,
        "etag": config["etag"],
        "urls": board_urls(current_app.config["WEB_APP_URL"], user.user_id),
    }


def action_unpublish_app(registry, email, body):
    user = _own_user(registry, email)
    config = unpublish_board(registry, user.user_id, etag=body.get("etag"))
    return {"config": config, "etag": config["etag"]}


def action_save_config(registry, email, body):
    user = _own_user(registry, email)
    config = body.get("config")
    if not isinstance(config, dict):
        raise ValidationError("config must be an object")
    check_etag(user.config, body.get("etag"), user.user_id)
    validate_config(config)
    if board_binding(config) != board_binding(user.config):
        _prepare_binding(registry, config)
    saved = save_user_config(registry, user.user_id, config, etag=body.get("etag"))
    return {"config": saved, "etag": saved["etag"]}


def action_get_sheet_list(registry, email, body):
    _own_user(registry, email)
    return {"sheets": board_service.list_sheet_names(registry, body.get("spreadsheetId"))}


def action_get_sheet_headers(registry, email, body):
    _own_user(registry, email)
    return {
        "headers": board_service.get_sheet_headers(
            registry, body.get("spreadsheetId"), body.get("sheetName")
        )
    }


ACTIONS = {
    "getData": action_get_data,
    "refreshData": action_refresh_data,
    "getBoardData": action_get_board_data,
    "addReaction": action_add_reaction,
    "toggleHighlight": action_toggle_highlight,
    "publishApp": action_publish_app,
    "unpublishApp": action_unpublish_app,
    "saveConfig": action_save_config,
    "getSheetList": action_get_sheet_list,
    "getSheetHeaders": action_get_sheet_headers,
}


@views_bp.route("/", methods=["POST"])
def dispatch():
    """Dispatch a JSON action and wrap the result."""
    registry = get_registry()
    try:
        body = json.loads(request.get_data(as_text=True) or "")
    except ValueError:
        logger.warning("[--] POST / with invalid JSON body")
        return jsonify({
            "success": False,
            "error": "JSON_PARSE_ERROR",
            "message": "Request body must be valid JSON",
        }), 400
    if not isinstance(body, dict):
        return jsonify({
            "success": False,
            "error": "JSON_PARSE_ERROR",
            "message": "Request body must be a JSON object",
        }), 400

    action = body.get("action") or ""
    handler = ACTIONS.get(action)
    if handler is None:
        logger.warning("[--] Unknown action: %s", action)
        return jsonify({
            "success": False,
            "error": "UNKNOWN_ACTION",
            "message": f"Unknown action: {action}",
        }), 400

    email = current_email()
    if is_app_disabled(registry) and not is_administrator(registry, email):
        return jsonify({
            "success": False,
            "error": "APP_DISABLED",
            "message": "The application is currently unavailable.",
        }), 503

    try:
        data = handler(registry, email, body)
    except Exception as exc:
        envelope = registry.errors.handle(exc, {"operation": action})
        return jsonify(envelope), http_status_for(exc)
    return jsonify({"success": True, "data": data})
