"""
Setup route — first-time provisioning of the script-level settings.

POST /api/setup
  Body: {
    "databaseSpreadsheetId": "...",
    "serviceAccountCreds": {...} or "<json string>",
    "adminEmail": "..."
  }

Allowed while the system is not yet set up, and afterwards only for the
current administrator (re-running setup replaces the settings).
"""
import json
import logging

from flask import Blueprint, jsonify, request

from services.auth_service import current_email
from services.config_service import SPREADSHEET_ID_PATTERN
from services.error_service import AuthorizationError, ValidationError, http_status_for
from services.formatters import mask_email, mask_id
from services.properties_service import (
    ADMIN_EMAIL,
    DATABASE_SPREADSHEET_ID,
    SERVICE_ACCOUNT_CREDS,
)
from services.registry import get_registry
from services.user_service import is_administrator, is_valid_email

logger = logging.getLogger(__name__)

setup_bp = Blueprint("setup", __name__)

REQUIRED_CREDENTIAL_FIELDS = ("client_email", "private_key")


def parse_service_account_creds(raw):
    """
    Accept the service account key as a dict or JSON text.

    Returns:
        str: normalized JSON text to store.
    Raises:
        ValidationError: not JSON, or missing client_email/private_key.
    """
    if isinstance(raw, dict):
        info = raw
    else:
        try:
            info = json.loads(raw or "")
        except ValueError:
            raise ValidationError("serviceAccountCreds must be the service account JSON key")
    if not isinstance(info, dict):
        raise ValidationError("serviceAccountCreds must be a JSON object")
    missing = [f for f in REQUIRED_CREDENTIAL_FIELDS if not info.get(f)]
    if missing:
        raise ValidationError(f"serviceAccountCreds is missing: {', '.join(missing)}")
    return json.dumps(info)


@setup_bp.route("", methods=["POST"])
def run_setup():
    """Validate and store the database id, credentials and admin email."""
    registry = get_registry()
    body = request.get_json(silent=True) or {}
    try:
        email = current_email()
        if registry.properties.is_system_setup() and not is_administrator(registry, email):
            raise AuthorizationError("Permission denied: setup has already been completed")

        spreadsheet_id = (body.get("databaseSpreadsheetId") or "").strip()
        admin_email = (body.get("adminEmail") or "").strip()
        if not SPREADSHEET_ID_PATTERN.match(spreadsheet_id):
            raise ValidationError("databaseSpreadsheetId is not a valid spreadsheet id")
        if not is_valid_email(admin_email):
            raise ValidationError("adminEmail must be a valid email address")
        creds = parse_service_account_creds(body.get("serviceAccountCreds"))

        registry.properties.set_many({
            DATABASE_SPREADSHEET_ID: spreadsheet_id,
            SERVICE_ACCOUNT_CREDS: creds,
            ADMIN_EMAIL: admin_email,
        })
        registry.reset_sheets()
        registry.user_store.ensure_schema()
    except Exception as exc:
        envelope = registry.errors.handle(exc, {"operation": "setup"})
        return jsonify(envelope), http_status_for(exc)

    logger.info(
        "[OK] System setup stored: db=%s admin=%s",
        mask_id(spreadsheet_id), mask_email(admin_email),
    )
    return jsonify({"success": True, "data": {"isSystemSetup": True}})
