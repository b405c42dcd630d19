"""
Application status service — app-wide enable/disable and diagnostics.

When APP_DISABLED is 'true' every page except the administrator's renders
the access-restricted page. Disabling records who and why; enabling
clears those keys and records who re-enabled the app.
"""
import logging

from services.error_service import AuthorizationError
from services.formatters import mask_email
from services.properties_service import (
    ADMIN_EMAIL,
    DATABASE_SPREADSHEET_ID,
    SERVICE_ACCOUNT_CREDS,
    SERVICE_ACCOUNT_KEY,
)
from services.user_service import is_administrator

logger = logging.getLogger(__name__)

APP_DISABLED = "APP_DISABLED"
APP_DISABLED_REASON = "APP_DISABLED_REASON"
APP_DISABLED_BY = "APP_DISABLED_BY"
APP_DISABLED_AT = "APP_DISABLED_AT"
APP_ENABLED_BY = "APP_ENABLED_BY"
APP_ENABLED_AT = "APP_ENABLED_AT"

DEFAULT_DISABLE_REASON = "System maintenance"


def is_app_disabled(registry):
    return registry.properties.get_cached(APP_DISABLED) == "true"


def get_application_status(registry):
    props = registry.properties
    disabled = is_app_disabled(registry)
    status = {
        "isEnabled": not disabled,
        "status": "disabled" if disabled else "enabled",
        "timestamp": registry.clock().isoformat(),
    }
    if disabled:
        status["restriction"] = {
            "reason": props.get(APP_DISABLED_REASON) or "",
            "disabledBy": props.get(APP_DISABLED_BY) or "",
            "disabledAt": props.get(APP_DISABLED_AT) or "",
        }
    else:
        status["lastEnabled"] = {
            "enabledBy": props.get(APP_ENABLED_BY) or "",
            "enabledAt": props.get(APP_ENABLED_AT) or "",
        }
    return status


def set_application_status(registry, admin_email, enabled, reason=None):
    """Enable or disable the whole application (admin only)."""
    if not is_administrator(registry, admin_email):
        raise AuthorizationError("Permission denied: administrator access required")

    props = registry.properties
    now = registry.clock().isoformat()
    if enabled:
        for key in (APP_DISABLED, APP_DISABLED_REASON, APP_DISABLED_BY, APP_DISABLED_AT):
            props.delete(key)
        props.set_many({APP_ENABLED_BY: admin_email, APP_ENABLED_AT: now})
        logger.info("[OK] Application enabled by %s", mask_email(admin_email))
    else:
        props.set_many({
            APP_DISABLED: "true",
            APP_DISABLED_REASON: (reason or "").strip() or DEFAULT_DISABLE_REASON,
            APP_DISABLED_BY: admin_email,
            APP_DISABLED_AT: now,
        })
        logger.info("[OK] Application disabled by %s", mask_email(admin_email))
    return get_application_status(registry)


def run_diagnostics(registry):
    """
    Check settings and store reachability.

    Each check is {name, ok, detail}. A failing store check records the
    error class only; details go to the log.
    """
    props = registry.properties
    has_creds = bool(props.get(SERVICE_ACCOUNT_CREDS) or props.get(SERVICE_ACCOUNT_KEY))
    creds_ok = props.service_account_info() is not None
    checks = [
        {"name": "adminEmail", "ok": bool(props.get(ADMIN_EMAIL)), "detail": ""},
        {"name": "databaseSpreadsheetId", "ok": bool(props.get(DATABASE_SPREADSHEET_ID)), "detail": ""},
        {
            "name": "serviceAccountCreds",
            "ok": creds_ok,
            "detail": "credentials are not valid JSON" if has_creds and not creds_ok else "",
        },
    ]
    try:
        user_count = len(registry.user_store.list_users())
        checks.append({"name": "userStore", "ok": True, "detail": f"{user_count} user(s)"})
    except Exception as exc:
        logger.error("[ERR] Diagnostics: user store unreachable: %s", exc)
        checks.append({"name": "userStore", "ok": False, "detail": type(exc).__name__})

    recent = registry.errors.recent_errors()
    return {
        "healthy": all(c["ok"] for c in checks),
        "checks": checks,
        "recentErrors": recent[-10:],
        "appStatus": get_application_status(registry)["status"],
        "timestamp": registry.clock().isoformat(),
    }
