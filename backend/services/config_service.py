"""
Config service — the per-user configJson blob.

configJson holds every variable board setting: the bound spreadsheet
(spreadsheetId + sheetName), publication state, display options, form
info. This module owns parsing, cleaning, validation and saving of it.

Rules:
  - configJson that is not a JSON object reads as {}.
  - The board is bound only through spreadsheetId/sheetName. The legacy
    publishedSpreadsheetId/publishedSheetName fields are stripped on save
    and never read.
  - Saves stamp a fresh etag. A caller that sends an etag must send the
    current one, otherwise ConflictError (another tab saved first).
"""
import json
import logging
import re
import uuid

from services.error_service import ConflictError, UserNotFoundError, ValidationError
from services.formatters import mask_id

logger = logging.getLogger(__name__)

LEGACY_FIELDS = (
    "setupComplete",
    "isDraft",
    "questionText",
    "publishedSpreadsheetId",
    "publishedSheetName",
)

SPREADSHEET_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,100}$")
MAX_SHEET_NAME_LENGTH = 100
MAX_PAGE_SIZE = 200

DISPLAY_FLAGS = ("showNames", "showReactions", "showCounts")


def default_config(overrides=None):
    """Config written for a freshly registered user."""
    config = {
        "setupStatus": "pending",
        "isPublished": False,
        "displaySettings": {
            "showNames": False,
            "showReactions": False,
            "theme": "default",
            "pageSize": 20,
        },
    }
    config.update(overrides or {})
    return config


def parse_config(config_json):
    """Parse configJson; invalid JSON or non-object values give {}."""
    if isinstance(config_json, dict):
        return dict(config_json)
    try:
        parsed = json.loads(config_json or "{}")
    except (TypeError, ValueError):
        logger.warning("[--] configJson could not be parsed, using {}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def serialize_config(config):
    return json.dumps(config, ensure_ascii=False)


def clean_config_fields(config, now=None):
    """Drop legacy/derived fields and stamp lastAccessedAt."""
    cleaned = {k: v for k, v in (config or {}).items() if k not in LEGACY_FIELDS}
    if now is not None:
        cleaned["lastAccessedAt"] = now.isoformat()
    return cleaned


def board_binding(config):
    """(spreadsheetId, sheetName) of the board, taken verbatim from config."""
    return (config.get("spreadsheetId") or "", config.get("sheetName") or "")


def is_published(config):
    """isPublished, or the older appPublished flag."""
    return bool(config.get("isPublished") or config.get("appPublished"))


def validate_config(config):
    """
    Validate the user-editable parts of a config.

    Raises:
        ValidationError: with a message fit to show the user.
    """
    if not isinstance(config, dict):
        raise ValidationError("Config must be an object")

    spreadsheet_id = config.get("spreadsheetId")
    if spreadsheet_id and not SPREADSHEET_ID_PATTERN.match(str(spreadsheet_id)):
        raise ValidationError("spreadsheetId is not a valid spreadsheet id")

    sheet_name = config.get("sheetName")
    if sheet_name is not None and not isinstance(sheet_name, str):
        raise ValidationError("sheetName must be a string")
    if sheet_name and len(sheet_name) > MAX_SHEET_NAME_LENGTH:
        raise ValidationError("sheetName must be at most 100 characters")

    display = config.get("displaySettings")
    if display is not None:
        if not isinstance(display, dict):
            raise ValidationError("displaySettings must be an object")
        for flag in DISPLAY_FLAGS:
            if flag in display and not isinstance(display[flag], bool):
                raise ValidationError(f"displaySettings.{flag} must be true or false")
        page_size = display.get("pageSize")
        if page_size is not None and (
            isinstance(page_size, bool)
            or not isinstance(page_size, int)
            or not 1 <= page_size <= MAX_PAGE_SIZE
        ):
            raise ValidationError("displaySettings.pageSize must be between 1 and 200")


def check_etag(config, etag, user_id):
    """Raise ConflictError when etag is given and differs from the stored one."""
    if not etag:
        return
    current_etag = config.get("etag")
    if current_etag and etag != current_etag:
        logger.warning("[--] etag mismatch for user %s", mask_id(user_id))
        raise ConflictError("Configuration has been modified by another session")


def save_user_config(registry, user_id, config, etag=None):
    """
    Validate, clean and persist a user's config.

    Args:
        registry: ServiceRegistry.
        user_id: Owner of the config.
        config: New config dict (replaces the stored one).
        etag: Optional etag the caller last saw; mismatch raises ConflictError.

    Returns:
        dict: the config as stored (with its new etag).
    """
    record = registry.user_store.find_by_id(user_id)
    if record is None:
        raise UserNotFoundError(f"User {user_id} not found")

    check_etag(record.config, etag, user_id)

    validate_config(config)
    now = registry.clock()
    cleaned = clean_config_fields(config, now=now)
    cleaned["etag"] = f"{now.isoformat()}_{uuid.uuid4().hex[:12]}"

    registry.user_store.update(
        user_id,
        config_json=serialize_config(cleaned),
        last_modified=now,
    )
    logger.info("[OK] Config saved for user %s", mask_id(user_id))
    return cleaned


def update_user_config(registry, user_id, changes, etag=None, drop=()):
    """Merge changes into the stored config, remove the `drop` keys, and save."""
    record = registry.user_store.find_by_id(user_id)
    if record is None:
        raise UserNotFoundError(f"User {user_id} not found")
    merged = {**record.config, **(changes or {})}
    for key in drop:
        merged.pop(key, None)
    return save_user_config(registry, user_id, merged, etag=etag)


def publish_board(registry, user_id, changes=None, etag=None):
    """Mark the board published. A spreadsheet and sheet must be bound."""
    record = registry.user_store.find_by_id(user_id)
    if record is None:
        raise UserNotFoundError(f"User {user_id} not found")
    merged = {**record.config, **(changes or {})}
    spreadsheet_id, sheet_name = board_binding(merged)
    if not spreadsheet_id or not sheet_name:
        raise ValidationError("Select a spreadsheet and sheet before publishing")
    merged.pop("appPublished", None)
    merged["isPublished"] = True
    merged["publishedAt"] = registry.clock().isoformat()
    merged["setupStatus"] = "completed"
    return save_user_config(registry, user_id, merged, etag=etag)


def unpublish_board(registry, user_id, etag=None):
    """Take the board offline; the binding is kept."""
    return update_user_config(
        registry, user_id, {"isPublished": False}, etag=etag, drop=("appPublished",)
    )


def board_urls(base_url, user_id):
    """View/admin links for a user's board ('' when no base URL is known)."""
    if not base_url:
        return {"view": "", "admin": ""}
    base = base_url.rstrip("/")
    return {
        "view": f"{base}/?mode=view&userId={user_id}",
        "admin": f"{base}/?mode=admin&userId={user_id}",
    }
