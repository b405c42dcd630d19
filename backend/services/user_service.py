"""
User service — registration, lookup, activation and account deletion.

Sits on top of the registry's UserStore so the same rules apply to the
SQL and the legacy Users-sheet backends:
  - registration checks the email is free before anything is written
  - only the system administrator may delete accounts
  - every deletion leaves an audit entry (action='delete_account')
"""
import json
import logging
import re
import uuid

from services.config_service import default_config, serialize_config
from services.error_service import (
    AuthorizationError,
    DuplicateUserError,
    UserNotFoundError,
    ValidationError,
)
from services.formatters import mask_email, mask_id
from services.user_store import AuditEntry, UserRecord

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DELETE_ACCOUNT_ACTION = "delete_account"


def is_valid_email(email):
    return bool(email) and isinstance(email, str) and bool(EMAIL_PATTERN.match(email.strip()))


def is_administrator(registry, email):
    """True when email matches ADMIN_EMAIL (case-insensitive)."""
    if not email or not isinstance(email, str):
        return False
    admin_email = registry.properties.admin_email()
    if not admin_email:
        return False
    return email.strip().lower() == admin_email.strip().lower()


def find_user_by_email(registry, email):
    return registry.user_store.find_by_email(email)


def find_user_by_id(registry, user_id):
    return registry.user_store.find_by_id(user_id)


def list_users(registry):
    return registry.user_store.list_users()


def create_user(registry, email, initial_config=None):
    """
    Register a new board owner.

    Args:
        registry: ServiceRegistry.
        email: The owner's email (session identity).
        initial_config: Optional config merged over the defaults.

    Returns:
        UserRecord

    Raises:
        ValidationError: email is malformed.
        DuplicateUserError: email is already registered (nothing written).
    """
    if not is_valid_email(email):
        raise ValidationError("A valid email address is required")
    email = email.strip()

    if registry.user_store.find_by_email(email) is not None:
        logger.warning("[--] Duplicate registration refused: %s", mask_email(email))
        raise DuplicateUserError("A user with this email is already registered")

    now = registry.clock()
    record = UserRecord(
        user_id=str(uuid.uuid4()),
        user_email=email,
        is_active=True,
        config_json=serialize_config(default_config(initial_config)),
        created_at=now,
        last_modified=now,
        last_accessed_at=now,
    )
    created = registry.user_store.insert(record)
    logger.info("[OK] User registered: %s (id=%s)", mask_email(email), mask_id(created.user_id))
    return created


def touch_last_accessed(registry, user_id):
    """Stamp lastAccessedAt on a board visit by its owner."""
    return registry.user_store.update(user_id, last_accessed_at=registry.clock())


def set_user_active(registry, admin_email, user_id, active):
    """Enable/disable a user (admin only). Returns the updated record."""
    if not is_administrator(registry, admin_email):
        raise AuthorizationError("Permission denied: administrator access required")
    if registry.user_store.find_by_id(user_id) is None:
        raise UserNotFoundError(f"User {user_id} not found")
    updated = registry.user_store.update(
        user_id, is_active=bool(active), last_modified=registry.clock()
    )
    logger.info(
        "[OK] User %s set %s by %s",
        mask_id(user_id), "active" if active else "inactive", mask_email(admin_email),
    )
    return updated


def delete_user_account(registry, admin_email, user_id, reason=""):
    """
    Hard-delete a user row and record the deletion (admin only).

    Admins cannot delete their own account through this path so the
    system always keeps its administrator's board.

    Returns:
        dict: {userId, userEmail, deletedRows, reason}
    """
    if not is_administrator(registry, admin_email):
        raise AuthorizationError("Permission denied: administrator access required")

    target = registry.user_store.find_by_id(user_id)
    if target is None:
        raise UserNotFoundError(f"User {user_id} not found")
    if target.user_email.strip().lower() == admin_email.strip().lower():
        raise ValidationError("Administrators cannot delete their own account")

    reason = (reason or "").strip() or "No reason provided"
    removed = registry.user_store.delete(user_id)
    registry.user_store.append_log(AuditEntry(
        user_id=user_id,
        action=DELETE_ACCOUNT_ACTION,
        details=json.dumps({
            "deletedEmail": target.user_email,
            "deletedBy": admin_email,
            "reason": reason,
        }, ensure_ascii=False),
        timestamp=registry.clock(),
    ))
    logger.info(
        "[OK] Account deleted: %s by %s (%d row(s))",
        mask_id(user_id), mask_email(admin_email), removed,
    )
    return {
        "userId": user_id,
        "userEmail": target.user_email,
        "deletedRows": removed,
        "reason": reason,
    }


def get_deletion_logs(registry, limit=50):
    """Recent account deletions, newest first, with details expanded."""
    logs = []
    for entry in registry.user_store.list_logs(action=DELETE_ACCOUNT_ACTION, limit=limit):
        item = entry.to_dict()
        try:
            details = json.loads(entry.details or "{}")
        except ValueError:
            details = {"raw": entry.details}
        if isinstance(details, dict):
            item.update({
                "deletedEmail": details.get("deletedEmail", ""),
                "deletedBy": details.get("deletedBy", ""),
                "reason": details.get("reason", ""),
            })
        logs.append(item)
    return logs
