"""
Error service — typed application errors, classification, and envelopes.

Errors raised by our own code are AppError subclasses that carry their
level and category from the throw site. Errors coming from outside
(Sheets API, SQLAlchemy, network) are classified by an ordered keyword
table over the lowercased message; first match wins, default LOW/system.

ErrorHandler.handle() is the single exit point for service-layer failures:
  1. classify
  2. log ([ERR] for CRITICAL/HIGH, [--] otherwise)
  3. persist CRITICAL/HIGH entries to the ERROR_LOG property (bounded ring)
  4. return {success: False, error, message, errorId, timestamp}

Only the generic per-category message is returned to the caller. Raw
exception text and stack traces stay in the log.
"""
import json
import logging
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# Severity levels
CRITICAL = "CRITICAL"
HIGH = "HIGH"
MEDIUM = "MEDIUM"
LOW = "LOW"
INFO = "INFO"

PERSISTED_LEVELS = (CRITICAL, HIGH)

# Categories
AUTHENTICATION = "authentication"
AUTHORIZATION = "authorization"
DATABASE = "database"
EXTERNAL_API = "external_api"
VALIDATION = "validation"
CONFIGURATION = "configuration"
PERFORMANCE = "performance"
SYSTEM = "system"
USER_INPUT = "user_input"

ERROR_LOG_PROPERTY = "ERROR_LOG"

USER_MESSAGES = {
    AUTHENTICATION: "Please sign in again to continue.",
    AUTHORIZATION: "You do not have permission to perform this action.",
    DATABASE: "The data store could not be reached. Please try again later.",
    EXTERNAL_API: "An external service did not respond. Please try again in a moment.",
    VALIDATION: "Some of the submitted values are invalid.",
    CONFIGURATION: "The application is not fully configured. Please contact the administrator.",
    PERFORMANCE: "The request took too long. Please try again with less data.",
    SYSTEM: "An unexpected error occurred. Please contact the administrator.",
    USER_INPUT: "Please check your input and try again.",
}

RECOVERY_ACTIONS = {
    AUTHENTICATION: "reauthenticate",
    AUTHORIZATION: "request_access",
    DATABASE: "retry_later",
    EXTERNAL_API: "retry_with_backoff",
    VALIDATION: "fix_input",
    CONFIGURATION: "run_setup",
    PERFORMANCE: "reduce_workload",
    SYSTEM: "contact_admin",
    USER_INPUT: "fix_input",
}

# Ordered (keywords, level, category); first match wins
CLASSIFICATION_TABLE = [
    (("permission denied", "access denied", "insufficient permissions",
      "authorization required", "not authorized", "forbidden"),
     CRITICAL, AUTHORIZATION),
    (("authentication failed", "invalid credentials", "session expired",
      "login required", "invalid token", "unauthenticated"),
     HIGH, AUTHENTICATION),
    (("exceeded maximum execution time", "execution timeout", "timed out",
      "timeout"),
     HIGH, EXTERNAL_API),
    (("quota exceeded", "rate limit", "too many requests",
      "service invoked too many times", "service unavailable",
      "backend error", "connection"),
     HIGH, EXTERNAL_API),
    (("lock", "spreadsheet", "sheet not found", "database", "integrity",
      "sqlite", "operationalerror"),
     HIGH, DATABASE),
    (("not configured", "missing property", "configuration", "credentials"),
     MEDIUM, CONFIGURATION),
    (("memory", "too slow", "too large"),
     MEDIUM, PERFORMANCE),
    (("invalid", "required", "must be", "malformed", "not a valid"),
     LOW, VALIDATION),
]

RETRYABLE_PATTERNS = (
    "timeout", "timed out", "network", "quota", "rate limit", "429",
    "service unavailable", "503", "internal error", "500",
    "temporarily unavailable", "backend error", "connection", "socket",
)

NON_RETRYABLE_PATTERNS = (
    "permission", "not found", "not authorized", "invalid", "malformed",
    "access denied", "authentication failed",
)


class AppError(Exception):
    """Base class for errors raised by the answer board itself."""

    level = MEDIUM
    category = SYSTEM
    code = "APP_ERROR"
    http_status = 500

    def __init__(self, message, *, level=None, category=None, details=None):
        super().__init__(message)
        if level:
            self.level = level
        if category:
            self.category = category
        self.details = details or {}

    @property
    def user_message(self):
        return USER_MESSAGES.get(self.category, USER_MESSAGES[SYSTEM])


class AuthenticationError(AppError):
    level = HIGH
    category = AUTHENTICATION
    code = "AUTH_REQUIRED"
    http_status = 401


class AuthorizationError(AppError):
    level = CRITICAL
    category = AUTHORIZATION
    code = "FORBIDDEN"
    http_status = 403


class ValidationError(AppError):
    level = LOW
    category = VALIDATION
    code = "VALIDATION_ERROR"
    http_status = 400

    @property
    def user_message(self):
        # Validation messages are written for the user at the raise site
        return str(self)


class DuplicateUserError(ValidationError):
    code = "DUPLICATE_USER"
    http_status = 409


class UserNotFoundError(AppError):
    level = LOW
    category = USER_INPUT
    code = "USER_NOT_FOUND"
    http_status = 404

    @property
    def user_message(self):
        return "User not found."


class ConflictError(AppError):
    level = MEDIUM
    category = DATABASE
    code = "ETAG_MISMATCH"
    http_status = 409

    @property
    def user_message(self):
        return "Configuration has been modified by another session. Reload and try again."


class BoardNotPublishedError(AppError):
    level = LOW
    category = AUTHORIZATION
    code = "NOT_PUBLISHED"
    http_status = 403

    @property
    def user_message(self):
        return "This board is not published."


class ConfigurationError(AppError):
    level = HIGH
    category = CONFIGURATION
    code = "NOT_CONFIGURED"


class DatabaseError(AppError):
    level = HIGH
    category = DATABASE
    code = "DATABASE_ERROR"


class ExternalAPIError(AppError):
    level = HIGH
    category = EXTERNAL_API
    code = "EXTERNAL_API_ERROR"
    http_status = 502

    def __init__(self, message, status_code=None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class Classification:
    """Result of classifying an error."""

    def __init__(self, level, category):
        self.level = level
        self.category = category

    @property
    def recovery_action(self):
        return RECOVERY_ACTIONS.get(self.category, RECOVERY_ACTIONS[SYSTEM])

    @property
    def user_message(self):
        return USER_MESSAGES.get(self.category, USER_MESSAGES[SYSTEM])

    def __repr__(self):
        return f"<Classification {self.level}/{self.category}>"


def classify_message(message):
    """Classify a raw error message with the keyword table."""
    lowered = (message or "").lower()
    for keywords, level, category in CLASSIFICATION_TABLE:
        if any(keyword in lowered for keyword in keywords):
            return Classification(level, category)
    return Classification(LOW, SYSTEM)


def classify_error(error):
    """
    Classify an exception or message string.

    AppError instances keep the level and category set at the raise site;
    anything else goes through the keyword table.
    """
    if isinstance(error, AppError):
        return Classification(error.level, error.category)
    return classify_message(str(error) if error is not None else "")


def http_status_for(error):
    """HTTP status for an error envelope (500 for anything foreign)."""
    return getattr(error, "http_status", 500) if isinstance(error, AppError) else 500


def is_retryable_error(message):
    """
    Decide whether a failed external call is worth retrying.

    Permanent failures (permission, not found, invalid input) are never
    retried. Transient failures (timeouts, quota, 5xx) are.
    """
    if not message or not isinstance(message, str):
        return False
    lowered = message.lower()
    if any(pattern in lowered for pattern in NON_RETRYABLE_PATTERNS):
        return False
    return any(pattern in lowered for pattern in RETRYABLE_PATTERNS)


class ErrorHandler:
    """Classifies, logs, and persists errors; builds error envelopes."""

    def __init__(self, properties=None, limit=50, clock=None):
        self.properties = properties
        self.limit = limit
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def handle(self, error, context=None):
        """
        Turn an error into the uniform failure envelope.

        Args:
            error: Exception (or message string) to report.
            context: Optional dict of call-site details (operation, userId...).

        Returns:
            dict: {success, error, message, errorId, timestamp, category, level}
        """
        context = context or {}
        classification = classify_error(error)
        error_id = uuid.uuid4().hex[:12]
        timestamp = self.clock().isoformat()

        if isinstance(error, AppError):
            user_message = error.user_message
            code = error.code
        else:
            user_message = classification.user_message
            code = classification.category.upper()

        if classification.level in PERSISTED_LEVELS:
            logger.error(
                "[ERR] %s/%s id=%s op=%s: %s",
                classification.level, classification.category, error_id,
                context.get("operation", "unknown"), error,
            )
            self._persist(error_id, timestamp, classification, error, context)
        else:
            logger.warning(
                "[--] %s/%s id=%s op=%s: %s",
                classification.level, classification.category, error_id,
                context.get("operation", "unknown"), error,
            )

        return {
            "success": False,
            "error": code,
            "message": user_message,
            "errorId": error_id,
            "timestamp": timestamp,
            "level": classification.level,
            "category": classification.category,
            "recoveryAction": classification.recovery_action,
        }

    def _persist(self, error_id, timestamp, classification, error, context):
        """Append an entry to the ERROR_LOG ring, keeping the newest `limit`."""
        if self.properties is None:
            return
        try:
            entries = json.loads(self.properties.get(ERROR_LOG_PROPERTY) or "[]")
            if not isinstance(entries, list):
                entries = []
            entries.append({
                "errorId": error_id,
                "timestamp": timestamp,
                "level": classification.level,
                "category": classification.category,
                "message": str(error)[:500],
                "operation": context.get("operation", "unknown"),
            })
            entries = entries[-self.limit:]
            self.properties.set(ERROR_LOG_PROPERTY, json.dumps(entries))
        except Exception as exc:
            # The original failure is already logged; losing the ring entry is tolerable
            logger.warning("[--] Could not persist error %s: %s", error_id, exc)

    def recent_errors(self):
        """Return persisted CRITICAL/HIGH entries, oldest first."""
        if self.properties is None:
            return []
        try:
            entries = json.loads(self.properties.get(ERROR_LOG_PROPERTY) or "[]")
        except ValueError:
            return []
        return entries if isinstance(entries, list) else []
