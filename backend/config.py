"""
Flask configuration classes.

Config reads from environment variables with sensible defaults.
TestConfig overrides for pytest with SQLite in-memory.

The postgres:// → postgresql:// fix handles hosted connection strings
that still use the older 'postgres://' prefix, which SQLAlchemy 1.4+
no longer accepts.

Script-level settings (database spreadsheet id, service account
credentials, admin email) are NOT here: they are written at runtime by
the setup page and live in the system_properties table.
"""
import os


def _env_flag(name, default):
    """Read a boolean environment variable ('1', 'true', 'yes' = True)."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration for Flask app."""

    # Flask core
    SECRET_KEY = os.environ.get("SECRET_KEY") or "dev-secret-key-change-me"

    # Database: hosted Postgres URLs may use postgres://, SQLAlchemy needs postgresql://
    _raw_db_url = os.environ.get("DATABASE_URL") or "sqlite:///answer_board_dev.db"
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace(
        "postgres://", "postgresql://", 1
    )

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # True  -> users live in the indexed SQL tables
    # False -> users live in the legacy "Users" sheet of DATABASE_SPREADSHEET_ID
    USE_NEW_ARCHITECTURE = _env_flag("USE_NEW_ARCHITECTURE", True)

    # Google Sign-In
    GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID") or ""

    # JWT session settings
    JWT_EXPIRY_HOURS = int(os.environ.get("JWT_EXPIRY_HOURS") or "24")
    SESSION_COOKIE_NAME_JWT = "ab_session"

    # Sign-in restriction, comma separated ("" allows any domain)
    ALLOWED_EMAIL_DOMAINS = [
        d.strip() for d in (os.environ.get("ALLOWED_EMAIL_DOMAINS") or "").split(",") if d.strip()
    ]

    # CORS: frontend URL for allowed origins
    FRONTEND_URL = os.environ.get("FRONTEND_URL") or "http://localhost:5173"

    # Public base URL used to build board/admin links
    WEB_APP_URL = os.environ.get("WEB_APP_URL") or ""

    # Cache and error log
    CACHE_TTL_SECONDS = int(os.environ.get("CACHE_TTL_SECONDS") or "300")
    ERROR_LOG_LIMIT = int(os.environ.get("ERROR_LOG_LIMIT") or "50")

    # Google Sheets API retry policy
    SHEETS_MAX_RETRIES = int(os.environ.get("SHEETS_MAX_RETRIES") or "3")
    SHEETS_RETRY_DELAY_MS = int(os.environ.get("SHEETS_RETRY_DELAY_MS") or "500")
    SHEETS_MAX_RETRY_DELAY_MS = int(os.environ.get("SHEETS_MAX_RETRY_DELAY_MS") or "5000")


class TestConfig(Config):
    """Test configuration — SQLite in-memory, no external dependencies."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    USE_NEW_ARCHITECTURE = True
    GOOGLE_CLIENT_ID = "test-client-id"
    WEB_APP_URL = "https://board.example.com"
    CACHE_TTL_SECONDS = 60
    SHEETS_MAX_RETRIES = 2
    SHEETS_RETRY_DELAY_MS = 0
    SHEETS_MAX_RETRY_DELAY_MS = 0
