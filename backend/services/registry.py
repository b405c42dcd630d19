"""
Service registry — the collaborators a request handler works with.

Built once in create_app() and stored on app.extensions, so route code
asks for get_registry() instead of reaching for module-level globals.
Tests pass their own ServiceRegistry (fake Sheets client, fixed clock)
to create_app(registry=...).

Collaborators:
  properties  — PropertyStore (script-level settings)
  cache       — CacheManager
  user_store  — SqlUserStore or SheetsUserStore (USE_NEW_ARCHITECTURE)
  sheets()    — SheetsClient, built lazily from the stored service account
  clock()     — current UTC datetime
  errors      — ErrorHandler
"""
import logging
from datetime import datetime, timezone

from flask import current_app

from services.cache_service import CacheManager
from services.error_service import ConfigurationError, ErrorHandler
from services.properties_service import DATABASE_SPREADSHEET_ID, PropertyStore
from services.sheets_service import build_sheets_client
from services.user_store import SheetsUserStore, SqlUserStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = "answer_board"


def utc_now():
    return datetime.now(timezone.utc)


class ServiceRegistry:
    """Holds the per-app collaborators."""

    def __init__(self, properties=None, cache=None, user_store=None,
                 sheets_factory=None, clock=None, error_log_limit=50):
        self.cache = cache or CacheManager()
        self.properties = properties or PropertyStore(self.cache)
        self.clock = clock or utc_now
        self._sheets_factory = sheets_factory
        self._sheets_client = None
        self.user_store = user_store or SqlUserStore()
        self.errors = ErrorHandler(self.properties, limit=error_log_limit, clock=self.clock)

    def sheets(self):
        """Return the Sheets client, building it on first use."""
        if self._sheets_client is None:
            if self._sheets_factory is not None:
                self._sheets_client = self._sheets_factory()
            else:
                self._sheets_client = build_sheets_client(self.properties)
        return self._sheets_client

    def reset_sheets(self):
        """Forget the cached client (credentials changed)."""
        self._sheets_client = None

    def database_spreadsheet_id(self):
        spreadsheet_id = self.properties.get_cached(DATABASE_SPREADSHEET_ID)
        if not spreadsheet_id:
            raise ConfigurationError("DATABASE_SPREADSHEET_ID is not configured")
        return spreadsheet_id


def build_registry(config, sheets_factory=None):
    """Create the default registry for an app config mapping."""
    cache = CacheManager(default_ttl=config.get("CACHE_TTL_SECONDS") or 300)
    registry = ServiceRegistry(
        cache=cache,
        sheets_factory=sheets_factory,
        error_log_limit=config.get("ERROR_LOG_LIMIT") or 50,
    )
    if not config.get("USE_NEW_ARCHITECTURE", True):
        registry.user_store = SheetsUserStore(
            registry.sheets, registry.database_spreadsheet_id, cache=cache
        )
        logger.info("[OK] Using legacy Users sheet store")
    return registry


def get_registry():
    """The registry of the current Flask app."""
    return current_app.extensions[EXTENSION_KEY]
