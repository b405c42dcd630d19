"""
Properties service — script-level settings backed by system_properties.

Replaces the host's script properties store. Reads go through the cache
(get_cached); writes invalidate the cached key.

Well-known keys:
  DATABASE_SPREADSHEET_ID  — marks the system as provisioned
  SERVICE_ACCOUNT_CREDS    — service account JSON (SERVICE_ACCOUNT_KEY is a legacy alias)
  ADMIN_EMAIL              — the single system administrator
  APP_DISABLED*            — application-wide access restriction
  ERROR_LOG                — persisted CRITICAL/HIGH errors
"""
import json
import logging

from models import db
from models.system_property import SystemProperty

logger = logging.getLogger(__name__)

DATABASE_SPREADSHEET_ID = "DATABASE_SPREADSHEET_ID"
SERVICE_ACCOUNT_CREDS = "SERVICE_ACCOUNT_CREDS"
SERVICE_ACCOUNT_KEY = "SERVICE_ACCOUNT_KEY"
ADMIN_EMAIL = "ADMIN_EMAIL"

CACHE_PREFIX = "prop:"


class PropertyStore:
    """Key/value settings with read-through caching."""

    def __init__(self, cache=None):
        self.cache = cache

    def get(self, key):
        prop = db.session.get(SystemProperty, key)
        return prop.value if prop else None

    def get_cached(self, key):
        if self.cache is None:
            return self.get(key)
        return self.cache.get_or_compute(CACHE_PREFIX + key, lambda: self.get(key))

    def get_all(self):
        return {p.key: p.value for p in SystemProperty.query.order_by(SystemProperty.key).all()}

    def set(self, key, value):
        prop = db.session.get(SystemProperty, key)
        if prop is None:
            prop = SystemProperty(key=key, value=value)
            db.session.add(prop)
        else:
            prop.value = value
        db.session.commit()
        if self.cache is not None:
            self.cache.remove(CACHE_PREFIX + key)

    def set_many(self, values):
        for key, value in values.items():
            prop = db.session.get(SystemProperty, key)
            if prop is None:
                db.session.add(SystemProperty(key=key, value=value))
            else:
                prop.value = value
        db.session.commit()
        if self.cache is not None:
            for key in values:
                self.cache.remove(CACHE_PREFIX + key)

    def delete(self, key):
        prop = db.session.get(SystemProperty, key)
        if prop is not None:
            db.session.delete(prop)
            db.session.commit()
        if self.cache is not None:
            self.cache.remove(CACHE_PREFIX + key)

    # ---- derived settings -------------------------------------------------

    def is_system_setup(self):
        """The system is provisioned once the database spreadsheet id is set."""
        return bool(self.get_cached(DATABASE_SPREADSHEET_ID))

    def has_core_system_props(self):
        """Admin email, database id and service account credentials are all present."""
        return bool(
            self.get_cached(ADMIN_EMAIL)
            and self.get_cached(DATABASE_SPREADSHEET_ID)
            and self.service_account_info()
        )

    def admin_email(self):
        return self.get_cached(ADMIN_EMAIL) or ""

    def service_account_info(self):
        """Parsed service account credentials, or None if unset or unparsable."""
        raw = self.get_cached(SERVICE_ACCOUNT_CREDS) or self.get_cached(SERVICE_ACCOUNT_KEY)
        if not raw:
            return None
        try:
            info = json.loads(raw)
        except ValueError:
            logger.error("[ERR] SERVICE_ACCOUNT_CREDS is not valid JSON")
            return None
        return info if isinstance(info, dict) else None
