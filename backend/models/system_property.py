"""
SystemProperty model — script-level key/value settings.

Holds what the setup page writes (DATABASE_SPREADSHEET_ID,
SERVICE_ACCOUNT_CREDS, ADMIN_EMAIL), the application enable/disable
flags, and the persisted error ring (ERROR_LOG).
"""
from datetime import datetime, timezone

from models import db


class SystemProperty(db.Model):
    """Represents one script property."""

    __tablename__ = "system_properties"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.Text, nullable=False, default="")
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<SystemProperty {self.key}>"
