"""
User model — one row per teacher board owner.

userId is an opaque UUID string. email_key holds the lowercased email and
carries the unique index, so lookups by email are case-insensitive and
duplicate registrations are rejected by the database as well as by the
service layer. All variable settings live in config_json.
"""
from datetime import datetime, timezone

from models import db


class User(db.Model):
    """Represents a registered board owner."""

    __tablename__ = "users"

    user_id = db.Column(db.String(36), primary_key=True)
    user_email = db.Column(db.String(255), nullable=False)
    email_key = db.Column(db.String(255), unique=True, nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    config_json = db.Column(db.Text, default="{}")
    created_at = db.Column(
        db.DateTime, default=lambda: datetime.now(timezone.utc)
    )
    last_modified = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    last_accessed_at = db.Column(db.DateTime)

    def __repr__(self):
        return f"<User {self.user_email} ({self.user_id})>"
