"""
AuditLog model — append-only record of administrative actions.

Mirrors the legacy "Logs" sheet layout: timestamp, userId, action, details.
Account deletions write one row with action='delete_account' so the
deleted user's id survives the row removal.
"""
from datetime import datetime, timezone

from models import db


class AuditLog(db.Model):
    """Represents one audit entry."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(
        db.DateTime, default=lambda: datetime.now(timezone.utc), index=True
    )
    user_id = db.Column(db.String(36), index=True)
    action = db.Column(db.String(50), nullable=False, index=True)
    details = db.Column(db.Text)

    def __repr__(self):
        return f"<AuditLog {self.action} user_id={self.user_id}>"
