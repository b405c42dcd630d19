"""
User store — persistence for board owner records and the audit log.

Two implementations share the UserStore interface:

  SqlUserStore     — users/audit_logs tables, primary key on userId and a
                     unique index on the lowercased email. Default.
  SheetsUserStore  — the legacy "Users" and "Logs" sheets inside the
                     DATABASE_SPREADSHEET_ID spreadsheet. Each lookup reads
                     the full range, finds the header row, locates the
                     column by case-insensitive substring match on header
                     names, then scans the data rows.

Both return UserRecord instances and raise DuplicateUserError from
insert() before anything is written when the email is already taken.
"""
import abc
import json
import logging
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError

from models import db
from models.audit_log import AuditLog
from models.user import User
from services.error_service import DuplicateUserError, UserNotFoundError
from services.sheets_service import a1_range, column_letter

logger = logging.getLogger(__name__)

USERS_SHEET = "Users"
LOGS_SHEET = "Logs"

USERS_HEADERS = [
    "userId", "userEmail", "isActive", "configJson",
    "lastModified", "createdAt", "lastAccessedAt",
]
LOGS_HEADERS = ["timestamp", "userId", "action", "details"]

USERS_CACHE_KEY = "sheets:users"


def _iso(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return str(value)


def _parse_iso(value):
    """ISO text or datetime to an aware datetime; values without an offset are UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass
class UserRecord:
    """One user row, independent of the backing store."""

    user_id: str
    user_email: str
    is_active: bool = True
    config_json: str = "{}"
    created_at: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None

    @property
    def config(self):
        """Parsed config_json; anything that is not a JSON object reads as {}."""
        try:
            parsed = json.loads(self.config_json or "{}")
        except (TypeError, ValueError):
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def to_dict(self):
        """Serialize with the wire/sheet field names."""
        return {
            "userId": self.user_id,
            "userEmail": self.user_email,
            "isActive": self.is_active,
            "configJson": self.config_json,
            "createdAt": _iso(self.created_at),
            "lastModified": _iso(self.last_modified),
            "lastAccessedAt": _iso(self.last_accessed_at),
        }


@dataclass
class AuditEntry:
    """One audit log row."""

    user_id: str
    action: str
    details: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "timestamp": _iso(self.timestamp),
            "userId": self.user_id,
            "action": self.action,
            "details": self.details,
        }


UPDATABLE_FIELDS = {f.name for f in fields(UserRecord)} - {"user_id"}


class UserStore(abc.ABC):
    """Capability interface for user persistence."""

    @abc.abstractmethod
    def find_by_email(self, email):
        """Case-insensitive exact match; None when missing."""

    @abc.abstractmethod
    def find_by_id(self, user_id):
        """Exact match; None when missing."""

    @abc.abstractmethod
    def list_users(self):
        """All user records."""

    @abc.abstractmethod
    def insert(self, record):
        """Persist a new record; DuplicateUserError if the email exists."""

    @abc.abstractmethod
    def update(self, user_id, **changes):
        """Apply field changes; UserNotFoundError if missing."""

    @abc.abstractmethod
    def delete(self, user_id):
        """Hard delete; returns the number of rows removed."""

    @abc.abstractmethod
    def append_log(self, entry):
        """Append an AuditEntry."""

    @abc.abstractmethod
    def list_logs(self, action=None, limit=None):
        """Audit entries, newest first."""

    def ensure_schema(self):
        """Create whatever backing tables/sheets are missing. Default: nothing."""

    @staticmethod
    def _check_changes(changes):
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")


# ---------------------------------------------------------------------------
# SQL implementation
# ---------------------------------------------------------------------------

def _record_from_model(user):
    return UserRecord(
        user_id=user.user_id,
        user_email=user.user_email,
        is_active=bool(user.is_active),
        config_json=user.config_json or "{}",
        created_at=user.created_at,
        last_modified=user.last_modified,
        last_accessed_at=user.last_accessed_at,
    )


class SqlUserStore(UserStore):
    """Indexed store on the users/audit_logs tables."""

    def ensure_schema(self):
        db.create_all()

    def find_by_email(self, email):
        if not email:
            return None
        user = User.query.filter_by(email_key=email.strip().lower()).first()
        return _record_from_model(user) if user else None

    def find_by_id(self, user_id):
        if not user_id:
            return None
        user = db.session.get(User, user_id)
        return _record_from_model(user) if user else None

    def list_users(self):
        users = User.query.order_by(User.created_at.desc()).all()
        return [_record_from_model(u) for u in users]

    def insert(self, record):
        email_key = record.user_email.strip().lower()
        if User.query.filter_by(email_key=email_key).first():
            raise DuplicateUserError("A user with this email is already registered")
        timestamps = {
            name: getattr(record, name)
            for name in ("created_at", "last_modified", "last_accessed_at")
            if getattr(record, name) is not None
        }
        user = User(
            user_id=record.user_id,
            user_email=record.user_email,
            email_key=email_key,
            is_active=record.is_active,
            config_json=record.config_json,
            **timestamps,
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            db.session.rollback()
            raise DuplicateUserError("A user with this email is already registered")
        return _record_from_model(user)

    def update(self, user_id, **changes):
        self._check_changes(changes)
        user = db.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        for name, value in changes.items():
            setattr(user, name, value)
        if "user_email" in changes:
            user.email_key = changes["user_email"].strip().lower()
        db.session.commit()
        return _record_from_model(user)

    def delete(self, user_id):
        removed = User.query.filter_by(user_id=user_id).delete()
        db.session.commit()
        return removed

    def append_log(self, entry):
        db.session.add(AuditLog(
            timestamp=entry.timestamp,
            user_id=entry.user_id,
            action=entry.action,
            details=entry.details,
        ))
        db.session.commit()

    def list_logs(self, action=None, limit=None):
        query = AuditLog.query
        if action:
            query = query.filter(AuditLog.action == action)
        query = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        if limit:
            query = query.limit(limit)
        return [
            AuditEntry(user_id=row.user_id, action=row.action,
                       details=row.details or "", timestamp=row.timestamp)
            for row in query.all()
        ]


# ---------------------------------------------------------------------------
# Legacy Sheets implementation
# ---------------------------------------------------------------------------

def find_column(headers, keyword):
    """
    Index of the first header containing keyword (case-insensitive), or -1.

    Exact matches win over substring matches so 'userId' is not mistaken
    for some other '...id' column.
    """
    needle = keyword.lower()
    normalized = [str(h or "").strip().lower() for h in headers]
    if needle in normalized:
        return normalized.index(needle)
    for index, header in enumerate(normalized):
        if needle in header:
            return index
    return -1


def row_to_record(headers, row):
    """Map a Users sheet row to a UserRecord by header name."""
    def cell(keyword):
        index = find_column(headers, keyword)
        if index == -1 or index >= len(row):
            return None
        return row[index]

    return UserRecord(
        user_id=str(cell("userid") or ""),
        user_email=str(cell("email") or ""),
        is_active=_as_bool(cell("isactive") if cell("isactive") is not None else True),
        config_json=str(cell("configjson") or "{}"),
        created_at=_parse_iso(cell("createdat")),
        last_modified=_parse_iso(cell("lastmodified")),
        last_accessed_at=_parse_iso(cell("lastaccessedat")),
    )


def record_to_row(headers, record):
    """Lay out a UserRecord in the order of the sheet's header row."""
    values = {
        "userid": record.user_id,
        "useremail": record.user_email,
        "isactive": "true" if record.is_active else "false",
        "configjson": record.config_json or "{}",
        "lastmodified": _iso(record.last_modified) or "",
        "createdat": _iso(record.created_at) or "",
        "lastaccessedat": _iso(record.last_accessed_at) or "",
    }
    row = []
    for header in headers:
        key = str(header or "").strip().lower()
        if key not in values and "email" in key:
            key = "useremail"
        row.append(values.get(key, ""))
    return row


class SheetsUserStore(UserStore):
    """Linear-scan store over the Users/Logs sheets."""

    def __init__(self, client_factory, spreadsheet_id_getter, cache=None):
        self._client_factory = client_factory
        self._spreadsheet_id = spreadsheet_id_getter
        self.cache = cache

    @property
    def client(self):
        return self._client_factory()

    def _read_table(self):
        """Full Users range as (headers, rows); cached until the next write."""
        def load():
            values = self.client.get_values(self._spreadsheet_id(), a1_range(USERS_SHEET))
            if not values:
                return (list(USERS_HEADERS), [])
            return (values[0], values[1:])

        if self.cache is None:
            return load()
        return self.cache.get_or_compute(USERS_CACHE_KEY, load)

    def _invalidate(self):
        if self.cache is not None:
            self.cache.remove(USERS_CACHE_KEY)

    def ensure_schema(self):
        """Create the Users/Logs sheets and their header rows if missing."""
        spreadsheet_id = self._spreadsheet_id()
        titles = self.client.sheet_titles(spreadsheet_id)
        for title, headers in ((USERS_SHEET, USERS_HEADERS), (LOGS_SHEET, LOGS_HEADERS)):
            if title not in titles:
                self.client.add_sheet(spreadsheet_id, title)
                logger.info("[OK] Created sheet %s", title)
            first_row = self.client.get_values(spreadsheet_id, a1_range(title, "1:1"))
            if not first_row:
                self.client.update_values(
                    spreadsheet_id,
                    a1_range(title, f"A1:{column_letter(len(headers))}1"),
                    [list(headers)],
                )
        self._invalidate()

    def _scan(self, keyword, predicate):
        """Return (sheet_row_number, record) of the first matching row."""
        headers, rows = self._read_table()
        column = find_column(headers, keyword)
        if column == -1:
            logger.error("[ERR] Users sheet has no '%s' column", keyword)
            return None, None
        for offset, row in enumerate(rows):
            if column < len(row) and predicate(str(row[column] or "")):
                # +2: one for the header row, one for 1-based row numbers
                return offset + 2, row_to_record(headers, row)
        return None, None

    def find_by_email(self, email):
        if not email:
            return None
        target = email.strip().lower()
        _, record = self._scan("email", lambda v: v.strip().lower() == target)
        return record

    def find_by_id(self, user_id):
        if not user_id:
            return None
        _, record = self._scan("userid", lambda v: v == user_id)
        return record

    def list_users(self):
        headers, rows = self._read_table()
        return [row_to_record(headers, row) for row in rows if any(row)]

    def insert(self, record):
        if self.find_by_email(record.user_email):
            raise DuplicateUserError("A user with this email is already registered")
        headers, _ = self._read_table()
        self.client.append_row(
            self._spreadsheet_id(), USERS_SHEET, record_to_row(headers, record)
        )
        self._invalidate()
        return record

    def update(self, user_id, **changes):
        self._check_changes(changes)
        row_number, record = self._scan("userid", lambda v: v == user_id)
        if record is None:
            raise UserNotFoundError(f"User {user_id} not found")
        updated = replace(record, **changes)
        headers, _ = self._read_table()
        last_col = column_letter(len(headers))
        self.client.update_values(
            self._spreadsheet_id(),
            a1_range(USERS_SHEET, f"A{row_number}:{last_col}{row_number}"),
            [record_to_row(headers, updated)],
        )
        self._invalidate()
        return updated

    def delete(self, user_id):
        removed = 0
        # Rescan after every delete, row numbers shift up
        while True:
            row_number, record = self._scan("userid", lambda v: v == user_id)
            if record is None:
                break
            self.client.delete_row(self._spreadsheet_id(), USERS_SHEET, row_number)
            self._invalidate()
            removed += 1
        return removed

    def append_log(self, entry):
        self.client.append_row(
            self._spreadsheet_id(),
            LOGS_SHEET,
            [_iso(entry.timestamp), entry.user_id, entry.action, entry.details],
        )

    def list_logs(self, action=None, limit=None):
        values = self.client.get_values(self._spreadsheet_id(), a1_range(LOGS_SHEET))
        if len(values) < 2:
            return []
        headers, rows = values[0], values[1:]
        idx = {name: find_column(headers, name) for name in ("timestamp", "userid", "action", "details")}

        def cell(row, name):
            i = idx[name]
            return row[i] if 0 <= i < len(row) else ""

        entries = [
            AuditEntry(
                user_id=cell(row, "userid"),
                action=cell(row, "action"),
                details=cell(row, "details"),
                timestamp=_parse_iso(cell(row, "timestamp")) or datetime.min.replace(tzinfo=timezone.utc),
            )
            for row in rows if any(row)
        ]
        if action:
            entries = [e for e in entries if e.action == action]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit] if limit else entries
