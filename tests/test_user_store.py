"""
Tests for services/user_store.py — SQL and legacy Sheets backends.

The Sheets store runs against the in-memory FakeSheetsClient with the
Users sheet seeded in DB_SPREADSHEET.
"""
from datetime import datetime, timezone

import pytest

from services.error_service import DuplicateUserError, UserNotFoundError
from services.user_store import (
    LOGS_HEADERS,
    LOGS_SHEET,
    USERS_HEADERS,
    USERS_SHEET,
    AuditEntry,
    SheetsUserStore,
    SqlUserStore,
    UserRecord,
    find_column,
    record_to_row,
    row_to_record,
)

from conftest import DB_SPREADSHEET


def _record(user_id="u-1", email="teacher@school.example", **kwargs):
    return UserRecord(user_id=user_id, user_email=email, **kwargs)


@pytest.fixture()
def sheets_store(registry, fake_sheets):
    return SheetsUserStore(registry.sheets, lambda: DB_SPREADSHEET, cache=registry.cache)


class TestFindColumn:

    def test_exact_match_wins(self):
        assert find_column(["id", "userId", "userEmail"], "userid") == 1

    def test_substring_match(self):
        assert find_column(["userId", "Email Address"], "email") == 1

    def test_missing(self):
        assert find_column(["a", "b"], "email") == -1


class TestUserRecord:

    def test_invalid_config_reads_empty(self):
        assert _record(config_json="{oops").config == {}

    def test_to_dict_uses_wire_names(self):
        data = _record(is_active=False).to_dict()
        assert data["userId"] == "u-1"
        assert data["userEmail"] == "teacher@school.example"
        assert data["isActive"] is False


class TestSqlUserStore:

    def test_insert_and_find_case_insensitive(self, db_session):
        store = SqlUserStore()
        store.insert(_record(email="Teacher@School.example"))
        found = store.find_by_email("teacher@SCHOOL.EXAMPLE")
        assert found is not None
        assert found.user_email == "Teacher@School.example"

    def test_find_missing_returns_none(self, db_session):
        store = SqlUserStore()
        assert store.find_by_email("nobody@school.example") is None
        assert store.find_by_id("missing") is None

    def test_duplicate_email_rejected(self, db_session):
        store = SqlUserStore()
        store.insert(_record("u-1"))
        with pytest.raises(DuplicateUserError):
            store.insert(_record("u-2", email="TEACHER@school.example"))
        assert len(store.list_users()) == 1

    def test_update(self, db_session):
        store = SqlUserStore()
        store.insert(_record())
        updated = store.update("u-1", is_active=False, config_json='{"a": 1}')
        assert updated.is_active is False
        assert store.find_by_id("u-1").config == {"a": 1}

    def test_update_unknown_field(self, db_session):
        store = SqlUserStore()
        store.insert(_record())
        with pytest.raises(ValueError):
            store.update("u-1", role="admin")

    def test_update_missing_user(self, db_session):
        with pytest.raises(UserNotFoundError):
            SqlUserStore().update("missing", is_active=False)

    def test_delete(self, db_session):
        store = SqlUserStore()
        store.insert(_record())
        assert store.delete("u-1") == 1
        assert store.find_by_id("u-1") is None

    def test_logs_newest_first(self, db_session):
        store = SqlUserStore()
        store.append_log(AuditEntry("u-1", "delete_account", "{}",
                                    datetime(2024, 1, 1, tzinfo=timezone.utc)))
        store.append_log(AuditEntry("u-2", "delete_account", "{}",
                                    datetime(2024, 2, 1, tzinfo=timezone.utc)))
        store.append_log(AuditEntry("u-3", "other", "{}",
                                    datetime(2024, 3, 1, tzinfo=timezone.utc)))
        logs = store.list_logs(action="delete_account")
        assert [e.user_id for e in logs] == ["u-2", "u-1"]
        assert len(store.list_logs(limit=1)) == 1


class TestSheetsRowMapping:

    def test_row_to_record_by_header_name(self):
        headers = ["userId", "userEmail", "isActive", "configJson", "lastModified"]
        row = ["u-9", "a@school.example", "false", '{"x": 1}', "2024-05-01T00:00:00+00:00"]
        record = row_to_record(headers, row)
        assert record.user_id == "u-9"
        assert record.is_active is False
        assert record.config == {"x": 1}
        assert record.last_modified.year == 2024

    def test_record_to_row_follows_header_order(self):
        headers = ["userEmail", "userId", "isActive"]
        assert record_to_row(headers, _record()) == ["teacher@school.example", "u-1", "true"]


class TestSheetsUserStore:

    def test_find_user_by_email(self, sheets_store, fake_sheets):
        """Header row [userId, userEmail, isActive, configJson, lastModified] plus one row."""
        fake_sheets.seed(DB_SPREADSHEET, USERS_SHEET, [
            ["userId", "userEmail", "isActive", "configJson", "lastModified"],
            ["u-1", "Teacher@School.example", "true", "{}", "2024-05-01T00:00:00Z"],
        ])
        found = sheets_store.find_by_email("teacher@school.example")
        assert found is not None
        assert found.user_id == "u-1"
        assert found.user_email == "Teacher@School.example"
        assert found.is_active is True
        assert sheets_store.find_by_email("other@school.example") is None

    def test_insert_appends_row(self, sheets_store, fake_sheets):
        fake_sheets.seed(DB_SPREADSHEET, USERS_SHEET, [USERS_HEADERS])
        sheets_store.insert(_record())
        grid = fake_sheets.grid(DB_SPREADSHEET, USERS_SHEET)
        assert len(grid) == 2
        assert grid[1][0] == "u-1"
        assert sheets_store.find_by_id("u-1").user_email == "teacher@school.example"

    def test_duplicate_insert_writes_nothing(self, sheets_store, fake_sheets):
        fake_sheets.seed(DB_SPREADSHEET, USERS_SHEET, [
            USERS_HEADERS,
            ["u-1", "teacher@school.example", "true", "{}", "", "", ""],
        ])
        with pytest.raises(DuplicateUserError):
            sheets_store.insert(_record("u-2"))
        assert fake_sheets.count("append_row") == 0

    def test_update_rewrites_row(self, sheets_store, fake_sheets):
        fake_sheets.seed(DB_SPREADSHEET, USERS_SHEET, [
            USERS_HEADERS,
            ["u-0", "first@school.example", "true", "{}", "", "", ""],
            ["u-1", "teacher@school.example", "true", "{}", "", "", ""],
        ])
        sheets_store.update("u-1", is_active=False)
        assert fake_sheets.grid(DB_SPREADSHEET, USERS_SHEET)[2][2] == "false"
        assert sheets_store.find_by_id("u-1").is_active is False

    def test_delete_removes_row(self, sheets_store, fake_sheets):
        fake_sheets.seed(DB_SPREADSHEET, USERS_SHEET, [
            USERS_HEADERS,
            ["u-1", "teacher@school.example", "true", "{}", "", "", ""],
            ["u-2", "other@school.example", "true", "{}", "", "", ""],
        ])
        assert sheets_store.delete("u-1") == 1
        assert [u.user_id for u in sheets_store.list_users()] == ["u-2"]

    def test_logs(self, sheets_store, fake_sheets):
        fake_sheets.seed(DB_SPREADSHEET, LOGS_SHEET, [LOGS_HEADERS])
        sheets_store.append_log(AuditEntry("u-1", "delete_account", "{}",
                                           datetime(2024, 1, 1, tzinfo=timezone.utc)))
        sheets_store.append_log(AuditEntry("u-2", "delete_account", "{}",
                                           datetime(2024, 2, 1, tzinfo=timezone.utc)))
        logs = sheets_store.list_logs(action="delete_account")
        assert [e.user_id for e in logs] == ["u-2", "u-1"]

    def test_logs_mixed_offsets_sort(self, sheets_store, fake_sheets):
        """Hand-edited rows without an offset are read as UTC."""
        fake_sheets.seed(DB_SPREADSHEET, LOGS_SHEET, [
            LOGS_HEADERS,
            ["2024-01-01T00:00:00", "u-1", "delete_account", "{}"],
            ["2024-02-01T00:00:00Z", "u-2", "delete_account", "{}"],
            ["2024-03-01 09:00:00", "u-3", "delete_account", "{}"],
        ])
        logs = sheets_store.list_logs()
        assert [e.user_id for e in logs] == ["u-3", "u-2", "u-1"]
        assert all(e.timestamp.tzinfo is not None for e in logs)

    def test_ensure_schema_creates_sheets(self, sheets_store, fake_sheets):
        fake_sheets.seed(DB_SPREADSHEET, "Sheet1", [])
        sheets_store.ensure_schema()
        assert fake_sheets.grid(DB_SPREADSHEET, USERS_SHEET)[0] == USERS_HEADERS
        assert fake_sheets.grid(DB_SPREADSHEET, LOGS_SHEET)[0] == LOGS_HEADERS
