"""
Tests for services/config_service.py.

Covers: tolerant parsing, legacy field stripping, validation, etag
concurrency, publish/unpublish.
"""
import json

import pytest

from services.config_service import (
    LEGACY_FIELDS,
    board_urls,
    check_etag,
    clean_config_fields,
    is_published,
    parse_config,
    publish_board,
    save_user_config,
    unpublish_board,
    update_user_config,
    validate_config,
)
from services.error_service import ConflictError, UserNotFoundError, ValidationError


class TestParseConfig:

    def test_invalid_json_reads_as_empty(self):
        assert parse_config("{broken") == {}

    def test_non_object_reads_as_empty(self):
        assert parse_config("[1, 2]") == {}
        assert parse_config("null") == {}

    def test_object(self):
        assert parse_config('{"sheetName": "A"}') == {"sheetName": "A"}


class TestCleanConfigFields:

    def test_legacy_fields_removed(self):
        config = {field: "x" for field in LEGACY_FIELDS}
        config["spreadsheetId"] = "abc"
        cleaned = clean_config_fields(config)
        assert cleaned == {"spreadsheetId": "abc"}

    def test_published_fields_never_bind(self):
        cleaned = clean_config_fields({
            "publishedSpreadsheetId": "old", "publishedSheetName": "Old",
        })
        assert "publishedSpreadsheetId" not in cleaned
        assert "publishedSheetName" not in cleaned


class TestValidateConfig:

    def test_valid(self):
        validate_config({"spreadsheetId": "abc_DEF-123", "sheetName": "Sheet1",
                         "displaySettings": {"showNames": True, "pageSize": 20}})

    def test_bad_spreadsheet_id(self):
        with pytest.raises(ValidationError):
            validate_config({"spreadsheetId": "not/an id"})

    def test_display_flags_must_be_bool(self):
        with pytest.raises(ValidationError, match="showNames"):
            validate_config({"displaySettings": {"showNames": "yes"}})

    def test_page_size_range(self):
        with pytest.raises(ValidationError):
            validate_config({"displaySettings": {"pageSize": 0}})


class TestIsPublished:

    def test_flags(self):
        assert is_published({"isPublished": True})
        assert is_published({"appPublished": True})
        assert not is_published({})


class TestSaveUserConfig:

    def test_round_trip(self, registry, make_user):
        """Saving a config then reading it back yields the same fields."""
        user = make_user()
        config = {"spreadsheetId": "abc123", "sheetName": "Sheet1",
                  "displaySettings": {"showNames": True}}
        saved = save_user_config(registry, user.user_id, config)
        stored = registry.user_store.find_by_id(user.user_id).config
        for key, value in config.items():
            assert stored[key] == value
        assert stored["etag"] == saved["etag"]
        assert "lastAccessedAt" in stored

    def test_legacy_fields_stripped_on_save(self, registry, make_user):
        user = make_user()
        save_user_config(registry, user.user_id, {
            "spreadsheetId": "abc123", "publishedSpreadsheetId": "old",
            "setupComplete": True,
        })
        stored = json.loads(registry.user_store.find_by_id(user.user_id).config_json)
        assert "publishedSpreadsheetId" not in stored
        assert "setupComplete" not in stored

    def test_stale_etag_conflicts(self, registry, make_user):
        user = make_user()
        first = save_user_config(registry, user.user_id, {"sheetName": "A"})
        save_user_config(registry, user.user_id, {"sheetName": "B"}, etag=first["etag"])
        with pytest.raises(ConflictError):
            save_user_config(registry, user.user_id, {"sheetName": "C"}, etag=first["etag"])

    def test_matching_etag_saves(self, registry, make_user):
        user = make_user()
        first = save_user_config(registry, user.user_id, {"sheetName": "A"})
        second = save_user_config(registry, user.user_id, {"sheetName": "B"}, etag=first["etag"])
        assert second["etag"] != first["etag"]

    def test_unknown_user(self, registry, db_session):
        with pytest.raises(UserNotFoundError):
            save_user_config(registry, "missing-id", {})

    def test_update_merges(self, registry, make_user):
        user = make_user(config={"sheetName": "A"})
        update_user_config(registry, user.user_id, {"spreadsheetId": "abc"})
        stored = registry.user_store.find_by_id(user.user_id).config
        assert stored["sheetName"] == "A"
        assert stored["spreadsheetId"] == "abc"

    def test_update_drops_keys(self, registry, make_user):
        user = make_user(config={"sheetName": "A", "appPublished": True})
        saved = update_user_config(registry, user.user_id, {}, drop=("appPublished",))
        assert "appPublished" not in saved
        assert saved["sheetName"] == "A"

    def test_check_etag(self):
        check_etag({"etag": "e1"}, None, "u-1")
        check_etag({"etag": "e1"}, "e1", "u-1")
        check_etag({}, "anything", "u-1")
        with pytest.raises(ConflictError):
            check_etag({"etag": "e1"}, "e0", "u-1")


class TestPublish:

    def test_publish_requires_binding(self, registry, make_user):
        user = make_user()
        with pytest.raises(ValidationError):
            publish_board(registry, user.user_id)

    def test_publish_and_unpublish(self, registry, make_user):
        user = make_user(config={"spreadsheetId": "abc", "sheetName": "S", "appPublished": False})
        published = publish_board(registry, user.user_id)
        assert published["isPublished"] is True
        assert published["setupStatus"] == "completed"
        assert "publishedAt" in published
        assert "appPublished" not in published

        unpublished = unpublish_board(registry, user.user_id)
        assert unpublished["isPublished"] is False
        assert unpublished["spreadsheetId"] == "abc"

    def test_unpublish_legacy_flag(self, registry, make_user):
        user = make_user(config={"spreadsheetId": "abc", "sheetName": "S", "appPublished": True})
        unpublished = unpublish_board(registry, user.user_id)
        assert is_published(unpublished) is False
        assert "appPublished" not in unpublished

    def test_unpublish_stale_etag(self, registry, make_user):
        user = make_user(config={"spreadsheetId": "abc", "sheetName": "S"})
        first = publish_board(registry, user.user_id)
        publish_board(registry, user.user_id, etag=first["etag"])
        with pytest.raises(ConflictError):
            unpublish_board(registry, user.user_id, etag=first["etag"])


class TestBoardUrls:

    def test_urls(self):
        urls = board_urls("https://board.example.com/", "u1")
        assert urls["view"] == "https://board.example.com/?mode=view&userId=u1"
        assert urls["admin"] == "https://board.example.com/?mode=admin&userId=u1"

    def test_no_base(self):
        assert board_urls("", "u1") == {"view": "", "admin": ""}
