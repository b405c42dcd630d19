"""
Tests for services/auth_service.py.

Covers: domain restriction, JWT roundtrip, expired JWT, session email
from Bearer header and cookie.
"""
from datetime import datetime, timezone, timedelta

import jwt
import pytest

from services.auth_service import (
    check_email_domain,
    current_email,
    decode_jwt,
    generate_jwt,
    verify_google_token,
)


class TestCheckEmailDomain:
    """Tests for check_email_domain."""

    def test_any_domain_when_unrestricted(self, app):
        """Empty ALLOWED_EMAIL_DOMAINS accepts every domain."""
        with app.app_context():
            check_email_domain("someone@anywhere.example")

    def test_restricted_domain_accepted(self, app):
        """A listed domain passes, case-insensitively."""
        with app.app_context():
            app.config["ALLOWED_EMAIL_DOMAINS"] = ["school.example"]
            try:
                check_email_domain("Teacher@SCHOOL.example")
            finally:
                app.config["ALLOWED_EMAIL_DOMAINS"] = []

    def test_other_domain_rejected(self, app):
        """An unlisted domain raises ValueError."""
        with app.app_context():
            app.config["ALLOWED_EMAIL_DOMAINS"] = ["school.example"]
            try:
                with pytest.raises(ValueError, match="not allowed"):
                    check_email_domain("hacker@gmail.com")
            finally:
                app.config["ALLOWED_EMAIL_DOMAINS"] = []


class TestJWT:
    """Tests for generate_jwt and decode_jwt."""

    def test_roundtrip(self, app):
        """Generate then decode returns the email as subject."""
        with app.app_context():
            token = generate_jwt("teacher@school.example")
            claims = decode_jwt(token)
            assert claims["sub"] == "teacher@school.example"
            assert "exp" in claims

    def test_expired_jwt_returns_none(self, app):
        """An expired JWT decodes to None."""
        with app.app_context():
            payload = {
                "sub": "teacher@school.example",
                "exp": datetime.now(timezone.utc) - timedelta(hours=1),
            }
            expired_token = jwt.encode(
                payload, app.config["SECRET_KEY"], algorithm="HS256"
            )
            assert decode_jwt(expired_token) is None

    def test_wrong_secret_returns_none(self, app):
        """A token signed with another key is rejected."""
        with app.app_context():
            token = jwt.encode(
                {"sub": "x@school.example", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
                "some-other-secret",
                algorithm="HS256",
            )
            assert decode_jwt(token) is None


class TestCurrentEmail:
    """Tests for current_email (session identity of a request)."""

    def test_bearer_header(self, app):
        with app.app_context():
            token = generate_jwt("teacher@school.example")
        with app.test_request_context("/", headers={"Authorization": f"Bearer {token}"}):
            assert current_email() == "teacher@school.example"

    def test_cookie(self, app):
        with app.app_context():
            token = generate_jwt("student@school.example")
        cookie = f"{app.config['SESSION_COOKIE_NAME_JWT']}={token}"
        with app.test_request_context("/", headers={"Cookie": cookie}):
            assert current_email() == "student@school.example"

    def test_no_token_is_anonymous(self, app):
        with app.test_request_context("/"):
            assert current_email() is None

    def test_garbage_token_is_anonymous(self, app):
        with app.test_request_context("/", headers={"Authorization": "Bearer garbage"}):
            assert current_email() is None


class TestVerifyGoogleToken:
    """Tests for verify_google_token (mocked)."""

    def test_returns_claims(self, app, mock_verify_google_token):
        """verify_google_token returns structured claims from Google."""
        with app.app_context():
            result = verify_google_token("fake-id-token")
            assert result["email"] == "teacher@school.example"
            assert result["sub"] == "google-test-sub-123"

    def test_invalid_token_raises(self, app, mock_verify_google_token):
        """Verification failures surface as ValueError."""
        mock_verify_google_token.side_effect = ValueError("Token expired")
        with app.app_context():
            with pytest.raises(ValueError):
                verify_google_token("expired-token")
