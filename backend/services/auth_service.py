"""
Auth service — Google token verification, domain check, JWT sessions.

Handles the sign-in flow that gives every request its session email:
  1. Verify Google ID token
  2. Domain check (ALLOWED_EMAIL_DOMAINS; empty list allows any domain)
  3. Issue/decode JWT session tokens (sub = email)
  4. Read the session email from the Bearer header or the session cookie

The session email plays the role of the host's "active user": it is the
identity routing, registration and reactions are based on.
"""
import logging
from datetime import datetime, timezone, timedelta

import jwt
from flask import current_app, request
from google.oauth2 import id_token
from google.auth.transport import requests as google_requests

from services.formatters import mask_email

logger = logging.getLogger(__name__)


def verify_google_token(id_token_str):
    """
    Validate a Google ID token and return claims.

    Returns:
        dict with keys: sub, email, name, picture
    Raises:
        ValueError: if token is invalid or expired
    """
    claims = id_token.verify_oauth2_token(
        id_token_str,
        google_requests.Request(),
        current_app.config["GOOGLE_CLIENT_ID"],
    )
    return {
        "sub": claims["sub"],
        "email": claims["email"],
        "name": claims.get("name") or "",
        "picture": claims.get("picture") or "",
    }


def check_email_domain(email):
    """
    Enforce ALLOWED_EMAIL_DOMAINS.

    Raises:
        ValueError: if the domain is not allowed
    """
    allowed = [d.lower() for d in current_app.config.get("ALLOWED_EMAIL_DOMAINS") or []]
    if not allowed:
        return
    domain = (email or "").lower().split("@")[-1]
    if domain not in allowed:
        logger.error("[ERR] Sign-in refused for domain: %s", domain)
        raise ValueError(f"Email domain @{domain} is not allowed")


def generate_jwt(email):
    """
    Create a signed session JWT for an email.

    Payload: sub (email), exp (now + JWT_EXPIRY_HOURS).
    Signed with app SECRET_KEY using HS256.
    """
    expiry_hours = current_app.config.get("JWT_EXPIRY_HOURS") or 24
    payload = {
        "sub": email,
        "exp": datetime.now(timezone.utc) + timedelta(hours=expiry_hours),
    }
    return jwt.encode(payload, current_app.config["SECRET_KEY"], algorithm="HS256")


def decode_jwt(token):
    """
    Decode and validate a JWT.

    Returns:
        dict of claims on success, None on failure (expired, invalid, etc.)
    """
    try:
        return jwt.decode(
            token,
            current_app.config["SECRET_KEY"],
            algorithms=["HS256"],
        )
    except jwt.PyJWTError:
        return None


def session_token():
    """Raw JWT from 'Authorization: Bearer ...' or the session cookie."""
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header.split("Bearer ", 1)[1]
    return request.cookies.get(current_app.config["SESSION_COOKIE_NAME_JWT"]) or ""


def current_email():
    """The signed-in email for this request, or None."""
    token = session_token()
    if not token:
        return None
    claims = decode_jwt(token)
    if claims is None:
        return None
    email = claims.get("sub") or None
    if email:
        logger.debug("Session user %s", mask_email(email))
    return email
