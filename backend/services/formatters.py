"""Formatting helpers for log lines and board output."""
from datetime import datetime


def mask_email(email):
    """alice@example.com → alice@*** (keeps the local part for support)."""
    if not email or not isinstance(email, str) or "@" not in email:
        return "N/A"
    return email.split("@", 1)[0] + "@***"


def mask_id(value):
    """First 8 characters of an id followed by ***."""
    if not value or not isinstance(value, str):
        return "N/A"
    return value[:8] + "***"


def format_timestamp(value, fmt="%Y/%m/%d %H:%M"):
    """
    Render a sheet timestamp for display.

    Accepts datetimes and ISO strings (trailing Z allowed). Values that do
    not parse are returned unchanged so form responses with free-text
    timestamps still show something.
    """
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.strftime(fmt)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    return parsed.strftime(fmt)
