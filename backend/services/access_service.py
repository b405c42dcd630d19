"""
Access service — decides which page a GET / request renders.

resolve_view() is a pure function over AccessFacts so the whole policy is
testable without a request. gather_access_facts() collects the facts from
the query string, the session email and the stores.

Policy (first match wins):
  0. app disabled by the administrator, requester not admin → RESTRICTED
  1. not provisioned and not a direct-access request          → SETUP
  2. setup=true                                                → SETUP
  3. no session email and not direct access                    → REGISTRATION
  4. direct access (userId + spreadsheetId + sheetName)        → BOARD (mode ignored)
  5. user found, mode=admin                                    → ADMIN
  6. user found, mode=view, board published                    → BOARD
     user found, mode=view, board not published                → UNPUBLISHED
  7. user found, no recognized mode                            → ADMIN
  8. session email but no user row                             → REGISTRATION
"""
from dataclasses import dataclass
from typing import Optional

from services.config_service import is_published
from services.user_service import is_administrator

SETUP = "setup"
REGISTRATION = "registration"
ADMIN = "admin"
BOARD = "board"
UNPUBLISHED = "unpublished"
RESTRICTED = "restricted"

MODE_ADMIN = "admin"
MODE_VIEW = "view"


@dataclass
class AccessFacts:
    system_setup: bool = False
    setup_requested: bool = False
    direct_access: bool = False
    email: Optional[str] = None
    user_found: bool = False
    mode: Optional[str] = None
    published: bool = False
    app_disabled: bool = False
    is_admin: bool = False


def resolve_view(facts):
    """Return the page to render for the given facts."""
    if facts.app_disabled and not facts.is_admin:
        return RESTRICTED
    if not facts.system_setup and not facts.direct_access:
        return SETUP
    if facts.setup_requested:
        return SETUP
    if not facts.email and not facts.direct_access:
        return REGISTRATION
    if facts.direct_access:
        return BOARD
    if facts.user_found:
        if facts.mode == MODE_ADMIN:
            return ADMIN
        if facts.mode == MODE_VIEW:
            return BOARD if facts.published else UNPUBLISHED
        return ADMIN
    return REGISTRATION


def is_direct_access(params):
    """userId, spreadsheetId and sheetName all present."""
    return all((params.get(k) or "").strip() for k in ("userId", "spreadsheetId", "sheetName"))


def gather_access_facts(registry, params, email, app_disabled=False):
    """
    Collect AccessFacts for a request.

    Returns:
        (AccessFacts, UserRecord or None) — the record is the session
        user's row (or None); direct-access lookups happen in the route.
    """
    direct = is_direct_access(params)
    system_setup = registry.properties.is_system_setup()
    user = None
    if email and system_setup and not direct:
        user = registry.user_store.find_by_email(email)
    facts = AccessFacts(
        system_setup=system_setup,
        setup_requested=(params.get("setup") or "").lower() == "true",
        direct_access=direct,
        email=email,
        user_found=user is not None,
        mode=(params.get("mode") or "").lower() or None,
        published=is_published(user.config) if user else False,
        app_disabled=app_disabled,
        is_admin=is_administrator(registry, email),
    )
    return facts, user
