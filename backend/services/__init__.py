"""
Services package — business logic layer.

  - registry: per-app ServiceRegistry (properties, cache, user store, Sheets)
  - auth_service: Google ID token verification, session JWT, domain check
  - sheets_service: Sheets v4 client with retry/backoff
  - user_store / user_service: board owner persistence and lifecycle
  - config_service: per-user board config, publish/unpublish, ETags
  - board_service: answer rows, reactions, highlights
  - access_service: which page a GET / renders
  - app_status_service: application enable/disable, diagnostics
  - error_service: typed errors, classification, ERROR_LOG ring
"""
