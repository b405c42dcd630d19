"""
Flask application factory.

Creates and configures the Flask app with:
  - SQLAlchemy database connection
  - CORS for frontend communication
  - ServiceRegistry on app.extensions (stores, cache, Sheets client)
  - Route registration
  - Health check endpoint
  - Structured logging with [OK]/[ERR] markers (no Unicode)
"""
import logging
import sys

from flask import Flask, jsonify
from flask_cors import CORS

from config import Config
from models import db
from routes import register_routes
from services.registry import EXTENSION_KEY, build_registry


def create_app(config_class=Config, registry=None):
    """
    Create and configure the Flask application.

    Args:
        config_class: Configuration class to use (default: Config).
                      Pass TestConfig for testing with SQLite in-memory.
        registry: Optional ServiceRegistry. Built from the config when
                  omitted; tests pass one wired to fakes.

    Returns:
        Configured Flask app instance.
    """
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Set up logging with [OK]/[ERR] markers, no Unicode symbols
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    app.logger.handlers = [handler]
    app.logger.setLevel(logging.INFO)
    for name in ("services", "routes", "decorators"):
        package_logger = logging.getLogger(name)
        package_logger.handlers = [handler]
        package_logger.setLevel(logging.INFO)

    # Initialize extensions
    db.init_app(app)
    CORS(app, origins=[app.config["FRONTEND_URL"]], supports_credentials=True)

    app.extensions[EXTENSION_KEY] = registry or build_registry(app.config)

    register_routes(app)

    # Properties live in SQL for both user store backends
    with app.app_context():
        db.create_all()

    # Health check endpoint, confirms API is running
    @app.route("/api/health")
    def health():
        """Return service health status."""
        app.logger.info("[OK] Health check passed")
        return jsonify({"status": "ok", "service": "answer-board-api"})

    app.logger.info(
        "[OK] Answer Board API initialized (user store: %s)",
        "sql" if app.config.get("USE_NEW_ARCHITECTURE", True) else "sheets",
    )
    return app
