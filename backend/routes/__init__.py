"""
Route registration for the Flask app.

Registers all route blueprints:
  - view routes (GET / page routing, POST / JSON actions)
  - auth routes (Google sign-in login/logout/me)
  - setup routes (first-time provisioning)
  - user routes (board owner registration)
  - rpc routes (admin panel functions)
"""
from routes.auth import auth_bp
from routes.rpc import rpc_bp
from routes.setup import setup_bp
from routes.users import users_bp
from routes.views import views_bp


def register_routes(app):
    """
    Register all route blueprints with the Flask app.

    Args:
        app: Flask application instance.
    """
    app.register_blueprint(views_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(setup_bp, url_prefix="/api/setup")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(rpc_bp, url_prefix="/api/rpc")
