"""BP Buddy REST backend.

Flask application serving the auth and readings endpoints consumed by
the client core.
"""

from __future__ import annotations

from flask import Flask

from src.server import auth, readings
from src.server.database import InMemoryDatabase

DEFAULT_SECRET_KEY = "change-me-in-production"
DEFAULT_TOKEN_MAX_AGE_DAYS = 7


def create_app(config: dict | None = None, database: InMemoryDatabase | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: The ``server`` config section
        database: Optional prepopulated database

    Returns:
        Configured Flask app
    """
    config = config or {}
    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.get("secret_key") or DEFAULT_SECRET_KEY
    app.config["TOKEN_MAX_AGE_DAYS"] = config.get("token_max_age_days", DEFAULT_TOKEN_MAX_AGE_DAYS)
    app.extensions["bp_buddy_db"] = database if database is not None else InMemoryDatabase()

    app.register_blueprint(auth.bp)
    app.register_blueprint(readings.bp)

    @app.get("/api/test")
    def health():
        return {"success": True, "message": "BP Buddy backend is running"}

    @app.errorhandler(404)
    def not_found(_error):
        return {"success": False, "error": "Endpoint not found"}, 404

    @app.errorhandler(405)
    def method_not_allowed(_error):
        return {"success": False, "error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def internal_error(_error):
        return {"success": False, "error": "Internal server error"}, 500

    return app


__all__ = ["create_app", "InMemoryDatabase"]
