# =============================================================================
# File: farmcore/routes/__init__.py
# Purpose: Group and register every API blueprint.
# =============================================================================
from __future__ import annotations

from flask import Flask

from .api_session import bp as session_bp
from .api_economy import bp as economy_bp
from .api_quests import bp as quests_bp


def register_routes(app: Flask) -> None:
    """Register all API blueprints on the Flask app."""
    app.register_blueprint(session_bp, url_prefix="/api")
    app.register_blueprint(economy_bp, url_prefix="/api")
    app.register_blueprint(quests_bp,  url_prefix="/api")
