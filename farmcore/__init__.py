# farmcore/__init__.py
import logging

from flask import Flask, jsonify

from .auth import load_admin_settings
from .errors import FarmcoreError
from .routes import register_routes

log = logging.getLogger(__name__)


def create_app(services=None) -> Flask:
    """
    Flask front for the game services.

    Without ``services`` a full stack is built with the SQLAlchemy snapshot
    store on DATABASE_URL.
    """
    app = Flask(__name__)
    app.config.update(load_admin_settings())

    if services is None:
        from .db import init_db
        from .persistence import SqlSnapshotStore
        from .services import build_services

        init_db()
        services = build_services(store=SqlSnapshotStore())

    app.extensions["farmcore"] = services
    register_routes(app)

    @app.errorhandler(FarmcoreError)
    def handle_farmcore_error(exc: FarmcoreError):
        return jsonify(exc.to_dict()), exc.status

    @app.get("/api/levels")
    def list_levels():
        levels = services.progression.levels
        data = [{"level": lvl, "xp_required": levels[lvl]} for lvl in sorted(levels)]
        return jsonify({"thresholds": data})

    return app
