# farmcore/auth.py
import os
from functools import wraps

from flask import abort, current_app, jsonify, request


def get_services():
    """GameServices attached to the running Flask app."""
    return current_app.extensions["farmcore"]


def _as_player_id(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_current_player_id():
    """Current player id from the 'player_id' cookie, else 'playerId' in the JSON body or query string."""
    pid = request.cookies.get("player_id")
    if not pid:
        data = request.get_json(silent=True) or {}
        pid = data.get("playerId") or request.args.get("playerId")
    return _as_player_id(pid)


def get_session_player_id():
    """Player id from the session cookie only (never from the payload)."""
    return _as_player_id(request.cookies.get("player_id"))


def get_target_player_id():
    """Admin target: 'playerId' in the JSON body, else the caller."""
    data = request.get_json(silent=True) or {}
    target = _as_player_id(data.get("playerId"))
    return target if target is not None else get_session_player_id()


def load_admin_settings():
    """
    Read the admin switches from the environment.

    FARMCORE_ADMIN_ENABLED: "1"/"true"/"yes"/"on" turns the admin routes on (default off)
    FARMCORE_ADMIN_IDS: comma separated player ids allowed to call them
    """
    enabled = os.getenv("FARMCORE_ADMIN_ENABLED", "0").lower() in {"1", "true", "yes", "on"}
    ids = set()
    for raw in os.getenv("FARMCORE_ADMIN_IDS", "").split(","):
        pid = _as_player_id(raw.strip() or None)
        if pid is not None:
            ids.add(pid)
    return {"ADMIN_ENABLED": enabled, "ADMIN_PLAYER_IDS": frozenset(ids)}


def admin_required(view_func):
    """
    Ensure:
    - ADMIN_ENABLED config flag is True (404 otherwise)
    - the session player is in ADMIN_PLAYER_IDS (403 otherwise)
    """
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if not current_app.config.get("ADMIN_ENABLED", False):
            abort(404)

        pid = get_session_player_id()
        if pid is None or pid not in current_app.config.get("ADMIN_PLAYER_IDS", ()):
            return jsonify({"error": "forbidden"}), 403

        return view_func(*args, **kwargs)

    return wrapper
