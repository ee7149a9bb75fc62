# farmcore/routes/api_session.py
from flask import Blueprint, jsonify

from farmcore.auth import get_current_player_id, get_services

bp = Blueprint("session", __name__)


@bp.get("/health")
def health():
    """Simple health endpoint used by tests."""
    services = get_services()
    return jsonify({
        "status": "ok",
        "players": len(services.current_players()),
        "scheduler_running": services.scheduler.running,
    })


# -----------------------------------------------------------------
# Join / leave
# -----------------------------------------------------------------
@bp.post("/session/join")
def join():
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "invalid_payload", "detail": "missing_player_id"}), 400

    services = get_services()
    created = services.player_joined(pid)

    resp = jsonify({
        "ok": True,
        "playerId": pid,
        "new_session": created,
        "coins": services.ledger.get_coins(pid),
    })
    resp.set_cookie("player_id", str(pid), httponly=True, samesite="Lax")
    return resp


@bp.post("/session/leave")
def leave():
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    left = get_services().player_left(pid)
    resp = jsonify({"ok": True, "left": left})
    resp.delete_cookie("player_id")
    return resp


@bp.get("/session/players")
def players():
    return jsonify({"players": sorted(get_services().current_players())})


# -----------------------------------------------------------------
# Notifications outbox
# -----------------------------------------------------------------
@bp.get("/notifications")
def notifications():
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    notifier = get_services().notifier
    drain = getattr(notifier, "drain", None)
    items = drain(pid) if drain else []
    return jsonify({"notifications": items})
