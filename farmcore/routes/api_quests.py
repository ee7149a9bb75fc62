# farmcore/routes/api_quests.py
from flask import Blueprint, jsonify, request

from farmcore.auth import admin_required, get_current_player_id, get_services, get_target_player_id
from farmcore.quests import ActionKind

bp = Blueprint("quests", __name__)


@bp.get("/quests")
def list_quests():
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    services = get_services()
    payload = services.quests.get_player_quests(pid)
    payload["next_daily_reset"] = services.resets.next_daily_reset.isoformat()
    payload["next_weekly_reset"] = services.resets.next_weekly_reset.isoformat()
    return jsonify(payload)


@bp.get("/quests/stats")
def quest_stats():
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401
    return jsonify(get_services().quests.get_player_quest_stats(pid))


@bp.get("/quests/<quest_id>/progress")
def quest_progress(quest_id):
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401
    progress = get_services().quests.get_quest_progress(pid, quest_id)
    return jsonify({"id": quest_id, "progress": progress})


@bp.post("/quests/<quest_id>/abandon")
def abandon(quest_id):
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    quest = get_services().quests.abandon_quest(pid, quest_id)
    return jsonify({"ok": True, "quest": quest.to_dict()})


@bp.post("/actions")
def report_action():
    """
    Report a gameplay action to the quest engine.

    JSON: {"action": "plant_seed", "data": {"amount": 1, "plant_type": "Tomato"}}
    """
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    data = request.get_json(silent=True) or {}
    try:
        action = ActionKind(data.get("action"))
    except ValueError:
        return jsonify({"error": "invalid_payload", "detail": "unknown_action"}), 400

    extra = data.get("data") or {}
    if not isinstance(extra, dict):
        return jsonify({"error": "invalid_payload", "detail": "data_must_be_object"}), 400

    completed = get_services().report_action(pid, action, extra)
    return jsonify({"ok": True, "completed": [q.to_dict() for q in completed]})


@bp.post("/admin/quests/<quest_id>/complete")
@admin_required
def force_complete(quest_id):
    """JSON (optional): {"playerId": 1}"""
    pid = get_target_player_id()
    if pid is None:
        return jsonify({"error": "invalid_payload", "detail": "missing_player_id"}), 400

    quest = get_services().quests.force_complete(pid, quest_id)
    return jsonify({"ok": True, "quest": quest.to_dict()})
