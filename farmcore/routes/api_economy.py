# farmcore/routes/api_economy.py
from flask import Blueprint, jsonify, request

from farmcore.auth import admin_required, get_current_player_id, get_services, get_target_player_id

bp = Blueprint("economy", __name__)


def _qty(data, key="qty"):
    try:
        qty = int(data.get(key, 1))
    except (TypeError, ValueError):
        return None
    return qty if qty > 0 else None


# -----------------------------------------------------------------
# Balance & history
# -----------------------------------------------------------------
@bp.get("/balance")
def balance():
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    services = get_services()
    if pid not in services.sessions:
        return jsonify({"error": "unknown_player"}), 404

    return jsonify({
        "playerId": pid,
        "coins": services.ledger.get_coins(pid),
        "hourly_earned": services.throttle.hourly_earned(pid),
        "hourly_limit": services.throttle.max_per_window,
        "progression": services.progression.summary(pid),
        "items": services.inventory.items(pid),
    })


@bp.get("/history")
def history():
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    try:
        limit = int(request.args.get("limit", 10))
    except ValueError:
        return jsonify({"error": "invalid_payload", "detail": "invalid_limit"}), 400

    txs = get_services().ledger.get_transaction_history(pid, limit)
    return jsonify({"transactions": [tx.to_dict() for tx in txs]})


# -----------------------------------------------------------------
# Shop
# -----------------------------------------------------------------
@bp.get("/prices")
def prices():
    return jsonify({"prices": get_services().prices.list_prices()})


@bp.post("/buy")
def buy():
    """
    Buy seeds.

    JSON: {"plant": "Tomato", "qty": 2}
    """
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    data = request.get_json(silent=True) or {}
    plant = (data.get("plant") or "").strip()
    qty = _qty(data)
    if not plant:
        return jsonify({"error": "invalid_payload", "detail": "missing_plant"}), 400
    if qty is None:
        return jsonify({"error": "invalid_payload", "detail": "invalid_qty"}), 400

    services = get_services()
    qty, cost = services.ledger.buy_seeds(pid, plant, qty)
    return jsonify({"ok": True, "plant": plant, "qty": qty, "cost": cost, "coins": services.ledger.get_coins(pid)})


@bp.post("/sell")
def sell():
    """
    Sell harvested crops.

    JSON: {"plant": "Tomato", "qty": 1}
    """
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    data = request.get_json(silent=True) or {}
    plant = (data.get("plant") or "").strip()
    qty = _qty(data)
    if not plant:
        return jsonify({"error": "invalid_payload", "detail": "missing_plant"}), 400
    if qty is None:
        return jsonify({"error": "invalid_payload", "detail": "invalid_qty"}), 400

    services = get_services()
    earned = services.ledger.sell_plant(pid, plant, qty)
    return jsonify({"ok": True, "plant": plant, "qty": qty, "earned": earned, "coins": services.ledger.get_coins(pid)})


@bp.post("/harvest")
def harvest():
    """
    Report a harvest. VIP players get the crop queued for auto-sell.

    JSON: {"plotId": "plot_3", "plant": "Corn"}
    """
    pid = get_current_player_id()
    if pid is None:
        return jsonify({"error": "not_authenticated"}), 401

    data = request.get_json(silent=True) or {}
    plant = (data.get("plant") or "").strip()
    plot_id = str(data.get("plotId") or "").strip()
    if not plant or not plot_id:
        return jsonify({"error": "invalid_payload", "detail": "missing_plant_or_plot"}), 400

    services = get_services()
    if pid not in services.sessions:
        return jsonify({"error": "unknown_player"}), 404

    queued = services.harvest(pid, plot_id, plant)
    return jsonify({"ok": True, "auto_sell": queued, "queue_length": services.autosell.queue_length(pid)})


# -----------------------------------------------------------------
# Stats & admin
# -----------------------------------------------------------------
@bp.get("/stats")
def stats():
    return jsonify(get_services().stats.report())


@bp.post("/admin/coins")
@admin_required
def admin_coins():
    """JSON: {"playerId": 1, "amount": 500}"""
    data = request.get_json(silent=True) or {}
    pid = get_target_player_id()
    if pid is None:
        return jsonify({"error": "invalid_payload", "detail": "missing_player_id"}), 400

    coins = get_services().ledger.admin_add_coins(pid, data.get("amount"))
    return jsonify({"ok": True, "coins": coins})
