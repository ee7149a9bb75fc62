# =============================================================================
# File: tests/test_api.py
# Purpose: API smoke tests (health, session, shop, quests) on the in-memory
#          services stack.
# =============================================================================
import pytest

from farmcore import create_app


@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app):
    return app.test_client()


def _join(client, pid=1):
    rv = client.post("/api/session/join", json={"playerId": pid})
    assert rv.status_code == 200
    return rv.get_json()


def test_health(client):
    rv = client.get("/api/health")
    assert rv.status_code == 200
    data = rv.get_json()
    assert data["status"] == "ok"
    assert data["players"] == 0


def test_join_sets_cookie_and_balance(client):
    data = _join(client)
    assert data["new_session"] is True
    assert data["coins"] == 100
    assert client.get_cookie("player_id").value == "1"

    rv = client.get("/api/balance")
    assert rv.status_code == 200
    balance = rv.get_json()
    assert balance["coins"] == 100
    assert balance["progression"]["level"] == 1
    assert balance["hourly_limit"] == 10000


def test_requests_without_player_are_rejected(client):
    assert client.get("/api/balance").status_code == 401
    assert client.get("/api/quests").status_code == 401
    assert client.post("/api/session/join", json={}).status_code == 400


def test_buy_and_sell_flow(client, clock):
    _join(client)

    rv = client.post("/api/buy", json={"plant": "Tomato", "qty": 2})
    assert rv.status_code == 200
    assert rv.get_json()["coins"] == 80

    # Second purchase inside the rapid-transaction window
    rv = client.post("/api/buy", json={"plant": "Tomato", "qty": 1})
    assert rv.status_code == 429
    assert rv.get_json()["reason"] == "rapid_transaction"

    clock.advance(5)
    rv = client.post("/api/sell", json={"plant": "Tomato", "qty": 2})
    assert rv.status_code == 200
    assert rv.get_json()["earned"] == 50
    assert rv.get_json()["coins"] == 130

    rv = client.get("/api/history?limit=5")
    txs = rv.get_json()["transactions"]
    assert [tx["type"] for tx in txs] == ["spend", "earn"]


def test_shop_errors(client, clock):
    _join(client)

    rv = client.post("/api/buy", json={"plant": "Corn", "qty": 10})
    assert rv.status_code == 400
    assert rv.get_json()["error"] == "insufficient_funds"

    clock.advance(5)
    rv = client.post("/api/buy", json={"plant": "Mandrake"})
    assert rv.status_code == 404
    assert rv.get_json()["error"] == "unknown_item"

    rv = client.post("/api/buy", json={"plant": "Tomato", "qty": 0})
    assert rv.status_code == 400
    assert rv.get_json()["detail"] == "invalid_qty"


def test_quests_listing_and_progress(client):
    _join(client)

    rv = client.get("/api/quests")
    assert rv.status_code == 200
    data = rv.get_json()
    assert len(data["active"]) == 6
    assert data["completed"] == []
    assert "next_daily_reset" in data

    plant = next(q for q in data["active"] if q["template_id"] == "daily_plant_seeds")
    rv = client.post("/api/actions", json={"action": "plant_seed", "data": {"amount": 2, "plant_type": "Tomato"}})
    assert rv.status_code == 200

    rv = client.get(f"/api/quests/{plant['id']}/progress")
    assert rv.get_json()["progress"] == pytest.approx(0.4)

    assert client.get("/api/quests/nope/progress").status_code == 404


def test_story_quest_cannot_be_abandoned(client):
    _join(client)
    active = client.get("/api/quests").get_json()["active"]
    story = next(q for q in active if q["category"] == "story")
    daily = next(q for q in active if q["category"] == "daily")

    rv = client.post(f"/api/quests/{story['id']}/abandon")
    assert rv.status_code == 409
    assert rv.get_json()["error"] == "not_abandonable"

    rv = client.post(f"/api/quests/{daily['id']}/abandon")
    assert rv.status_code == 200
    assert rv.get_json()["quest"]["status"] == "abandoned"

    stats = client.get("/api/quests/stats").get_json()
    assert stats["abandoned"] == 1
    assert stats["active"] == 5


def test_unknown_action_is_rejected(client):
    _join(client)
    rv = client.post("/api/actions", json={"action": "dance"})
    assert rv.status_code == 400
    assert rv.get_json()["detail"] == "unknown_action"


def test_notifications_are_drained(client):
    _join(client)
    first = client.get("/api/notifications").get_json()["notifications"]
    assert [n["title"] for n in first] == ["New Quest!"] * 6
    assert client.get("/api/notifications").get_json()["notifications"] == []


@pytest.fixture
def admin_client(app):
    app.config.update(ADMIN_ENABLED=True, ADMIN_PLAYER_IDS=frozenset({1}))
    return app.test_client()


def test_admin_routes(admin_client):
    _join(admin_client)
    rv = admin_client.post("/api/admin/coins", json={"amount": 500})
    assert rv.status_code == 200
    assert rv.get_json()["coins"] == 600

    active = admin_client.get("/api/quests").get_json()["active"]
    earn = next(q for q in active if q["template_id"] == "daily_earn_coins")
    rv = admin_client.post(f"/api/admin/quests/{earn['id']}/complete")
    assert rv.status_code == 200
    assert rv.get_json()["quest"]["status"] == "completed"
    assert admin_client.get("/api/balance").get_json()["coins"] == 900   # 200 x1.5 (UNCOMMON)


def test_admin_can_credit_another_player(admin_client, services):
    _join(admin_client)
    services.player_joined(2)
    rv = admin_client.post("/api/admin/coins", json={"playerId": 2, "amount": 40})
    assert rv.status_code == 200
    assert services.ledger.get_coins(2) == 140
    assert services.ledger.get_coins(1) == 100


def test_admin_routes_are_off_by_default(monkeypatch, services):
    monkeypatch.delenv("FARMCORE_ADMIN_ENABLED", raising=False)
    client = create_app(services).test_client()
    _join(client, pid=7)
    rv = client.post("/api/admin/coins", json={"playerId": 7, "amount": 10_000_000})
    assert rv.status_code == 404
    assert services.ledger.get_coins(7) == 100

    quest_id = next(iter(services.quests.state(7).active))
    assert client.post(f"/api/admin/quests/{quest_id}/complete").status_code == 404


def test_non_admin_player_is_forbidden(admin_client, services):
    _join(admin_client, pid=7)
    rv = admin_client.post("/api/admin/coins", json={"playerId": 7, "amount": 10_000_000})
    assert rv.status_code == 403
    assert rv.get_json()["error"] == "forbidden"
    assert services.ledger.get_coins(7) == 100

    quest_id = next(iter(services.quests.state(7).active))
    assert admin_client.post(f"/api/admin/quests/{quest_id}/complete").status_code == 403
    assert quest_id in services.quests.state(7).active


def test_admin_settings_from_env(monkeypatch, services):
    monkeypatch.setenv("FARMCORE_ADMIN_ENABLED", "yes")
    monkeypatch.setenv("FARMCORE_ADMIN_IDS", "3, 9,bogus")
    app = create_app(services)
    assert app.config["ADMIN_ENABLED"] is True
    assert app.config["ADMIN_PLAYER_IDS"] == frozenset({3, 9})


def test_leave_clears_session(client, services):
    _join(client)
    rv = client.post("/api/session/leave")
    assert rv.status_code == 200
    assert rv.get_json()["left"] is True
    assert services.current_players() == set()
    assert client.get("/api/session/players").get_json()["players"] == []
