# tests/test_services.py
import datetime as dt

from conftest import NOW
from farmcore.quests import ActionKind, QuestCategory, QuestStatus


def quest(services, player_id, template_id):
    state = services.quests.state(player_id)
    for q in list(state.active.values()) + list(state.completed.values()):
        if q.template_id == template_id:
            return q
    return None


def test_join_sets_up_every_component(services):
    assert services.player_joined(1, now=NOW) is True
    assert services.player_joined(1, now=NOW) is False

    assert services.current_players() == {1}
    assert services.ledger.get_coins(1) == 100
    assert services.progression.level(1) == 1
    assert len(services.quests.state(1).active) == 6
    assert services.stats.total_coins_in_circulation == 100


def test_vip_join_gets_premium_quest(services, entitlements):
    entitlements.grant_vip(5)
    services.player_joined(5, now=NOW)
    assert quest(services, 5, "vip_daily_premium") is not None


def test_leave_discards_everything(services, entitlements):
    entitlements.grant_vip(1)
    services.player_joined(1, now=NOW)
    services.harvest(1, "plot_1", "Tomato")

    assert services.player_left(1) is True
    assert services.player_left(1) is False
    assert not services.ledger.has_account(1)
    assert not services.quests.has_player(1)
    assert services.autosell.queue_length(1) == 0
    assert services.stats.total_coins_in_circulation == 0


def test_sales_count_towards_earn_quests_but_quest_rewards_do_not(services):
    services.player_joined(1, now=NOW)
    services.ledger.sell_plant(1, "Corn", 6)         # 450 coins
    earn = quest(services, 1, "daily_earn_coins")
    assert earn.objectives[0].current == 450

    services.quests.force_complete(1, quest(services, 1, "daily_plant_seeds").instance_id, NOW)
    assert services.ledger.last_transaction(1).reason == "quest_reward"
    assert earn.objectives[0].current == 450

    services.ledger.sell_plant(1, "Lettuce", 1)
    assert earn.status is QuestStatus.COMPLETED


def test_purchases_report_spend_progress(services, monkeypatch):
    services.player_joined(1, now=NOW)
    seen = []
    original = services.quests.update_progress

    def spy(player_id, action, data=None, now=None):
        seen.append((action, dict(data or {})))
        return original(player_id, action, data, now)

    monkeypatch.setattr(services.quests, "update_progress", spy)
    services.ledger.buy_seeds(1, "Tomato", 3)
    assert (ActionKind.SPEND_COINS, {"amount": 30}) in seen


def test_xp_reward_level_up_is_reported(services, monkeypatch):
    services.player_joined(1, now=NOW)
    levels = []
    original = services.quests.update_progress

    def spy(player_id, action, data=None, now=None):
        if action is ActionKind.LEVEL_UP:
            levels.append(data["level"])
        return original(player_id, action, data, now)

    monkeypatch.setattr(services.quests, "update_progress", spy)
    services.report_action(1, ActionKind.PLANT_SEED, {"amount": 1, "plant_type": "Tomato"}, NOW)
    services.report_action(1, "harvest_plant", {"amount": 1}, NOW)   # story_first_garden: 100 xp

    assert levels == [2]
    assert services.inventory.items(1) == {"starter_pack": 1}
    assert services.ledger.get_coins(1) == 150


def test_harvest_queues_auto_sell_for_vip_only(services, entitlements):
    entitlements.grant_vip(1)
    services.player_joined(1, now=NOW)
    services.player_joined(2, now=NOW)

    assert services.harvest(1, "plot_1", "Carrot") is True
    assert services.harvest(2, "plot_1", "Carrot") is False

    assert services.auto_sell_pass() == {1: 35}
    assert services.ledger.get_coins(1) == 135
    assert quest(services, 1, "daily_earn_coins").objectives[0].current == 35


def test_quest_maintenance_pass(services):
    services.player_joined(1, now=NOW)
    old_ids = set(services.quests.state(1).active)

    services.quest_maintenance_pass(NOW + dt.timedelta(hours=1))
    assert set(services.quests.state(1).active) == old_ids

    next_day = dt.datetime(2024, 1, 11, 0, 0, 30, tzinfo=dt.timezone.utc)
    services.quest_maintenance_pass(next_day)
    state = services.quests.state(1)
    daily = [q for q in state.active.values() if q.category is QuestCategory.DAILY]
    assert len(daily) == 3
    assert not ({q.instance_id for q in daily} & old_ids)
    assert not [h for h in state.history if h.reason == "expired"]


def test_economy_stats_pass(services):
    services.player_joined(1, now=NOW)
    services.player_joined(2, now=NOW)
    services.ledger.set_coins(2, 2_000)

    report = services.economy_stats_pass()
    assert report["total_coins"] == 2_100
    assert report["active_players"] == 2
    assert report["average_wealth"] == 1_050
    assert report["wealth_distribution"]["rich"] == 1


def test_earnings_reset_pass(services, clock):
    services.player_joined(1, now=NOW)
    services.ledger.sell_plant(1, "Tomato")
    assert services.earnings_reset_pass() is False
    clock.advance(3_600)
    assert services.earnings_reset_pass() is True
    assert services.throttle.hourly_earned(1) == 0


def test_shutdown_saves_tracked_players(services, store):
    services.player_joined(1, now=NOW)
    services.ledger.add_coins(1, 5)
    services.shutdown()
    assert store.load_snapshot("economy:1")["coins"] == 105
    assert store.load_snapshot("quests:1")["player_id"] == 1


def test_registered_periodic_tasks(services):
    tasks = services.scheduler.tasks
    assert set(tasks) == {"earnings_reset", "auto_sell", "quest_maintenance", "economy_stats"}
    assert tasks["auto_sell"].interval == 5
    assert tasks["quest_maintenance"].interval == 30
    assert tasks["economy_stats"].interval == 60
    assert tasks["earnings_reset"].interval == 3600
