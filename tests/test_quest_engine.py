# tests/test_quest_engine.py
import datetime as dt

import pytest

from conftest import NOW, FixedRng, RecordingSink
from farmcore.errors import NotAbandonable, QuestNotFound, UnknownPlayer
from farmcore.quests import ActionKind, QuestCatalog, QuestCategory, QuestEngine, QuestStatus
from farmcore.quests.loader import build_rarities, build_templates
from farmcore.rewards import RewardDistributor

DAILY_WATERMARK = NOW.replace(hour=0)
WEEKLY_WATERMARK = DAILY_WATERMARK - dt.timedelta(days=2)


def setup_player(engine, player_id=1):
    engine.load_player(player_id)
    catalog = engine.catalog
    engine.assign_cadence(
        player_id, QuestCategory.DAILY, catalog.generate_cycle(QuestCategory.DAILY, NOW), DAILY_WATERMARK, NOW
    )
    engine.assign_cadence(
        player_id, QuestCategory.WEEKLY, catalog.generate_cycle(QuestCategory.WEEKLY, NOW), WEEKLY_WATERMARK, NOW
    )
    engine.check_story_eligibility(player_id, NOW)
    return engine.state(player_id)


def by_template(state, template_id):
    for quest in list(state.active.values()) + list(state.completed.values()):
        if quest.template_id == template_id:
            return quest
    return None


def plant(engine, player_id=1, plant_type="Tomato", n=1):
    completed = []
    for _ in range(n):
        completed += engine.update_progress(player_id, ActionKind.PLANT_SEED, {"amount": 1, "plant_type": plant_type}, NOW)
    return completed


def harvest(engine, player_id=1, n=1):
    completed = []
    for _ in range(n):
        completed += engine.update_progress(player_id, ActionKind.HARVEST_PLANT, {"amount": 1}, NOW)
    return completed


def test_new_player_receives_cadence_and_first_story_quest(engine):
    state = setup_player(engine)
    assert sorted(q.template_id for q in state.active.values()) == [
        "daily_earn_coins", "daily_harvest_plants", "daily_plant_seeds",
        "story_first_garden",
        "weekly_master_gardener", "weekly_social_butterfly",
    ]
    assert state.last_daily_reset == DAILY_WATERMARK
    assert state.last_weekly_reset == WEEKLY_WATERMARK


def test_vip_player_receives_vip_quest(engine, entitlements):
    entitlements.grant_vip(1)
    state = setup_player(engine)
    assert by_template(state, "vip_daily_premium") is not None


def test_progress_completes_quest_once_and_pays_rewards(engine, sink, notifier):
    state = setup_player(engine)
    quest = by_template(state, "daily_plant_seeds")

    assert plant(engine, n=4) == []
    assert quest.progress == pytest.approx(0.8)

    [done] = plant(engine)
    assert done is quest
    assert quest.status is QuestStatus.COMPLETED
    assert quest.progress == 1.0
    assert quest.instance_id in state.completed
    assert quest.instance_id not in state.active
    assert sink.coins[1] == 100
    assert sink.items[1] == ["fertilizer", "water"]
    assert state.history[-1].status is QuestStatus.COMPLETED

    # completed quests stay untouched
    plant(engine, n=3)
    assert quest.objectives[0].current == 5
    assert sink.coins[1] == 100
    assert any(n["title"] == "Quest Complete!" for n in notifier.peek(1))


def test_overshoot_is_clamped(engine, sink):
    state = setup_player(engine)
    engine.update_progress(1, ActionKind.HARVEST_PLANT, {"amount": 100}, NOW)
    quest = by_template(state, "daily_harvest_plants")
    assert quest.objectives[0].current == 10
    assert quest.status is QuestStatus.COMPLETED
    assert sink.coins[1] == 150
    assert by_template(state, "story_first_garden").progress == pytest.approx(0.5)


def test_invalid_amount_does_not_advance(engine):
    state = setup_player(engine)
    for amount in (0, -3, "many", True):
        engine.update_progress(1, ActionKind.HARVEST_PLANT, {"amount": amount}, NOW)
    assert by_template(state, "daily_harvest_plants").objectives[0].current == 0


def test_unique_objectives_count_distinct_keys(engine):
    state = setup_player(engine)
    plant(engine, plant_type="Tomato", n=2)
    plant(engine, plant_type="Carrot")
    engine.update_progress(1, ActionKind.PLANT_SEED, {"amount": 1}, NOW)

    master = by_template(state, "weekly_master_gardener")
    assert master.objectives[0].current == 2
    assert master.objectives[0].unique_keys == {"Tomato", "Carrot"}
    assert by_template(state, "daily_plant_seeds").objectives[0].current == 4


def test_story_chain_unlocks_next_quest(engine, sink):
    state = setup_player(engine)
    plant(engine)
    assert by_template(state, "story_expand_garden") is None

    harvest(engine)
    first = by_template(state, "story_first_garden")
    assert first.status is QuestStatus.COMPLETED
    assert by_template(state, "story_expand_garden").is_active
    assert by_template(state, "story_market_trader") is None
    assert sink.xp[1] == 100


def test_completions_drive_vip_quest(engine, entitlements, sink):
    entitlements.grant_vip(1)
    state = setup_player(engine)

    plant(engine, n=5)      # daily_plant_seeds
    harvest(engine, n=10)   # story_first_garden, daily_harvest_plants

    vip = by_template(state, "vip_daily_premium")
    assert vip.status is QuestStatus.COMPLETED
    assert sink.coins[1] == 100 + 50 + 150 + 1000


def test_reach_level_takes_max_of_reported_levels(notifier):
    rarities = build_rarities(None)
    templates = build_templates(
        {"grow_up": {"type": "level", "category": "story", "objectives": [{"type": "reach_level", "target": 5}]}},
        rarities,
    )
    sink = RecordingSink()
    engine = QuestEngine(QuestCatalog(templates, rarities, rng=FixedRng()), RewardDistributor(sink), notifier)
    engine.load_player(1)
    [quest] = engine.check_story_eligibility(1, NOW)

    engine.update_progress(1, ActionKind.LEVEL_UP, {"level": 3}, NOW)
    assert quest.objectives[0].current == 3
    engine.update_progress(1, ActionKind.LEVEL_UP, {"level": 2}, NOW)
    assert quest.objectives[0].current == 3
    engine.update_progress(1, ActionKind.LEVEL_UP, {}, NOW)
    assert quest.objectives[0].current == 3
    engine.update_progress(1, ActionKind.LEVEL_UP, {"level": 9}, NOW)
    assert quest.objectives[0].current == 5
    assert quest.status is QuestStatus.COMPLETED


def test_abandon_rules(engine):
    state = setup_player(engine)
    story = by_template(state, "story_first_garden")
    daily = by_template(state, "daily_earn_coins")

    with pytest.raises(NotAbandonable):
        engine.abandon_quest(1, story.instance_id, NOW)
    with pytest.raises(QuestNotFound):
        engine.abandon_quest(1, "nope", NOW)

    engine.abandon_quest(1, daily.instance_id, NOW)
    assert daily.status is QuestStatus.ABANDONED
    assert daily.instance_id not in state.active
    assert state.history[-1].status is QuestStatus.ABANDONED

    with pytest.raises(QuestNotFound):
        engine.abandon_quest(1, daily.instance_id, NOW)
    with pytest.raises(UnknownPlayer):
        engine.abandon_quest(2, daily.instance_id, NOW)


def test_expiry_sweep_fails_overdue_quests(engine, notifier):
    state = setup_player(engine)
    deadline = NOW + dt.timedelta(days=1)

    assert engine.expire_sweep(deadline - dt.timedelta(seconds=1)) == 0
    # reaching end_time is enough
    assert engine.expire_sweep(deadline) == 3
    assert engine.expire_sweep(deadline + dt.timedelta(seconds=1)) == 0

    assert sorted(q.template_id for q in state.active.values()) == [
        "story_first_garden", "weekly_master_gardener", "weekly_social_butterfly",
    ]
    failed = [h for h in state.history if h.status is QuestStatus.FAILED]
    assert len(failed) == 3
    assert {h.reason for h in failed} == {"expired"}
    assert any(n["title"] == "Quest Expired" for n in notifier.peek(1))


def test_sweep_failure_is_isolated_per_player(engine, monkeypatch):
    setup_player(engine, 1)
    setup_player(engine, 2)
    original = engine._expire_player

    def flaky(player_id, now):
        if player_id == 1:
            raise RuntimeError("corrupt state")
        return original(player_id, now)

    monkeypatch.setattr(engine, "_expire_player", flaky)
    assert engine.expire_sweep(NOW + dt.timedelta(days=2)) == 3
    assert len(engine.state(1).active) == 6
    assert len(engine.state(2).active) == 3


def test_integrity_sweep_completes_ready_quests(engine, sink):
    state = setup_player(engine)
    quest = by_template(state, "weekly_social_butterfly")
    quest.objectives[0].current = quest.objectives[0].target

    assert engine.integrity_sweep(NOW) == 1
    assert quest.status is QuestStatus.COMPLETED
    assert sink.coins[1] == 3000
    assert engine.integrity_sweep(NOW) == 0


def test_force_complete_and_queries(engine):
    state = setup_player(engine)
    quest = by_template(state, "daily_earn_coins")
    engine.force_complete(1, quest.instance_id, NOW)
    engine.abandon_quest(1, by_template(state, "daily_harvest_plants").instance_id, NOW)

    assert engine.get_quest_progress(1, quest.instance_id) == 1.0
    with pytest.raises(QuestNotFound):
        engine.get_quest_progress(1, "missing")
    with pytest.raises(QuestNotFound):
        engine.force_complete(1, quest.instance_id, NOW)

    stats = engine.get_player_quest_stats(1)
    assert stats["completed"] == 1
    assert stats["abandoned"] == 1
    assert stats["active"] == 4
    assert stats["total_coins_earned"] == 300
    assert stats["total_xp_earned"] == 150

    listing = engine.get_player_quests(1)
    assert len(listing["active"]) == 4
    assert listing["completed"][0]["template_id"] == "daily_earn_coins"
    assert [h["status"] for h in listing["history"]] == ["completed", "abandoned"]


def test_failed_reward_does_not_undo_completion(catalog, notifier):
    sink = RecordingSink(fail_currency=True)
    engine = QuestEngine(catalog, RewardDistributor(sink), notifier)
    state = setup_player(engine)

    plant(engine, n=5)
    quest = by_template(state, "daily_plant_seeds")
    assert quest.status is QuestStatus.COMPLETED
    assert 1 not in sink.coins
    assert sink.xp[1] == 50


def test_untracked_player_is_ignored(engine):
    assert engine.update_progress(99, ActionKind.PLANT_SEED, {"amount": 1}, NOW) == []


def test_destructive_reassignment_only_touches_one_category(engine):
    state = setup_player(engine)
    old_daily = {q.instance_id for q in state.active.values() if q.category is QuestCategory.DAILY}
    weekly = {q.instance_id for q in state.active.values() if q.category is QuestCategory.WEEKLY}
    plant(engine, n=2)

    tomorrow = NOW + dt.timedelta(days=1)
    engine.assign_cadence(
        1, QuestCategory.DAILY, engine.catalog.generate_cycle(QuestCategory.DAILY, tomorrow),
        DAILY_WATERMARK + dt.timedelta(days=1), tomorrow,
    )

    new_daily = {q.instance_id for q in state.active.values() if q.category is QuestCategory.DAILY}
    assert new_daily.isdisjoint(old_daily)
    assert len(new_daily) == 3
    assert weekly <= set(state.active)
    assert by_template(state, "daily_plant_seeds").objectives[0].current == 0
    assert by_template(state, "weekly_master_gardener").objectives[0].current == 1
