# =============================================================================
# File: farmcore/services.py
# Purpose: Build and wire every component once (GameServices) and run the
#          session lifecycle: join -> load/assign, leave -> save/discard.
# =============================================================================
from __future__ import annotations

import datetime as dt
import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from .autosell import AutoSellQueue
from .collaborators import InMemoryEntitlements, OutboxNotifier, SessionRegistry
from .config import EconomyConfig, load_economy_config
from .economy import StaticPriceTable
from .errors import PersistenceUnavailable
from .ledger import QUEST_REWARD_REASON, CurrencyLedger, Transaction, TransactionType
from .persistence import MemorySnapshotStore, economy_key, quests_key
from .progression import ProgressionTracker
from .quests import ActionKind, QuestCatalog, QuestEngine, ResetScheduler, load_quest_data
from .quests.models import QuestInstance
from .rewards import InProcessRewardSink, Inventory, RewardDistributor
from .scheduler import TaskScheduler
from .stats import EconomyStats
from .throttle import AntiCheatThrottle

log = logging.getLogger(__name__)


@dataclass
class GameServices:
    config: EconomyConfig
    stats: EconomyStats
    throttle: AntiCheatThrottle
    prices: StaticPriceTable
    ledger: CurrencyLedger
    entitlements: Any
    notifier: Any
    sessions: SessionRegistry
    autosell: AutoSellQueue
    progression: ProgressionTracker
    inventory: Inventory
    rewards: RewardDistributor
    catalog: QuestCatalog
    quests: QuestEngine
    resets: ResetScheduler
    store: Any
    scheduler: TaskScheduler

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def player_joined(self, player_id: int, now: Optional[dt.datetime] = None) -> bool:
        """
        Load (or create) everything a player needs. Returns False if the
        player already had a session.
        """
        if not self.sessions.join(player_id):
            return False

        economy = self._load(economy_key(player_id))
        quests = self._load(quests_key(player_id))

        self.ledger.open_account(player_id, economy)
        self.progression.load(player_id, (economy or {}).get("xp", 0))
        self.inventory.load(player_id, (economy or {}).get("items") or {})
        self.quests.load_player(player_id, quests)
        self.resets.catch_up(player_id, now)
        return True

    def player_left(self, player_id: int) -> bool:
        """Save (fire-and-forget) then drop every piece of per-player state."""
        if not self.sessions.leave(player_id):
            return False

        self.save_player(player_id)

        self.ledger.close_account(player_id)
        self.quests.unload_player(player_id)
        lost = self.autosell.discard(player_id)
        if lost:
            log.info("Dropped %s pending auto-sales for leaving player %s", lost, player_id)
        self.progression.forget(player_id)
        self.inventory.forget(player_id)
        return True

    def current_players(self) -> Set[int]:
        return self.sessions.current_players()

    def _load(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            return self.store.load_snapshot(key)
        except PersistenceUnavailable:
            log.warning("Could not load %s, starting from fresh state", key)
            return None

    def economy_snapshot(self, player_id: int) -> Dict[str, Any]:
        blob = self.ledger.snapshot(player_id)
        blob["xp"] = self.progression.xp(player_id)
        blob["items"] = self.inventory.items(player_id)
        return blob

    def save_player(self, player_id: int) -> None:
        try:
            self.store.save_snapshot(economy_key(player_id), self.economy_snapshot(player_id))
            self.store.save_snapshot(quests_key(player_id), self.quests.snapshot(player_id))
        except Exception:  # noqa: BLE001
            log.exception("Could not queue snapshots for player %s", player_id)

    def save_all(self) -> None:
        for player_id in self.current_players():
            self.save_player(player_id)

    # ------------------------------------------------------------------
    # Gameplay entry points
    # ------------------------------------------------------------------

    def report_action(
        self,
        player_id: int,
        action: ActionKind,
        data: Optional[Dict[str, Any]] = None,
        now: Optional[dt.datetime] = None,
    ) -> List[QuestInstance]:
        return self.quests.update_progress(player_id, ActionKind(action), data, now)

    def harvest(self, player_id: int, plot_id: str, plant_type: str) -> bool:
        """Report a harvest; VIP crops go to the auto-sell queue. Returns True if queued."""
        self.quests.update_progress(player_id, ActionKind.HARVEST_PLANT, {"plant_type": plant_type})
        return self.autosell.enqueue(player_id, plot_id, plant_type)

    def _on_transaction(self, player_id: int, tx: Transaction) -> None:
        if tx.type == TransactionType.EARN and tx.reason != QUEST_REWARD_REASON:
            self.quests.update_progress(player_id, ActionKind.EARN_COINS, {"amount": tx.amount})
        elif tx.type == TransactionType.SPEND:
            self.quests.update_progress(player_id, ActionKind.SPEND_COINS, {"amount": -tx.amount})

    def _on_level_up(self, player_id: int, level: int) -> None:
        self.quests.update_progress(player_id, ActionKind.LEVEL_UP, {"level": level})

    # ------------------------------------------------------------------
    # Periodic passes
    # ------------------------------------------------------------------

    def earnings_reset_pass(self) -> bool:
        return self.throttle.maybe_reset()

    def auto_sell_pass(self) -> Dict[int, Optional[int]]:
        return self.autosell.process_tick()

    def quest_maintenance_pass(self, now: Optional[dt.datetime] = None) -> None:
        self.resets.check(now)
        self.quests.expire_sweep(now)
        self.quests.integrity_sweep(now)

    def economy_stats_pass(self) -> Dict[str, object]:
        balances = self.ledger.balances()
        self.stats.recompute(balances)
        if not self.stats.is_consistent_with(balances):
            log.warning("Coins in circulation drifted from the sum of balances")
        return self.stats.report()

    def start(self) -> None:
        self.scheduler.start()

    def shutdown(self) -> None:
        log.info("Shutting down, saving %s players", len(self.current_players()))
        self.scheduler.stop(flush=True)


def build_services(
    config: Optional[EconomyConfig] = None,
    *,
    store=None,
    entitlements=None,
    notifier=None,
    quests_path: Optional[Path] = None,
    levels: Optional[Dict[int, int]] = None,
    rng: Optional[random.Random] = None,
    clock: Callable[[], float] = time.time,
    now: Optional[dt.datetime] = None,
) -> GameServices:
    """Build every component once, wire the listeners and register the periodic tasks."""
    config = config or load_economy_config()
    store = store if store is not None else MemorySnapshotStore()
    entitlements = entitlements if entitlements is not None else InMemoryEntitlements()
    notifier = notifier if notifier is not None else OutboxNotifier()

    stats = EconomyStats()
    throttle = AntiCheatThrottle(config.max_coins_per_hour, config.earnings_window_seconds, clock=clock)
    prices = StaticPriceTable(config.plants)
    ledger = CurrencyLedger(
        throttle,
        stats,
        prices=prices,
        starting_coins=config.starting_coins,
        history_size=config.history_size,
        max_coins_per_transaction=config.max_coins_per_transaction,
        rapid_transaction_seconds=config.rapid_transaction_seconds,
        clock=clock,
    )
    autosell = AutoSellQueue(ledger, entitlements, notifier, clock=clock)

    progression = ProgressionTracker(levels)
    inventory = Inventory()
    rewards = RewardDistributor(InProcessRewardSink(ledger, progression, inventory))

    templates, rarities = load_quest_data(quests_path)
    catalog = QuestCatalog(templates, rarities, rng=rng)
    quests = QuestEngine(catalog, rewards, notifier=notifier, entitlements=entitlements)
    resets = ResetScheduler(catalog, quests, now=now)

    scheduler = TaskScheduler()
    services = GameServices(
        config=config,
        stats=stats,
        throttle=throttle,
        prices=prices,
        ledger=ledger,
        entitlements=entitlements,
        notifier=notifier,
        sessions=SessionRegistry(),
        autosell=autosell,
        progression=progression,
        inventory=inventory,
        rewards=rewards,
        catalog=catalog,
        quests=quests,
        resets=resets,
        store=store,
        scheduler=scheduler,
    )

    ledger.add_listener(services._on_transaction)
    progression.add_listener(services._on_level_up)

    scheduler.add_task("earnings_reset", config.earnings_window_seconds, services.earnings_reset_pass)
    scheduler.add_task("auto_sell", config.auto_sell_interval_seconds, services.auto_sell_pass)
    scheduler.add_task("quest_maintenance", config.quest_sweep_interval_seconds, services.quest_maintenance_pass)
    scheduler.add_task("economy_stats", config.stats_interval_seconds, services.economy_stats_pass)
    scheduler.add_stop_hook(services.save_all)
    scheduler.add_stop_hook(store.flush)

    return services
