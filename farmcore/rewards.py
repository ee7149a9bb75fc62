# farmcore/rewards.py
# Quest reward application through the reward sink interface, plus the
# in-process sink (ledger + progression + inventory) used by GameServices.

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Dict

from .errors import FarmcoreError
from .ledger import QUEST_REWARD_REASON, CurrencyLedger
from .progression import ProgressionTracker
from .quests.models import RewardBundle

log = logging.getLogger(__name__)


class Inventory:
    """Item counts per player (quest item rewards land here)."""

    def __init__(self) -> None:
        self._items: Dict[int, Counter] = {}
        self._lock = threading.Lock()

    def add(self, player_id: int, item_id: str, qty: int = 1) -> int:
        with self._lock:
            bag = self._items.setdefault(player_id, Counter())
            bag[item_id] += int(qty)
            return bag[item_id]

    def items(self, player_id: int) -> Dict[str, int]:
        with self._lock:
            return dict(self._items.get(player_id, {}))

    def load(self, player_id: int, items: Dict[str, int]) -> None:
        with self._lock:
            self._items[player_id] = Counter({str(k): int(v) for k, v in (items or {}).items()})

    def forget(self, player_id: int) -> None:
        with self._lock:
            self._items.pop(player_id, None)


class InProcessRewardSink:
    def __init__(self, ledger: CurrencyLedger, progression: ProgressionTracker, inventory: Inventory) -> None:
        self.ledger = ledger
        self.progression = progression
        self.inventory = inventory

    def grant_currency(self, player_id: int, amount: int) -> None:
        # Subject to the hourly cap like any other earning
        self.ledger.add_coins(player_id, amount, QUEST_REWARD_REASON)

    def grant_experience(self, player_id: int, amount: int) -> None:
        self.progression.add_xp(player_id, amount)

    def grant_item(self, player_id: int, item_id: str, qty: int = 1) -> None:
        self.inventory.add(player_id, item_id, qty)


class RewardDistributor:
    """
    Apply a quest's rewards. Each grant is independent: a failed grant is
    logged and the others still go through. Nothing is rolled back.
    """

    def __init__(self, sink) -> None:
        self.sink = sink

    def distribute(self, player_id: int, rewards: RewardBundle) -> Dict[str, bool]:
        results: Dict[str, bool] = {}

        if rewards.coins > 0:
            results["coins"] = self._grant(
                player_id, "coins", self.sink.grant_currency, player_id, rewards.coins
            )
        if rewards.xp > 0:
            results["xp"] = self._grant(
                player_id, "xp", self.sink.grant_experience, player_id, rewards.xp
            )
        for item_id in rewards.items:
            results[f"item:{item_id}"] = self._grant(
                player_id, item_id, self.sink.grant_item, player_id, item_id, 1
            )

        return results

    @staticmethod
    def _grant(player_id: int, label: str, fn, *args) -> bool:
        try:
            fn(*args)
        except FarmcoreError as exc:
            log.warning("Reward %s not granted to player %s: %s", label, player_id, exc.code)
            return False
        except Exception:  # noqa: BLE001
            log.exception("Reward %s crashed for player %s", label, player_id)
            return False
        return True
