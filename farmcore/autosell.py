# farmcore/autosell.py
# VIP auto-sell: harvested crops wait in a per-player FIFO and are sold one
# per player per tick through the ledger's normal sale path.

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from .errors import FarmcoreError
from .ledger import AUTO_SELL_REASON, CurrencyLedger

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutoSellEntry:
    plot_id: str
    item_type: str
    enqueued_at: float


class AutoSellQueue:
    def __init__(
        self,
        ledger: CurrencyLedger,
        entitlements,
        notifier=None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.entitlements = entitlements
        self.notifier = notifier
        self._clock = clock
        self._queues: Dict[int, Deque[AutoSellEntry]] = {}
        self._lock = threading.Lock()

    def enqueue(self, player_id: int, plot_id: str, item_type: str) -> bool:
        """
        Queue a harvested crop for automatic sale.

        Returns False (and queues nothing) when the player has no auto-sell
        entitlement.
        """
        if not self.entitlements.is_auto_sell_entitled(player_id):
            return False

        entry = AutoSellEntry(plot_id=str(plot_id), item_type=item_type, enqueued_at=self._clock())
        with self._lock:
            self._queues.setdefault(player_id, deque()).append(entry)

        log.debug("Queued plot %s (%s) for auto-sell, player %s", plot_id, item_type, player_id)
        return True

    def pending(self, player_id: int) -> List[AutoSellEntry]:
        with self._lock:
            return list(self._queues.get(player_id, ()))

    def queue_length(self, player_id: int) -> int:
        with self._lock:
            return len(self._queues.get(player_id, ()))

    def discard(self, player_id: int) -> int:
        """Drop a leaving player's queue. Returns how many entries were lost."""
        with self._lock:
            queue = self._queues.pop(player_id, None)
        return len(queue) if queue else 0

    def _pop_heads(self) -> Dict[int, AutoSellEntry]:
        heads: Dict[int, AutoSellEntry] = {}
        with self._lock:
            for player_id, queue in list(self._queues.items()):
                if queue:
                    heads[player_id] = queue.popleft()
                if not queue:
                    del self._queues[player_id]
        return heads

    def process_tick(self) -> Dict[int, Optional[int]]:
        """
        Sell exactly one queued crop per player.

        A failed sale (cap exceeded, unknown crop, player gone...) drops the
        entry; it is not requeued. Returns {player_id: earnings or None}.
        """
        results: Dict[int, Optional[int]] = {}

        for player_id, entry in self._pop_heads().items():
            try:
                earnings = self.ledger.sell_plant(
                    player_id, entry.item_type, 1, reason=AUTO_SELL_REASON
                )
            except FarmcoreError as exc:
                log.warning(
                    "Auto-sell of %s (plot %s) failed for player %s: %s, entry dropped",
                    entry.item_type, entry.plot_id, player_id, exc.code,
                )
                results[player_id] = None
                continue
            except Exception:  # noqa: BLE001
                log.exception("Auto-sell crashed for player %s", player_id)
                results[player_id] = None
                continue

            results[player_id] = earnings
            log.info(
                "Auto-sold %s from plot %s for %s coins (player %s)",
                entry.item_type, entry.plot_id, earnings, player_id,
            )
            self._notify_sale(player_id, entry, earnings)

        return results

    def _notify_sale(self, player_id: int, entry: AutoSellEntry, earnings: int) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(
                player_id,
                "Auto-sold!",
                f"{entry.item_type} sold for {earnings} coins",
                "💰",
                "economy",
            )
        except Exception:  # noqa: BLE001
            log.exception("Auto-sell notification failed for player %s", player_id)
