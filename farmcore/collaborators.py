# farmcore/collaborators.py
# Interfaces the core calls into (entitlements, notifications, rewards,
# sessions, snapshots) plus the small in-process implementations used by
# the Flask bridge and the tests.

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Protocol, Set

log = logging.getLogger(__name__)


# =============================================================================
# Interfaces
# =============================================================================

class Entitlements(Protocol):
    def is_auto_sell_entitled(self, player_id: int) -> bool: ...

    def is_premium_entitled(self, player_id: int) -> bool: ...


class PriceTable(Protocol):
    def get_sell_price(self, item_type: str) -> int: ...

    def get_buy_price(self, item_type: str) -> int: ...


class Notifier(Protocol):
    def notify(self, player_id: int, title: str, body: str, icon: str = "", category: str = "info") -> None: ...


class RewardSink(Protocol):
    def grant_currency(self, player_id: int, amount: int) -> None: ...

    def grant_experience(self, player_id: int, amount: int) -> None: ...

    def grant_item(self, player_id: int, item_id: str, qty: int = 1) -> None: ...


class SnapshotStore(Protocol):
    def save_snapshot(self, key: str, blob: Dict[str, Any]) -> None: ...

    def load_snapshot(self, key: str) -> Optional[Dict[str, Any]]: ...


# =============================================================================
# In-process implementations
# =============================================================================

class InMemoryEntitlements:
    """VIP membership kept in memory. VIP grants both auto-sell and premium."""

    def __init__(self, vip_ids: Iterable[int] = ()) -> None:
        self._vip: Set[int] = set(vip_ids)
        self._lock = threading.Lock()

    def grant_vip(self, player_id: int) -> None:
        with self._lock:
            self._vip.add(player_id)

    def revoke_vip(self, player_id: int) -> None:
        with self._lock:
            self._vip.discard(player_id)

    def is_auto_sell_entitled(self, player_id: int) -> bool:
        with self._lock:
            return player_id in self._vip

    def is_premium_entitled(self, player_id: int) -> bool:
        with self._lock:
            return player_id in self._vip


class OutboxNotifier:
    """
    Fire-and-forget notifications: logged, and kept in a small per-player
    outbox that the client bridge drains (GET /api/notifications).
    """

    def __init__(self, max_per_player: int = 50) -> None:
        self.max_per_player = max_per_player
        self._outbox: Dict[int, Deque[Dict[str, str]]] = {}
        self._lock = threading.Lock()

    def notify(self, player_id: int, title: str, body: str, icon: str = "", category: str = "info") -> None:
        log.info("notify player=%s [%s] %s: %s", player_id, category, title, body)
        with self._lock:
            box = self._outbox.setdefault(player_id, deque(maxlen=self.max_per_player))
            box.append({"title": title, "body": body, "icon": icon, "category": category})

    def peek(self, player_id: int) -> List[Dict[str, str]]:
        with self._lock:
            return list(self._outbox.get(player_id, ()))

    def drain(self, player_id: int) -> List[Dict[str, str]]:
        with self._lock:
            box = self._outbox.pop(player_id, None)
        return list(box) if box else []


class SessionRegistry:
    """Set of player ids with a live session."""

    def __init__(self) -> None:
        self._players: Set[int] = set()
        self._lock = threading.Lock()

    def join(self, player_id: int) -> bool:
        with self._lock:
            if player_id in self._players:
                return False
            self._players.add(player_id)
            return True

    def leave(self, player_id: int) -> bool:
        with self._lock:
            if player_id not in self._players:
                return False
            self._players.discard(player_id)
            return True

    def current_players(self) -> Set[int]:
        with self._lock:
            return set(self._players)

    def __contains__(self, player_id: int) -> bool:
        with self._lock:
            return player_id in self._players
