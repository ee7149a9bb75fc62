# =============================================================================
# File: farmcore/ledger.py
# Purpose: Per-player coin balances, add/spend/set operations, shop
#          transactions and a bounded transaction history.
# =============================================================================
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .errors import (
    EarningsCapExceeded,
    InsufficientFunds,
    InvalidAmount,
    TransactionRejected,
    UnknownPlayer,
)
from .stats import EconomyStats
from .throttle import AntiCheatThrottle

log = logging.getLogger(__name__)

# Reason used for coins granted by quest completion (not counted as "earned
# from sales" by the quest hooks).
QUEST_REWARD_REASON = "quest_reward"
AUTO_SELL_REASON = "auto_sell"


class TransactionType(str, Enum):
    EARN = "earn"
    SPEND = "spend"
    SET = "set_coins"
    ADMIN_ADD = "admin_add"


@dataclass(frozen=True)
class Transaction:
    type: TransactionType
    amount: int           # signed delta
    reason: str
    timestamp: float
    balance: int          # balance after the operation

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            type=TransactionType(data["type"]),
            amount=int(data["amount"]),
            reason=str(data.get("reason") or ""),
            timestamp=float(data.get("timestamp") or 0.0),
            balance=int(data.get("balance") or 0),
        )


class PlayerBalance:
    """Coins + history of a single player. Guarded by its own lock."""

    def __init__(self, player_id: int, coins: int, history_size: int) -> None:
        self.player_id = player_id
        self.coins = coins
        self.history: Deque[Transaction] = deque(maxlen=history_size)
        self.lock = threading.RLock()

    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "player_id": self.player_id,
                "coins": self.coins,
                "history": [t.to_dict() for t in self.history],
            }


TransactionListener = Callable[[int, Transaction], None]


def _coerce_amount(amount: Any) -> int:
    """Return amount as a strictly positive int, or raise InvalidAmount."""
    if isinstance(amount, bool):
        raise InvalidAmount("Amount must be a number", amount=amount)
    if isinstance(amount, float) and amount.is_integer():
        amount = int(amount)
    if not isinstance(amount, int):
        raise InvalidAmount("Amount must be an integer", amount=amount)
    if amount <= 0:
        raise InvalidAmount("Amount must be positive", amount=amount)
    return amount


class CurrencyLedger:
    """
    Authoritative in-memory coin ledger.

    All mutations of one player's balance happen inside that player's lock,
    so a read-modify-write is never observed half done. Different players
    never share a lock.

    Listeners registered with ``add_listener`` are called after the lock is
    released, with the committed Transaction.
    """

    def __init__(
        self,
        throttle: AntiCheatThrottle,
        stats: EconomyStats,
        prices=None,
        starting_coins: int = 100,
        history_size: int = 100,
        max_coins_per_transaction: int = 5000,
        rapid_transaction_seconds: float = 1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.throttle = throttle
        self.stats = stats
        self.prices = prices
        self.starting_coins = int(starting_coins)
        self.history_size = int(history_size)
        self.max_coins_per_transaction = int(max_coins_per_transaction)
        self.rapid_transaction_seconds = float(rapid_transaction_seconds)
        self._clock = clock

        self._balances: Dict[int, PlayerBalance] = {}
        self._registry_lock = threading.Lock()
        self._listeners: List[TransactionListener] = []

    # ------------------------------------------------------------------
    # Accounts (session lifecycle)
    # ------------------------------------------------------------------

    def open_account(
        self,
        player_id: int,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> PlayerBalance:
        """
        Create the in-memory balance for a joining player.

        With no snapshot the player starts with ``starting_coins``. Opening an
        account that already exists returns the existing one unchanged.
        """
        with self._registry_lock:
            existing = self._balances.get(player_id)
            if existing is not None:
                return existing

            coins = self.starting_coins
            history: List[Transaction] = []
            if snapshot:
                coins = max(0, int(snapshot.get("coins", self.starting_coins)))
                for raw in snapshot.get("history") or []:
                    try:
                        history.append(Transaction.from_dict(raw))
                    except (KeyError, TypeError, ValueError):
                        log.warning("Skipping malformed transaction for player %s: %r", player_id, raw)

            pb = PlayerBalance(player_id, coins, self.history_size)
            pb.history.extend(history)
            self._balances[player_id] = pb

            # Rejoining inside the same earnings window keeps the counter.
            if snapshot and snapshot.get("earnings_window") == self.throttle.window_started_at:
                self.throttle.restore(player_id, snapshot.get("hourly_earned") or 0)

        self.stats.apply_delta(coins)
        log.info("Player %s joined with %s coins", player_id, coins)
        return pb

    def close_account(self, player_id: int) -> Optional[Dict[str, Any]]:
        """Drop a leaving player's balance. Returns its final snapshot."""
        with self._registry_lock:
            pb = self._balances.pop(player_id, None)
        if pb is None:
            return None

        snap = pb.snapshot()
        self.stats.apply_delta(-snap["coins"])
        self.throttle.forget(player_id)
        log.info("Player %s left with %s coins", player_id, snap["coins"])
        return snap

    def has_account(self, player_id: int) -> bool:
        with self._registry_lock:
            return player_id in self._balances

    def player_ids(self) -> List[int]:
        with self._registry_lock:
            return list(self._balances)

    def balances(self) -> Dict[int, int]:
        """Point-in-time copy of every tracked balance."""
        with self._registry_lock:
            accounts = list(self._balances.values())
        result: Dict[int, int] = {}
        for pb in accounts:
            with pb.lock:
                result[pb.player_id] = pb.coins
        return result

    def snapshot(self, player_id: int) -> Dict[str, Any]:
        snap = self._account(player_id).snapshot()
        snap["hourly_earned"] = self.throttle.hourly_earned(player_id)
        snap["earnings_window"] = self.throttle.window_started_at
        return snap

    def _account(self, player_id: int) -> PlayerBalance:
        with self._registry_lock:
            pb = self._balances.get(player_id)
        if pb is None:
            raise UnknownPlayer(f"Player {player_id} has no active session", player_id=player_id)
        return pb

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: TransactionListener) -> None:
        self._listeners.append(listener)

    def _emit(self, player_id: int, tx: Transaction) -> None:
        for listener in list(self._listeners):
            try:
                listener(player_id, tx)
            except Exception:  # noqa: BLE001
                log.exception("Transaction listener failed for player %s", player_id)

    # ------------------------------------------------------------------
    # Coin management
    # ------------------------------------------------------------------

    def get_coins(self, player_id: int) -> int:
        with self._registry_lock:
            pb = self._balances.get(player_id)
        if pb is None:
            return 0
        with pb.lock:
            return pb.coins

    def can_afford(self, player_id: int, amount: int) -> bool:
        return self.get_coins(player_id) >= amount

    def add_coins(self, player_id: int, amount: Any, reason: str = "unknown") -> int:
        """
        Credit coins earned by gameplay. Returns the new balance.

        Raises:
            InvalidAmount: amount is not a positive integer
            EarningsCapExceeded: the hourly earnings cap would be exceeded
            UnknownPlayer: no active session for player_id
        """
        amount = _coerce_amount(amount)
        pb = self._account(player_id)

        with pb.lock:
            if not self.throttle.validate_earnings(player_id, amount):
                log.warning(
                    "Hourly earnings limit exceeded for player %s (+%s, earned %s/%s)",
                    player_id,
                    amount,
                    self.throttle.hourly_earned(player_id),
                    self.throttle.max_per_window,
                )
                raise EarningsCapExceeded(
                    "Hourly earnings limit exceeded",
                    amount=amount,
                    headroom=self.throttle.headroom(player_id),
                )

            pb.coins += amount
            self.throttle.record(player_id, amount)
            tx = self._log(pb, TransactionType.EARN, amount, reason)

        self.stats.apply_delta(amount)
        log.debug("Player %s earned %s coins (%s), total %s", player_id, amount, reason, tx.balance)
        self._emit(player_id, tx)
        return tx.balance

    def spend_coins(self, player_id: int, amount: Any, reason: str = "unknown") -> int:
        """
        Debit coins. Returns the new balance.

        Raises:
            InvalidAmount: amount is not a positive integer
            InsufficientFunds: balance < amount (balance unchanged)
            UnknownPlayer: no active session for player_id
        """
        amount = _coerce_amount(amount)
        pb = self._account(player_id)

        with pb.lock:
            if pb.coins < amount:
                log.warning(
                    "Player %s has insufficient coins (has %s, needs %s)",
                    player_id, pb.coins, amount,
                )
                raise InsufficientFunds(
                    "Insufficient coins", balance=pb.coins, required=amount
                )

            pb.coins -= amount
            tx = self._log(pb, TransactionType.SPEND, -amount, reason)

        self.stats.apply_delta(-amount)
        log.debug("Player %s spent %s coins (%s), remaining %s", player_id, amount, reason, tx.balance)
        self._emit(player_id, tx)
        return tx.balance

    def set_coins(self, player_id: int, amount: Any, reason: str = "admin/system") -> int:
        """
        Administrative overwrite. Clamps to a non-negative integer and
        bypasses the earnings cap. Logged as ``set_coins`` with the delta.
        """
        try:
            value = max(0, int(amount))
        except (TypeError, ValueError):
            raise InvalidAmount("Amount must be a number", amount=amount) from None

        pb = self._account(player_id)
        with pb.lock:
            delta = value - pb.coins
            pb.coins = value
            tx = self._log(pb, TransactionType.SET, delta, reason)

        self.stats.apply_delta(delta)
        log.info("Set player %s coins to %s", player_id, value)
        self._emit(player_id, tx)
        return value

    def admin_add_coins(self, player_id: int, amount: Any) -> int:
        """Admin credit without cap validation. Balance never goes below 0."""
        try:
            amount = int(amount)
        except (TypeError, ValueError):
            raise InvalidAmount("Amount must be a number", amount=amount) from None

        pb = self._account(player_id)
        with pb.lock:
            new_value = max(0, pb.coins + amount)
            delta = new_value - pb.coins
            pb.coins = new_value
            tx = self._log(pb, TransactionType.ADMIN_ADD, delta, "admin_command")

        self.stats.apply_delta(delta)
        log.info("Admin gave %s coins to player %s", delta, player_id)
        self._emit(player_id, tx)
        return new_value

    # ------------------------------------------------------------------
    # Shop transactions
    # ------------------------------------------------------------------

    def validate_transaction(
        self,
        player_id: int,
        kind: TransactionType,
        amount: int,
        now: Optional[float] = None,
    ) -> None:
        """
        Reject rapid-fire transactions and oversized spends.

        Raises TransactionRejected; returns None when the transaction is fine.
        """
        if now is None:
            now = self._clock()

        last = self.last_transaction(player_id)
        if last is not None and (now - last.timestamp) < self.rapid_transaction_seconds:
            log.warning("Rapid transaction detected for player %s", player_id)
            raise TransactionRejected("Too many transactions", reason="rapid_transaction")

        if kind == TransactionType.SPEND and amount > self.max_coins_per_transaction:
            log.warning("Transaction amount too large for player %s: %s", player_id, amount)
            raise TransactionRejected(
                "Transaction amount too large",
                reason="amount_too_large",
                limit=self.max_coins_per_transaction,
            )

    def buy_seeds(self, player_id: int, plant_type: str, quantity: int = 1) -> Tuple[int, int]:
        """
        Pay for seeds at the configured buy price.

        Returns (quantity, total_cost). Raises UnknownItem, InvalidAmount,
        TransactionRejected or InsufficientFunds.
        """
        quantity = _coerce_amount(quantity)
        total_cost = self.prices.get_buy_price(plant_type) * quantity
        self.validate_transaction(player_id, TransactionType.SPEND, total_cost)
        self.spend_coins(player_id, total_cost, f"seed_purchase:{plant_type}")
        log.info("Player %s bought %s %s seeds for %s coins", player_id, quantity, plant_type, total_cost)
        return quantity, total_cost

    def sell_plant(
        self,
        player_id: int,
        plant_type: str,
        quantity: int = 1,
        reason: Optional[str] = None,
    ) -> int:
        """
        Sell harvested crops at the configured sell price. Returns earnings.

        The auto-sell queue goes through here too (reason="auto_sell").
        """
        quantity = _coerce_amount(quantity)
        earnings = self.prices.get_sell_price(plant_type) * quantity
        self.add_coins(player_id, earnings, reason or f"plant_sale:{plant_type}")
        return earnings

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _log(self, pb: PlayerBalance, kind: TransactionType, amount: int, reason: str) -> Transaction:
        # Caller holds pb.lock
        tx = Transaction(
            type=kind,
            amount=amount,
            reason=reason or "unknown",
            timestamp=self._clock(),
            balance=pb.coins,
        )
        pb.history.append(tx)
        self.stats.count_transaction()
        return tx

    def last_transaction(self, player_id: int) -> Optional[Transaction]:
        pb = self._account(player_id)
        with pb.lock:
            return pb.history[-1] if pb.history else None

    def get_transaction_history(self, player_id: int, limit: int = 10) -> List[Transaction]:
        """Most recent ``limit`` transactions, oldest first."""
        pb = self._account(player_id)
        with pb.lock:
            history = list(pb.history)
        if limit <= 0:
            return []
        return history[-limit:]
