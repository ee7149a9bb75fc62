# farmcore/stats.py
# Derived economy statistics. Never authoritative: everything here can be
# rebuilt from the set of tracked balances.

from __future__ import annotations

import threading
from typing import Dict, Iterable, Mapping

# (label, inclusive upper bound); the last band has no upper bound.
WEALTH_BANDS = (
    ("poor", 100),
    ("middle", 1000),
    ("rich", 5000),
    ("wealthy", None),
)


def wealth_band(coins: int) -> str:
    for label, upper in WEALTH_BANDS:
        if upper is None or coins <= upper:
            return label
    return WEALTH_BANDS[-1][0]


def wealth_distribution(balances: Iterable[int]) -> Dict[str, int]:
    distribution = {label: 0 for label, _ in WEALTH_BANDS}
    for coins in balances:
        distribution[wealth_band(coins)] += 1
    return distribution


class EconomyStats:
    """
    Running totals updated on every ledger mutation.

    ``total_coins_in_circulation`` moves incrementally (+delta per mutation,
    +balance on join, -balance on leave). Average wealth and the wealth bands
    are only refreshed by ``recompute``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total_coins_in_circulation = 0
        self.total_transactions = 0
        self.average_player_wealth = 0.0
        self.active_players = 0
        self.distribution: Dict[str, int] = wealth_distribution([])

    def apply_delta(self, delta: int) -> None:
        with self._lock:
            self.total_coins_in_circulation += int(delta)

    def count_transaction(self) -> None:
        with self._lock:
            self.total_transactions += 1

    def recompute(self, balances: Mapping[int, int]) -> None:
        """Full refresh of the per-player derived figures."""
        values = list(balances.values())
        with self._lock:
            self.active_players = len(values)
            self.average_player_wealth = (sum(values) / len(values)) if values else 0.0
            self.distribution = wealth_distribution(values)

    def is_consistent_with(self, balances: Mapping[int, int]) -> bool:
        with self._lock:
            return self.total_coins_in_circulation == sum(balances.values())

    def report(self) -> Dict[str, object]:
        with self._lock:
            return {
                "total_coins": self.total_coins_in_circulation,
                "total_transactions": self.total_transactions,
                "average_wealth": self.average_player_wealth,
                "active_players": self.active_players,
                "wealth_distribution": dict(self.distribution),
            }
