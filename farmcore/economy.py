# farmcore/economy.py
# Purpose: Static plant price table (buy seeds / sell crops), config-driven.

from __future__ import annotations

from typing import Dict, List

from .errors import UnknownItem


class StaticPriceTable:
    """Price lookup collaborator backed by the economy config's plant table."""

    def __init__(self, plants: Dict[str, Dict[str, int]]) -> None:
        self._plants = {name: dict(cfg) for name, cfg in plants.items()}

    def _get(self, item_type: str) -> Dict[str, int]:
        cfg = self._plants.get(item_type)
        if cfg is None:
            raise UnknownItem(f"Unknown plant type: {item_type}", item_type=item_type)
        return cfg

    def get_sell_price(self, item_type: str) -> int:
        """Return unit sell price for a crop. Raises UnknownItem."""
        return int(self._get(item_type)["sell_price"])

    def get_buy_price(self, item_type: str) -> int:
        """Return unit seed price. Raises UnknownItem."""
        return int(self._get(item_type)["buy_price"])

    def plants_for_level(self, level: int) -> List[str]:
        return [name for name, cfg in self._plants.items() if cfg.get("unlock_level", 1) <= level]

    def list_prices(self) -> List[Dict[str, object]]:
        """Return a serializable view of all prices."""
        return [
            {"plant": name, "buy_price": cfg["buy_price"], "sell_price": cfg["sell_price"]}
            for name, cfg in self._plants.items()
        ]
