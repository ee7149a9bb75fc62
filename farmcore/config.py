# File: farmcore/config.py
# Purpose: Load economy tuning values from data/economy.yml (+ env overrides)
#          with hard-coded defaults when the YAML is missing or invalid.

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

load_dotenv()

log = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"
ECONOMY_YAML_PATH = DATA_DIR / "economy.yml"


def _default_plants() -> Dict[str, Dict[str, int]]:
    """Fallback price table if the YAML is missing or has no plants."""
    return {
        "Tomato": {"buy_price": 10, "sell_price": 25, "xp_reward": 15, "unlock_level": 1},
        "Carrot": {"buy_price": 15, "sell_price": 35, "xp_reward": 20, "unlock_level": 3},
        "Lettuce": {"buy_price": 20, "sell_price": 50, "xp_reward": 25, "unlock_level": 5},
        "Corn": {"buy_price": 30, "sell_price": 75, "xp_reward": 35, "unlock_level": 8},
    }


@dataclass(frozen=True)
class EconomyConfig:
    starting_coins: int = 100
    max_coins_per_hour: int = 10000
    earnings_window_seconds: int = 3600
    auto_sell_interval_seconds: float = 5
    max_coins_per_transaction: int = 5000
    rapid_transaction_seconds: float = 1
    history_size: int = 100
    stats_interval_seconds: float = 60
    quest_sweep_interval_seconds: float = 30
    plants: Dict[str, Dict[str, int]] = field(default_factory=_default_plants)

    def with_overrides(self, **changes: Any) -> "EconomyConfig":
        """Return a copy with some fields replaced (tests, admin tooling)."""
        return replace(self, **changes)


# Scalar keys accepted from YAML / env, with the type they are coerced to.
_SCALARS = {
    "starting_coins": int,
    "max_coins_per_hour": int,
    "earnings_window_seconds": int,
    "auto_sell_interval_seconds": float,
    "max_coins_per_transaction": int,
    "rapid_transaction_seconds": float,
    "history_size": int,
    "stats_interval_seconds": float,
    "quest_sweep_interval_seconds": float,
}


def _clean_plants(raw: Any) -> Dict[str, Dict[str, int]]:
    if not isinstance(raw, dict):
        return _default_plants()

    plants: Dict[str, Dict[str, int]] = {}
    for name, cfg in raw.items():
        if not isinstance(cfg, dict):
            log.warning("economy.yml: plant '%s' ignored (not a mapping).", name)
            continue
        try:
            plants[str(name)] = {
                "buy_price": int(cfg.get("buy_price", 0)),
                "sell_price": int(cfg.get("sell_price", 0)),
                "xp_reward": int(cfg.get("xp_reward", 0)),
                "unlock_level": int(cfg.get("unlock_level", 1)),
            }
        except (TypeError, ValueError):
            log.warning("economy.yml: plant '%s' ignored (invalid numbers).", name)

    return plants or _default_plants()


def load_economy_config(path: Path | None = None) -> EconomyConfig:
    """
    Load the economy configuration.

    - Reads data/economy.yml (section "economy" + section "plants")
    - Each invalid value falls back to its default
    - FARMCORE_<KEY> environment variables override YAML scalars
    """
    path = path or ECONOMY_YAML_PATH
    defaults = EconomyConfig()
    values: Dict[str, Any] = {}

    raw: Dict[str, Any] = {}
    if not path.exists():
        log.warning("economy.yml not found (%s), using defaults.", path)
    else:
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except Exception as e:
            log.error("Could not read %s: %s", path, e)
            raw = {}

    section = raw.get("economy") if isinstance(raw, dict) else None
    section = section if isinstance(section, dict) else {}

    for key, cast in _SCALARS.items():
        value = os.getenv(f"FARMCORE_{key.upper()}", section.get(key))
        if value is None:
            continue
        try:
            values[key] = cast(value)
        except (TypeError, ValueError):
            log.warning("economy config: invalid %s=%r, keeping %s", key, value, getattr(defaults, key))

    plants_raw = raw.get("plants") if isinstance(raw, dict) else None
    values["plants"] = _clean_plants(plants_raw) if plants_raw is not None else _default_plants()

    return EconomyConfig(**values)
