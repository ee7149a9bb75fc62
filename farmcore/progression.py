# =============================================================================
# File: farmcore/progression.py
# Purpose: In-process XP / level tracker loaded from levels.yml. Default sink
#          for quest XP rewards; level-ups are reported back to quests.
# =============================================================================
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import yaml

from .config import DATA_DIR

log = logging.getLogger(__name__)

LEVELS_FILE = DATA_DIR / "levels.yml"

_DEFAULT_THRESHOLDS = [0, 100, 250, 450, 700, 1000, 1400, 1900, 2500, 3200]


# =============================================================================
# Levels loading
# =============================================================================
def load_levels(path: Path | None = None) -> Dict[int, int]:
    """
    Load level thresholds into {level: total xp required}.

    Expected YAML structure:
      levels:
        - level: 1
          xp_required: 0
        - level: 2
          xp_required: 100
    """
    path = path or LEVELS_FILE
    if not path.exists():
        log.warning("levels.yml not found (%s), using default thresholds.", path)
        return {idx: thr for idx, thr in enumerate(_DEFAULT_THRESHOLDS, start=1)}

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        levels = {
            int(entry["level"]): int(entry.get("xp_required", 0))
            for entry in raw.get("levels", []) or []
        }
    except (KeyError, TypeError, ValueError, yaml.YAMLError) as exc:
        log.error("Could not read levels.yml: %s", exc)
        levels = {}

    return levels or {idx: thr for idx, thr in enumerate(_DEFAULT_THRESHOLDS, start=1)}


# =============================================================================
# XP / level helpers
# =============================================================================
def level_for_xp(levels: Dict[int, int], xp: int) -> int:
    """Highest level whose threshold is <= xp (levels start at 1)."""
    lvl = 1
    for level in sorted(levels):
        if xp >= levels[level]:
            lvl = level
        else:
            break
    return lvl


def next_threshold(levels: Dict[int, int], current_level: int) -> int | None:
    """XP required for the next level, or None if already at max level."""
    if not levels or current_level >= max(levels):
        return None
    return levels.get(current_level + 1)


LevelUpListener = Callable[[int, int], None]


class ProgressionTracker:
    """Per-player XP and level for the players currently in session."""

    def __init__(self, levels: Optional[Dict[int, int]] = None) -> None:
        self.levels = levels if levels is not None else load_levels()
        self._xp: Dict[int, int] = {}
        self._level: Dict[int, int] = {}
        self._lock = threading.Lock()
        self._listeners: List[LevelUpListener] = []

    def add_listener(self, listener: LevelUpListener) -> None:
        self._listeners.append(listener)

    def load(self, player_id: int, xp: int = 0) -> None:
        xp = max(0, int(xp))
        with self._lock:
            self._xp[player_id] = xp
            self._level[player_id] = level_for_xp(self.levels, xp)

    def forget(self, player_id: int) -> None:
        with self._lock:
            self._xp.pop(player_id, None)
            self._level.pop(player_id, None)

    def xp(self, player_id: int) -> int:
        with self._lock:
            return self._xp.get(player_id, 0)

    def level(self, player_id: int) -> int:
        with self._lock:
            return self._level.get(player_id, 1)

    def add_xp(self, player_id: int, amount: int) -> Tuple[bool, int]:
        """
        Apply XP and handle level-ups.

        Returns (level_up, new_level). Listeners are told about every level
        reached, one call per level.
        """
        if amount <= 0:
            return False, self.level(player_id)

        with self._lock:
            old_level = self._level.get(player_id, 1)
            xp = self._xp.get(player_id, 0) + int(amount)
            new_level = level_for_xp(self.levels, xp)
            self._xp[player_id] = xp
            self._level[player_id] = max(old_level, new_level)

        if new_level <= old_level:
            return False, old_level

        log.info("Player %s reached level %s (%s xp)", player_id, new_level, xp)
        for lvl in range(old_level + 1, new_level + 1):
            for listener in list(self._listeners):
                try:
                    listener(player_id, lvl)
                except Exception:  # noqa: BLE001
                    log.exception("Level-up listener failed for player %s", player_id)
        return True, new_level

    def summary(self, player_id: int) -> Dict[str, Optional[int]]:
        level = self.level(player_id)
        return {
            "xp": self.xp(player_id),
            "level": level,
            "next_threshold": next_threshold(self.levels, level),
        }
