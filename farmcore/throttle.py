# farmcore/throttle.py
# Anti-cheat earnings cap: one hourly counter per player, all counters reset
# together when the global window rolls over.

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

log = logging.getLogger(__name__)


class AntiCheatThrottle:
    """
    Coarse cap on coins earned per window (default: 3600 s).

    ``validate_earnings`` is a pure check. The ledger calls ``record`` after
    it has accepted a grant, inside its own per-player critical section.
    """

    def __init__(
        self,
        max_per_window: int,
        window_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_per_window = int(max_per_window)
        self.window_seconds = int(window_seconds)
        self._clock = clock
        self._earned: Dict[int, int] = {}
        self._lock = threading.Lock()
        self.window_started_at: float = clock()

    # ------------------------------------------------------------------
    # Per-player counter
    # ------------------------------------------------------------------

    def hourly_earned(self, player_id: int) -> int:
        with self._lock:
            return self._earned.get(player_id, 0)

    def headroom(self, player_id: int) -> int:
        return max(0, self.max_per_window - self.hourly_earned(player_id))

    def validate_earnings(self, player_id: int, amount: int) -> bool:
        """True iff hourly_earned + amount stays within the cap."""
        return self.hourly_earned(player_id) + int(amount) <= self.max_per_window

    def record(self, player_id: int, amount: int) -> int:
        with self._lock:
            total = self._earned.get(player_id, 0) + int(amount)
            self._earned[player_id] = total
            return total

    def restore(self, player_id: int, earned: int) -> None:
        with self._lock:
            self._earned[player_id] = max(0, int(earned))

    def forget(self, player_id: int) -> None:
        with self._lock:
            self._earned.pop(player_id, None)

    # ------------------------------------------------------------------
    # Global window
    # ------------------------------------------------------------------

    def reset_all(self) -> None:
        """Zero every counter at once (the hourly edge)."""
        with self._lock:
            for player_id in self._earned:
                self._earned[player_id] = 0
        log.info("Hourly earnings reset for %s players", len(self._earned))

    def maybe_reset(self, now: Optional[float] = None) -> bool:
        """
        Reset all counters if the current window has elapsed.

        The window start advances by whole windows so the edge stays aligned
        even when the check runs late.
        """
        if now is None:
            now = self._clock()

        if now < self.window_started_at + self.window_seconds:
            return False

        elapsed_windows = int((now - self.window_started_at) // self.window_seconds)
        self.window_started_at += elapsed_windows * self.window_seconds
        self.reset_all()
        return True
