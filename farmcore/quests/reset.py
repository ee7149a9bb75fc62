# farmcore/quests/reset.py
# Daily / weekly quest cycles: global watermarks, regeneration and
# reassignment to every tracked player.

from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import List, Optional

from .catalog import QuestCatalog, utcnow
from .models import QuestCategory, QuestInstance
from .service import QuestEngine

log = logging.getLogger(__name__)

DAY = dt.timedelta(days=1)
WEEK = dt.timedelta(days=7)


def start_of_utc_day(now: dt.datetime) -> dt.datetime:
    """Midnight UTC of the day containing ``now``."""
    now = now.astimezone(dt.timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_utc_week(now: dt.datetime) -> dt.datetime:
    """Monday 00:00 UTC of the week containing ``now``."""
    day = start_of_utc_day(now)
    return day - dt.timedelta(days=day.weekday())


class ResetScheduler:
    """
    Keeps the last daily and weekly reset instants.

    ``check`` advances each watermark by at most one window per call, so a
    server that was down for several days catches up one window per check.
    """

    def __init__(self, catalog: QuestCatalog, engine: QuestEngine, now: Optional[dt.datetime] = None) -> None:
        if now is None:
            now = utcnow()
        self.catalog = catalog
        self.engine = engine
        self.last_daily_reset = start_of_utc_day(now)
        self.last_weekly_reset = start_of_utc_week(now)
        self._lock = threading.Lock()

        catalog.generate_cycle(QuestCategory.DAILY, now)
        catalog.generate_cycle(QuestCategory.WEEKLY, now)

    @property
    def next_daily_reset(self) -> dt.datetime:
        return self.last_daily_reset + DAY

    @property
    def next_weekly_reset(self) -> dt.datetime:
        return self.last_weekly_reset + WEEK

    def watermark(self, category: QuestCategory) -> dt.datetime:
        if category == QuestCategory.WEEKLY:
            return self.last_weekly_reset
        return self.last_daily_reset

    def check(self, now: Optional[dt.datetime] = None) -> List[QuestCategory]:
        """Run the daily and/or weekly reset if due. Returns what was reset."""
        if now is None:
            now = utcnow()

        due: List[QuestCategory] = []
        with self._lock:
            if now >= self.next_daily_reset:
                self.last_daily_reset += DAY
                due.append(QuestCategory.DAILY)
            if now >= self.next_weekly_reset:
                self.last_weekly_reset += WEEK
                due.append(QuestCategory.WEEKLY)

        for category in due:
            self._reset(category, now)
        return due

    def _reset(self, category: QuestCategory, now: dt.datetime) -> None:
        log.info("Running %s quest reset (watermark %s)", category.value, self.watermark(category).isoformat())
        cycle = self.catalog.generate_cycle(category, now)
        watermark = self.watermark(category)

        for player_id in self.engine.player_ids():
            try:
                self.engine.assign_cadence(player_id, category, cycle, watermark, now)
            except Exception:  # noqa: BLE001
                log.exception("%s reset failed for player %s", category.value, player_id)

    def catch_up(self, player_id: int, now: Optional[dt.datetime] = None) -> List[QuestInstance]:
        """
        Bring a joining player up to date: cadence quests from any cycle they
        missed, then story quests they are eligible for.
        """
        state = self.engine.state(player_id)
        assigned: List[QuestInstance] = []

        for category, last in (
            (QuestCategory.DAILY, state.last_daily_reset),
            (QuestCategory.WEEKLY, state.last_weekly_reset),
        ):
            watermark = self.watermark(category)
            if last is None or last < watermark:
                assigned.extend(
                    self.engine.assign_cadence(
                        player_id, category, self.catalog.current_cycle(category), watermark, now
                    )
                )

        assigned.extend(self.engine.check_story_eligibility(player_id, now))
        return assigned

    def describe(self) -> dict:
        return {
            "last_daily_reset": self.last_daily_reset.isoformat(),
            "next_daily_reset": self.next_daily_reset.isoformat(),
            "last_weekly_reset": self.last_weekly_reset.isoformat(),
            "next_weekly_reset": self.next_weekly_reset.isoformat(),
        }
