# farmcore/quests/catalog.py
# Immutable quest templates + the builder that turns them into owned,
# player-ready instances.

from __future__ import annotations

import copy
import datetime as dt
import logging
import math
import random
import threading
import uuid
from typing import Dict, List, Optional

from ..errors import UnknownTemplate
from .models import (
    Objective,
    ObjectiveKind,
    QuestCategory,
    QuestInstance,
    QuestTemplate,
    Rarity,
    RewardBundle,
)

log = logging.getLogger(__name__)

# objective kind -> (max variance in percent, floor)
TARGET_VARIANCE = {
    ObjectiveKind.PLANT_SEEDS: (20, 1),
    ObjectiveKind.EARN_COINS: (30, 10),
}


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _randomize_target(kind: ObjectiveKind, target: int, rng: random.Random) -> int:
    variance_cfg = TARGET_VARIANCE.get(kind)
    if variance_cfg is None:
        return target
    percent, floor = variance_cfg
    offset = rng.randint(-percent, percent)
    # floor(target * (1 + offset/100)) in integer arithmetic
    return max(floor, target * (100 + offset) // 100)


class QuestCatalog:
    """
    Read-only template store.

    ``create_instance`` is the only way to get a QuestInstance: every call
    builds fresh objectives and rewards, so instances never share mutable
    state with the templates or with each other.

    The catalog also keeps the current daily/weekly cycle (one generated
    instance per cadence template). Players receive personal copies of it.
    """

    def __init__(
        self,
        templates: Dict[str, QuestTemplate],
        rarities: Dict[str, Rarity],
        rng: Optional[random.Random] = None,
    ) -> None:
        self._templates = dict(templates)
        self._rarities = dict(rarities)
        self._rng = rng or random.Random()
        self._cycle: Dict[QuestCategory, Dict[str, QuestInstance]] = {
            QuestCategory.DAILY: {},
            QuestCategory.WEEKLY: {},
        }
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def get_template(self, template_id: str) -> QuestTemplate:
        tpl = self._templates.get(template_id)
        if tpl is None:
            raise UnknownTemplate(f"Quest template '{template_id}' not found", template_id=template_id)
        return tpl

    def template_ids(self) -> List[str]:
        return list(self._templates)

    def templates_in(self, category: QuestCategory) -> List[QuestTemplate]:
        return [t for t in self._templates.values() if t.category == category]

    def rarity_multiplier(self, rarity: str) -> float:
        # Unknown rarities behave like COMMON
        found = self._rarities.get(rarity) or self._rarities.get("COMMON")
        return found.multiplier if found else 1.0

    # ------------------------------------------------------------------
    # Instance builder
    # ------------------------------------------------------------------

    def create_instance(self, template_id: str, now: Optional[dt.datetime] = None) -> QuestInstance:
        """
        Build a new quest instance from a template.

        - coins / xp rewards are multiplied by the rarity multiplier (floor)
        - plant_seeds / earn_coins targets get a random variance
        - "{amount}" in the description becomes the first objective target
        """
        tpl = self.get_template(template_id)
        if now is None:
            now = utcnow()

        objectives = [
            Objective(
                kind=spec.kind,
                target=_randomize_target(spec.kind, spec.target, self._rng),
                track_unique=spec.track_unique,
            )
            for spec in tpl.objectives
        ]

        multiplier = self.rarity_multiplier(tpl.rarity)
        rewards = RewardBundle(
            coins=math.floor(tpl.rewards.coins * multiplier),
            xp=math.floor(tpl.rewards.xp * multiplier),
            items=tpl.rewards.items,
        )

        description = tpl.description
        if objectives:
            description = description.replace("{amount}", str(objectives[0].target))

        end_time = now + dt.timedelta(seconds=tpl.time_limit) if tpl.time_limit else None

        return QuestInstance(
            instance_id=uuid.uuid4().hex,
            template_id=tpl.id,
            type=tpl.type,
            category=tpl.category,
            name=tpl.name,
            description=description,
            icon=tpl.icon,
            objectives=objectives,
            rewards=rewards,
            rarity=tpl.rarity,
            time_limit=tpl.time_limit,
            vip_only=tpl.vip_only,
            prerequisite=tpl.prerequisite,
            start_time=now,
            end_time=end_time,
        )

    @staticmethod
    def personal_copy(instance: QuestInstance, now: Optional[dt.datetime] = None) -> QuestInstance:
        """Give a player their own copy of a cycle instance (fresh id and clock)."""
        if now is None:
            now = utcnow()
        own = copy.deepcopy(instance)
        own.instance_id = uuid.uuid4().hex
        own.start_time = now
        own.end_time = now + dt.timedelta(seconds=own.time_limit) if own.time_limit else None
        return own

    # ------------------------------------------------------------------
    # Daily / weekly cycle
    # ------------------------------------------------------------------

    def generate_cycle(self, category: QuestCategory, now: Optional[dt.datetime] = None) -> Dict[str, QuestInstance]:
        """Regenerate one instance per template of the given cadence."""
        generated = {
            tpl.id: self.create_instance(tpl.id, now)
            for tpl in self.templates_in(category)
        }
        with self._lock:
            self._cycle[category] = generated
        log.info("Generated %s %s quests", len(generated), category.value)
        return dict(generated)

    def current_cycle(self, category: QuestCategory) -> Dict[str, QuestInstance]:
        with self._lock:
            return dict(self._cycle.get(category, {}))
