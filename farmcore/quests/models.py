# =============================================================================
# File: farmcore/quests/models.py
# Purpose: Quest value objects (immutable templates) and player-owned,
#          mutable quest instances + per-player quest state.
# =============================================================================
from __future__ import annotations

import datetime as dt
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple


class QuestType(str, Enum):
    PLANT = "plant"
    HARVEST = "harvest"
    EARN = "earn"
    SPEND = "spend"
    VISIT = "visit"
    LEVEL = "level"
    VIP = "vip"
    SOCIAL = "social"
    COLLECT = "collect"
    STORY = "story"


class QuestCategory(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    STORY = "story"


class QuestStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"


TERMINAL_STATUSES = frozenset({QuestStatus.COMPLETED, QuestStatus.FAILED, QuestStatus.ABANDONED})


class ActionKind(str, Enum):
    """Gameplay events reported to the quest engine."""

    PLANT_SEED = "plant_seed"
    HARVEST_PLANT = "harvest_plant"
    EARN_COINS = "earn_coins"
    SPEND_COINS = "spend_coins"
    VISIT_FRIEND = "visit_friend"
    LEVEL_UP = "level_up"
    UNLOCK_PLOT = "unlock_plot"
    COMPLETE_QUEST = "complete_quest"


class ObjectiveKind(str, Enum):
    PLANT_SEEDS = "plant_seeds"
    PLANT_FIRST_SEED = "plant_first_seed"
    PLANT_VARIETY = "plant_variety"
    HARVEST_PLANTS = "harvest_plants"
    HARVEST_FIRST_PLANT = "harvest_first_plant"
    EARN_COINS = "earn_coins"
    EARN_TOTAL_COINS = "earn_total_coins"
    SPEND_COINS = "spend_coins"
    VISIT_FRIENDS = "visit_friends"
    REACH_LEVEL = "reach_level"
    UNLOCK_PLOT = "unlock_plot"
    COMPLETE_QUESTS = "complete_quests"


# Every ActionKind has an entry (checked in tests/test_quest_models.py).
_ACTION_OBJECTIVES: Dict[ActionKind, FrozenSet[ObjectiveKind]] = {
    ActionKind.PLANT_SEED: frozenset({
        ObjectiveKind.PLANT_SEEDS,
        ObjectiveKind.PLANT_FIRST_SEED,
        ObjectiveKind.PLANT_VARIETY,
    }),
    ActionKind.HARVEST_PLANT: frozenset({
        ObjectiveKind.HARVEST_PLANTS,
        ObjectiveKind.HARVEST_FIRST_PLANT,
    }),
    ActionKind.EARN_COINS: frozenset({
        ObjectiveKind.EARN_COINS,
        ObjectiveKind.EARN_TOTAL_COINS,
    }),
    ActionKind.SPEND_COINS: frozenset({ObjectiveKind.SPEND_COINS}),
    ActionKind.VISIT_FRIEND: frozenset({ObjectiveKind.VISIT_FRIENDS}),
    ActionKind.LEVEL_UP: frozenset({ObjectiveKind.REACH_LEVEL}),
    ActionKind.UNLOCK_PLOT: frozenset({ObjectiveKind.UNLOCK_PLOT}),
    ActionKind.COMPLETE_QUEST: frozenset({ObjectiveKind.COMPLETE_QUESTS}),
}


def objective_kinds_for(action: ActionKind) -> FrozenSet[ObjectiveKind]:
    """Objective kinds advanced by a gameplay action."""
    return _ACTION_OBJECTIVES[ActionKind(action)]


# =============================================================================
# Templates (immutable)
# =============================================================================

@dataclass(frozen=True)
class Rarity:
    name: str
    multiplier: float
    color: Tuple[int, int, int] = (155, 155, 155)
    weight: int = 1


@dataclass(frozen=True)
class ObjectiveSpec:
    kind: ObjectiveKind
    target: int
    track_unique: bool = False


@dataclass(frozen=True)
class RewardBundle:
    coins: int = 0
    xp: int = 0
    items: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"coins": self.coins, "xp": self.xp, "items": list(self.items)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RewardBundle":
        data = data or {}
        return cls(
            coins=int(data.get("coins") or 0),
            xp=int(data.get("xp") or 0),
            items=tuple(str(i) for i in (data.get("items") or ())),
        )


@dataclass(frozen=True)
class QuestTemplate:
    id: str
    type: QuestType
    category: QuestCategory
    name: str
    description: str
    objectives: Tuple[ObjectiveSpec, ...]
    rewards: RewardBundle
    rarity: str = "COMMON"
    icon: str = ""
    time_limit: Optional[int] = None      # seconds, None = never expires
    vip_only: bool = False
    prerequisite: Optional[str] = None    # template id (story chain)


# =============================================================================
# Instances (player-owned, mutable)
# =============================================================================

def _iso(value: Optional[dt.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[dt.datetime]:
    return dt.datetime.fromisoformat(value) if value else None


@dataclass
class Objective:
    kind: ObjectiveKind
    target: int
    current: int = 0
    track_unique: bool = False
    unique_keys: Set[str] = field(default_factory=set)

    @property
    def done(self) -> bool:
        return self.current >= self.target

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "target": self.target,
            "current": self.current,
            "track_unique": self.track_unique,
            "unique_keys": sorted(self.unique_keys),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Objective":
        return cls(
            kind=ObjectiveKind(data["type"]),
            target=int(data["target"]),
            current=int(data.get("current") or 0),
            track_unique=bool(data.get("track_unique", False)),
            unique_keys=set(data.get("unique_keys") or ()),
        )


@dataclass
class QuestInstance:
    instance_id: str
    template_id: str
    type: QuestType
    category: QuestCategory
    name: str
    description: str
    icon: str
    objectives: List[Objective]
    rewards: RewardBundle
    rarity: str
    time_limit: Optional[int]
    vip_only: bool
    prerequisite: Optional[str]
    start_time: dt.datetime
    end_time: Optional[dt.datetime]
    status: QuestStatus = QuestStatus.ACTIVE
    progress: float = 0.0
    finished_at: Optional[dt.datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status is QuestStatus.ACTIVE

    def compute_progress(self) -> float:
        """Σcurrent / Σtarget over all objectives, clamped to [0, 1]."""
        total_target = sum(o.target for o in self.objectives)
        if total_target <= 0:
            return 1.0
        total_current = sum(min(o.current, o.target) for o in self.objectives)
        return max(0.0, min(1.0, total_current / total_target))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.instance_id,
            "template_id": self.template_id,
            "type": self.type.value,
            "category": self.category.value,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "objectives": [o.to_dict() for o in self.objectives],
            "rewards": self.rewards.to_dict(),
            "rarity": self.rarity,
            "time_limit": self.time_limit,
            "vip_only": self.vip_only,
            "prerequisite": self.prerequisite,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "status": self.status.value,
            "progress": self.progress,
            "finished_at": _iso(self.finished_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestInstance":
        return cls(
            instance_id=str(data["id"]),
            template_id=str(data["template_id"]),
            type=QuestType(data["type"]),
            category=QuestCategory(data["category"]),
            name=data.get("name") or data["template_id"],
            description=data.get("description") or "",
            icon=data.get("icon") or "",
            objectives=[Objective.from_dict(o) for o in data.get("objectives") or []],
            rewards=RewardBundle.from_dict(data.get("rewards")),
            rarity=data.get("rarity") or "COMMON",
            time_limit=data.get("time_limit"),
            vip_only=bool(data.get("vip_only", False)),
            prerequisite=data.get("prerequisite"),
            start_time=_parse_dt(data.get("start_time")) or dt.datetime.now(dt.timezone.utc),
            end_time=_parse_dt(data.get("end_time")),
            status=QuestStatus(data.get("status") or "active"),
            progress=float(data.get("progress") or 0.0),
            finished_at=_parse_dt(data.get("finished_at")),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """Append-only record of a quest reaching a terminal state."""

    quest_id: str
    template_id: str
    status: QuestStatus
    time: dt.datetime
    progress: float
    reason: Optional[str] = None
    rewards: Optional[RewardBundle] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quest_id": self.quest_id,
            "template_id": self.template_id,
            "status": self.status.value,
            "time": _iso(self.time),
            "progress": self.progress,
            "reason": self.reason,
            "rewards": self.rewards.to_dict() if self.rewards else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        rewards = data.get("rewards")
        return cls(
            quest_id=str(data["quest_id"]),
            template_id=str(data["template_id"]),
            status=QuestStatus(data["status"]),
            time=_parse_dt(data["time"]),
            progress=float(data.get("progress") or 0.0),
            reason=data.get("reason"),
            rewards=RewardBundle.from_dict(rewards) if rewards else None,
        )


@dataclass
class PlayerQuestState:
    player_id: int
    active: Dict[str, QuestInstance] = field(default_factory=dict)
    completed: Dict[str, QuestInstance] = field(default_factory=dict)
    history: List[HistoryEntry] = field(default_factory=list)
    last_daily_reset: Optional[dt.datetime] = None
    last_weekly_reset: Optional[dt.datetime] = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def held_template_ids(self) -> Set[str]:
        return {q.template_id for q in self.active.values()}

    def completed_template_ids(self) -> Set[str]:
        return {q.template_id for q in self.completed.values()}

    def to_dict(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "player_id": self.player_id,
                "active": [q.to_dict() for q in self.active.values()],
                "completed": [q.to_dict() for q in self.completed.values()],
                "history": [h.to_dict() for h in self.history],
                "last_daily_reset": _iso(self.last_daily_reset),
                "last_weekly_reset": _iso(self.last_weekly_reset),
            }

    @classmethod
    def from_dict(cls, player_id: int, data: Dict[str, Any]) -> "PlayerQuestState":
        active = [QuestInstance.from_dict(q) for q in data.get("active") or []]
        completed = [QuestInstance.from_dict(q) for q in data.get("completed") or []]
        return cls(
            player_id=player_id,
            active={q.instance_id: q for q in active if q.is_active},
            completed={q.instance_id: q for q in completed},
            history=[HistoryEntry.from_dict(h) for h in data.get("history") or []],
            last_daily_reset=_parse_dt(data.get("last_daily_reset")),
            last_weekly_reset=_parse_dt(data.get("last_weekly_reset")),
        )
