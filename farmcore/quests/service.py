# farmcore/quests/service.py
# Core quest service: per-player quest state, progression hooks, completion,
# abandon, expiry and admin/query helpers.

from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Any, Dict, List, Optional

from ..errors import NotAbandonable, QuestNotFound, UnknownPlayer
from .catalog import QuestCatalog, utcnow
from .models import (
    ActionKind,
    HistoryEntry,
    Objective,
    ObjectiveKind,
    PlayerQuestState,
    QuestCategory,
    QuestInstance,
    QuestStatus,
    objective_kinds_for,
)

log = logging.getLogger(__name__)


def _unique_key(data: Dict[str, Any]) -> Optional[str]:
    for field_name in ("unique_id", "plant_type", "item_type"):
        value = data.get(field_name)
        if value not in (None, ""):
            return str(value)
    return None


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        value = int(value)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def advance_objective(obj: Objective, data: Dict[str, Any]) -> bool:
    """
    Apply one action payload to a matching objective.

    Returns True when ``current`` moved. ``current`` never decreases and
    never exceeds ``target``.
    """
    if obj.kind is ObjectiveKind.REACH_LEVEL:
        level = _positive_int(data.get("level"))
        if level is None:
            return False
        new_value = max(obj.current, min(level, obj.target))

    elif obj.track_unique:
        key = _unique_key(data)
        if key is None or key in obj.unique_keys:
            return False
        obj.unique_keys.add(key)
        new_value = min(len(obj.unique_keys), obj.target)

    else:
        amount = _positive_int(data.get("amount", 1))
        if amount is None:
            return False
        new_value = min(obj.current + amount, obj.target)

    if new_value <= obj.current:
        return False
    obj.current = new_value
    return True


class QuestEngine:
    """
    Owns every tracked player's quest state.

    All mutations of one player's quests run under that player's lock
    (PlayerQuestState.lock, re-entrant so completion side effects may report
    new actions for the same player). Sweeps isolate failures per player.
    """

    def __init__(
        self,
        catalog: QuestCatalog,
        distributor,
        notifier=None,
        entitlements=None,
    ) -> None:
        self.catalog = catalog
        self.distributor = distributor
        self.notifier = notifier
        self.entitlements = entitlements
        self._states: Dict[int, PlayerQuestState] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Player state
    # ------------------------------------------------------------------

    def load_player(self, player_id: int, snapshot: Optional[Dict[str, Any]] = None) -> PlayerQuestState:
        """Start tracking a player, from a stored snapshot or from scratch."""
        with self._registry_lock:
            existing = self._states.get(player_id)
            if existing is not None:
                return existing

            state = None
            if snapshot:
                try:
                    state = PlayerQuestState.from_dict(player_id, snapshot)
                except (KeyError, TypeError, ValueError):
                    log.warning("Corrupt quest snapshot for player %s, starting fresh", player_id)
            if state is None:
                state = PlayerQuestState(player_id=player_id)

            self._states[player_id] = state
        log.info("Tracking quests for player %s (%s active)", player_id, len(state.active))
        return state

    def unload_player(self, player_id: int) -> Optional[Dict[str, Any]]:
        with self._registry_lock:
            state = self._states.pop(player_id, None)
        return state.to_dict() if state else None

    def has_player(self, player_id: int) -> bool:
        with self._registry_lock:
            return player_id in self._states

    def player_ids(self) -> List[int]:
        with self._registry_lock:
            return list(self._states)

    def state(self, player_id: int) -> PlayerQuestState:
        with self._registry_lock:
            state = self._states.get(player_id)
        if state is None:
            raise UnknownPlayer(f"Player {player_id} has no quest state", player_id=player_id)
        return state

    def snapshot(self, player_id: int) -> Dict[str, Any]:
        return self.state(player_id).to_dict()

    def _is_premium(self, player_id: int) -> bool:
        if self.entitlements is None:
            return False
        try:
            return bool(self.entitlements.is_premium_entitled(player_id))
        except Exception:  # noqa: BLE001
            log.exception("Premium entitlement check failed for player %s", player_id)
            return False

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign_cadence(
        self,
        player_id: int,
        category: QuestCategory,
        cycle: Dict[str, QuestInstance],
        watermark: dt.datetime,
        now: Optional[dt.datetime] = None,
    ) -> List[QuestInstance]:
        """
        Replace the player's active quests of ``category`` with personal
        copies of the current cycle. Replaced quests are discarded.
        """
        if now is None:
            now = utcnow()
        state = self.state(player_id)
        premium = self._is_premium(player_id)

        assigned: List[QuestInstance] = []
        with state.lock:
            for quest_id, quest in list(state.active.items()):
                if quest.category == category:
                    del state.active[quest_id]

            for quest in cycle.values():
                if quest.vip_only and not premium:
                    continue
                own = self.catalog.personal_copy(quest, now)
                state.active[own.instance_id] = own
                assigned.append(own)

            if category == QuestCategory.DAILY:
                state.last_daily_reset = watermark
            elif category == QuestCategory.WEEKLY:
                state.last_weekly_reset = watermark

        log.info("Assigned %s %s quests to player %s", len(assigned), category.value, player_id)
        for quest in assigned:
            self._notify(player_id, "New Quest!", quest.name, quest.icon, "quest")
        return assigned

    def check_story_eligibility(self, player_id: int, now: Optional[dt.datetime] = None) -> List[QuestInstance]:
        """Give every story quest whose prerequisite is completed and which the player has not had yet."""
        state = self.state(player_id)
        premium = self._is_premium(player_id)

        assigned: List[QuestInstance] = []
        with state.lock:
            held = state.held_template_ids()
            done = state.completed_template_ids()
            for tpl in self.catalog.templates_in(QuestCategory.STORY):
                if tpl.id in held or tpl.id in done:
                    continue
                if tpl.prerequisite and tpl.prerequisite not in done:
                    continue
                if tpl.vip_only and not premium:
                    continue
                quest = self.catalog.create_instance(tpl.id, now)
                state.active[quest.instance_id] = quest
                assigned.append(quest)

        for quest in assigned:
            log.info("Story quest %s unlocked for player %s", quest.template_id, player_id)
            self._notify(player_id, "New Quest!", quest.name, quest.icon, "quest")
        return assigned

    # ------------------------------------------------------------------
    # Progression hooks
    # ------------------------------------------------------------------

    def update_progress(
        self,
        player_id: int,
        action: ActionKind,
        data: Optional[Dict[str, Any]] = None,
        now: Optional[dt.datetime] = None,
    ) -> List[QuestInstance]:
        """
        Report a gameplay action. Every active quest with a matching objective
        advances; quests reaching 100% complete right away.

        Returns the quests completed by this call (not counting the ones
        completed by the follow-up complete_quest action). Unknown players
        are ignored.
        """
        kinds = objective_kinds_for(action)
        data = data or {}
        if now is None:
            now = utcnow()

        with self._registry_lock:
            state = self._states.get(player_id)
        if state is None:
            log.debug("Ignoring %s for untracked player %s", action, player_id)
            return []

        completed: List[QuestInstance] = []
        with state.lock:
            for quest in list(state.active.values()):
                if not quest.is_active:
                    continue

                changed = False
                for obj in quest.objectives:
                    if obj.kind in kinds and advance_objective(obj, data):
                        changed = True
                if not changed:
                    continue

                quest.progress = max(quest.progress, quest.compute_progress())
                if quest.progress >= 1.0:
                    self._mark_completed(state, quest, now)
                    completed.append(quest)

        for quest in completed:
            self._after_completion(player_id, quest, now)
        return completed

    def _mark_completed(self, state: PlayerQuestState, quest: QuestInstance, now: dt.datetime) -> None:
        # Caller holds state.lock
        quest.status = QuestStatus.COMPLETED
        quest.progress = 1.0
        quest.finished_at = now
        state.active.pop(quest.instance_id, None)
        state.completed[quest.instance_id] = quest
        state.history.append(
            HistoryEntry(
                quest_id=quest.instance_id,
                template_id=quest.template_id,
                status=QuestStatus.COMPLETED,
                time=now,
                progress=1.0,
                rewards=quest.rewards,
            )
        )

    def _after_completion(self, player_id: int, quest: QuestInstance, now: dt.datetime) -> None:
        log.info(
            "Player %s completed quest %s (%s), rewards=%s",
            player_id, quest.instance_id, quest.template_id, quest.rewards.to_dict(),
        )
        self.distributor.distribute(player_id, quest.rewards)
        self._notify(
            player_id,
            "Quest Complete!",
            f"{quest.name} - {quest.rewards.coins} coins, {quest.rewards.xp} XP",
            quest.icon,
            "quest",
        )

        if quest.category == QuestCategory.STORY:
            self.check_story_eligibility(player_id, now)

        self.update_progress(player_id, ActionKind.COMPLETE_QUEST, {"amount": 1}, now)

    def abandon_quest(self, player_id: int, quest_id: str, now: Optional[dt.datetime] = None) -> QuestInstance:
        """
        Give up an active quest.

        Raises QuestNotFound if it is not active, NotAbandonable for story
        quests.
        """
        if now is None:
            now = utcnow()
        state = self.state(player_id)

        with state.lock:
            quest = state.active.get(quest_id)
            if quest is None or not quest.is_active:
                raise QuestNotFound(f"No active quest {quest_id}", quest_id=quest_id)
            if quest.category == QuestCategory.STORY:
                raise NotAbandonable("Story quests cannot be abandoned", quest_id=quest_id)

            quest.status = QuestStatus.ABANDONED
            quest.finished_at = now
            del state.active[quest_id]
            state.history.append(
                HistoryEntry(
                    quest_id=quest.instance_id,
                    template_id=quest.template_id,
                    status=QuestStatus.ABANDONED,
                    time=now,
                    progress=quest.progress,
                )
            )

        log.info("Player %s abandoned quest %s (%s)", player_id, quest_id, quest.template_id)
        return quest

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def expire_sweep(self, now: Optional[dt.datetime] = None) -> int:
        """Fail every active quest whose end time has been reached. Returns how many expired."""
        if now is None:
            now = utcnow()
        expired = 0
        for player_id in self.player_ids():
            try:
                expired += self._expire_player(player_id, now)
            except Exception:  # noqa: BLE001
                log.exception("Quest expiry failed for player %s", player_id)
        return expired

    def _expire_player(self, player_id: int, now: dt.datetime) -> int:
        state = self.state(player_id)
        expired: List[QuestInstance] = []

        with state.lock:
            for quest_id, quest in list(state.active.items()):
                if quest.end_time is None or now < quest.end_time:
                    continue
                quest.status = QuestStatus.FAILED
                quest.finished_at = now
                del state.active[quest_id]
                state.history.append(
                    HistoryEntry(
                        quest_id=quest.instance_id,
                        template_id=quest.template_id,
                        status=QuestStatus.FAILED,
                        time=now,
                        progress=quest.progress,
                        reason="expired",
                    )
                )
                expired.append(quest)

        for quest in expired:
            log.info("Quest %s (%s) expired for player %s", quest.instance_id, quest.template_id, player_id)
            self._notify(player_id, "Quest Expired", quest.name, "⏰", "quest")
        return len(expired)

    def integrity_sweep(self, now: Optional[dt.datetime] = None) -> int:
        """Complete active quests whose objectives are already all met."""
        if now is None:
            now = utcnow()
        fixed = 0
        for player_id in self.player_ids():
            try:
                fixed += self._complete_ready(player_id, now)
            except Exception:  # noqa: BLE001
                log.exception("Quest integrity check failed for player %s", player_id)
        return fixed

    def _complete_ready(self, player_id: int, now: dt.datetime) -> int:
        state = self.state(player_id)
        ready: List[QuestInstance] = []
        with state.lock:
            for quest in list(state.active.values()):
                if quest.is_active and quest.compute_progress() >= 1.0:
                    self._mark_completed(state, quest, now)
                    ready.append(quest)
        for quest in ready:
            self._after_completion(player_id, quest, now)
        return len(ready)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def force_complete(self, player_id: int, quest_id: str, now: Optional[dt.datetime] = None) -> QuestInstance:
        if now is None:
            now = utcnow()
        state = self.state(player_id)

        with state.lock:
            quest = state.active.get(quest_id)
            if quest is None or not quest.is_active:
                raise QuestNotFound(f"No active quest {quest_id}", quest_id=quest_id)
            for obj in quest.objectives:
                obj.current = obj.target
            self._mark_completed(state, quest, now)

        log.warning("Admin force-completed quest %s for player %s", quest_id, player_id)
        self._after_completion(player_id, quest, now)
        return quest

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_player_quests(self, player_id: int) -> Dict[str, Any]:
        state = self.state(player_id)
        with state.lock:
            return {
                "active": [q.to_dict() for q in state.active.values()],
                "completed": [q.to_dict() for q in state.completed.values()],
                "history": [h.to_dict() for h in state.history],
            }

    def get_quest_progress(self, player_id: int, quest_id: str) -> float:
        state = self.state(player_id)
        with state.lock:
            quest = state.active.get(quest_id) or state.completed.get(quest_id)
            if quest is None:
                raise QuestNotFound(f"Unknown quest {quest_id}", quest_id=quest_id)
            return quest.progress

    def get_player_quest_stats(self, player_id: int) -> Dict[str, int]:
        state = self.state(player_id)
        with state.lock:
            stats = {
                "active": len(state.active),
                "completed": 0,
                "failed": 0,
                "abandoned": 0,
                "total_coins_earned": 0,
                "total_xp_earned": 0,
            }
            for entry in state.history:
                stats[entry.status.value] += 1
                if entry.status is QuestStatus.COMPLETED and entry.rewards:
                    stats["total_coins_earned"] += entry.rewards.coins
                    stats["total_xp_earned"] += entry.rewards.xp
            return stats

    def _notify(self, player_id: int, title: str, body: str, icon: str, category: str) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(player_id, title, body, icon, category)
        except Exception:  # noqa: BLE001
            log.exception("Quest notification failed for player %s", player_id)
