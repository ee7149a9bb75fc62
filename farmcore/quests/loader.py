# farmcore/quests/loader.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..config import DATA_DIR
from .models import (
    ObjectiveKind,
    ObjectiveSpec,
    QuestCategory,
    QuestTemplate,
    QuestType,
    Rarity,
    RewardBundle,
)

log = logging.getLogger(__name__)

QUESTS_YAML_PATH = DATA_DIR / "quests.yml"

DAY_SECONDS = 86400
WEEK_SECONDS = 7 * DAY_SECONDS


def _build_default_rarities() -> Dict[str, Dict[str, Any]]:
    return {
        "COMMON": {"multiplier": 1.0, "color": [155, 155, 155], "weight": 60},
        "UNCOMMON": {"multiplier": 1.5, "color": [30, 255, 0], "weight": 25},
        "RARE": {"multiplier": 2.0, "color": [0, 112, 221], "weight": 10},
        "EPIC": {"multiplier": 3.0, "color": [163, 53, 238], "weight": 4},
        "LEGENDARY": {"multiplier": 5.0, "color": [255, 128, 0], "weight": 1},
    }


def _build_default_templates() -> Dict[str, Dict[str, Any]]:
    """
    Quest templates used when quests.yml is missing or has no valid entry.
    Same content as the shipped quests.yml.
    """
    return {
        "daily_plant_seeds": {
            "type": "plant",
            "category": "daily",
            "name": "Green Thumb",
            "description": "Plant {amount} seeds in your garden",
            "icon": "🌱",
            "objectives": [{"type": "plant_seeds", "target": 5}],
            "rewards": {"coins": 100, "xp": 50, "items": ["fertilizer", "water"]},
            "rarity": "COMMON",
            "time_limit": DAY_SECONDS,
        },
        "daily_harvest_plants": {
            "type": "harvest",
            "category": "daily",
            "name": "Harvest Time",
            "description": "Harvest {amount} plants",
            "icon": "🌾",
            "objectives": [{"type": "harvest_plants", "target": 10}],
            "rewards": {"coins": 150, "xp": 75, "items": ["rare_seed"]},
            "rarity": "COMMON",
            "time_limit": DAY_SECONDS,
        },
        "daily_earn_coins": {
            "type": "earn",
            "category": "daily",
            "name": "Money Maker",
            "description": "Earn {amount} coins from selling crops",
            "icon": "💰",
            "objectives": [{"type": "earn_coins", "target": 500}],
            "rewards": {"coins": 200, "xp": 100},
            "rarity": "UNCOMMON",
            "time_limit": DAY_SECONDS,
        },
        "vip_daily_premium": {
            "type": "vip",
            "category": "daily",
            "name": "VIP Excellence",
            "description": "Complete 3 other daily quests",
            "icon": "👑",
            "objectives": [{"type": "complete_quests", "target": 3}],
            "rewards": {"coins": 500, "xp": 250, "items": ["golden_fertilizer", "premium_seed"]},
            "rarity": "RARE",
            "time_limit": DAY_SECONDS,
            "vip_only": True,
        },
        "weekly_master_gardener": {
            "type": "plant",
            "category": "weekly",
            "name": "Master Gardener",
            "description": "Plant 50 seeds of different types",
            "icon": "🏆",
            "objectives": [{"type": "plant_variety", "target": 50, "track_unique": True}],
            "rewards": {"coins": 2000, "xp": 1000, "items": ["legendary_seed", "master_trophy"]},
            "rarity": "EPIC",
            "time_limit": WEEK_SECONDS,
        },
        "weekly_social_butterfly": {
            "type": "social",
            "category": "weekly",
            "name": "Social Butterfly",
            "description": "Visit 10 different friends' gardens",
            "icon": "🦋",
            "objectives": [{"type": "visit_friends", "target": 10}],
            "rewards": {"coins": 1500, "xp": 750, "items": ["friendship_badge", "social_seed"]},
            "rarity": "RARE",
            "time_limit": WEEK_SECONDS,
        },
        "story_first_garden": {
            "type": "story",
            "category": "story",
            "name": "Your First Garden",
            "description": "Plant your first seed and watch it grow",
            "icon": "🌱",
            "objectives": [
                {"type": "plant_first_seed", "target": 1},
                {"type": "harvest_first_plant", "target": 1},
            ],
            "rewards": {"coins": 50, "xp": 100, "items": ["starter_pack"]},
            "rarity": "COMMON",
        },
        "story_expand_garden": {
            "type": "story",
            "category": "story",
            "name": "Growing Ambitions",
            "description": "Unlock new plots and grow different crops",
            "icon": "🏡",
            "objectives": [
                {"type": "unlock_plot", "target": 2},
                {"type": "plant_variety", "target": 5, "track_unique": True},
            ],
            "rewards": {"coins": 200, "xp": 300, "items": ["plot_expansion_deed"]},
            "rarity": "UNCOMMON",
            "prerequisite": "story_first_garden",
        },
        "story_market_trader": {
            "type": "earn",
            "category": "story",
            "name": "Market Trader",
            "description": "Earn 1000 coins by selling your crops",
            "icon": "🏪",
            "objectives": [{"type": "earn_total_coins", "target": 1000}],
            "rewards": {"coins": 300, "xp": 400, "items": ["trader_badge", "market_access"]},
            "rarity": "UNCOMMON",
            "prerequisite": "story_expand_garden",
        },
    }


# -------------------------------------------------------------------------
# Raw dict -> frozen objects
# -------------------------------------------------------------------------


def _build_rarity(name: str, raw: Any) -> Optional[Rarity]:
    if not isinstance(raw, dict):
        log.warning("quests.yml: rarity '%s' ignored (not a mapping).", name)
        return None
    try:
        color = tuple(int(c) for c in (raw.get("color") or (155, 155, 155)))[:3]
        return Rarity(
            name=name,
            multiplier=float(raw.get("multiplier", 1.0)),
            color=color,
            weight=int(raw.get("weight", 1)),
        )
    except (TypeError, ValueError):
        log.warning("quests.yml: rarity '%s' ignored (invalid numbers).", name)
        return None


def _build_template(key: str, raw: Any, rarities: Dict[str, Rarity]) -> Optional[QuestTemplate]:
    """Validate one raw template. Returns None (and logs why) when invalid."""
    if not isinstance(raw, dict):
        log.warning("Quest '%s' ignored (template is not a mapping).", key)
        return None

    errors: List[str] = []

    try:
        quest_type = QuestType(raw.get("type"))
    except ValueError:
        quest_type = None
        errors.append("invalid or missing type")

    try:
        category = QuestCategory(raw.get("category"))
    except ValueError:
        category = None
        errors.append("invalid or missing category")

    objectives: List[ObjectiveSpec] = []
    for obj in raw.get("objectives") or []:
        try:
            target = int(obj["target"])
            if target <= 0:
                raise ValueError(target)
            objectives.append(
                ObjectiveSpec(
                    kind=ObjectiveKind(obj["type"]),
                    target=target,
                    track_unique=bool(obj.get("track_unique", False)),
                )
            )
        except (KeyError, TypeError, ValueError):
            errors.append(f"bad objective {obj!r}")
    if not objectives:
        errors.append("no objectives")

    rarity = str(raw.get("rarity") or "COMMON").upper()
    if rarity not in rarities:
        errors.append(f"unknown rarity {rarity}")

    time_limit = raw.get("time_limit")
    if time_limit is not None:
        try:
            time_limit = int(time_limit)
        except (TypeError, ValueError):
            errors.append("invalid time_limit")

    if errors:
        log.warning("Quest '%s' ignored: %s", key, ", ".join(errors))
        return None

    return QuestTemplate(
        id=key,
        type=quest_type,
        category=category,
        name=str(raw.get("name") or key),
        description=str(raw.get("description") or ""),
        objectives=tuple(objectives),
        rewards=RewardBundle.from_dict(raw.get("rewards")),
        rarity=rarity,
        icon=str(raw.get("icon") or ""),
        time_limit=time_limit,
        vip_only=bool(raw.get("vip_only", False)),
        prerequisite=raw.get("prerequisite") or None,
    )


def build_rarities(raw: Any) -> Dict[str, Rarity]:
    if not isinstance(raw, dict) or not raw:
        raw = _build_default_rarities()
    rarities = {}
    for name, cfg in raw.items():
        rarity = _build_rarity(str(name).upper(), cfg)
        if rarity is not None:
            rarities[rarity.name] = rarity
    if "COMMON" not in rarities:
        rarities["COMMON"] = Rarity("COMMON", 1.0)
    return rarities


def build_templates(raw: Dict[str, Any], rarities: Dict[str, Rarity]) -> Dict[str, QuestTemplate]:
    templates: Dict[str, QuestTemplate] = {}
    for key, tpl in raw.items():
        template = _build_template(str(key).strip(), tpl, rarities)
        if template is not None:
            templates[template.id] = template

    # Drop story quests pointing at a prerequisite that does not exist.
    for key, tpl in list(templates.items()):
        if tpl.prerequisite and tpl.prerequisite not in templates:
            log.warning("Quest '%s' ignored: unknown prerequisite %s", key, tpl.prerequisite)
            del templates[key]
    return templates


def load_quest_data(path: Path | None = None) -> Tuple[Dict[str, QuestTemplate], Dict[str, Rarity]]:
    """
    Load quest templates and the rarity table from quests.yml.

    - Reads data/quests.yml (sections "rarities" and "quest_templates")
    - Skips invalid templates with a warning
    - Falls back to the built-in templates if nothing valid is left
    """
    path = path or QUESTS_YAML_PATH

    raw: Dict[str, Any] = {}
    if not path.exists():
        log.warning("quests.yml not found (%s), using default quests.", path)
    else:
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except Exception as exc:
            log.error("Could not read quests.yml: %s", exc)
            raw = {}
    if not isinstance(raw, dict):
        raw = {}

    rarities = build_rarities(raw.get("rarities"))

    raw_templates = raw.get("quest_templates")
    if not isinstance(raw_templates, dict):
        if raw:
            log.warning("quests.yml has no 'quest_templates' section, using default quests.")
        raw_templates = _build_default_templates()

    templates = build_templates(raw_templates, rarities)
    if not templates:
        log.warning("quests.yml has no valid quest, using default quests.")
        templates = build_templates(_build_default_templates(), rarities)

    log.info("Loaded %s quest templates: %s", len(templates), sorted(templates))
    return templates, rarities
