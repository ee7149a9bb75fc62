from .models import ActionKind, ObjectiveKind, QuestCategory, QuestStatus, objective_kinds_for
from .catalog import QuestCatalog
from .loader import load_quest_data
from .service import QuestEngine
from .reset import ResetScheduler

__all__ = [
    "ActionKind",
    "ObjectiveKind",
    "QuestCategory",
    "QuestStatus",
    "objective_kinds_for",
    "QuestCatalog",
    "load_quest_data",
    "QuestEngine",
    "ResetScheduler",
]
