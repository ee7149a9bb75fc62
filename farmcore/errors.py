# farmcore/errors.py
# Typed failures raised by the ledger and the quest engine.
#
# Every error carries a short snake_case ``code`` so HTTP handlers can answer
# with {"error": code, ...} without string matching on messages.

from __future__ import annotations

from typing import Any, Dict


class FarmcoreError(Exception):
    """Base class for all expected (recoverable) failures."""

    code = "farmcore_error"
    status = 400

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.code)
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code}
        payload.update(self.details)
        return payload


# --- economy ---------------------------------------------------------------

class InvalidAmount(FarmcoreError):
    code = "invalid_amount"


class InsufficientFunds(FarmcoreError):
    code = "insufficient_funds"


class EarningsCapExceeded(FarmcoreError):
    code = "earnings_cap_exceeded"
    status = 429


class TransactionRejected(FarmcoreError):
    code = "transaction_rejected"
    status = 429


class UnknownPlayer(FarmcoreError):
    code = "unknown_player"
    status = 404


class UnknownItem(FarmcoreError):
    code = "unknown_item"
    status = 404


# --- quests ----------------------------------------------------------------

class UnknownTemplate(FarmcoreError):
    code = "unknown_template"
    status = 404


class NotAbandonable(FarmcoreError):
    code = "not_abandonable"
    status = 409


class QuestNotFound(FarmcoreError):
    code = "quest_not_found"
    status = 404


# --- persistence -----------------------------------------------------------

class PersistenceUnavailable(FarmcoreError):
    """Snapshot store could not be reached. Never fatal, callers log it."""

    code = "persistence_unavailable"
    status = 503
