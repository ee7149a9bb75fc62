# =============================================================================
# File: farmcore/models.py
# Purpose: ORM models for durable player snapshots.
# Notes:
# - SQLAlchemy 2.0 style (Mapped[...] + mapped_column)
# - One row per snapshot key ("economy:<id>", "quests:<id>")
# - updated_at is written as an aware UTC datetime
# =============================================================================
from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Snapshot(Base):
    __tablename__ = "snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # economy:<player_id> | quests:<player_id>
    key: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)

    # Serialized state (plain dicts / lists / numbers / ISO strings)
    blob: Mapped[dict] = mapped_column(JSON, nullable=False)

    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
