"""Scoreboard overlay state, one row per session."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import Session

from broadcast.errors import NotFoundError, ValidationError
from broadcast.identity import get_session_or_raise
from broadcast.models import LiveState
from broadcast.schemas import LiveStateOut
from broadcast.stats.schema import SPORT_SCHEMAS
from broadcast.store import Store

logger = logging.getLogger(__name__)

FAMILY_FIELDS: dict[str, dict[str, Any]] = {
    "gridiron": {
        "down": 1,
        "distance": "10",
        "flag": False,
        "home_timeouts": 3,
        "away_timeouts": 3,
    },
    "sets": {
        "home_sets": 0,
        "away_sets": 0,
        "current_set": 1,
    },
}


class LiveStateDelta(BaseModel):
    home_score: Optional[int] = Field(default=None, ge=0)
    away_score: Optional[int] = Field(default=None, ge=0)
    period_or_quarter: Optional[str] = Field(default=None, max_length=10)
    clock_time: Optional[str] = Field(default=None, max_length=10)
    clock_running: Optional[bool] = None
    possession: Optional[str] = Field(default=None, pattern=r"^[A-H]$")
    down: Optional[int] = Field(default=None, ge=1, le=4)
    distance: Optional[str] = Field(default=None, max_length=10)
    flag: Optional[bool] = None
    home_timeouts: Optional[int] = Field(default=None, ge=0)
    away_timeouts: Optional[int] = Field(default=None, ge=0)
    home_sets: Optional[int] = Field(default=None, ge=0)
    away_sets: Optional[int] = Field(default=None, ge=0)
    current_set: Optional[int] = Field(default=None, ge=1)

    class Config:
        extra = "forbid"


REQUIRED_FIELDS = ("home_score", "away_score", "clock_running")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_delta(fields: Mapping[str, Any]) -> dict[str, Any]:
    if not fields:
        raise ValidationError("No live-state fields supplied", {"fields": "empty"})
    try:
        delta = LiveStateDelta.model_validate(dict(fields))
    except PydanticValidationError as exc:
        errors = {
            ".".join(str(part) for part in err["loc"]) or "fields": err["msg"]
            for err in exc.errors()
        }
        raise ValidationError(f"Invalid live-state fields: {', '.join(sorted(errors))}", errors) from exc
    values = delta.model_dump(exclude_unset=True)
    nulls = sorted(name for name in REQUIRED_FIELDS if name in values and values[name] is None)
    if nulls:
        raise ValidationError(
            f"Live-state fields cannot be null: {', '.join(nulls)}",
            {name: "null not allowed" for name in nulls},
        )
    return values


def _family_of(sport: str) -> str | None:
    schema = SPORT_SCHEMAS.get(sport)
    return schema.family if schema else None


def _check_family(sport: str, values: Mapping[str, Any]) -> None:
    family = _family_of(sport)
    allowed = set(FAMILY_FIELDS.get(family, {})) if family else set()
    foreign = {
        name
        for overlay in FAMILY_FIELDS.values()
        for name in overlay
        if name in values and name not in allowed
    }
    if foreign:
        raise ValidationError(
            f"{sport} does not use live-state fields: {', '.join(sorted(foreign))}",
            {name: f"not used by {sport}" for name in foreign},
        )


def _baseline(sport: str) -> dict[str, Any]:
    baseline = {"home_score": 0, "away_score": 0, "clock_running": False}
    baseline.update(FAMILY_FIELDS.get(_family_of(sport) or "", {}))
    return baseline


def has_state(db: Session, session_id: str) -> bool:
    return bool(
        db.execute(
            select(func.count()).select_from(LiveState.__table__).where(LiveState.session_id == session_id)
        ).scalar_one()
    )


def _ensure_row(db: Session, session_id: str, sport: str, now: datetime) -> None:
    if has_state(db, session_id):
        return
    db.execute(
        insert(LiveState.__table__).values(
            session_id=session_id,
            last_updated_utc=now,
            **_baseline(sport),
        )
    )
    logger.info("Created live state session_id=%s sport=%s", session_id, sport)


def read_fields(db: Session, session_id: str, names) -> dict[str, Any]:
    """Current values of ``names``; column defaults when no row exists yet."""

    row = db.execute(
        select(LiveState.__table__).where(LiveState.session_id == session_id)
    ).mappings().one_or_none()
    if row is None:
        session = get_session_or_raise(db, session_id)
        baseline = _baseline(session.sport)
        return {name: baseline.get(name) for name in names}
    return {name: row[name] for name in names}


def apply_fields(db: Session, session_id: str, values: Mapping[str, Any]) -> LiveStateOut:
    """Update only the supplied columns of the session's live state."""

    cleaned = validate_delta(values)
    session = get_session_or_raise(db, session_id)
    _check_family(session.sport, cleaned)
    now = _utcnow()
    _ensure_row(db, session_id, session.sport, now)
    db.execute(
        update(LiveState.__table__)
        .where(LiveState.session_id == session_id)
        .values(**cleaned, last_updated_utc=now)
    )
    return read_state(db, session_id)


def discard_if_baseline(db: Session, session_id: str) -> bool:
    """Drop the session's live state when every field is back at its starting value."""

    row = db.execute(
        select(LiveState.__table__).where(LiveState.session_id == session_id)
    ).mappings().one_or_none()
    if row is None:
        return False
    baseline = _baseline(get_session_or_raise(db, session_id).sport)
    if any(row[name] != baseline.get(name) for name in LiveStateDelta.model_fields):
        return False
    db.execute(delete(LiveState.__table__).where(LiveState.session_id == session_id))
    logger.info("Removed live state session_id=%s", session_id)
    return True


def read_state(db: Session, session_id: str) -> LiveStateOut:
    state = db.get(LiveState, session_id, populate_existing=True)
    if state is None:
        raise NotFoundError(f"Session {session_id} has no live state yet")
    return LiveStateOut.model_validate(state)


class LiveStateTracker:
    def __init__(self, store: Store) -> None:
        self.store = store

    def apply_delta(self, session_id: str, fields: Mapping[str, Any]) -> LiveStateOut:
        with self.store.transaction() as db:
            return apply_fields(db, session_id, fields)

    def read(self, session_id: str) -> LiveStateOut:
        with self.store.transaction() as db:
            return read_state(db, session_id)
