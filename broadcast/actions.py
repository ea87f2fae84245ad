"""Append-only operator action log.

Every entry is written in the same transaction as the state change it
describes. Undo never edits an entry: it appends a ``<target>.restore`` entry
that carries the original pre-state forward and points back at its cause.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy.orm import Session

from broadcast import live_state
from broadcast.errors import NotFoundError, NotUndoableError, ValidationError
from broadcast.identity import _ensure_utc, get_session_or_raise
from broadcast.models import Action
from broadcast.schemas import ActionOut
from broadcast.stats.registry import assign_fields, discard_if_default, read_record, validate_fields
from broadcast.stats.schema import get_schema
from broadcast.store import Store

logger = logging.getLogger(__name__)

STATS = "stats"
LIVE = "live"

STATS_UPDATE = "stats.update"
STATS_RESTORE = "stats.restore"
LIVE_UPDATE = "live.update"
LIVE_RESTORE = "live.restore"

ACTION_TYPES = frozenset({STATS_UPDATE, STATS_RESTORE, LIVE_UPDATE, LIVE_RESTORE})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _serialize(payload: Mapping[str, Any] | None) -> str | None:
    if payload is None:
        return None
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def _target_of(action_type: str) -> str:
    if action_type not in ACTION_TYPES:
        raise ValidationError(
            f"Unknown action type: {action_type}",
            {"action_type": f"expected one of {', '.join(sorted(ACTION_TYPES))}"},
        )
    return action_type.split(".", 1)[0]


def _fields_of(state: Mapping[str, Any] | None, label: str) -> dict[str, Any]:
    fields = state.get("fields") if isinstance(state, Mapping) else None
    if not isinstance(fields, Mapping) or not fields:
        raise ValidationError(f"{label} must carry a non-empty 'fields' mapping", {label: "missing fields"})
    return dict(fields)


def _normalize(db: Session, session_id: str, target: str, state: Mapping[str, Any], label: str) -> dict[str, Any]:
    """Fill in the stats sport from the session and check the payload shape."""

    fields = _fields_of(state, label)
    absent = {"absent": True} if state.get("absent") is True else {}
    if target == LIVE:
        return {"fields": live_state.validate_delta(fields), **absent}

    session = get_session_or_raise(db, session_id)
    sport = state.get("sport") or session.sport
    if sport != session.sport:
        raise ValidationError(
            f"Session {session_id} records {session.sport} stats, not {sport}",
            {"sport": "does not match session"},
        )
    display_id = state.get("display_id")
    if not display_id:
        raise ValidationError(f"{label} must name a display_id", {"display_id": "missing"})
    cleaned = validate_fields(get_schema(sport), fields, delta=False)
    return {"sport": sport, "display_id": display_id, "fields": cleaned, **absent}


def _capture(db: Session, session_id: str, target: str, state: Mapping[str, Any]) -> dict[str, Any]:
    """Current values of the fields ``state`` is about to overwrite.

    ``absent`` marks a row that does not exist yet, so restoring this capture
    removes the row again.
    """

    names = list(state["fields"])
    if target == LIVE:
        captured = {"fields": live_state.read_fields(db, session_id, names)}
        if not live_state.has_state(db, session_id):
            captured["absent"] = True
        return captured
    record = read_record(db, state["sport"], session_id, state["display_id"])
    captured = {
        "sport": state["sport"],
        "display_id": state["display_id"],
        "fields": {name: record[name] for name in names},
    }
    if not record.stored:
        captured["absent"] = True
    return captured


def _to_out(action: Action) -> ActionOut:
    return ActionOut(
        id=action.id,
        session_id=action.session_id,
        when_utc=action.when_utc,
        user=action.user,
        action_type=action.action_type,
        post_state=json.loads(action.post_state_json),
        pre_state=json.loads(action.pre_state_json) if action.pre_state_json else None,
        undo_of_id=action.undo_of_id,
    )


class ActionLog:
    def __init__(self, store: Store) -> None:
        self.store = store

    def _append(
        self,
        db: Session,
        session_id: str,
        actor: str | None,
        action_type: str,
        post_state: Mapping[str, Any],
        pre_state: Mapping[str, Any] | None,
        undo_of_id: int | None = None,
    ) -> Action:
        target = _target_of(action_type)
        get_session_or_raise(db, session_id)
        post = _normalize(db, session_id, target, post_state, "post_state")
        pre = _normalize(db, session_id, target, pre_state, "pre_state") if pre_state is not None else None

        if target == STATS:
            assign_fields(db, self.store.rules, post["sport"], session_id, post["display_id"], post["fields"])
        else:
            live_state.apply_fields(db, session_id, post["fields"])
        if post.get("absent"):
            if target == STATS:
                discard_if_default(db, post["sport"], session_id, post["display_id"])
            else:
                live_state.discard_if_baseline(db, session_id)

        action = Action(
            session_id=session_id,
            when_utc=_utcnow(),
            user=actor,
            action_type=action_type,
            post_state_json=_serialize(post),
            pre_state_json=_serialize(pre),
            undo_of_id=undo_of_id,
        )
        db.add(action)
        db.flush()
        logger.info(
            "Recorded action id=%s session_id=%s type=%s user=%s",
            action.id,
            session_id,
            action_type,
            actor,
        )
        return action

    def record(
        self,
        session_id: str,
        actor: str | None,
        action_type: str,
        post_state: Mapping[str, Any],
        pre_state: Mapping[str, Any] | None = None,
    ) -> int:
        """Append an entry and apply ``post_state``; both commit or neither does."""

        with self.store.transaction() as db:
            return self._append(db, session_id, actor, action_type, post_state, pre_state).id

    def record_stat_delta(
        self,
        session_id: str,
        actor: str | None,
        display_id: str,
        deltas: Mapping[str, Any],
    ) -> int:
        """Record counter increments, capturing the touched fields' pre-state."""

        with self.store.transaction() as db:
            session = get_session_or_raise(db, session_id)
            cleaned = validate_fields(get_schema(session.sport), deltas, delta=True)
            touched = {"sport": session.sport, "display_id": display_id, "fields": cleaned}
            pre = _capture(db, session_id, STATS, touched)
            post = {name: (pre["fields"][name] or 0) + delta for name, delta in cleaned.items()}
            action = self._append(
                db,
                session_id,
                actor,
                STATS_UPDATE,
                {"sport": session.sport, "display_id": display_id, "fields": post},
                pre,
            )
            return action.id

    def record_live_change(
        self,
        session_id: str,
        actor: str | None,
        fields: Mapping[str, Any],
    ) -> int:
        with self.store.transaction() as db:
            cleaned = live_state.validate_delta(fields)
            pre = _capture(db, session_id, LIVE, {"fields": cleaned})
            action = self._append(
                db,
                session_id,
                actor,
                LIVE_UPDATE,
                {"fields": cleaned},
                pre,
            )
            return action.id

    def undo(self, action_id: int, actor: str | None = None) -> int:
        """Append a restore entry reversing ``action_id``; returns its id.

        The restore entry stores the values it overwrote as its own pre-state,
        so undoing a restore re-applies the original change.
        """

        with self.store.transaction() as db:
            original = db.get(Action, action_id)
            if original is None:
                raise NotFoundError(f"Action {action_id} does not exist")
            if not original.pre_state_json:
                raise NotUndoableError(f"Action {action_id} has no captured pre-state")

            target = _target_of(original.action_type)
            restore_to = json.loads(original.pre_state_json)
            current = _capture(db, original.session_id, target, restore_to)
            action = self._append(
                db,
                original.session_id,
                actor,
                f"{target}.restore",
                restore_to,
                current,
                undo_of_id=original.id,
            )
            logger.info("Undid action id=%s with restore id=%s", action_id, action.id)
            return action.id

    def get(self, action_id: int) -> ActionOut:
        with self.store.transaction() as db:
            action = db.get(Action, action_id)
            if action is None:
                raise NotFoundError(f"Action {action_id} does not exist")
            return _to_out(action)

    def query(
        self,
        session_id: str,
        limit: int = 50,
        since: datetime | None = None,
    ) -> list[ActionOut]:
        """Entries for a session, newest first."""

        with self.store.transaction() as db:
            query = db.query(Action).filter(Action.session_id == session_id)
            if since is not None:
                query = query.filter(Action.when_utc >= _ensure_utc(since))
            actions = (
                query.order_by(Action.when_utc.desc(), Action.id.desc())
                .limit(limit)
                .all()
            )
            return [_to_out(action) for action in actions]
