"""Session and roster identity keys, session lifecycle and roster queries."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from broadcast.errors import NotFoundError, ValidationError
from broadcast.ingestion.schema import RosterRowIn, row_hash
from broadcast.integrity import delete_with_cascade
from broadcast.models import TEAM_CODES, BroadcastSession, Roster, SheetSource
from broadcast.schemas import RosterOut, SessionOut
from broadcast.stats.schema import SPORTS
from broadcast.store import Store

logger = logging.getLogger(__name__)

_DISPLAY_ID_RE = re.compile(r"^([A-H])(\d{3})$")
_SESSION_ID_RE = re.compile(r"^([A-Za-z]+)_(\d{4}-\d{2}-\d{2})_(\d{6})$")

MANUAL_SHEET_NAME = "Manual"
_ROSTER_CONTENT_FIELDS = frozenset(RosterRowIn.model_fields) - {"team_code", "number", "row_number"}


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_session_id(sport: str, started_utc: datetime) -> str:
    if sport not in SPORTS:
        raise ValidationError(
            f"Unsupported sport: {sport}. Supported: {', '.join(SPORTS)}",
            {"sport": "unsupported"},
        )
    started = _ensure_utc(started_utc)
    return f"{sport}_{started:%Y-%m-%d}_{started:%H%M%S}"


def new_session_id(db: Session, sport: str, started_utc: datetime) -> str:
    """Return a fresh session id; a collision with a stored session fails."""

    session_id = format_session_id(sport, started_utc)
    existing = db.get(BroadcastSession, session_id)
    if existing is not None:
        state = "active" if existing.is_active else "stopped"
        raise ValidationError(
            f"Session {session_id} already exists ({state})",
            {"session_id": "duplicate"},
        )
    return session_id


def parse_session_id(session_id: str) -> tuple[str, datetime]:
    match = _SESSION_ID_RE.match(session_id or "")
    if not match or match.group(1) not in SPORTS:
        raise ValidationError(
            f"Malformed session id: {session_id!r}",
            {"session_id": "expected {Sport}_{YYYY-MM-DD}_{HHMMSS}"},
        )
    started = datetime.strptime(
        f"{match.group(2)} {match.group(3)}", "%Y-%m-%d %H%M%S"
    ).replace(tzinfo=timezone.utc)
    return match.group(1), started


def new_display_id(team_code: str, number: int) -> str:
    errors: dict[str, str] = {}
    if team_code not in TEAM_CODES:
        errors["team_code"] = f"must be one of {','.join(TEAM_CODES)}"
    if isinstance(number, bool) or not isinstance(number, int) or not 0 < number < 1000:
        errors["number"] = "must be an integer between 1 and 999"
    if errors:
        raise ValidationError(
            f"Invalid display id parts team_code={team_code!r} number={number!r}",
            errors,
        )
    return f"{team_code}{number:03d}"


def parse_display_id(display_id: str) -> tuple[str, int]:
    match = _DISPLAY_ID_RE.match(display_id or "")
    if not match or int(match.group(2)) == 0:
        raise ValidationError(
            f"Malformed display id: {display_id!r}",
            {"display_id": "expected team code A-H followed by 001-999"},
        )
    return match.group(1), int(match.group(2))


def get_session_or_raise(db: Session, session_id: str) -> BroadcastSession:
    session = db.get(BroadcastSession, session_id)
    if session is None:
        raise NotFoundError(f"Session {session_id} does not exist")
    return session


class IdentityModel:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create_session(
        self,
        sport: str,
        started_utc: datetime | None = None,
        *,
        notes: str | None = None,
        active_teams: list[str] | None = None,
    ) -> SessionOut:
        started = _ensure_utc(started_utc or _utcnow()).replace(microsecond=0)
        teams = list(active_teams or [])
        invalid = [code for code in teams if code not in TEAM_CODES]
        if invalid:
            raise ValidationError(
                f"Unknown team codes: {', '.join(invalid)}",
                {"active_teams": "unknown team code"},
            )
        with self.store.transaction() as db:
            session_id = new_session_id(db, sport, started)
            session = BroadcastSession(
                session_id=session_id,
                sport=sport,
                started_utc=started,
                stopped_utc=None,
                notes=notes,
                active_teams=",".join(teams) or None,
            )
            db.add(session)
            db.flush()
            logger.info("Created session session_id=%s", session_id)
            return SessionOut.model_validate(session)

    def get_session(self, session_id: str) -> SessionOut:
        with self.store.transaction() as db:
            return SessionOut.model_validate(get_session_or_raise(db, session_id))

    def stop_session(self, session_id: str, stopped_utc: datetime | None = None) -> SessionOut:
        with self.store.transaction() as db:
            session = get_session_or_raise(db, session_id)
            if session.stopped_utc is None:
                session.stopped_utc = _ensure_utc(stopped_utc or _utcnow())
                logger.info("Stopped session session_id=%s", session_id)
            db.flush()
            return SessionOut.model_validate(session)

    def active_sessions(self, sport: str | None = None) -> list[SessionOut]:
        with self.store.transaction() as db:
            query = db.query(BroadcastSession).filter(BroadcastSession.stopped_utc.is_(None))
            if sport:
                query = query.filter(BroadcastSession.sport == sport)
            sessions = query.order_by(BroadcastSession.started_utc.desc()).all()
            return [SessionOut.model_validate(session) for session in sessions]

    def delete_session(self, session_id: str) -> int:
        """Delete a session together with its stats, live state and actions."""

        with self.store.transaction() as db:
            get_session_or_raise(db, session_id)
            return delete_with_cascade(db, "sessions", "session_id", session_id, self.store.rules)

    def add_roster(
        self,
        team_code: str,
        number: int,
        *,
        sheet_name: str = MANUAL_SHEET_NAME,
        row_number: int = 0,
        **fields,
    ) -> RosterOut:
        """Insert an active roster and its sheet_sources row in one transaction."""

        display_id = new_display_id(team_code, number)
        unknown = sorted(set(fields) - _ROSTER_CONTENT_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown roster fields: {', '.join(unknown)}",
                {name: "unknown field" for name in unknown},
            )
        try:
            row = RosterRowIn(team_code=team_code, number=number, **fields)
        except PydanticValidationError as exc:
            errors = {
                ".".join(str(part) for part in err["loc"]) or "fields": err["msg"]
                for err in exc.errors()
            }
            raise ValidationError(f"Invalid roster {display_id}: {', '.join(sorted(errors))}", errors) from exc
        content = row.content_fields()
        now = _utcnow()
        with self.store.transaction() as db:
            if db.get(Roster, display_id) is not None:
                raise ValidationError(
                    f"Roster {display_id} already exists",
                    {"display_id": "duplicate"},
                )
            roster = Roster(
                display_id=display_id,
                is_active=True,
                last_updated_utc=now,
                **{**content, "grade": content["grade"] or ""},
            )
            db.add(roster)
            db.add(
                SheetSource(
                    display_id=display_id,
                    sheet_name=sheet_name,
                    row_number=row_number,
                    row_hash=row_hash(content),
                    last_imported_utc=now,
                )
            )
            db.flush()
            logger.info("Inserted roster display_id=%s sheet=%s", display_id, sheet_name)
            return RosterOut.model_validate(roster)

    def get_roster(self, display_id: str) -> RosterOut:
        with self.store.transaction() as db:
            roster = db.get(Roster, display_id)
            if roster is None:
                raise NotFoundError(f"Roster {display_id} does not exist")
            return RosterOut.model_validate(roster)

    def active_roster(self, team_code: str | None = None) -> list[RosterOut]:
        with self.store.transaction() as db:
            query = db.query(Roster).filter(Roster.is_active.is_(True))
            if team_code:
                query = query.filter(Roster.team_code == team_code)
            rosters = query.order_by(Roster.team_code.asc(), Roster.number.asc()).all()
            return [RosterOut.model_validate(roster) for roster in rosters]

    def deactivate_roster(self, display_id: str) -> RosterOut:
        with self.store.transaction() as db:
            roster = db.get(Roster, display_id)
            if roster is None:
                raise NotFoundError(f"Roster {display_id} does not exist")
            if roster.is_active:
                roster.is_active = False
                roster.last_updated_utc = _utcnow()
            db.flush()
            return RosterOut.model_validate(roster)

    def delete_roster(self, display_id: str) -> int:
        """Hard delete; stats and sheet provenance follow the store's rules."""

        with self.store.transaction() as db:
            if db.get(Roster, display_id) is None:
                raise NotFoundError(f"Roster {display_id} does not exist")
            return delete_with_cascade(db, "rosters", "display_id", display_id, self.store.rules)

