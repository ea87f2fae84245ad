"""Reconcile a roster feed snapshot into the local database."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from broadcast.errors import FeedError, ValidationError
from broadcast.identity import new_display_id
from broadcast.ingestion.schema import RosterRowIn, row_hash
from broadcast.models import ImportLog, Roster, SheetSource
from broadcast.schemas import ImportLogOut
from broadcast.store import Store

logger = logging.getLogger(__name__)

INFO = "Info"
WARN = "Warn"
ERROR = "Error"

DEFAULT_SHEET_NAME = "Roster"
FIRST_DATA_ROW = 2  # row 1 holds the sheet headers


@dataclass
class IngestResult:
    total: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    reactivated: int = 0
    deactivated: int = 0
    skipped: int = 0
    errors: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_context(context: Mapping[str, Any] | None) -> str | None:
    if not context:
        return None
    return json.dumps(context, ensure_ascii=False, separators=(",", ":"), default=str)


def _write_log(db: Session, level: str, message: str, context: Mapping[str, Any] | None = None) -> None:
    db.add(
        ImportLog(
            level=level,
            message=message,
            context_json=_serialize_context(context),
            created_utc=_utcnow(),
        )
    )


def _materialize(feed_rows: Any) -> list[Any]:
    if feed_rows is None or isinstance(feed_rows, (str, bytes, Mapping)):
        raise FeedError("Roster feed is not a sequence of rows")
    try:
        rows = list(feed_rows)
    except Exception as exc:
        raise FeedError(f"Roster feed could not be read: {exc}") from exc
    if not rows:
        raise FeedError("Roster feed is empty")
    return rows


def _lenient_display_id(raw: Mapping[str, Any]) -> str | None:
    """Best-effort id of a row that failed validation, so it is not soft-deleted."""

    team_code = raw.get("TeamCode", raw.get("team_code"))
    number = raw.get("Number", raw.get("number"))
    try:
        return new_display_id(str(team_code).strip().upper(), int(str(number).strip()))
    except (TypeError, ValueError, ValidationError):
        return None


def _validation_errors(exc: PydanticValidationError) -> dict[str, str]:
    return {
        ".".join(str(part) for part in err["loc"]) or "row": err["msg"]
        for err in exc.errors()
    }


def _update_roster_from_row(roster: Roster, content: Mapping[str, Any]) -> dict[str, list[Any]]:
    changes: dict[str, list[Any]] = {}
    for name, value in content.items():
        if name == "grade" and value is None:
            value = ""
        current = getattr(roster, name)
        if current != value:
            changes[name] = [current, value]
            setattr(roster, name, value)
    return changes


class RosterSyncEngine:
    def __init__(self, store: Store, sheet_name: str = DEFAULT_SHEET_NAME) -> None:
        self.store = store
        self.sheet_name = sheet_name

    def ingest(self, feed_rows: Iterable[Mapping[str, Any]], sheet_name: str | None = None) -> IngestResult:
        """Apply one feed snapshot. Re-running an unchanged snapshot writes nothing."""

        sheet = sheet_name or self.sheet_name
        try:
            rows = _materialize(feed_rows)
            result = IngestResult(total=len(rows))
            with self.store.transaction() as db:
                seen: set[str] = set()
                processed: set[str] = set()
                for row_number, raw in enumerate(rows, start=FIRST_DATA_ROW):
                    self._ingest_row(db, sheet, row_number, raw, seen, processed, result)
                if not processed:
                    raise FeedError(f"Roster feed for sheet {sheet} has no readable rows")
                self._deactivate_missing(db, sheet, seen, result)
        except FeedError as exc:
            logger.error("Roster ingest aborted sheet=%s: %s", sheet, exc)
            self.record_failure(sheet, str(exc))
            raise

        logger.info(
            "Roster ingest done sheet=%s total=%s inserted=%s updated=%s unchanged=%s "
            "reactivated=%s deactivated=%s skipped=%s errors=%s",
            sheet,
            result.total,
            result.inserted,
            result.updated,
            result.unchanged,
            result.reactivated,
            result.deactivated,
            result.skipped,
            result.errors,
        )
        return result

    def recent_logs(self, limit: int = 100, level: str | None = None) -> list[ImportLogOut]:
        with self.store.transaction() as db:
            query = db.query(ImportLog)
            if level is not None:
                query = query.filter(ImportLog.level == level)
            entries = query.order_by(ImportLog.created_utc.desc(), ImportLog.id.desc()).limit(limit).all()
            return [ImportLogOut.model_validate(entry) for entry in entries]

    def _skip(self, db: Session, message: str, context: Mapping[str, Any], result: IngestResult) -> None:
        result.skipped += 1
        logger.warning("%s row_number=%s", message, context.get("row_number"))
        _write_log(db, WARN, message, context)

    def _ingest_row(
        self,
        db: Session,
        sheet: str,
        row_number: int,
        raw: Any,
        seen: set[str],
        processed: set[str],
        result: IngestResult,
    ) -> None:
        if not isinstance(raw, Mapping):
            self._skip(db, "Skipped roster row that is not a mapping", {"row_number": row_number, "raw": raw}, result)
            return

        try:
            row = RosterRowIn.model_validate(dict(raw))
        except PydanticValidationError as exc:
            lenient = _lenient_display_id(raw)
            if lenient:
                seen.add(lenient)
            self._skip(
                db,
                "Skipped invalid roster row",
                {"row_number": row_number, "errors": _validation_errors(exc), "raw": dict(raw)},
                result,
            )
            return

        display_id = row.display_id
        row_number = row.row_number or row_number
        seen.add(display_id)
        if display_id in processed:
            self._skip(
                db,
                f"Skipped duplicate roster row {display_id}",
                {"row_number": row_number, "display_id": display_id},
                result,
            )
            return
        processed.add(display_id)

        try:
            with db.begin_nested():
                self._upsert(db, sheet, row_number, row, result)
        except SQLAlchemyError:
            result.errors += 1
            logger.exception("Failed to ingest roster row display_id=%s", display_id)
            _write_log(
                db,
                ERROR,
                f"Failed to ingest roster {display_id}",
                {"row_number": row_number, "display_id": display_id},
            )

    def _upsert(self, db: Session, sheet: str, row_number: int, row: RosterRowIn, result: IngestResult) -> None:
        display_id = row.display_id
        content = row.content_fields()
        digest = row_hash(content)
        now = _utcnow()

        source = db.get(SheetSource, display_id)
        roster = db.get(Roster, display_id)

        if source is None or roster is None:
            if roster is None:
                roster = Roster(display_id=display_id, is_active=True, last_updated_utc=now)
                db.add(roster)
            _update_roster_from_row(roster, content)
            roster.is_active = True
            roster.last_updated_utc = now
            if source is None:
                source = SheetSource(display_id=display_id)
                db.add(source)
            source.sheet_name = sheet
            source.row_number = row_number
            source.row_hash = digest
            source.last_imported_utc = now
            db.flush()
            result.inserted += 1
            logger.info("Inserted roster display_id=%s sheet=%s row=%s", display_id, sheet, row_number)
            _write_log(
                db,
                INFO,
                f"Inserted roster {display_id}",
                {"display_id": display_id, "sheet_name": sheet, "row_number": row_number},
            )
            return

        if source.row_hash == digest:
            if roster.is_active:
                result.unchanged += 1
                return
            roster.is_active = True
            roster.last_updated_utc = now
            source.sheet_name = sheet
            source.row_number = row_number
            source.last_imported_utc = now
            db.flush()
            result.reactivated += 1
            logger.info("Reactivated roster display_id=%s", display_id)
            _write_log(db, INFO, f"Reactivated roster {display_id}", {"display_id": display_id})
            return

        changes = _update_roster_from_row(roster, content)
        was_inactive = not roster.is_active
        roster.is_active = True
        roster.last_updated_utc = now
        source.sheet_name = sheet
        source.row_number = row_number
        source.row_hash = digest
        source.last_imported_utc = now
        db.flush()
        result.updated += 1
        if was_inactive:
            result.reactivated += 1
        logger.info("Updated roster display_id=%s fields=%s", display_id, ",".join(sorted(changes)))
        _write_log(
            db,
            INFO,
            f"Updated roster {display_id}",
            {"display_id": display_id, "row_number": row_number, "changes": changes, "reactivated": was_inactive},
        )

    def _deactivate_missing(self, db: Session, sheet: str, seen: set[str], result: IngestResult) -> None:
        known = (
            db.query(Roster)
            .join(SheetSource, SheetSource.display_id == Roster.display_id)
            .filter(SheetSource.sheet_name == sheet, Roster.is_active.is_(True))
            .all()
        )
        now = _utcnow()
        for roster in known:
            if roster.display_id in seen:
                continue
            roster.is_active = False
            roster.last_updated_utc = now
            result.deactivated += 1
            logger.info("Deactivated roster display_id=%s sheet=%s", roster.display_id, sheet)
            _write_log(
                db,
                INFO,
                f"Deactivated roster {roster.display_id}",
                {"display_id": roster.display_id, "sheet_name": sheet},
            )
        db.flush()

    def record_failure(self, sheet: str, message: str) -> None:
        try:
            with self.store.transaction() as db:
                _write_log(db, ERROR, f"Roster ingest aborted: {message}", {"sheet_name": sheet})
        except SQLAlchemyError:
            logger.exception("Failed to write ImportLog for aborted ingest sheet=%s", sheet)
