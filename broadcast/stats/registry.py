"""Per-(session, participant) stat rows for every sport variant."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import Session

from broadcast.errors import ValidationError
from broadcast.integrity import ReferenceRule, require_parents
from broadcast.models import STATS_TABLES
from broadcast.stats.formulas import evaluate
from broadcast.stats.schema import SportSchema, coerce_value, get_schema
from broadcast.store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatsRecord:
    session_id: str
    display_id: str
    sport: str
    counters: dict[str, Any] = field(default_factory=dict)
    stored: bool = False

    def __getitem__(self, name: str) -> Any:
        return self.counters[name]


def _key_clause(table, session_id: str, display_id: str):
    return (table.c.session_id == session_id) & (table.c.display_id == display_id)


def validate_fields(schema: SportSchema, values: Mapping[str, Any], *, delta: bool) -> dict[str, Any]:
    if not values:
        raise ValidationError("No stat fields supplied", {"fields": "empty"})
    errors: dict[str, str] = {}
    cleaned: dict[str, Any] = {}
    for name, value in values.items():
        try:
            cleaned[name] = coerce_value(schema.field(name), value, delta=delta)
        except ValidationError as exc:
            errors.update(exc.fields)
    if errors:
        raise ValidationError(
            f"Invalid {schema.sport} stat fields: {', '.join(sorted(errors))}",
            errors,
        )
    return cleaned


def read_record(db: Session, sport: str, session_id: str, display_id: str) -> StatsRecord:
    schema = get_schema(sport)
    table = STATS_TABLES[sport]
    row = db.execute(
        select(table).where(_key_clause(table, session_id, display_id))
    ).mappings().one_or_none()
    if row is None:
        return StatsRecord(session_id, display_id, sport, schema.defaults(), stored=False)
    counters = {name: row[name] for name in schema.field_names}
    return StatsRecord(session_id, display_id, sport, counters, stored=True)


def _ensure_row(
    db: Session,
    rules: Iterable[ReferenceRule],
    schema: SportSchema,
    session_id: str,
    display_id: str,
) -> None:
    table = STATS_TABLES[schema.sport]
    exists = db.execute(
        select(func.count()).select_from(table).where(_key_clause(table, session_id, display_id))
    ).scalar_one()
    if exists:
        return
    require_parents(
        db,
        schema.table_name,
        {"session_id": session_id, "display_id": display_id},
        rules,
    )
    db.execute(insert(table).values(session_id=session_id, display_id=display_id))
    logger.info(
        "Created %s row session_id=%s display_id=%s",
        schema.table_name,
        session_id,
        display_id,
    )


def apply_deltas(
    db: Session,
    rules: Iterable[ReferenceRule],
    sport: str,
    session_id: str,
    display_id: str,
    deltas: Mapping[str, Any],
) -> StatsRecord:
    schema = get_schema(sport)
    cleaned = validate_fields(schema, deltas, delta=True)
    _ensure_row(db, rules, schema, session_id, display_id)
    table = STATS_TABLES[sport]
    # Additions happen in SQL so concurrent deltas on other fields are kept.
    db.execute(
        update(table)
        .where(_key_clause(table, session_id, display_id))
        .values({name: func.coalesce(table.c[name], 0) + value for name, value in cleaned.items()})
    )
    return read_record(db, sport, session_id, display_id)


def assign_fields(
    db: Session,
    rules: Iterable[ReferenceRule],
    sport: str,
    session_id: str,
    display_id: str,
    values: Mapping[str, Any],
) -> StatsRecord:
    schema = get_schema(sport)
    cleaned = validate_fields(schema, values, delta=False)
    _ensure_row(db, rules, schema, session_id, display_id)
    table = STATS_TABLES[sport]
    db.execute(update(table).where(_key_clause(table, session_id, display_id)).values(cleaned))
    return read_record(db, sport, session_id, display_id)


def discard_if_default(db: Session, sport: str, session_id: str, display_id: str) -> bool:
    """Drop the stats row when every field is back at its default."""

    record = read_record(db, sport, session_id, display_id)
    if not record.stored or record.counters != get_schema(sport).defaults():
        return False
    table = STATS_TABLES[sport]
    db.execute(delete(table).where(_key_clause(table, session_id, display_id)))
    logger.info(
        "Removed %s row session_id=%s display_id=%s",
        get_schema(sport).table_name,
        session_id,
        display_id,
    )
    return True


def compute_derived(record: StatsRecord) -> dict[str, Any]:
    return evaluate(record.sport, record.counters)


class StatsRegistry:
    def __init__(self, store: Store) -> None:
        self.store = store

    def get(self, session_id: str, display_id: str, sport: str) -> StatsRecord:
        """Stored counters, or an all-default record; never creates a row."""

        with self.store.transaction() as db:
            return read_record(db, sport, session_id, display_id)

    def upsert(
        self,
        session_id: str,
        display_id: str,
        sport: str,
        deltas: Mapping[str, Any],
    ) -> StatsRecord:
        with self.store.transaction() as db:
            return apply_deltas(db, self.store.rules, sport, session_id, display_id, deltas)

    def set_fields(
        self,
        session_id: str,
        display_id: str,
        sport: str,
        values: Mapping[str, Any],
    ) -> StatsRecord:
        with self.store.transaction() as db:
            return assign_fields(db, self.store.rules, sport, session_id, display_id, values)

    def list_for_session(self, session_id: str, sport: str) -> list[StatsRecord]:
        schema = get_schema(sport)
        table = STATS_TABLES[sport]
        with self.store.transaction() as db:
            rows = db.execute(
                select(table).where(table.c.session_id == session_id).order_by(table.c.display_id)
            ).mappings().all()
        return [
            StatsRecord(
                session_id,
                row["display_id"],
                sport,
                {name: row[name] for name in schema.field_names},
                stored=True,
            )
            for row in rows
        ]

    def compute_derived(self, record: StatsRecord) -> dict[str, Any]:
        return compute_derived(record)
