"""Referential-integrity rules shared by the schema and the store.

The rule table below is the single source for every parent/child link: the
models declare their foreign keys from it and deletes walk it inside the
caller's transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import ForeignKey, delete, func, select
from sqlalchemy.orm import Session

from broadcast.db import Base
from broadcast.errors import ConsistencyError, NotFoundError
from broadcast.stats.schema import SPORT_SCHEMAS

logger = logging.getLogger(__name__)

CASCADE = "cascade"
RESTRICT = "restrict"


@dataclass(frozen=True)
class ReferenceRule:
    child_table: str
    child_column: str
    parent_table: str
    parent_column: str
    on_delete: str = CASCADE


def _default_rules() -> tuple[ReferenceRule, ...]:
    rules = [
        ReferenceRule("sheet_sources", "display_id", "rosters", "display_id"),
        ReferenceRule("live_states", "session_id", "sessions", "session_id"),
        ReferenceRule("actions", "session_id", "sessions", "session_id"),
    ]
    for schema in SPORT_SCHEMAS.values():
        rules.append(ReferenceRule(schema.table_name, "session_id", "sessions", "session_id"))
        rules.append(ReferenceRule(schema.table_name, "display_id", "rosters", "display_id"))
    return tuple(rules)


DEFAULT_RULES: tuple[ReferenceRule, ...] = _default_rules()


def with_roster_restrict(rules: Iterable[ReferenceRule] = DEFAULT_RULES) -> tuple[ReferenceRule, ...]:
    """Variant of ``rules`` where stats rows block a roster delete."""

    adjusted = []
    for rule in rules:
        if rule.parent_table == "rosters" and rule.child_table.endswith("_stats"):
            rule = ReferenceRule(
                rule.child_table,
                rule.child_column,
                rule.parent_table,
                rule.parent_column,
                RESTRICT,
            )
        adjusted.append(rule)
    return tuple(adjusted)


def foreign_key_for(child_table: str, child_column: str) -> ForeignKey:
    for rule in DEFAULT_RULES:
        if rule.child_table == child_table and rule.child_column == child_column:
            return ForeignKey(
                f"{rule.parent_table}.{rule.parent_column}",
                ondelete="CASCADE" if rule.on_delete == CASCADE else "RESTRICT",
            )
    raise KeyError(f"No reference rule for {child_table}.{child_column}")


def _table(name: str):
    return Base.metadata.tables[name]


def require_parents(
    db: Session,
    child_table: str,
    values: dict[str, Any],
    rules: Iterable[ReferenceRule],
) -> None:
    """Raise NotFoundError unless every parent referenced by ``values`` exists."""

    for rule in rules:
        if rule.child_table != child_table or rule.child_column not in values:
            continue
        parent = _table(rule.parent_table)
        found = db.execute(
            select(func.count())
            .select_from(parent)
            .where(parent.c[rule.parent_column] == values[rule.child_column])
        ).scalar_one()
        if not found:
            raise NotFoundError(
                f"{rule.parent_table} row {values[rule.child_column]!r} does not exist"
            )


def delete_with_cascade(
    db: Session,
    table_name: str,
    column: str,
    value: Any,
    rules: Iterable[ReferenceRule],
) -> int:
    """Delete matching rows and, first, everything the rules hang off them.

    Runs inside the caller's transaction. A RESTRICT rule with surviving
    children raises ConsistencyError before anything is removed.
    """

    rules = tuple(rules)
    table = _table(table_name)
    rows = db.execute(select(table).where(table.c[column] == value)).mappings().all()
    if not rows:
        return 0

    children = [rule for rule in rules if rule.parent_table == table_name]
    for rule in children:
        if rule.on_delete != RESTRICT:
            continue
        child = _table(rule.child_table)
        keys = {row[rule.parent_column] for row in rows}
        blocking = db.execute(
            select(func.count())
            .select_from(child)
            .where(child.c[rule.child_column].in_(keys))
        ).scalar_one()
        if blocking:
            raise ConsistencyError(
                f"Cannot delete {table_name} {value!r}: "
                f"{blocking} row(s) in {rule.child_table} still reference it"
            )

    removed_children = 0
    for rule in children:
        for key in {row[rule.parent_column] for row in rows}:
            removed_children += delete_with_cascade(
                db, rule.child_table, rule.child_column, key, rules
            )

    result = db.execute(delete(table).where(table.c[column] == value))
    logger.info(
        "Deleted %s row(s) from %s where %s=%s (cascaded %s)",
        result.rowcount,
        table_name,
        column,
        value,
        removed_children,
    )
    return result.rowcount + removed_children
