from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.sql import func

from broadcast.db import Base
from broadcast.integrity import foreign_key_for
from broadcast.stats.schema import (
    FLAG,
    FLOAT,
    INT,
    OPT_FLOAT,
    OPT_INT,
    SPORT_SCHEMAS,
    FieldSpec,
    SportSchema,
)

TEAM_CODES = ("A", "B", "C", "D", "E", "F", "G", "H")


class BroadcastSession(Base):
    __tablename__ = "sessions"

    session_id = Column(String(100), primary_key=True)      # Football_2025-10-28_190000
    sport = Column(String(50), nullable=False, index=True)
    started_utc = Column(DateTime(timezone=True), nullable=False)
    stopped_utc = Column(DateTime(timezone=True), nullable=True, index=True)  # null = active
    notes = Column(Text, nullable=True)
    active_teams = Column(String, nullable=True)             # "A,B"

    @property
    def is_active(self) -> bool:
        return self.stopped_utc is None

    @property
    def team_codes(self) -> list[str]:
        if not self.active_teams:
            return []
        return [code for code in self.active_teams.split(",") if code]


class Roster(Base):
    __tablename__ = "rosters"
    __table_args__ = (
        Index("ix_rosters_team_number", "team_code", "number"),
        CheckConstraint(
            "team_code IN ('A', 'B', 'C', 'D', 'E', 'F', 'G', 'H')",
            name="ck_rosters_team_code",
        ),
        CheckConstraint("number > 0 AND number < 1000", name="ck_rosters_number"),
    )

    display_id = Column(String(10), primary_key=True)        # A023
    team_code = Column(String(1), nullable=False)
    number = Column(Integer, nullable=False)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)
    position_offense = Column(String(20), nullable=True)
    position_defense = Column(String(20), nullable=True)
    grade = Column(String(10), nullable=False, default="")
    info1 = Column(Text, nullable=True)
    info2 = Column(Text, nullable=True)
    info3 = Column(Text, nullable=True)
    info4 = Column(Text, nullable=True)
    stat1 = Column(Text, nullable=True)
    stat2 = Column(Text, nullable=True)
    stat3 = Column(Text, nullable=True)
    stat4 = Column(Text, nullable=True)
    stat5 = Column(Text, nullable=True)
    stat6 = Column(Text, nullable=True)
    height = Column(String(10), nullable=True)               # 6'2"
    weight = Column(String(10), nullable=True)               # 180 lbs
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_updated_utc = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class SheetSource(Base):
    __tablename__ = "sheet_sources"

    display_id = Column(String(10), foreign_key_for("sheet_sources", "display_id"), primary_key=True)
    sheet_name = Column(String(50), nullable=False, index=True)
    row_number = Column(Integer, nullable=False)
    row_hash = Column(String(64), nullable=False)
    last_imported_utc = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ImportLog(Base):
    __tablename__ = "import_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    level = Column(String(10), nullable=False, index=True)   # Info | Warn | Error
    message = Column(Text, nullable=False)
    context_json = Column(Text, nullable=True)
    created_utc = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)


class LiveState(Base):
    __tablename__ = "live_states"

    session_id = Column(String(100), foreign_key_for("live_states", "session_id"), primary_key=True)
    home_score = Column(Integer, nullable=False, default=0)
    away_score = Column(Integer, nullable=False, default=0)
    period_or_quarter = Column(String(10), nullable=True)    # "Q1", "3rd", "Set 1"
    clock_time = Column(String(10), nullable=True)           # "12:34"
    clock_running = Column(Boolean, nullable=False, default=False)
    possession = Column(String(1), nullable=True)            # team code

    # gridiron family
    down = Column(Integer, nullable=True)
    distance = Column(String(10), nullable=True)             # "10", "Goal", "Inches"
    flag = Column(Boolean, nullable=True)
    home_timeouts = Column(Integer, nullable=True)
    away_timeouts = Column(Integer, nullable=True)

    # set-based family
    home_sets = Column(Integer, nullable=True)
    away_sets = Column(Integer, nullable=True)
    current_set = Column(Integer, nullable=True)

    last_updated_utc = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Action(Base):
    __tablename__ = "actions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(100), foreign_key_for("actions", "session_id"), nullable=False, index=True)
    when_utc = Column(DateTime(timezone=True), nullable=False)
    user = Column(String(50), nullable=True)
    action_type = Column(String(50), nullable=False)
    post_state_json = Column(Text, nullable=False)
    pre_state_json = Column(Text, nullable=True)
    undo_of_id = Column(Integer, ForeignKey("actions.id", ondelete="SET NULL"), nullable=True)


Index("ix_actions_when_utc_desc", Action.when_utc.desc())


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False, default="")
    category = Column(String(50), nullable=True, index=True)
    last_updated_utc = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


def _stats_column(spec: FieldSpec) -> Column:
    if spec.kind == INT:
        return Column(spec.name, Integer, nullable=False, default=0, server_default="0")
    if spec.kind == FLOAT:
        return Column(spec.name, Float, nullable=False, default=0.0, server_default="0")
    if spec.kind == OPT_INT:
        return Column(spec.name, Integer, nullable=True)
    if spec.kind == OPT_FLOAT:
        return Column(spec.name, Float, nullable=True)
    if spec.kind == FLAG:
        return Column(spec.name, Boolean, nullable=False, default=False, server_default="0")
    if spec.length:
        return Column(spec.name, String(spec.length), nullable=True)
    return Column(spec.name, Text, nullable=True)


def _stats_table(schema: SportSchema) -> Table:
    name = schema.table_name
    return Table(
        name,
        Base.metadata,
        Column("session_id", String(100), foreign_key_for(name, "session_id"), primary_key=True),
        Column("display_id", String(10), foreign_key_for(name, "display_id"), primary_key=True),
        *(_stats_column(spec) for spec in schema.fields),
    )


STATS_TABLES: dict[str, Table] = {
    sport: _stats_table(schema) for sport, schema in SPORT_SCHEMAS.items()
}
