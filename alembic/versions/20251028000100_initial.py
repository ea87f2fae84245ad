"""initial broadcast schema

Revision ID: 20251028000100
Revises:
Create Date: 2025-10-28 00:01:00.000000

"""
from alembic import op
import sqlalchemy as sa

from broadcast.stats.schema import FLAG, FLOAT, INT, OPT_FLOAT, OPT_INT, SPORT_SCHEMAS

# revision identifiers, used by Alembic.
revision = "20251028000100"
down_revision = None
branch_labels = None
depends_on = None


def _stats_column(spec) -> sa.Column:
    if spec.kind == INT:
        return sa.Column(spec.name, sa.Integer(), server_default="0", nullable=False)
    if spec.kind == FLOAT:
        return sa.Column(spec.name, sa.Float(), server_default="0", nullable=False)
    if spec.kind == OPT_INT:
        return sa.Column(spec.name, sa.Integer(), nullable=True)
    if spec.kind == OPT_FLOAT:
        return sa.Column(spec.name, sa.Float(), nullable=True)
    if spec.kind == FLAG:
        return sa.Column(spec.name, sa.Boolean(), server_default="0", nullable=False)
    if spec.length:
        return sa.Column(spec.name, sa.String(length=spec.length), nullable=True)
    return sa.Column(spec.name, sa.Text(), nullable=True)


def upgrade() -> None:
    op.create_table(
        "sessions",
        sa.Column("session_id", sa.String(length=100), nullable=False),
        sa.Column("sport", sa.String(length=50), nullable=False),
        sa.Column("started_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("stopped_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("active_teams", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("session_id"),
    )
    op.create_index("ix_sessions_sport", "sessions", ["sport"], unique=False)
    op.create_index("ix_sessions_stopped_utc", "sessions", ["stopped_utc"], unique=False)

    op.create_table(
        "rosters",
        sa.Column("display_id", sa.String(length=10), nullable=False),
        sa.Column("team_code", sa.String(length=1), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("first_name", sa.String(length=50), nullable=True),
        sa.Column("last_name", sa.String(length=50), nullable=True),
        sa.Column("position_offense", sa.String(length=20), nullable=True),
        sa.Column("position_defense", sa.String(length=20), nullable=True),
        sa.Column("grade", sa.String(length=10), nullable=False),
        sa.Column("info1", sa.Text(), nullable=True),
        sa.Column("info2", sa.Text(), nullable=True),
        sa.Column("info3", sa.Text(), nullable=True),
        sa.Column("info4", sa.Text(), nullable=True),
        sa.Column("stat1", sa.Text(), nullable=True),
        sa.Column("stat2", sa.Text(), nullable=True),
        sa.Column("stat3", sa.Text(), nullable=True),
        sa.Column("stat4", sa.Text(), nullable=True),
        sa.Column("stat5", sa.Text(), nullable=True),
        sa.Column("stat6", sa.Text(), nullable=True),
        sa.Column("height", sa.String(length=10), nullable=True),
        sa.Column("weight", sa.String(length=10), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column(
            "last_updated_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "team_code IN ('A', 'B', 'C', 'D', 'E', 'F', 'G', 'H')",
            name="ck_rosters_team_code",
        ),
        sa.CheckConstraint("number > 0 AND number < 1000", name="ck_rosters_number"),
        sa.PrimaryKeyConstraint("display_id"),
    )
    op.create_index("ix_rosters_team_number", "rosters", ["team_code", "number"], unique=False)
    op.create_index("ix_rosters_is_active", "rosters", ["is_active"], unique=False)

    op.create_table(
        "sheet_sources",
        sa.Column("display_id", sa.String(length=10), nullable=False),
        sa.Column("sheet_name", sa.String(length=50), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("row_hash", sa.String(length=64), nullable=False),
        sa.Column(
            "last_imported_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["display_id"], ["rosters.display_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("display_id"),
    )
    op.create_index("ix_sheet_sources_sheet_name", "sheet_sources", ["sheet_name"], unique=False)

    op.create_table(
        "import_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("level", sa.String(length=10), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("context_json", sa.Text(), nullable=True),
        sa.Column(
            "created_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_logs_level", "import_logs", ["level"], unique=False)
    op.create_index("ix_import_logs_created_utc", "import_logs", ["created_utc"], unique=False)

    op.create_table(
        "live_states",
        sa.Column("session_id", sa.String(length=100), nullable=False),
        sa.Column("home_score", sa.Integer(), nullable=False),
        sa.Column("away_score", sa.Integer(), nullable=False),
        sa.Column("period_or_quarter", sa.String(length=10), nullable=True),
        sa.Column("clock_time", sa.String(length=10), nullable=True),
        sa.Column("clock_running", sa.Boolean(), nullable=False),
        sa.Column("possession", sa.String(length=1), nullable=True),
        sa.Column("down", sa.Integer(), nullable=True),
        sa.Column("distance", sa.String(length=10), nullable=True),
        sa.Column("flag", sa.Boolean(), nullable=True),
        sa.Column("home_timeouts", sa.Integer(), nullable=True),
        sa.Column("away_timeouts", sa.Integer(), nullable=True),
        sa.Column("home_sets", sa.Integer(), nullable=True),
        sa.Column("away_sets", sa.Integer(), nullable=True),
        sa.Column("current_set", sa.Integer(), nullable=True),
        sa.Column(
            "last_updated_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.session_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("session_id"),
    )

    op.create_table(
        "actions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("session_id", sa.String(length=100), nullable=False),
        sa.Column("when_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user", sa.String(length=50), nullable=True),
        sa.Column("action_type", sa.String(length=50), nullable=False),
        sa.Column("post_state_json", sa.Text(), nullable=False),
        sa.Column("pre_state_json", sa.Text(), nullable=True),
        sa.Column("undo_of_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.session_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["undo_of_id"], ["actions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_actions_session_id", "actions", ["session_id"], unique=False)
    op.create_index("ix_actions_when_utc_desc", "actions", [sa.text("when_utc DESC")], unique=False)

    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column(
            "last_updated_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index("ix_settings_category", "settings", ["category"], unique=False)

    for schema in SPORT_SCHEMAS.values():
        op.create_table(
            schema.table_name,
            sa.Column("session_id", sa.String(length=100), nullable=False),
            sa.Column("display_id", sa.String(length=10), nullable=False),
            *(_stats_column(spec) for spec in schema.fields),
            sa.ForeignKeyConstraint(["session_id"], ["sessions.session_id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["display_id"], ["rosters.display_id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("session_id", "display_id"),
        )


def downgrade() -> None:
    for schema in SPORT_SCHEMAS.values():
        op.drop_table(schema.table_name)

    op.drop_index("ix_settings_category", table_name="settings")
    op.drop_table("settings")
    op.drop_index("ix_actions_when_utc_desc", table_name="actions")
    op.drop_index("ix_actions_session_id", table_name="actions")
    op.drop_table("actions")
    op.drop_table("live_states")
    op.drop_index("ix_import_logs_created_utc", table_name="import_logs")
    op.drop_index("ix_import_logs_level", table_name="import_logs")
    op.drop_table("import_logs")
    op.drop_index("ix_sheet_sources_sheet_name", table_name="sheet_sources")
    op.drop_table("sheet_sources")
    op.drop_index("ix_rosters_is_active", table_name="rosters")
    op.drop_index("ix_rosters_team_number", table_name="rosters")
    op.drop_table("rosters")
    op.drop_index("ix_sessions_stopped_utc", table_name="sessions")
    op.drop_index("ix_sessions_sport", table_name="sessions")
    op.drop_table("sessions")
