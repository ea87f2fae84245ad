from __future__ import annotations

import importlib.util
import os
import unittest
from pathlib import Path
from unittest import mock

from alembic.migration import MigrationContext
from alembic.operations import Operations
from cryptography.fernet import Fernet
from sqlalchemy import create_engine, inspect

from broadcast import settings as settings_module
from broadcast.db import Base
from broadcast.models import Setting
from broadcast.settings import (
    FEED_API_KEY,
    get_setting,
    load_config,
    load_feed_api_key,
    set_setting,
    store_feed_api_key,
)
from broadcast.store import create_store

MIGRATION = Path(__file__).resolve().parents[1] / "alembic" / "versions" / "20251028000100_initial.py"


def _load_migration():
    spec = importlib.util.spec_from_file_location("initial_migration", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class InitialMigrationTests(unittest.TestCase):
    def test_upgrade_creates_every_model_table(self) -> None:
        migration = _load_migration()
        engine = create_engine("sqlite://")
        self.addCleanup(engine.dispose)

        with engine.begin() as connection:
            context = MigrationContext.configure(connection)
            with Operations.context(context):
                migration.upgrade()

        inspector = inspect(engine)
        self.assertEqual(set(Base.metadata.tables), set(inspector.get_table_names()))
        for name, table in Base.metadata.tables.items():
            with self.subTest(table=name):
                columns = {column["name"] for column in inspector.get_columns(name)}
                self.assertEqual({column.name for column in table.columns}, columns)

    def test_downgrade_drops_everything(self) -> None:
        migration = _load_migration()
        engine = create_engine("sqlite://")
        self.addCleanup(engine.dispose)

        with engine.begin() as connection:
            context = MigrationContext.configure(connection)
            with Operations.context(context):
                migration.upgrade()
                migration.downgrade()

        self.assertEqual([], inspect(engine).get_table_names())


class ConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config()

        self.assertEqual("sqlite:///broadcast.db", config.database_url)
        self.assertEqual("Roster", config.roster_sheet_name)
        self.assertEqual(7, config.roster_poll_seconds)
        self.assertEqual("INFO", config.log_level)

    def test_environment_overrides_and_bad_interval(self) -> None:
        env = {
            "DATABASE_URL": "sqlite:///tmp/game.db",
            "ROSTER_SHEET_NAME": "Home",
            "ROSTER_POLL_SECONDS": "soon",
            "LOG_LEVEL": "debug",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config()

        self.assertEqual("sqlite:///tmp/game.db", config.database_url)
        self.assertEqual("Home", config.roster_sheet_name)
        self.assertEqual(7, config.roster_poll_seconds)
        self.assertEqual("DEBUG", config.log_level)


class PersistedSettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = create_store("sqlite://")
        patcher = mock.patch.dict(os.environ, {"APP_SECRET_KEY": Fernet.generate_key().decode("utf-8")})
        patcher.start()
        self.addCleanup(patcher.stop)
        settings_module._FERNET = None
        self.addCleanup(setattr, settings_module, "_FERNET", None)

    def tearDown(self) -> None:
        self.store.dispose()

    def test_set_and_get_setting(self) -> None:
        with self.store.transaction() as db:
            self.assertEqual("fallback", get_setting(db, "Display.Theme", "fallback"))
            set_setting(db, "Display.Theme", "dark", category="Display")
            set_setting(db, "Display.Theme", "light")

        with self.store.transaction() as db:
            self.assertEqual("light", get_setting(db, "Display.Theme"))
            self.assertEqual("Display", db.get(Setting, "Display.Theme").category)

    def test_feed_api_key_is_stored_encrypted(self) -> None:
        with self.store.transaction() as db:
            store_feed_api_key(db, "sheet-token-123")

        with self.store.transaction() as db:
            raw = get_setting(db, FEED_API_KEY)
            self.assertNotIn("sheet-token-123", raw)
            self.assertEqual("sheet-token-123", load_feed_api_key(db))

    def test_unreadable_secret_loads_as_none(self) -> None:
        with self.store.transaction() as db:
            set_setting(db, FEED_API_KEY, "not-a-token")

        with self.store.transaction() as db:
            self.assertIsNone(load_feed_api_key(db))


if __name__ == "__main__":
    unittest.main()
