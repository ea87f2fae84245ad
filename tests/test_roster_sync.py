from __future__ import annotations

import json
import unittest
from datetime import datetime, timezone

from broadcast.errors import FeedError
from broadcast.identity import IdentityModel
from broadcast.ingestion.schema import RosterRowIn, row_hash
from broadcast.ingestion.sync import ERROR, INFO, WARN, RosterSyncEngine
from broadcast.models import ImportLog, SheetSource
from broadcast.stats.registry import StatsRegistry
from broadcast.store import create_store


def _feed() -> list[dict]:
    return [
        {"TeamCode": "A", "Number": 23, "FirstName": "Sam", "LastName": "Reed", "POST_OF": "QB", "Grade": "12", "HT": "6'2\""},
        {"TeamCode": "A", "Number": "5", "FirstName": "Lee", "LastName": "Park", "POST_DEF": "CB", "Grade": 11},
        {"TeamCode": "b", "Number": 7, "FirstName": "Ana", "LastName": "Cruz"},
    ]


class RosterRowTests(unittest.TestCase):
    def test_accepts_sheet_headers_and_normalizes(self) -> None:
        row = RosterRowIn.model_validate(_feed()[1])

        self.assertEqual("A005", row.display_id)
        self.assertEqual("11", row.grade)
        self.assertIsNone(row.position_offense)

    def test_accepts_snake_case_names(self) -> None:
        row = RosterRowIn.model_validate({"team_code": "c", "number": 12, "first_name": "  Jo "})

        self.assertEqual("C012", row.display_id)
        self.assertEqual("Jo", row.first_name)

    def test_hash_ignores_key_order(self) -> None:
        fields = RosterRowIn.model_validate(_feed()[0]).content_fields()
        reordered = dict(reversed(list(fields.items())))

        self.assertEqual(row_hash(fields), row_hash(reordered))
        self.assertEqual(64, len(row_hash(fields)))

    def test_numeric_cells_keep_every_digit(self) -> None:
        row = RosterRowIn.model_validate(
            {"TeamCode": "A", "Number": 23, "Stat1": 1234567, "Stat2": 12.0, "Stat3": 4.25, "WT": 180}
        )

        self.assertEqual("1234567", row.stat1)
        self.assertEqual("12", row.stat2)
        self.assertEqual("4.25", row.stat3)
        self.assertEqual("180", row.weight)


class RosterSyncEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = create_store("sqlite://")
        self.engine = RosterSyncEngine(self.store)
        self.identity = IdentityModel(self.store)

    def tearDown(self) -> None:
        self.store.dispose()

    def _logs(self, level: str | None = None) -> list[ImportLog]:
        with self.store.transaction() as db:
            query = db.query(ImportLog)
            if level:
                query = query.filter(ImportLog.level == level)
            return query.order_by(ImportLog.id).all()

    def test_first_run_inserts_rosters_and_sources(self) -> None:
        result = self.engine.ingest(_feed())

        self.assertEqual(3, result.inserted)
        self.assertEqual(["A005", "A023", "B007"], [r.display_id for r in self.identity.active_roster()])
        self.assertEqual("Sam Reed", self.identity.get_roster("A023").full_name)
        self.assertEqual(3, len(self._logs(INFO)))
        with self.store.transaction() as db:
            source = db.get(SheetSource, "A005")
            self.assertEqual("Roster", source.sheet_name)
            self.assertEqual(3, source.row_number)

    def test_second_identical_run_is_a_no_op(self) -> None:
        self.engine.ingest(_feed())
        with self.store.transaction() as db:
            hashes = {s.display_id: s.row_hash for s in db.query(SheetSource).all()}
        info_before = len(self._logs(INFO))

        result = self.engine.ingest(_feed())

        self.assertEqual(3, result.unchanged)
        self.assertEqual(0, result.inserted + result.updated + result.deactivated)
        self.assertEqual(info_before, len(self._logs(INFO)))
        with self.store.transaction() as db:
            self.assertEqual(hashes, {s.display_id: s.row_hash for s in db.query(SheetSource).all()})

    def test_changed_row_updates_roster_and_logs_change(self) -> None:
        self.engine.ingest(_feed())
        feed = _feed()
        feed[0]["LastName"] = "Reid"

        result = self.engine.ingest(feed)

        self.assertEqual(1, result.updated)
        self.assertEqual(2, result.unchanged)
        self.assertEqual("Reid", self.identity.get_roster("A023").last_name)
        last = self._logs(INFO)[-1]
        self.assertEqual("Updated roster A023", last.message)
        self.assertEqual(["Reed", "Reid"], json.loads(last.context_json)["changes"]["last_name"])

    def test_invalid_row_is_skipped_with_warning(self) -> None:
        feed = _feed()
        feed.append({"TeamCode": "Z", "Number": 1, "FirstName": "Bad"})
        feed.append({"TeamCode": "C", "Number": "abc"})

        result = self.engine.ingest(feed)

        self.assertEqual(3, result.inserted)
        self.assertEqual(2, result.skipped)
        warnings = self._logs(WARN)
        self.assertEqual(2, len(warnings))
        self.assertEqual("Z", json.loads(warnings[0].context_json)["raw"]["TeamCode"])

    def test_duplicate_display_id_keeps_first_row(self) -> None:
        feed = _feed()
        feed.append({"TeamCode": "A", "Number": 23, "FirstName": "Other"})

        result = self.engine.ingest(feed)

        self.assertEqual(1, result.skipped)
        self.assertEqual("Sam", self.identity.get_roster("A023").first_name)

    def test_missing_row_is_soft_deleted_and_stats_survive(self) -> None:
        self.engine.ingest(_feed())
        session_id = self.identity.create_session("Football", datetime(2025, 10, 28, 19, 0, tzinfo=timezone.utc)).session_id
        StatsRegistry(self.store).upsert(session_id, "B007", "Football", {"tackles": 4})

        result = self.engine.ingest(_feed()[:2])

        self.assertEqual(1, result.deactivated)
        self.assertFalse(self.identity.get_roster("B007").is_active)
        self.assertNotIn("B007", [r.display_id for r in self.identity.active_roster()])
        self.assertEqual(4, StatsRegistry(self.store).get(session_id, "B007", "Football")["tackles"])

    def test_row_that_reappears_is_reactivated(self) -> None:
        self.engine.ingest(_feed())
        self.engine.ingest(_feed()[:2])

        result = self.engine.ingest(_feed())

        self.assertEqual(1, result.reactivated)
        self.assertTrue(self.identity.get_roster("B007").is_active)

    def test_invalid_row_with_known_id_is_not_soft_deleted(self) -> None:
        self.engine.ingest(_feed())
        feed = _feed()
        feed[2]["FirstName"] = "x" * 80

        result = self.engine.ingest(feed)

        self.assertEqual(1, result.skipped)
        self.assertEqual(0, result.deactivated)
        self.assertTrue(self.identity.get_roster("B007").is_active)

    def test_soft_delete_only_covers_same_sheet(self) -> None:
        self.engine.ingest(_feed())
        self.engine.ingest([{"TeamCode": "H", "Number": 1}], sheet_name="Visitors")

        self.assertEqual(4, len(self.identity.active_roster()))

    def test_unreadable_feed_aborts_without_partial_commit(self) -> None:
        def broken_rows():
            yield _feed()[0]
            raise ValueError("sheet export truncated")

        for feed in (None, "not rows", [], broken_rows(), [{"TeamCode": "Z", "Number": 0}]):
            with self.subTest(feed=feed):
                with self.assertRaises(FeedError):
                    self.engine.ingest(feed)

        self.assertEqual([], self.identity.active_roster())
        self.assertEqual(5, len(self._logs(ERROR)))
        self.assertEqual(0, len(self._logs(WARN)))

    def test_unexpected_feed_error_is_logged_and_wrapped(self) -> None:
        def failing_rows():
            yield _feed()[0]
            raise RuntimeError("sheet service unavailable")

        with self.assertRaises(FeedError) as caught:
            self.engine.ingest(failing_rows())

        self.assertIsInstance(caught.exception.__cause__, RuntimeError)
        self.assertEqual([], self.identity.active_roster())
        errors = self._logs(ERROR)
        self.assertEqual(1, len(errors))
        self.assertIn("sheet service unavailable", errors[0].message)

    def test_recent_logs_are_newest_first(self) -> None:
        self.engine.ingest(_feed())

        entries = self.engine.recent_logs(limit=2)

        self.assertEqual(2, len(entries))
        self.assertGreater(entries[0].id, entries[1].id)


if __name__ == "__main__":
    unittest.main()
