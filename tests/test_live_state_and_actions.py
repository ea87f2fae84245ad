from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from broadcast.actions import LIVE_RESTORE, LIVE_UPDATE, STATS_RESTORE, STATS_UPDATE, ActionLog
from broadcast.errors import NotFoundError, NotUndoableError, ValidationError
from broadcast.identity import IdentityModel
from broadcast.live_state import LiveStateTracker
from broadcast.stats.registry import StatsRegistry
from broadcast.store import create_store

KICKOFF = datetime(2025, 10, 28, 19, 0, 0, tzinfo=timezone.utc)


class LiveStateTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = create_store("sqlite://")
        self.identity = IdentityModel(self.store)
        self.football = self.identity.create_session("Football", KICKOFF).session_id
        self.basketball = self.identity.create_session("Basketball", KICKOFF).session_id
        self.tracker = LiveStateTracker(self.store)

    def tearDown(self) -> None:
        self.store.dispose()

    def test_read_without_state_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.tracker.read(self.football)

    def test_first_delta_creates_state_with_family_defaults(self) -> None:
        state = self.tracker.apply_delta(self.football, {"home_score": 7})

        self.assertEqual(7, state.home_score)
        self.assertEqual(0, state.away_score)
        self.assertEqual(1, state.down)
        self.assertEqual("10", state.distance)
        self.assertEqual(3, state.home_timeouts)
        self.assertIsNone(state.current_set)

    def test_disjoint_deltas_are_both_observable(self) -> None:
        self.tracker.apply_delta(self.basketball, {"home_score": 12})
        self.tracker.apply_delta(self.basketball, {"clock_time": "08:41", "clock_running": True})

        state = self.tracker.read(self.basketball)

        self.assertEqual(12, state.home_score)
        self.assertEqual("08:41", state.clock_time)
        self.assertTrue(state.clock_running)

    def test_overlay_fields_outside_sport_family_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.tracker.apply_delta(self.basketball, {"down": 2})
        with self.assertRaises(ValidationError):
            self.tracker.apply_delta(self.football, {"current_set": 2})

    def test_invalid_fields_are_rejected(self) -> None:
        for fields in ({}, {"possession": "Z"}, {"home_score": -1}, {"home_score": None}, {"quarter": "Q1"}):
            with self.subTest(fields=fields):
                with self.assertRaises(ValidationError):
                    self.tracker.apply_delta(self.football, fields)

    def test_unknown_session_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.tracker.apply_delta("Football_2020-01-01_000000", {"home_score": 1})

    def test_set_based_sport_tracks_sets(self) -> None:
        volleyball = self.identity.create_session("Volleyball", KICKOFF).session_id

        state = self.tracker.apply_delta(volleyball, {"home_sets": 1, "current_set": 2})

        self.assertEqual(1, state.home_sets)
        self.assertEqual(0, state.away_sets)
        self.assertEqual(2, state.current_set)
        self.assertIsNone(state.down)


class ActionLogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = create_store("sqlite://")
        identity = IdentityModel(self.store)
        self.session_id = identity.create_session("Football", KICKOFF).session_id
        identity.add_roster("A", 23)
        self.actions = ActionLog(self.store)
        self.registry = StatsRegistry(self.store)
        self.tracker = LiveStateTracker(self.store)

    def tearDown(self) -> None:
        self.store.dispose()

    def test_stat_delta_then_undo_restores_counters(self) -> None:
        self.registry.upsert(self.session_id, "A023", "Football", {"rush_yds": 30, "rush_att": 4})
        before = self.registry.get(self.session_id, "A023", "Football").counters

        action_id = self.actions.record_stat_delta(self.session_id, "op1", "A023", {"rush_yds": 12, "rush_att": 1})
        self.assertEqual(42, self.registry.get(self.session_id, "A023", "Football")["rush_yds"])

        restore_id = self.actions.undo(action_id, actor="op1")

        self.assertEqual(before, self.registry.get(self.session_id, "A023", "Football").counters)
        restore = self.actions.get(restore_id)
        self.assertEqual(STATS_RESTORE, restore.action_type)
        self.assertEqual(action_id, restore.undo_of_id)
        self.assertEqual({"rush_att": 5, "rush_yds": 42}, restore.pre_state["fields"])

    def test_undo_of_first_stat_delta_returns_to_zero(self) -> None:
        action_id = self.actions.record_stat_delta(self.session_id, None, "A023", {"tackles": 1})

        self.actions.undo(action_id)

        self.assertEqual(0, self.registry.get(self.session_id, "A023", "Football")["tackles"])

    def test_undo_of_first_stat_delta_removes_row(self) -> None:
        self.assertEqual([], self.registry.list_for_session(self.session_id, "Football"))
        action_id = self.actions.record_stat_delta(self.session_id, None, "A023", {"tackles": 1})
        self.assertEqual(1, len(self.registry.list_for_session(self.session_id, "Football")))

        self.actions.undo(action_id)

        self.assertEqual([], self.registry.list_for_session(self.session_id, "Football"))
        self.assertFalse(self.registry.get(self.session_id, "A023", "Football").stored)

    def test_undo_of_first_stat_delta_keeps_row_with_later_changes(self) -> None:
        action_id = self.actions.record_stat_delta(self.session_id, None, "A023", {"tackles": 1})
        self.registry.upsert(self.session_id, "A023", "Football", {"sacks": 2})

        self.actions.undo(action_id)

        record = self.registry.get(self.session_id, "A023", "Football")
        self.assertTrue(record.stored)
        self.assertEqual(0, record["tackles"])
        self.assertEqual(2, record["sacks"])

    def test_undo_of_first_live_change_removes_state(self) -> None:
        with self.assertRaises(NotFoundError):
            self.tracker.read(self.session_id)
        action_id = self.actions.record_live_change(self.session_id, "op", {"home_score": 7, "down": 2})
        self.assertEqual(7, self.tracker.read(self.session_id).home_score)

        self.actions.undo(action_id)

        with self.assertRaises(NotFoundError):
            self.tracker.read(self.session_id)

    def test_undo_of_first_live_change_keeps_state_with_later_changes(self) -> None:
        action_id = self.actions.record_live_change(self.session_id, "op", {"home_score": 7})
        self.tracker.apply_delta(self.session_id, {"away_score": 3})

        self.actions.undo(action_id)

        state = self.tracker.read(self.session_id)
        self.assertEqual(0, state.home_score)
        self.assertEqual(3, state.away_score)

    def test_live_change_then_undo_restores_fields(self) -> None:
        self.tracker.apply_delta(self.session_id, {"home_score": 7, "period_or_quarter": "Q1"})

        action_id = self.actions.record_live_change(self.session_id, "op2", {"home_score": 14, "down": 3})
        self.actions.undo(action_id)

        state = self.tracker.read(self.session_id)
        self.assertEqual(7, state.home_score)
        self.assertEqual(1, state.down)
        self.assertEqual("Q1", state.period_or_quarter)

    def test_undo_of_restore_is_a_redo(self) -> None:
        action_id = self.actions.record_live_change(self.session_id, "op", {"home_score": 3})
        restore_id = self.actions.undo(action_id)
        with self.assertRaises(NotFoundError):
            self.tracker.read(self.session_id)

        redo_id = self.actions.undo(restore_id)

        self.assertEqual(3, self.tracker.read(self.session_id).home_score)
        self.assertEqual(LIVE_RESTORE, self.actions.get(redo_id).action_type)
        self.assertEqual(restore_id, self.actions.get(redo_id).undo_of_id)

    def test_entry_without_pre_state_is_not_undoable(self) -> None:
        action_id = self.actions.record(self.session_id, "op", LIVE_UPDATE, {"fields": {"away_score": 3}})

        self.assertEqual(3, self.tracker.read(self.session_id).away_score)
        with self.assertRaises(NotUndoableError):
            self.actions.undo(action_id)

    def test_undo_of_missing_action_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.actions.undo(999)

    def test_failed_apply_leaves_no_entry(self) -> None:
        with self.assertRaises(NotFoundError):
            self.actions.record_stat_delta(self.session_id, "op", "B009", {"tackles": 1})
        with self.assertRaises(ValidationError):
            self.actions.record_live_change(self.session_id, "op", {"home_sets": 1})

        self.assertEqual([], self.actions.query(self.session_id))

    def test_record_validates_type_and_sport(self) -> None:
        with self.assertRaises(ValidationError):
            self.actions.record(self.session_id, "op", "stats.delete", {"fields": {"tackles": 1}})
        with self.assertRaises(ValidationError):
            self.actions.record(
                self.session_id,
                "op",
                STATS_UPDATE,
                {"sport": "Soccer", "display_id": "A023", "fields": {"goals": 1}},
            )

    def test_query_is_newest_first_with_limit_and_since(self) -> None:
        ids = [
            self.actions.record_live_change(self.session_id, "op", {"home_score": score})
            for score in (1, 2, 3)
        ]

        entries = self.actions.query(self.session_id)
        self.assertEqual(list(reversed(ids)), [entry.id for entry in entries])
        self.assertEqual([ids[2]], [entry.id for entry in self.actions.query(self.session_id, limit=1)])

        future = datetime.now(timezone.utc) + timedelta(hours=1)
        self.assertEqual([], self.actions.query(self.session_id, since=future))
        self.assertEqual({"fields": {"home_score": 2}}, entries[1].post_state)
        self.assertEqual({"fields": {"home_score": 1}}, entries[1].pre_state)

    def test_query_since_compares_instants_across_offsets(self) -> None:
        action_id = self.actions.record_live_change(self.session_id, "op", {"home_score": 1})
        eastern = timezone(timedelta(hours=-5))

        later = datetime.now(eastern) + timedelta(minutes=5)
        earlier = datetime.now(eastern) - timedelta(minutes=5)

        self.assertEqual([], self.actions.query(self.session_id, since=later))
        self.assertEqual([action_id], [entry.id for entry in self.actions.query(self.session_id, since=earlier)])

    def test_timestamps_are_returned_in_utc(self) -> None:
        action_id = self.actions.record_live_change(self.session_id, "op", {"home_score": 1})

        when = self.actions.get(action_id).when_utc

        self.assertEqual(timezone.utc, when.tzinfo)
        self.assertEqual(timezone.utc, self.actions.query(self.session_id)[0].when_utc.tzinfo)
        self.assertEqual(timedelta(0), self.tracker.read(self.session_id).last_updated_utc.utcoffset())


if __name__ == "__main__":
    unittest.main()
