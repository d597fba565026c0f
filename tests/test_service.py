import random
import unittest
from unittest.mock import patch

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from giftshuffle.activity import Actor, DatabaseActivitySink, NullActivitySink
from giftshuffle.config import Settings
from giftshuffle.models import (
    ActivityLog,
    Base,
    BreakdownRound,
    Gift,
    GiftBreakdown,
    GiftWinner,
    StaffUser,
)
from giftshuffle.service import GiftShuffleService
from giftshuffle.shuffle.errors import (
    CUSTOMER_RETRY_MESSAGE,
    ConcurrencyConflict,
    DrawFailed,
    InvalidArgument,
    NoGiftsAvailable,
    NotFound,
    PermissionDenied,
    SessionClosed,
)
from giftshuffle.shuffle.results import CustomerInfo, SessionStatistics


class FailingSink:
    def __init__(self):
        self.calls = 0

    def log_activity(self, actor, action, details=None):
        self.calls += 1
        raise RuntimeError("activity store unavailable")


class ServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )
        self.settings = Settings(database_url="sqlite://", draw_max_attempts=3)
        self.sink = NullActivitySink()
        self.service = self._service()

        with self.Session.begin() as session:
            manager = StaffUser(email="manager@example.com", role="manager")
            alice = StaffUser(email="alice@example.com", role="staff")
            bob = StaffUser(email="bob@example.com", role="staff")
            mug = Gift(name="Mug", description="Ceramic mug")
            cap = Gift(name="Cap")
            session.add_all([manager, alice, bob, mug, cap])
            session.flush()
            self.manager = Actor(staff_id=manager.id, role="manager")
            self.alice = Actor(staff_id=alice.id, role="staff")
            self.bob = Actor(staff_id=bob.id, role="staff")
            self.mug_id = mug.id
            self.cap_id = cap.id

    def tearDown(self):
        self.engine.dispose()

    def _service(self, **kwargs):
        kwargs.setdefault("activity_sink", self.sink)
        kwargs.setdefault("rng", random.Random(1234))
        return GiftShuffleService(self.Session, settings=self.settings, **kwargs)

    def _start(self, quantities=None, actor=None, **kwargs):
        quantities = quantities or {self.mug_id: 2, self.cap_id: 1}
        breakdown = self.service.create_breakdown(
            self.manager, "Promo", sum(quantities.values()), quantities
        )
        return self.service.start_session(
            actor or self.alice,
            event_name="Expo",
            vehicle_number="VAN-7",
            breakdown_id=breakdown.id,
            **kwargs,
        )


class DrawServiceTests(ServiceTestCase):
    def test_draw_gift_returns_result(self):
        shuffle_session = self._start()

        result = self.service.draw_gift(shuffle_session.id)

        self.assertIn(result.gift_id, (self.mug_id, self.cap_id))
        self.assertEqual(result.play_round_number, 1)
        self.assertEqual(result.breakdown_round_number, 1)
        self.assertFalse(result.boosted)
        payload = result.for_display()
        self.assertNotIn("boosted", payload)
        self.assertEqual(payload["gift_name"], result.gift_name)

    def test_draws_advance_rounds(self):
        shuffle_session = self._start()

        results = [self.service.draw_gift(shuffle_session.id) for _ in range(4)]

        self.assertEqual([r.play_round_number for r in results], [1, 2, 3, 4])
        self.assertEqual([r.breakdown_round_number for r in results], [1, 1, 1, 2])
        current = self.service.get_current_round(shuffle_session.id)
        self.assertEqual(current.round_number, 2)
        self.assertEqual(current.total_remaining, 2)
        self.assertFalse(self.service.is_round_complete(current.id))

    def test_boost_through_service(self):
        shuffle_session = self._start()
        current = self.service.get_or_create_next_round(shuffle_session.id)
        self.service.set_boost(
            self.alice, shuffle_session.id, current.id, self.cap_id, target_play_round=1
        )

        result = self.service.draw_gift(shuffle_session.id)

        self.assertEqual(result.gift_id, self.cap_id)
        self.assertTrue(result.boosted)
        listed = self.service.list_boosts(shuffle_session.id)
        self.assertFalse(listed.degraded)
        self.assertEqual([b.target_play_round for b in listed.value], [1])

    def test_remove_boost(self):
        shuffle_session = self._start()
        current = self.service.get_or_create_next_round(shuffle_session.id)
        boost = self.service.set_boost(self.alice, shuffle_session.id, current.id, self.mug_id)

        self.service.remove_boost(self.alice, boost.id)

        self.assertEqual(self.service.list_boosts(shuffle_session.id).value, [])
        with self.assertRaises(NotFound):
            self.service.remove_boost(self.alice, boost.id)

    def test_customer_info_flow(self):
        shuffle_session = self._start(collect_customer_info=True)

        with self.assertRaises(InvalidArgument):
            self.service.draw_gift(shuffle_session.id)
        self.service.draw_gift(shuffle_session.id, CustomerInfo(name="Kamal", phone="0771234567"))

        winner = self.service.latest_winner(shuffle_session.id)
        self.assertEqual(winner.winner_name, "Kamal")
        self.assertEqual(winner.play_round_number, 1)

    def test_closed_session_refuses_draws(self):
        shuffle_session = self._start()
        self.service.complete_session(self.alice, shuffle_session.id)

        with self.assertRaises(SessionClosed):
            self.service.draw_gift(shuffle_session.id)
        with self.assertRaises(SessionClosed):
            self.service.complete_session(self.alice, shuffle_session.id)
        self.assertIsNone(
            self.service.find_active_session_by_access_code(shuffle_session.access_code)
        )

    def test_closed_session_refuses_round_and_boost_changes(self):
        shuffle_session = self._start()
        current = self.service.get_or_create_next_round(shuffle_session.id)
        self.service.complete_session(self.alice, shuffle_session.id)

        with self.assertRaises(SessionClosed):
            self.service.get_or_create_next_round(shuffle_session.id)
        with self.assertRaises(SessionClosed):
            self.service.create_round(self.alice, shuffle_session.id, 2)
        with self.assertRaises(SessionClosed):
            self.service.set_boost(
                self.alice, shuffle_session.id, current.id, self.mug_id, target_play_round=1
            )
        self.assertIsNone(self.service.get_current_round(shuffle_session.id))
        self.assertEqual(self.service.list_boosts(shuffle_session.id).value, [])

    def test_draw_that_keeps_losing_races_leaves_nothing_behind(self):
        shuffle_session = self._start()

        with patch(
            "giftshuffle.workflows._consume_unit",
            side_effect=ConcurrencyConflict("taken by another draw"),
        ):
            with self.assertRaises(DrawFailed) as ctx:
                self.service.draw_gift(shuffle_session.id)

        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(ctx.exception.customer_message, CUSTOMER_RETRY_MESSAGE)
        with self.Session() as session:
            rounds = session.scalars(
                select(BreakdownRound).where(BreakdownRound.session_id == shuffle_session.id)
            ).all()
            winners = session.scalars(
                select(GiftWinner).where(GiftWinner.session_id == shuffle_session.id)
            ).all()
        self.assertEqual(rounds, [])
        self.assertEqual(winners, [])

    def test_draw_for_display(self):
        shuffle_session = self._start({self.mug_id: 1})

        shown = self.service.draw_for_display(shuffle_session.id)

        self.assertTrue(shown["success"])
        self.assertEqual(shown["gift_id"], self.mug_id)
        self.assertEqual(shown["gift_name"], "Mug")
        self.assertEqual(shown["play_round_number"], 1)
        self.assertNotIn("boosted", shown)

        with patch(
            "giftshuffle.workflows._consume_unit",
            side_effect=ConcurrencyConflict("taken by another draw"),
        ):
            refused = self.service.draw_for_display(shuffle_session.id)
        self.assertEqual(refused, {"success": False, "message": CUSTOMER_RETRY_MESSAGE})

        self.service.complete_session(self.alice, shuffle_session.id)
        with self.assertRaises(SessionClosed):
            self.service.draw_for_display(shuffle_session.id)

    def test_empty_round_raises_no_gifts_available(self):
        shuffle_session = self._start()
        with self.Session.begin() as session:
            empty = GiftBreakdown(name="Empty", total_number=0)
            session.add(empty)
            session.flush()
            empty_id = empty.id
        self.service.create_round(self.alice, shuffle_session.id, 1, breakdown_id=empty_id)

        with self.assertRaises(NoGiftsAvailable):
            self.service.draw_gift(shuffle_session.id)

    def test_get_or_create_next_round_is_idempotent(self):
        shuffle_session = self._start()
        first = self.service.get_or_create_next_round(shuffle_session.id)
        again = self.service.get_or_create_next_round(shuffle_session.id)

        self.assertEqual(first.id, again.id)
        self.assertEqual(
            sorted(row.gift.name for row in first.gifts), ["Cap", "Mug"]
        )
        rows = self.service.get_round_gifts(first.id)
        self.assertEqual([row.gift.name for row in rows], ["Cap", "Mug"])

    def test_create_round_completes_current(self):
        shuffle_session = self._start()
        first = self.service.get_or_create_next_round(shuffle_session.id)

        third = self.service.create_round(self.manager, shuffle_session.id, 3)

        self.assertEqual(third.round_number, 3)
        self.assertEqual(third.total_available, 3)
        self.assertEqual(self.service.get_current_round(shuffle_session.id).id, third.id)
        self.assertNotEqual(first.id, third.id)

    def test_created_breakdown_is_loaded_with_its_lines(self):
        breakdown = self.service.create_breakdown(
            self.manager, "Loaded", 4, {self.mug_id: 3, self.cap_id: 1}
        )

        self.assertEqual(breakdown.quantities(), {self.mug_id: 3, self.cap_id: 1})
        self.assertEqual(breakdown.total_quantity, 4)

    def test_session_details_and_access_code(self):
        shuffle_session = self._start(theme_key="neon")
        self.service.draw_gift(shuffle_session.id)

        found = self.service.find_active_session_by_access_code(
            f" {shuffle_session.access_code.lower()} "
        )
        self.assertEqual(found.id, shuffle_session.id)
        self.assertEqual(found.theme_key, "neon")

        details = self.service.session_details(shuffle_session.id)
        self.assertEqual(details.total_gifts, 3)
        self.assertEqual(details.remaining_gifts, 2)


class ValidationServiceTests(ServiceTestCase):
    def test_malformed_ids_rejected(self):
        for bad in (0, -1, "1", True, None, 1.0):
            with self.subTest(session_id=bad):
                with self.assertRaises(InvalidArgument):
                    self.service.draw_gift(bad)
                with self.assertRaises(InvalidArgument):
                    self.service.recent_winners(bad)

    def test_unknown_ids_raise_not_found(self):
        with self.assertRaises(NotFound):
            self.service.draw_gift(999)
        with self.assertRaises(NotFound):
            self.service.session_details(999)
        with self.assertRaises(NotFound):
            self.service.start_session(
                self.alice, event_name="Expo", vehicle_number="VAN-1", breakdown_id=999
            )

    def test_blank_access_code_rejected(self):
        with self.assertRaises(InvalidArgument):
            self.service.find_active_session_by_access_code("   ")

    def test_staff_permissions(self):
        shuffle_session = self._start(actor=self.alice)
        current = self.service.get_or_create_next_round(shuffle_session.id)

        with self.assertRaises(PermissionDenied):
            self.service.create_breakdown(self.alice, "Mine", 1, {self.mug_id: 1})
        with self.assertRaises(PermissionDenied):
            self.service.set_boost(self.bob, shuffle_session.id, current.id, self.mug_id)
        with self.assertRaises(PermissionDenied):
            self.service.complete_session(self.bob, shuffle_session.id)
        with self.assertRaises(PermissionDenied):
            self.service.start_session(
                None, event_name="Expo", vehicle_number="VAN-1", breakdown_id=1
            )

        # Creator and managers may manage the session.
        self.service.set_boost(self.alice, shuffle_session.id, current.id, self.mug_id)
        completed = self.service.complete_session(self.manager, shuffle_session.id)
        self.assertEqual(completed.status, "completed")


class ReportingServiceTests(ServiceTestCase):
    def test_recent_winners_and_statistics(self):
        shuffle_session = self._start()
        for _ in range(4):
            self.service.draw_gift(shuffle_session.id)

        recent = self.service.recent_winners(shuffle_session.id, limit=2)
        self.assertFalse(recent.degraded)
        self.assertEqual([w.play_round_number for w in recent.value], [4, 3])
        self.assertEqual(len(self.service.recent_winners(shuffle_session.id).value), 4)

        stats = self.service.get_session_statistics(shuffle_session.id)
        self.assertFalse(stats.degraded)
        self.assertEqual(stats.value.total_winners, 4)
        self.assertEqual([r.winners_count for r in stats.value.rounds], [3, 1])

    def test_reads_degrade_when_store_is_unavailable(self):
        shuffle_session = self._start()
        self.service.draw_gift(shuffle_session.id)
        Base.metadata.drop_all(self.engine)

        boosts = self.service.list_boosts(shuffle_session.id)
        winners = self.service.recent_winners(shuffle_session.id)
        stats = self.service.get_session_statistics(shuffle_session.id)

        self.assertTrue(boosts.degraded)
        self.assertEqual(boosts.value, [])
        self.assertTrue(winners.degraded)
        self.assertEqual(winners.value, [])
        self.assertTrue(stats.degraded)
        self.assertEqual(stats.value, SessionStatistics(session_id=shuffle_session.id))
        self.assertIsNotNone(stats.error)


class ActivityServiceTests(ServiceTestCase):
    def test_database_sink_records_mutations(self):
        self.service = self._service(activity_sink=DatabaseActivitySink(self.Session))
        shuffle_session = self._start()
        self.service.draw_gift(shuffle_session.id)

        with self.Session() as session:
            entries = session.scalars(select(ActivityLog).order_by(ActivityLog.id)).all()

        self.assertEqual(
            [e.action for e in entries],
            ["create_breakdown", "start_session", "draw_gift"],
        )
        start = entries[1]
        self.assertEqual(start.actor_id, self.alice.staff_id)
        self.assertEqual(start.actor_role, "staff")
        self.assertEqual(start.subject_table, "shuffle_sessions")
        self.assertEqual(start.subject_id, shuffle_session.id)
        self.assertEqual(start.details["vehicle_number"], "VAN-7")
        draw = entries[2]
        self.assertIsNone(draw.actor_id)
        self.assertEqual(draw.details["play_round_number"], 1)

    def test_failing_sink_does_not_abort_operations(self):
        sink = FailingSink()
        self.service = self._service(activity_sink=sink)
        shuffle_session = self._start()

        result = self.service.draw_gift(shuffle_session.id)

        self.assertEqual(result.play_round_number, 1)
        self.assertEqual(sink.calls, 3)
        with self.Session() as session:
            self.assertEqual(len(session.scalars(select(GiftWinner)).all()), 1)


if __name__ == "__main__":
    unittest.main()
