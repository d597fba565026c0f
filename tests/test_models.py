import unittest
from unittest.mock import patch

from sqlalchemy import create_engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from giftshuffle.models import (
    ActivityLog,
    Base,
    BreakdownGift,
    BreakdownRound,
    Gift,
    GiftBreakdown,
    GiftWinner,
    RoundGift,
    ShuffleSession,
    StaffUser,
)
from giftshuffle.shuffle.access_code import generate_access_code, generate_unique_access_code


class DBTestCase(unittest.TestCase):
    def setUp(self):
        # In-memory SQLite for isolation
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self):
        self.engine.dispose()

    def _seed_session(self, session):
        mug = Gift(name="Mug")
        session.add(mug)
        session.flush()
        breakdown = GiftBreakdown(
            name="Promo",
            total_number=2,
            lines=[BreakdownGift(gift_id=mug.id, quantity=2)],
        )
        session.add(breakdown)
        session.flush()
        shuffle_session = ShuffleSession(
            event_name="Expo",
            vehicle_number="VAN-1",
            breakdown=breakdown,
            access_code="abc123",
        )
        session.add(shuffle_session)
        session.flush()
        return mug, breakdown, shuffle_session

    def test_staff_email_normalized_and_lookup(self):
        with self.Session() as session:
            staff = StaffUser(email="  Boss@Example.COM ", role="manager")
            session.add(staff)
            session.commit()

            self.assertEqual(staff.email, "boss@example.com")
            self.assertTrue(staff.is_manager)
            self.assertIs(StaffUser.get_by_email(session, "BOSS@example.com"), staff)

    def test_staff_role_must_be_known(self):
        with self.assertRaises(ValueError):
            StaffUser(email="x@example.com", role="owner")

    def test_gift_name_required(self):
        with self.assertRaises(ValueError):
            Gift(name="   ")
        gift = Gift(name=" Cap ")
        self.assertEqual(gift.name, "Cap")

    def test_breakdown_line_quantity_must_be_positive(self):
        for bad in (0, -1, True, 1.5):
            with self.subTest(quantity=bad):
                with self.assertRaises(ValueError):
                    BreakdownGift(gift_id=1, quantity=bad)

    def test_breakdown_lines_and_quantities(self):
        with self.Session.begin() as session:
            mug, breakdown, _ = self._seed_session(session)
            self.assertEqual(breakdown.total_quantity, 2)
            self.assertEqual(breakdown.quantities(), {mug.id: 2})
            self.assertEqual(GiftBreakdown.get_active(session), [breakdown])

    def test_duplicate_breakdown_line_rejected(self):
        with self.Session() as session:
            mug = Gift(name="Mug")
            session.add(mug)
            session.flush()
            breakdown = GiftBreakdown(
                name="Dup",
                total_number=2,
                lines=[
                    BreakdownGift(gift_id=mug.id, quantity=1),
                    BreakdownGift(gift_id=mug.id, quantity=1),
                ],
            )
            session.add(breakdown)
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()

    def test_session_access_code_is_upper_cased_and_found(self):
        with self.Session.begin() as session:
            _, _, shuffle_session = self._seed_session(session)
            self.assertEqual(shuffle_session.access_code, "ABC123")
            self.assertTrue(shuffle_session.is_active)
            self.assertEqual(shuffle_session.current_round_number, 0)
            self.assertIs(
                ShuffleSession.get_by_access_code(session, " abc123 "), shuffle_session
            )

            shuffle_session.mark_completed()
            session.flush()
            self.assertIsNone(ShuffleSession.get_by_access_code(session, "ABC123"))
            self.assertIsNotNone(
                ShuffleSession.get_by_access_code(session, "ABC123", active_only=False)
            )
            self.assertIsNotNone(shuffle_session.end_time)

    def test_round_gift_constructor_bounds(self):
        with self.assertRaises(ValueError):
            RoundGift(gift_id=1, quantity_available=-1)
        with self.assertRaises(ValueError):
            RoundGift(gift_id=1, quantity_available=2, quantity_used=3)
        row = RoundGift(gift_id=1, quantity_available=3, quantity_used=1)
        self.assertEqual(row.remaining, 2)
        self.assertTrue(row.has_stock)

    def test_database_rejects_overconsumed_inventory(self):
        with self.Session() as session:
            mug, breakdown, shuffle_session = self._seed_session(session)
            round_ = BreakdownRound(
                session_id=shuffle_session.id,
                breakdown_id=breakdown.id,
                round_number=1,
            )
            session.add(round_)
            session.flush()
            row = RoundGift(round=round_, gift_id=mug.id, quantity_available=1)
            session.add(row)
            session.flush()

            with self.assertRaises(IntegrityError):
                session.execute(
                    update(RoundGift)
                    .where(RoundGift.id == row.id)
                    .values(quantity_used=2),
                    execution_options={"synchronize_session": False},
                )
            session.rollback()

    def test_round_totals(self):
        with self.Session.begin() as session:
            mug, breakdown, shuffle_session = self._seed_session(session)
            cap = Gift(name="Cap")
            session.add(cap)
            session.flush()
            round_ = BreakdownRound(
                session_id=shuffle_session.id,
                breakdown_id=breakdown.id,
                round_number=1,
            )
            round_.gifts.append(RoundGift(gift_id=mug.id, quantity_available=2, quantity_used=2))
            round_.gifts.append(RoundGift(gift_id=cap.id, quantity_available=3, quantity_used=1))
            session.add(round_)
            session.flush()

            self.assertEqual(round_.total_available, 5)
            self.assertEqual(round_.total_used, 3)
            self.assertEqual(round_.total_remaining, 2)
            self.assertTrue(round_.is_active)
            round_.mark_completed()
            self.assertFalse(round_.is_active)
            self.assertIsNotNone(round_.completed_at)

    def test_winner_rows_are_immutable(self):
        with self.Session() as session:
            mug, breakdown, shuffle_session = self._seed_session(session)
            round_ = BreakdownRound(
                session_id=shuffle_session.id,
                breakdown_id=breakdown.id,
                round_number=1,
            )
            session.add(round_)
            session.flush()
            winner = GiftWinner(
                session_id=shuffle_session.id,
                round_id=round_.id,
                gift_id=mug.id,
                play_round_number=1,
            )
            session.add(winner)
            session.commit()

            self.assertEqual(GiftWinner.max_play_round(session, shuffle_session.id), 1)
            self.assertFalse(winner.boosted)

            winner.winner_name = "Changed"
            with self.assertRaises(ValueError):
                session.flush()
            session.rollback()

            session.delete(winner)
            with self.assertRaises(ValueError):
                session.flush()
            session.rollback()

            self.assertEqual(
                len(session.scalars(select(GiftWinner)).all()), 1
            )

    def test_activity_log_details_round_trip(self):
        with self.Session.begin() as session:
            entry = ActivityLog(action="set_boost")
            entry.details = {"gift_id": 3, "target_play_round": 5}
            session.add(entry)
            session.flush()
            self.assertEqual(entry.details, {"gift_id": 3, "target_play_round": 5})

            empty = ActivityLog(action="noop")
            self.assertEqual(empty.details, {})

    def test_generate_access_code_alphabet(self):
        code = generate_access_code(8)
        self.assertEqual(len(code), 8)
        self.assertTrue(code.isalnum())
        self.assertEqual(code, code.upper())

    def test_generate_unique_access_code_retries_on_collision(self):
        with self.Session.begin() as session:
            self._seed_session(session)

            with patch(
                "giftshuffle.shuffle.access_code.secrets.choice",
                side_effect=list("ABC123" + "ZZZZZZ"),
            ):
                generated = generate_unique_access_code(session, 6)

            self.assertEqual(generated, "ZZZZZZ")


if __name__ == "__main__":
    unittest.main()
