import unittest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from giftshuffle.models import Base, BreakdownGift, Gift, GiftBreakdown, ShuffleSession
from giftshuffle.shuffle.boosts import (
    get_boost_for_play_round,
    get_boost_for_round,
    list_boosts,
    remove_boost,
    set_boost,
)
from giftshuffle.shuffle.errors import InvalidArgument, NotFound, SessionClosed
from giftshuffle.shuffle.rounds import create_round, get_round_gifts


class BoostRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _seed(self, session, code="BOOST1"):
        mug = Gift(name="Mug")
        cap = Gift(name="Cap")
        session.add_all([mug, cap])
        session.flush()
        breakdown = GiftBreakdown(
            name="Promo",
            total_number=3,
            lines=[
                BreakdownGift(gift_id=mug.id, quantity=2),
                BreakdownGift(gift_id=cap.id, quantity=1),
            ],
        )
        shuffle_session = ShuffleSession(
            event_name="Expo",
            vehicle_number="VAN-1",
            breakdown=breakdown,
            access_code=code,
        )
        session.add_all([breakdown, shuffle_session])
        session.flush()
        round_ = create_round(session, shuffle_session, breakdown, 1)
        return mug, cap, shuffle_session, round_

    def test_play_round_boost_upserts(self) -> None:
        with self.Session.begin() as session:
            mug, cap, shuffle_session, round_ = self._seed(session)
            first = set_boost(session, shuffle_session, round_, mug, target_play_round=5)
            second = set_boost(session, shuffle_session, round_, cap, target_play_round=5)

            self.assertEqual(first.id, second.id)
            boost = get_boost_for_play_round(session, shuffle_session.id, 5)
            self.assertEqual(boost.gift_id, cap.id)
            self.assertIsNone(get_boost_for_play_round(session, shuffle_session.id, 6))
            self.assertFalse(boost.is_round_scoped)

    def test_round_scoped_boost_one_per_round(self) -> None:
        with self.Session.begin() as session:
            mug, cap, shuffle_session, round_ = self._seed(session)
            set_boost(session, shuffle_session, round_, mug)
            set_boost(session, shuffle_session, round_, cap)

            boosts = list_boosts(session, shuffle_session.id)
            self.assertEqual(len(boosts), 1)
            self.assertTrue(boosts[0].is_round_scoped)
            self.assertEqual(get_boost_for_round(session, round_.id).gift_id, cap.id)

    def test_round_lookup_ignores_play_round_boosts(self) -> None:
        with self.Session.begin() as session:
            mug, _, shuffle_session, round_ = self._seed(session)
            set_boost(session, shuffle_session, round_, mug, target_play_round=2)
            self.assertIsNone(get_boost_for_round(session, round_.id))

    def test_list_boosts_orders_by_target(self) -> None:
        with self.Session.begin() as session:
            mug, cap, shuffle_session, round_ = self._seed(session)
            set_boost(session, shuffle_session, round_, mug)
            set_boost(session, shuffle_session, round_, cap, target_play_round=9)
            set_boost(session, shuffle_session, round_, mug, target_play_round=3)

            targets = [b.target_play_round for b in list_boosts(session, shuffle_session.id)]
            self.assertEqual(targets, [3, 9, None])

    def test_list_boosts_empty(self) -> None:
        with self.Session.begin() as session:
            _, _, shuffle_session, _ = self._seed(session)
            self.assertEqual(list_boosts(session, shuffle_session.id), [])

    def test_target_must_be_positive(self) -> None:
        with self.Session.begin() as session:
            mug, _, shuffle_session, round_ = self._seed(session)
            for bad in (0, -3, True):
                with self.subTest(target=bad):
                    with self.assertRaises(InvalidArgument):
                        set_boost(session, shuffle_session, round_, mug, target_play_round=bad)

    def test_round_must_belong_to_session(self) -> None:
        with self.Session.begin() as session:
            mug, _, shuffle_session, _ = self._seed(session)
            _, _, _, other_round = self._seed(session, code="OTHER1")
            with self.assertRaises(InvalidArgument):
                set_boost(session, shuffle_session, other_round, mug, target_play_round=1)

    def test_gift_without_stock_rejected(self) -> None:
        with self.Session.begin() as session:
            _, cap, shuffle_session, round_ = self._seed(session)
            for row in get_round_gifts(session, round_.id):
                if row.gift_id == cap.id:
                    row.quantity_used = row.quantity_available
            session.flush()

            with self.assertRaises(InvalidArgument):
                set_boost(session, shuffle_session, round_, cap, target_play_round=1)

            stranger = Gift(name="Stranger")
            session.add(stranger)
            session.flush()
            with self.assertRaises(InvalidArgument):
                set_boost(session, shuffle_session, round_, stranger)

    def test_remove_boost(self) -> None:
        with self.Session.begin() as session:
            mug, _, shuffle_session, round_ = self._seed(session)
            boost = set_boost(session, shuffle_session, round_, mug, target_play_round=1)
            remove_boost(session, boost.id)
            self.assertEqual(list_boosts(session, shuffle_session.id), [])
            with self.assertRaises(NotFound):
                remove_boost(session, boost.id)

    def test_completed_session_rejects_boosts(self) -> None:
        with self.Session.begin() as session:
            mug, _, shuffle_session, round_ = self._seed(session)
            shuffle_session.mark_completed()
            session.flush()

            with self.assertRaises(SessionClosed):
                set_boost(session, shuffle_session, round_, mug, target_play_round=1)
            with self.assertRaises(SessionClosed):
                set_boost(session, shuffle_session, round_, mug)
            self.assertIsNone(get_boost_for_play_round(session, shuffle_session.id, 1))
            self.assertIsNone(get_boost_for_round(session, round_.id))


if __name__ == "__main__":
    unittest.main()
