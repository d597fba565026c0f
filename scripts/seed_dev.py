import logging

from giftshuffle.activity import Actor, NullActivitySink
from giftshuffle.config import Settings, configure_logging
from giftshuffle.db.engine import get_sessionmaker, make_engine
from giftshuffle.models import Base, Gift, StaffUser
from giftshuffle.service import GiftShuffleService

logger = logging.getLogger(__name__)


def main() -> None:
    """Reset the development database and seed a demo breakdown and session."""
    settings = Settings.from_env()
    configure_logging(settings)
    engine = make_engine(settings.database_url)

    # SQLite struggles with foreign-key dependencies during DROP, so
    # temporarily disable foreign key checks to ensure a clean reset.
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        conn.commit()

    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    with Session.begin() as session:
        admin = StaffUser(
            email="admin@example.com",
            password_hash="dev-hash",
            name="Shuffle Admin",
            role="admin",
        )
        operator = StaffUser(
            email="operator@example.com",
            password_hash="dev-hash",
            name="Van Operator",
            role="staff",
        )
        mug = Gift(name="Travel Mug", description="Insulated 350ml travel mug")
        cap = Gift(name="Cap", description="Embroidered baseball cap")
        keychain = Gift(name="Keychain")
        tote = Gift(name="Tote Bag", description="Canvas tote bag")
        session.add_all([admin, operator, mug, cap, keychain, tote])
        session.flush()
        admin_actor = Actor(staff_id=admin.id, role=admin.role)
        operator_actor = Actor(staff_id=operator.id, role=operator.role)
        quantities = {mug.id: 5, cap.id: 10, keychain.id: 30, tote.id: 5}

    service = GiftShuffleService(
        Session, settings=settings, activity_sink=NullActivitySink()
    )
    breakdown = service.create_breakdown(
        admin_actor, "Weekend Promo", sum(quantities.values()), quantities
    )
    shuffle_session = service.start_session(
        operator_actor,
        event_name="City Mall Roadshow",
        vehicle_number="WP-CAB-1234",
        breakdown_id=breakdown.id,
    )
    for _ in range(3):
        result = service.draw_gift(shuffle_session.id)
        logger.info(f"Play round {result.play_round_number}: {result.gift_name}")

    logger.info(
        f"Development database seeded. Display access code: {shuffle_session.access_code}"
    )


if __name__ == "__main__":
    main()
