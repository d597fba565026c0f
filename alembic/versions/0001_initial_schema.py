"""initial gift shuffle schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "staff_users",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=100), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_staff_users")),
    )
    op.create_index(op.f("ix_staff_users_id"), "staff_users", ["id"], unique=False)
    op.create_index(op.f("ix_staff_users_email"), "staff_users", ["email"], unique=True)

    op.create_table(
        "gifts",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_gifts")),
    )
    op.create_index(op.f("ix_gifts_id"), "gifts", ["id"], unique=False)

    op.create_table(
        "gift_breakdowns",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("total_number", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by_id", ID_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "total_number >= 0",
            name=op.f("ck_gift_breakdowns_total_number_non_negative"),
        ),
        sa.ForeignKeyConstraint(
            ["created_by_id"],
            ["staff_users.id"],
            name=op.f("fk_gift_breakdowns_created_by_id_staff_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_gift_breakdowns")),
    )
    op.create_index(op.f("ix_gift_breakdowns_id"), "gift_breakdowns", ["id"], unique=False)

    op.create_table(
        "breakdown_gifts",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("breakdown_id", ID_TYPE, nullable=False),
        sa.Column("gift_id", ID_TYPE, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name=op.f("ck_breakdown_gifts_quantity_positive")),
        sa.ForeignKeyConstraint(
            ["breakdown_id"],
            ["gift_breakdowns.id"],
            name=op.f("fk_breakdown_gifts_breakdown_id_gift_breakdowns"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["gift_id"],
            ["gifts.id"],
            name=op.f("fk_breakdown_gifts_gift_id_gifts"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_breakdown_gifts")),
        sa.UniqueConstraint(
            "breakdown_id", "gift_id", name="uq_breakdown_gifts_breakdown_gift"
        ),
    )
    op.create_index(
        op.f("ix_breakdown_gifts_breakdown_id"), "breakdown_gifts", ["breakdown_id"], unique=False
    )

    op.create_table(
        "shuffle_sessions",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("event_name", sa.String(length=255), nullable=False),
        sa.Column("vehicle_number", sa.String(length=50), nullable=False),
        sa.Column("breakdown_id", ID_TYPE, nullable=False),
        sa.Column("access_code", sa.String(length=16), nullable=False),
        sa.Column("theme_key", sa.String(length=64), nullable=False),
        sa.Column("collect_customer_info", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_id", ID_TYPE, nullable=True),
        sa.Column("current_round_number", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "status IN ('active', 'completed')",
            name=op.f("ck_shuffle_sessions_session_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["breakdown_id"],
            ["gift_breakdowns.id"],
            name=op.f("fk_shuffle_sessions_breakdown_id_gift_breakdowns"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["created_by_id"],
            ["staff_users.id"],
            name=op.f("fk_shuffle_sessions_created_by_id_staff_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_shuffle_sessions")),
        sa.UniqueConstraint("access_code", name=op.f("uq_shuffle_sessions_access_code")),
    )
    op.create_index(op.f("ix_shuffle_sessions_id"), "shuffle_sessions", ["id"], unique=False)
    op.create_index(
        op.f("ix_shuffle_sessions_breakdown_id"), "shuffle_sessions", ["breakdown_id"], unique=False
    )

    op.create_table(
        "breakdown_rounds",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("session_id", ID_TYPE, nullable=False),
        sa.Column("breakdown_id", ID_TYPE, nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "round_number > 0", name=op.f("ck_breakdown_rounds_round_number_positive")
        ),
        sa.CheckConstraint(
            "status IN ('active', 'completed')",
            name=op.f("ck_breakdown_rounds_round_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["shuffle_sessions.id"],
            name=op.f("fk_breakdown_rounds_session_id_shuffle_sessions"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["breakdown_id"],
            ["gift_breakdowns.id"],
            name=op.f("fk_breakdown_rounds_breakdown_id_gift_breakdowns"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_breakdown_rounds")),
        sa.UniqueConstraint(
            "session_id", "round_number", name="uq_breakdown_rounds_session_round"
        ),
    )
    op.create_index(op.f("ix_breakdown_rounds_id"), "breakdown_rounds", ["id"], unique=False)
    op.create_index(
        "ix_breakdown_rounds_session_status",
        "breakdown_rounds",
        ["session_id", "status"],
        unique=False,
    )

    op.create_table(
        "round_gifts",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("round_id", ID_TYPE, nullable=False),
        sa.Column("gift_id", ID_TYPE, nullable=False),
        sa.Column("quantity_available", sa.Integer(), nullable=False),
        sa.Column("quantity_used", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "quantity_available >= 0", name=op.f("ck_round_gifts_available_non_negative")
        ),
        sa.CheckConstraint(
            "quantity_used >= 0 AND quantity_used <= quantity_available",
            name=op.f("ck_round_gifts_used_within_available"),
        ),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["breakdown_rounds.id"],
            name=op.f("fk_round_gifts_round_id_breakdown_rounds"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["gift_id"],
            ["gifts.id"],
            name=op.f("fk_round_gifts_gift_id_gifts"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_round_gifts")),
        sa.UniqueConstraint("round_id", "gift_id", name="uq_round_gifts_round_gift"),
    )
    op.create_index(op.f("ix_round_gifts_round_id"), "round_gifts", ["round_id"], unique=False)

    op.create_table(
        "gift_boosts",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("session_id", ID_TYPE, nullable=False),
        sa.Column("round_id", ID_TYPE, nullable=False),
        sa.Column("gift_id", ID_TYPE, nullable=False),
        sa.Column("target_play_round", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "target_play_round IS NULL OR target_play_round > 0",
            name=op.f("ck_gift_boosts_target_play_round_positive"),
        ),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["shuffle_sessions.id"],
            name=op.f("fk_gift_boosts_session_id_shuffle_sessions"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["breakdown_rounds.id"],
            name=op.f("fk_gift_boosts_round_id_breakdown_rounds"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["gift_id"],
            ["gifts.id"],
            name=op.f("fk_gift_boosts_gift_id_gifts"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_gift_boosts")),
        sa.UniqueConstraint(
            "session_id", "target_play_round", name="uq_gift_boosts_session_play_round"
        ),
    )
    op.create_index(op.f("ix_gift_boosts_session_id"), "gift_boosts", ["session_id"], unique=False)
    op.create_index(op.f("ix_gift_boosts_round_id"), "gift_boosts", ["round_id"], unique=False)

    op.create_table(
        "gift_winners",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("session_id", ID_TYPE, nullable=False),
        sa.Column("round_id", ID_TYPE, nullable=False),
        sa.Column("gift_id", ID_TYPE, nullable=False),
        sa.Column("winner_name", sa.String(length=255), nullable=True),
        sa.Column("winner_nic", sa.String(length=50), nullable=True),
        sa.Column("winner_phone", sa.String(length=50), nullable=True),
        sa.Column("play_round_number", sa.Integer(), nullable=False),
        sa.Column("win_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("boosted", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["shuffle_sessions.id"],
            name=op.f("fk_gift_winners_session_id_shuffle_sessions"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["breakdown_rounds.id"],
            name=op.f("fk_gift_winners_round_id_breakdown_rounds"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["gift_id"],
            ["gifts.id"],
            name=op.f("fk_gift_winners_gift_id_gifts"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_gift_winners")),
    )
    op.create_index(op.f("ix_gift_winners_round_id"), "gift_winners", ["round_id"], unique=False)
    op.create_index(op.f("ix_gift_winners_gift_id"), "gift_winners", ["gift_id"], unique=False)
    op.create_index(
        "ix_gift_winners_session_play_round",
        "gift_winners",
        ["session_id", "play_round_number"],
        unique=False,
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("actor_id", ID_TYPE, nullable=True),
        sa.Column("actor_role", sa.String(length=20), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("subject_table", sa.String(length=50), nullable=True),
        sa.Column("subject_id", sa.Integer(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["actor_id"],
            ["staff_users.id"],
            name=op.f("fk_activity_logs_actor_id_staff_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_activity_logs")),
    )
    op.create_index(op.f("ix_activity_logs_action"), "activity_logs", ["action"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_activity_logs_action"), table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_gift_winners_session_play_round", table_name="gift_winners")
    op.drop_index(op.f("ix_gift_winners_gift_id"), table_name="gift_winners")
    op.drop_index(op.f("ix_gift_winners_round_id"), table_name="gift_winners")
    op.drop_table("gift_winners")
    op.drop_index(op.f("ix_gift_boosts_round_id"), table_name="gift_boosts")
    op.drop_index(op.f("ix_gift_boosts_session_id"), table_name="gift_boosts")
    op.drop_table("gift_boosts")
    op.drop_index(op.f("ix_round_gifts_round_id"), table_name="round_gifts")
    op.drop_table("round_gifts")
    op.drop_index("ix_breakdown_rounds_session_status", table_name="breakdown_rounds")
    op.drop_index(op.f("ix_breakdown_rounds_id"), table_name="breakdown_rounds")
    op.drop_table("breakdown_rounds")
    op.drop_index(op.f("ix_shuffle_sessions_breakdown_id"), table_name="shuffle_sessions")
    op.drop_index(op.f("ix_shuffle_sessions_id"), table_name="shuffle_sessions")
    op.drop_table("shuffle_sessions")
    op.drop_index(op.f("ix_breakdown_gifts_breakdown_id"), table_name="breakdown_gifts")
    op.drop_table("breakdown_gifts")
    op.drop_index(op.f("ix_gift_breakdowns_id"), table_name="gift_breakdowns")
    op.drop_table("gift_breakdowns")
    op.drop_index(op.f("ix_gifts_id"), table_name="gifts")
    op.drop_table("gifts")
    op.drop_index(op.f("ix_staff_users_email"), table_name="staff_users")
    op.drop_index(op.f("ix_staff_users_id"), table_name="staff_users")
    op.drop_table("staff_users")
