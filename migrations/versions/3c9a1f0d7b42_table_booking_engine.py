"""table booking engine

Revision ID: 3c9a1f0d7b42
Revises: 
Create Date: 2026-10-18 09:12:44.310562

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = '3c9a1f0d7b42'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist;")

    op.create_table(
        "restaurant_tables",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("table_number", sa.Integer(), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("min_party_size", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("table_type", sa.String(32), nullable=False, server_default="standard"),
        sa.Column("location_description", sa.String(255), nullable=True),
        sa.CheckConstraint("capacity >= 1", name="ck_table_capacity_positive"),
        sa.CheckConstraint("min_party_size >= 1 AND min_party_size <= capacity", name="ck_table_min_party"),
    )

    op.create_table(
        "table_reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("table_id", sa.Integer(), sa.ForeignKey("restaurant_tables.id"), nullable=True),
        sa.Column("user_id", sa.String(128), nullable=True),
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("customer_email", sa.String(254), nullable=False),
        sa.Column("customer_phone", sa.String(32), nullable=False),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("source", sa.String(16), nullable=False, server_default="web"),
        sa.Column("reservation_date", sa.Date(), nullable=False),
        sa.Column("reservation_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reservation_end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("number_of_guests", sa.Integer(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("grace_period_minutes", sa.Integer(), nullable=False),
        sa.Column("max_sitting_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="confirmed"),
        sa.Column("actual_arrival_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_departure_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_late_arrival", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("number_of_guests BETWEEN 1 AND 20", name="ck_reservation_guests"),
        sa.CheckConstraint("reservation_end_time > reservation_time", name="ck_reservation_times"),
        sa.CheckConstraint("duration_minutes > 0 AND duration_minutes <= 480", name="ck_reservation_duration"),
        sa.CheckConstraint("grace_period_minutes >= 0 AND grace_period_minutes <= 60", name="ck_reservation_grace"),
        sa.CheckConstraint("max_sitting_minutes > 0 AND max_sitting_minutes <= 600", name="ck_reservation_sitting"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'seated', 'completed', 'cancelled', 'no_show')",
            name="ck_reservation_status",
        ),
    )
    op.create_index(
        "ix_reservations_window", "table_reservations", ["reservation_time", "reservation_end_time"]
    )
    op.create_index("ix_reservations_table_date", "table_reservations", ["table_id", "reservation_date"])
    op.create_index("ix_reservations_user", "table_reservations", ["user_id"])

    # Half-open ranges: back-to-back bookings on one table do not collide.
    op.execute(
        """
        ALTER TABLE table_reservations
          ADD CONSTRAINT no_table_overlap
          EXCLUDE USING gist (
            table_id WITH =,
            tstzrange(reservation_time, reservation_end_time, '[)') WITH &&
          )
          WHERE (table_id IS NOT NULL AND status IN ('pending', 'confirmed'));
        """
    )

    op.create_table(
        "restaurant_config",
        sa.Column("config_key", sa.String(100), primary_key=True),
        sa.Column("config_value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "working_hours",
        sa.Column("day_of_week", sa.Integer(), primary_key=True),
        sa.Column("is_open", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_lunch_service", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("lunch_start", sa.Time(), nullable=True),
        sa.Column("lunch_end", sa.Time(), nullable=True),
        sa.Column("is_dinner_service", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("dinner_start", sa.Time(), nullable=True),
        sa.Column("dinner_end", sa.Time(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_working_hours_day"),
    )


def downgrade() -> None:
    op.drop_table("working_hours")
    op.drop_table("restaurant_config")
    op.execute("ALTER TABLE table_reservations DROP CONSTRAINT IF EXISTS no_table_overlap;")
    op.drop_index("ix_reservations_user", table_name="table_reservations")
    op.drop_index("ix_reservations_table_date", table_name="table_reservations")
    op.drop_index("ix_reservations_window", table_name="table_reservations")
    op.drop_table("table_reservations")
    op.drop_table("restaurant_tables")
    op.execute("DROP EXTENSION IF EXISTS btree_gist;")
