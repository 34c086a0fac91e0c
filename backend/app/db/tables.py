from sqlalchemy import (
    DDL,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    Time,
    event,
    true,
)

metadata = MetaData()


# Owned by the inventory module; the engine only reads it.
restaurant_tables = Table(
    "restaurant_tables",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("table_number", Integer, nullable=False, unique=True),
    Column("name", String(100), nullable=True),
    Column("capacity", Integer, nullable=False),
    Column("min_party_size", Integer, nullable=False, server_default="1"),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("table_type", String(32), nullable=False, server_default="standard"),
    Column("location_description", String(255), nullable=True),
    CheckConstraint("capacity >= 1", name="ck_table_capacity_positive"),
    CheckConstraint("min_party_size >= 1 AND min_party_size <= capacity", name="ck_table_min_party"),
)


table_reservations = Table(
    "table_reservations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("table_id", Integer, ForeignKey("restaurant_tables.id"), nullable=True),
    Column("user_id", String(128), nullable=True),
    Column("customer_name", String(200), nullable=False),
    Column("customer_email", String(254), nullable=False),
    Column("customer_phone", String(32), nullable=False),
    Column("special_requests", Text, nullable=True),
    Column("source", String(16), nullable=False, server_default="web"),
    Column("reservation_date", Date, nullable=False),
    # UTC instants; reservation_date is the local service date.
    Column("reservation_time", DateTime(timezone=True), nullable=False),
    Column("reservation_end_time", DateTime(timezone=True), nullable=False),
    Column("number_of_guests", Integer, nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    Column("grace_period_minutes", Integer, nullable=False),
    Column("max_sitting_minutes", Integer, nullable=False),
    Column("status", String(16), nullable=False, server_default="confirmed"),
    Column("actual_arrival_time", DateTime(timezone=True), nullable=True),
    Column("actual_departure_time", DateTime(timezone=True), nullable=True),
    Column("is_late_arrival", Boolean, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("number_of_guests BETWEEN 1 AND 20", name="ck_reservation_guests"),
    CheckConstraint("reservation_end_time > reservation_time", name="ck_reservation_times"),
    CheckConstraint("duration_minutes > 0 AND duration_minutes <= 480", name="ck_reservation_duration"),
    CheckConstraint("grace_period_minutes >= 0 AND grace_period_minutes <= 60", name="ck_reservation_grace"),
    CheckConstraint("max_sitting_minutes > 0 AND max_sitting_minutes <= 600", name="ck_reservation_sitting"),
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'seated', 'completed', 'cancelled', 'no_show')",
        name="ck_reservation_status",
    ),
)

Index("ix_reservations_window", table_reservations.c.reservation_time, table_reservations.c.reservation_end_time)
Index("ix_reservations_table_date", table_reservations.c.table_id, table_reservations.c.reservation_date)
Index("ix_reservations_user", table_reservations.c.user_id)

# Mirrors migration 3c9a1f0d7b42 for schemas created through metadata.create_all.
event.listen(
    table_reservations,
    "after_create",
    DDL(
        "ALTER TABLE table_reservations ADD CONSTRAINT no_table_overlap "
        "EXCLUDE USING gist (table_id WITH =, tstzrange(reservation_time, reservation_end_time, '[)') WITH &&) "
        "WHERE (table_id IS NOT NULL AND status IN ('pending', 'confirmed'))"
    ).execute_if(dialect="postgresql"),
)


restaurant_config = Table(
    "restaurant_config",
    metadata,
    Column("config_key", String(100), primary_key=True),
    Column("config_value", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


working_hours = Table(
    "working_hours",
    metadata,
    # Monday = 0, as date.weekday()
    Column("day_of_week", Integer, primary_key=True),
    Column("is_open", Boolean, nullable=False, server_default=true()),
    Column("is_lunch_service", Boolean, nullable=False, server_default=true()),
    Column("lunch_start", Time, nullable=True),
    Column("lunch_end", Time, nullable=True),
    Column("is_dinner_service", Boolean, nullable=False, server_default=true()),
    Column("dinner_start", Time, nullable=True),
    Column("dinner_end", Time, nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_working_hours_day"),
)
