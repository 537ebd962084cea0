"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "cities",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=80), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cities_name", "cities", ["name"], unique=True)

    op.create_table(
        "vehicle_classes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=40), nullable=False),
        sa.Column("max_load_kg", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_vehicle_classes_name", "vehicle_classes", ["name"], unique=True)

    op.create_table(
        "pricing_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("city", sa.String(length=80), nullable=False),
        sa.Column("vehicle_class", sa.String(length=40), nullable=False),
        sa.Column("base_fare", sa.Numeric(12, 2), nullable=False),
        sa.Column("per_km_rate", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("city", "vehicle_class", name="uq_pricing_city_vehicle_class"),
    )
    op.create_index("ix_pricing_records_city", "pricing_records", ["city"])
    op.create_index("ix_pricing_records_vehicle_class", "pricing_records", ["vehicle_class"])

    op.create_table(
        "carriers",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("full_name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("mobile", sa.String(length=20), nullable=False),
        sa.Column("vehicle_class", sa.String(length=40), nullable=False),
        sa.Column("vehicle_number", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_on_trip", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("current_lat", sa.Float(), nullable=True),
        sa.Column("current_lng", sa.Float(), nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_carriers_mobile", "carriers", ["mobile"], unique=True)
    op.create_index("ix_carriers_vehicle_class", "carriers", ["vehicle_class"])
    op.create_index("ix_carriers_is_online", "carriers", ["is_online"])
    op.create_index("ix_carriers_is_available", "carriers", ["is_available"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_ref", sa.String(length=20), nullable=False),
        sa.Column("requester_id", sa.String(length=36), nullable=False),
        sa.Column("carrier_id", sa.String(length=36), nullable=True),
        sa.Column("city", sa.String(length=80), nullable=False),
        sa.Column("vehicle_class", sa.String(length=40), nullable=False),
        sa.Column("trip_type", sa.String(length=12), nullable=False, server_default="IN_CITY"),
        sa.Column("pickup_lat", sa.Float(), nullable=False),
        sa.Column("pickup_lng", sa.Float(), nullable=False),
        sa.Column("drop_lat", sa.Float(), nullable=False),
        sa.Column("drop_lng", sa.Float(), nullable=False),
        sa.Column("distance_km", sa.Float(), nullable=False, server_default="0"),
        sa.Column("duration_min", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("actual_distance_km", sa.Float(), nullable=True),
        sa.Column("actual_duration_min", sa.Integer(), nullable=True),
        sa.Column("carrier_to_pickup_km", sa.Float(), nullable=True),
        sa.Column("carrier_to_pickup_eta_min", sa.Integer(), nullable=True),
        sa.Column("remaining_distance_km", sa.Float(), nullable=True),
        sa.Column("remaining_eta_min", sa.Integer(), nullable=True),
        sa.Column("last_carrier_lat", sa.Float(), nullable=True),
        sa.Column("last_carrier_lng", sa.Float(), nullable=True),
        sa.Column("base_fare", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("labour_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("labour_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("loading_charge", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("discount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("pickup_charge", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("payable_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("final_fare", sa.Numeric(12, 2), nullable=True),
        sa.Column("platform_commission", sa.Numeric(12, 2), nullable=True),
        sa.Column("carrier_earning", sa.Numeric(12, 2), nullable=True),
        sa.Column("payment_method", sa.String(length=10), nullable=True),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="NONE"),
        sa.Column("gateway_order_id", sa.String(length=64), nullable=True),
        sa.Column("gateway_payment_id", sa.String(length=64), nullable=True),
        sa.Column("gateway_signature", sa.String(length=128), nullable=True),
        sa.Column("gateway_refund_id", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("trip_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fare_finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("earning_credited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_bookings_booking_ref", "bookings", ["booking_ref"], unique=True)
    op.create_index("ix_bookings_requester_id", "bookings", ["requester_id"])
    op.create_index("ix_bookings_carrier_id", "bookings", ["carrier_id"])
    op.create_index("ix_bookings_city", "bookings", ["city"])
    op.create_index("ix_bookings_vehicle_class", "bookings", ["vehicle_class"])
    op.create_index("ix_bookings_gateway_order_id", "bookings", ["gateway_order_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])

    op.create_table(
        "booking_rejections",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("carrier_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("booking_id", "carrier_id", name="uq_booking_rejection"),
    )
    op.create_index("ix_booking_rejections_booking_id", "booking_rejections", ["booking_id"])
    op.create_index("ix_booking_rejections_carrier_id", "booking_rejections", ["carrier_id"])

    op.create_table(
        "wallets",
        sa.Column("carrier_id", sa.String(length=36), primary_key=True),
        sa.Column("balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("bank_name", sa.String(length=120), nullable=True),
        sa.Column("bank_account_number", sa.String(length=34), nullable=True),
        sa.Column("account_holder_name", sa.String(length=200), nullable=True),
        sa.Column("ifsc_code", sa.String(length=11), nullable=True),
        sa.Column("identity_linked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
    )

    op.create_table(
        "withdrawal_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("carrier_id", sa.String(length=36), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="PENDING"),
        sa.Column("resolved_by", sa.String(length=36), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_withdrawal_requests_carrier_id", "withdrawal_requests", ["carrier_id"])
    op.create_index("ix_withdrawal_requests_status", "withdrawal_requests", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("withdrawal_requests")
    op.drop_table("wallets")
    op.drop_table("booking_rejections")
    op.drop_table("bookings")
    op.drop_table("carriers")
    op.drop_table("pricing_records")
    op.drop_table("vehicle_classes")
    op.drop_table("cities")
