"""Create booking, catalog, settings and template tables

Revision ID: 3f2a9c1d7b10
Revises:
Create Date: 2025-11-03 10:12:31.418207

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]
from stay_booking.config import SCHEMA

# revision identifiers, used by Alembic.
revision = "3f2a9c1d7b10"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _fk(table: str, column: str) -> str:
    return f"{SCHEMA}.{table}.{column}" if SCHEMA else f"{table}.{column}"


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.String(20), nullable=False),
        sa.Column("check_in_date", sa.Date(), nullable=False),
        sa.Column("check_out_date", sa.Date(), nullable=False),
        sa.Column("room_type", sa.String(100), nullable=False),
        sa.Column("room_type_display", sa.String(255), nullable=True),
        sa.Column("guest_name", sa.String(255), nullable=False),
        sa.Column("guest_phone", sa.String(50), nullable=False),
        sa.Column("guest_email", sa.String(255), nullable=False),
        sa.Column("adults", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("children", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_amount", sa.String(20), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column(
            "deposit_percentage", sa.Integer(), nullable=False, server_default=sa.text("30")
        ),
        sa.Column("price_per_night", sa.Integer(), nullable=False),
        sa.Column("nights", sa.Integer(), nullable=False),
        sa.Column("addons", JSON_TYPE, nullable=True),
        sa.Column("addons_total", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("promo_code", sa.String(50), nullable=True),
        sa.Column("discount_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("final_amount", sa.Integer(), nullable=False),
        sa.Column("bank_info", JSON_TYPE, nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("status", sa.String(20), nullable=False, server_default="reserved"),
        sa.Column("gateway_trade_no", sa.String(50), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_bookings_booking_id", "bookings", ["booking_id"], unique=True, schema=SCHEMA
    )
    for column in ("check_in_date", "check_out_date", "room_type", "status"):
        op.create_index(f"ix_bookings_{column}", "bookings", [column], schema=SCHEMA)
    op.create_index("ix_bookings_payment_status", "bookings", ["payment_status"], schema=SCHEMA)

    op.create_table(
        "booking_notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id",
            sa.String(20),
            sa.ForeignKey(_fk("bookings", "booking_id"), ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("notification_key", sa.String(50), nullable=False),
        sa.Column(
            "sent_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.UniqueConstraint("booking_id", "notification_key", name="uq_booking_notification"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_booking_notifications_booking_id",
        "booking_notifications",
        ["booking_id"],
        schema=SCHEMA,
    )

    op.create_table(
        "room_types",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("holiday_surcharge", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_occupancy", sa.Integer(), nullable=False, server_default=sa.text("2")),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )

    op.create_table(
        "addons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        schema=SCHEMA,
    )

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        schema=SCHEMA,
    )

    op.create_table(
        "holidays",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("holiday_date", sa.Date(), nullable=False, unique=True),
        sa.Column("holiday_name", sa.String(255), nullable=True),
        schema=SCHEMA,
    )

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )

    op.create_table(
        "email_templates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("template_key", sa.String(50), nullable=False, unique=True),
        sa.Column("template_name", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("days_reserved", sa.Integer(), nullable=True),
        sa.Column("send_hour_payment_reminder", sa.Integer(), nullable=True),
        sa.Column("days_before_checkin", sa.Integer(), nullable=True),
        sa.Column("send_hour_checkin", sa.Integer(), nullable=True),
        sa.Column("days_after_checkout", sa.Integer(), nullable=True),
        sa.Column("send_hour_feedback", sa.Integer(), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("email_templates", schema=SCHEMA)
    op.drop_table("settings", schema=SCHEMA)
    op.drop_table("holidays", schema=SCHEMA)
    op.drop_table("promo_codes", schema=SCHEMA)
    op.drop_table("addons", schema=SCHEMA)
    op.drop_table("room_types", schema=SCHEMA)
    op.drop_table("booking_notifications", schema=SCHEMA)
    op.drop_table("bookings", schema=SCHEMA)
