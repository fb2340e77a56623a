"""Store the booked promo discount on each booking

Revision ID: 8c41e2b5d903
Revises: 3f2a9c1d7b10
Create Date: 2026-01-14 09:41:07.220913

"""

import sqlalchemy as sa

from alembic import op  # type: ignore[attr-defined]
from stay_booking.config import SCHEMA

# revision identifiers, used by Alembic.
revision = "8c41e2b5d903"
down_revision = "3f2a9c1d7b10"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column("bookings", sa.Column("discount_type", sa.String(20)), schema=SCHEMA)
    op.add_column("bookings", sa.Column("discount_value", sa.Integer()), schema=SCHEMA)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_column("bookings", "discount_value", schema=SCHEMA)
    op.drop_column("bookings", "discount_type", schema=SCHEMA)
