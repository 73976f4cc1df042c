"""create booking tables

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# --- Define the ENUM types (created explicitly, shared across tables) ---
resourcetype_enum = postgresql.ENUM('homestay', 'guide', name='resourcetype', create_type=False)
bookingstatus_enum = postgresql.ENUM(
    'pending', 'confirmed', 'cancelled', 'completed', name='bookingstatus', create_type=False
)
paymentstatus_enum = postgresql.ENUM(
    'pending', 'completed', 'refunded', 'failed', name='paymentstatus', create_type=False
)


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    is_postgres = bind.dialect.name == 'postgresql'

    # --- Create the ENUM types first ---
    if is_postgres:
        for enum in (resourcetype_enum, bookingstatus_enum, paymentstatus_enum):
            enum.create(bind, checkfirst=True)

    op.create_table(
        'homestays',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True)),
    )
    op.create_table(
        'guides',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True)),
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('booking_number', sa.String(32), nullable=False),
        sa.Column('resource_type', resourcetype_enum, nullable=False),
        sa.Column('resource_id', sa.String(64), nullable=False),
        sa.Column('resource_title_snapshot', sa.String(255)),
        sa.Column('check_in', sa.Date, nullable=False),
        sa.Column('check_out', sa.Date, nullable=False),
        sa.Column('nights', sa.Integer, nullable=False),
        sa.Column('adults', sa.Integer, nullable=False),
        sa.Column('children', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_guests', sa.Integer, nullable=False),
        sa.Column('guest_name', sa.String(255), nullable=False),
        sa.Column('guest_email', sa.String(255), nullable=False),
        sa.Column('guest_phone', sa.String(64), nullable=False),
        sa.Column('special_requests', sa.Text),
        sa.Column('base_price', sa.Float, nullable=False),
        sa.Column('cleaning_fee', sa.Float),
        sa.Column('service_fee', sa.Float),
        sa.Column('taxes', sa.Float),
        sa.Column('total_price', sa.Float, nullable=False),
        sa.Column('status', bookingstatus_enum, nullable=False, server_default='pending'),
        sa.Column('payment_status', paymentstatus_enum, nullable=False, server_default='pending'),
        sa.Column('cancellation_reason', sa.Text),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True)),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint('booking_number', name='uq_bookings_booking_number'),
        sa.CheckConstraint('check_in < check_out', name='ck_bookings_date_range'),
        sa.CheckConstraint('total_price >= 0', name='ck_bookings_total_price'),
        sa.CheckConstraint(
            "(status = 'cancelled' AND cancelled_at IS NOT NULL) "
            "OR (status != 'cancelled' AND cancelled_at IS NULL)",
            name='ck_bookings_cancelled_at',
        ),
    )
    op.create_index('ix_bookings_id', 'bookings', ['id'])
    op.create_index(
        'ix_bookings_resource_range', 'bookings',
        ['resource_type', 'resource_id', 'check_in', 'check_out'],
    )
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_guest_email', 'bookings', ['guest_email'])
    op.create_index('ix_bookings_created_at', 'bookings', ['created_at'])

    # --- Storage-level guard against overlapping active bookings ---
    if is_postgres:
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            "ALTER TABLE bookings ADD CONSTRAINT ex_bookings_active_overlap "
            "EXCLUDE USING gist ("
            "resource_type WITH =, resource_id WITH =, "
            "daterange(check_in, check_out, '[)') WITH &&"
            ") WHERE (status IN ('pending', 'confirmed'))"
        )

    op.create_table(
        'resource_locks',
        sa.Column('resource_type', resourcetype_enum, primary_key=True),
        sa.Column('resource_id', sa.String(64), primary_key=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='0'),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True)),
    )

    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('topic', sa.String(255), nullable=False),
        sa.Column('key', sa.String(128)),
        sa.Column('payload', sa.Text, nullable=False),
        sa.Column('created_at', sa.TIMESTAMP),
    )
    op.create_index('ix_outbox_events_id', 'outbox_events', ['id'])
    op.create_index('ix_outbox_events_status', 'outbox_events', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('outbox_events')
    op.drop_table('resource_locks')
    op.drop_table('bookings')
    op.drop_table('guides')
    op.drop_table('homestays')

    bind = op.get_bind()
    for enum in (paymentstatus_enum, bookingstatus_enum, resourcetype_enum):
        enum.drop(bind, checkfirst=True)
