"""Booking engine schema

Revision ID: 3f1c2a7b9d04
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1c2a7b9d04"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _status(name, nullable=False):
    return sa.Column(name, sa.String(32), nullable=nullable)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'units',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=True, unique=True),
        sa.Column('address', sa.String(500), nullable=True),
        _status('status'),
        sa.Column('max_guests', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('min_nights', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_nights', sa.Integer(), nullable=False, server_default='30'),
        *_timestamps(),
        sa.CheckConstraint('min_nights >= 1', name='ck_units_min_nights'),
        sa.CheckConstraint('max_nights >= min_nights', name='ck_units_max_nights'),
    )
    op.create_index('ix_units_owner_id', 'units', ['owner_id'])
    op.create_index('idx_units_status', 'units', ['status'])

    op.create_table(
        'pricing_rules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='RUB'),
        sa.Column('cleaning_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('extra_guest_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('base_guests', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('weekly_discount', sa.Numeric(5, 2), nullable=True),
        sa.Column('monthly_discount', sa.Numeric(5, 2), nullable=True),
        sa.Column('service_fee_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        *_timestamps(),
    )

    op.create_table(
        'seasonal_adjustments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('multiplier', sa.Numeric(6, 3), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('end_date >= start_date', name='ck_seasonal_adjustments_range'),
    )
    op.create_index(
        'idx_seasonal_adjustments_unit_dates', 'seasonal_adjustments', ['unit_id', 'start_date', 'end_date']
    )

    op.create_table(
        'weekday_adjustments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('multiplier', sa.Numeric(6, 3), nullable=False, server_default='1'),
        *_timestamps(),
        sa.UniqueConstraint('unit_id', 'day_of_week', name='uq_weekday_adjustments_unit_day'),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='ck_weekday_adjustments_day'),
    )

    op.create_table(
        'promo_codes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        _status('discount_type'),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('min_nights', sa.Integer(), nullable=True),
        sa.Column('min_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('max_discount', sa.Numeric(12, 2), nullable=True),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('per_user_limit', sa.Integer(), nullable=True),
        sa.Column('unit_ids', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('usage_count >= 0', name='ck_promo_codes_usage_count'),
    )

    op.create_table(
        'calendar_syncs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=True),
        sa.Column('name', sa.String(255), nullable=True),
        _status('sync_type'),
        _status('status'),
        sa.Column('export_token', sa.String(128), nullable=True, unique=True),
        sa.Column('import_url', sa.String(2000), nullable=True),
        sa.Column('source_name', sa.String(100), nullable=True),
        sa.Column('sync_interval_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        sa.Column('events_imported', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('events_exported', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('ix_calendar_syncs_owner_id', 'calendar_syncs', ['owner_id'])
    op.create_index('idx_calendar_syncs_type_status', 'calendar_syncs', ['sync_type', 'status'])

    op.create_table(
        'blocked_dates',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        _status('source'),
        sa.Column('external_ref', sa.String(500), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column(
            'calendar_sync_id', sa.Uuid(), sa.ForeignKey('calendar_syncs.id', ondelete='SET NULL'), nullable=True
        ),
        *_timestamps(),
        sa.UniqueConstraint('unit_id', 'date', name='uq_blocked_dates_unit_date'),
    )
    op.create_index('idx_blocked_dates_source', 'blocked_dates', ['source'])
    op.create_index('idx_blocked_dates_calendar_sync_id', 'blocked_dates', ['calendar_sync_id'])

    op.create_table(
        'external_calendar_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'calendar_sync_id', sa.Uuid(), sa.ForeignKey('calendar_syncs.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False),
        sa.Column('external_uid', sa.String(500), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('source_name', sa.String(100), nullable=False, server_default='External'),
        sa.Column('source_url', sa.String(2000), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('calendar_sync_id', 'external_uid', name='uq_external_events_sync_uid'),
    )
    op.create_index(
        'idx_external_events_unit_dates', 'external_calendar_events', ['unit_id', 'start_date', 'end_date']
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('booking_number', sa.String(50), nullable=False, unique=True),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('units.id'), nullable=False),
        sa.Column('guest_id', sa.Uuid(), nullable=False),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('nights', sa.Integer(), nullable=False),
        sa.Column('guests', sa.Integer(), nullable=False, server_default='1'),
        _status('status'),
        _status('payment_status'),
        sa.Column('base_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('accommodation_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('cleaning_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('service_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('extra_guest_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('seasonal_adjustment', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('weekday_adjustment', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('promo_discount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='RUB'),
        sa.Column('nightly_breakdown', sa.JSON(), nullable=True),
        sa.Column('promo_code_id', sa.Uuid(), sa.ForeignKey('promo_codes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('contact_name', sa.String(255), nullable=True),
        sa.Column('contact_phone', sa.String(50), nullable=True),
        sa.Column('contact_email', sa.String(255), nullable=True),
        sa.Column('guest_comment', sa.Text(), nullable=True),
        sa.Column('admin_comment', sa.Text(), nullable=True),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('refund_amount', sa.Numeric(12, 2), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('check_out > check_in', name='ck_bookings_dates'),
    )
    op.create_index('idx_bookings_unit_dates', 'bookings', ['unit_id', 'check_in', 'check_out'])
    op.create_index('idx_bookings_guest_id', 'bookings', ['guest_id'])
    op.create_index('idx_bookings_status', 'bookings', ['status'])

    op.create_table(
        'booking_nights',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('booking_id', sa.Uuid(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False),
        sa.Column('night', sa.Date(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('unit_id', 'night', name='uq_booking_nights_unit_night'),
    )
    op.create_index('idx_booking_nights_booking_id', 'booking_nights', ['booking_id'])

    op.create_table(
        'booking_status_history',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('booking_id', sa.Uuid(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('changed_by', sa.Uuid(), nullable=True),
        _status('from_status', nullable=True),
        _status('to_status'),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('idx_booking_status_history_booking_id', 'booking_status_history', ['booking_id'])

    # Second line of defence on PostgreSQL: active bookings of a unit may not overlap
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute("""
            ALTER TABLE bookings ADD CONSTRAINT ex_bookings_no_overlap
            EXCLUDE USING gist (
                unit_id WITH =,
                daterange(check_in, check_out, '[)') WITH &&
            ) WHERE (status IN ('pending', 'confirmed', 'paid'))
        """)


def downgrade() -> None:
    """Downgrade schema."""
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS ex_bookings_no_overlap")

    op.drop_index('idx_booking_status_history_booking_id', table_name='booking_status_history')
    op.drop_table('booking_status_history')
    op.drop_index('idx_booking_nights_booking_id', table_name='booking_nights')
    op.drop_table('booking_nights')
    op.drop_index('idx_bookings_status', table_name='bookings')
    op.drop_index('idx_bookings_guest_id', table_name='bookings')
    op.drop_index('idx_bookings_unit_dates', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('idx_external_events_unit_dates', table_name='external_calendar_events')
    op.drop_table('external_calendar_events')
    op.drop_index('idx_blocked_dates_calendar_sync_id', table_name='blocked_dates')
    op.drop_index('idx_blocked_dates_source', table_name='blocked_dates')
    op.drop_table('blocked_dates')
    op.drop_index('idx_calendar_syncs_type_status', table_name='calendar_syncs')
    op.drop_index('ix_calendar_syncs_owner_id', table_name='calendar_syncs')
    op.drop_table('calendar_syncs')
    op.drop_table('promo_codes')
    op.drop_table('weekday_adjustments')
    op.drop_index('idx_seasonal_adjustments_unit_dates', table_name='seasonal_adjustments')
    op.drop_table('seasonal_adjustments')
    op.drop_table('pricing_rules')
    op.drop_index('idx_units_status', table_name='units')
    op.drop_index('ix_units_owner_id', table_name='units')
    op.drop_table('units')
