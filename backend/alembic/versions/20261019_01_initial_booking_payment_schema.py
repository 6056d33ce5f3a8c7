"""initial booking and payment schema

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '20261019_01'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    is_pg = op.get_bind().dialect.name == 'postgresql'

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(), nullable=False, server_default=''),
        sa.Column('user_type', sa.Enum('BOOKER', 'TALENT', name='usertype'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'talent_profiles',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('artist_name', sa.String(), nullable=True),
        sa.Column('hourly_rate', sa.Numeric(10, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('is_pro_subscriber', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('subscription_status', sa.String(), nullable=False, server_default='free'),
        sa.Column('subscription_started_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_talent_profiles_user_id', 'talent_profiles', ['user_id'], unique=True)
    op.create_index('ix_talent_profiles_artist_name', 'talent_profiles', ['artist_name'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('requester_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('talent_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('is_gig_opportunity', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_public_request', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_id', sa.Integer(), nullable=True),
        sa.Column('event_date', sa.Date(), nullable=False),
        sa.Column('duration_hours', sa.Numeric(6, 2), nullable=False),
        sa.Column('event_location', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('budget', sa.Numeric(10, 2), nullable=True),
        sa.Column('budget_currency', sa.String(3), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'confirmed', 'completed', 'declined')",
            name='ck_bookings_status',
        ),
        # An unassigned booking is always an open (pending) gig posting
        sa.CheckConstraint(
            "talent_id IS NOT NULL OR (status IN ('pending', 'declined') AND is_gig_opportunity)",
            name='ck_bookings_talent_assigned',
        ),
    )
    for col in ('id', 'requester_id', 'talent_id', 'status', 'payment_id', 'event_date'):
        op.create_index(f'ix_bookings_{col}', 'bookings', [col])

    op.create_table(
        'gig_applications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('gig_id', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('talent_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='interested'),
        *_timestamps(),
        sa.UniqueConstraint('gig_id', 'talent_id', name='uq_gig_applications_gig_talent'),
    )
    op.create_index('ix_gig_applications_id', 'gig_applications', ['id'])
    op.create_index('ix_gig_applications_gig_id', 'gig_applications', ['gig_id'])
    op.create_index('ix_gig_applications_talent_id', 'gig_applications', ['talent_id'])

    payment_checks = [
        sa.CheckConstraint(
            "payment_status IN ('pending', 'completed', 'declined')",
            name='ck_payments_status',
        ),
        sa.CheckConstraint('total_amount > 0', name='ck_payments_total_positive'),
    ]
    if is_pg:
        # Exact NUMERIC arithmetic; SQLite would compare floats here
        payment_checks.append(
            sa.CheckConstraint(
                'platform_commission + talent_earnings = total_amount',
                name='ck_payments_split_sums_to_total',
            )
        )
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('booker_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('talent_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('gig_application_id', sa.Integer(), sa.ForeignKey('gig_applications.id'), nullable=True),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('platform_commission', sa.Numeric(10, 2), nullable=False),
        sa.Column('talent_earnings', sa.Numeric(10, 2), nullable=False),
        sa.Column('hourly_rate', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('hours_booked', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(32), nullable=False, server_default='manual_invoice'),
        sa.Column('payment_status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('declined_reason', sa.String(), nullable=True),
        sa.Column('checkout_session_id', sa.String(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        *payment_checks,
    )
    for col in ('id', 'booking_id', 'payment_status', 'checkout_session_id'):
        op.create_index(f'ix_payments_{col}', 'payments', [col])
    op.create_index(
        'uq_payments_completed_per_booking',
        'payments',
        ['booking_id'],
        unique=True,
        sqlite_where=sa.text("payment_status = 'completed'"),
        postgresql_where=sa.text("payment_status = 'completed'"),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column(
            'type',
            sa.Enum(
                'INVOICE_RECEIVED',
                'INVOICE_DECLINED',
                'PAYMENT_COMPLETED',
                'PAYMENT_FAILED',
                'PAYMENT_EXPIRED',
                'GIG_CLAIMED',
                'BOOKING_DECLINED',
                'BOOKING_COMPLETED',
                'SUBSCRIPTION_ACTIVATED',
                'SUBSCRIPTION_CANCELLED',
                name='notificationtype',
            ),
            nullable=False,
        ),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id'), nullable=True),
        sa.Column('dedupe_key', sa.String(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'dedupe_key', name='uq_notifications_user_dedupe'),
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'])
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_index('uq_payments_completed_per_booking', table_name='payments')
    op.drop_table('payments')
    op.drop_table('gig_applications')
    op.drop_table('bookings')
    op.drop_table('talent_profiles')
    op.drop_table('users')
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP TYPE IF EXISTS notificationtype")
        op.execute("DROP TYPE IF EXISTS usertype")
