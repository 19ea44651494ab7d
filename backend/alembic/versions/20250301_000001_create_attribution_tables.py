"""Create attribution tables (users, raw_events, pixel_events, verified_conversions).

Revision ID: 20250301_000001
Revises:
Create Date: 2025-03-01 12:00:00.000000

WHAT:
    Creates the attribution schema:
    - users: account owners, optionally linked to one tracking pixel
    - raw_events: synced platform records (payments, ad spend, GA4 stats)
    - pixel_events: browser events from the tracking pixel
    - verified_conversions: one attribution outcome per payment transaction

WHY:
    Attribution cross-checks pixel sessions against payments and secondary
    sources. All of them are read from these four tables.

REFERENCES:
    - channelproof/models.py
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20250301_000001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =========================================================================
    # STEP 1: users
    # =========================================================================
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('pixel_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('NOW()')),
    )
    op.create_index('ix_users_pixel_id', 'users', ['pixel_id'])

    # =========================================================================
    # STEP 2: raw_events
    # =========================================================================
    # WHAT: Platform payloads keyed by platform + event_type
    # WHY: Payments, ad insights and GA4 stats share one sync pipeline
    op.create_table(
        'raw_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('platform', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('event_data', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('NOW()')),
    )
    op.create_index('ix_raw_events_user_platform_ts', 'raw_events',
                    ['user_id', 'platform', 'timestamp'])

    # =========================================================================
    # STEP 3: pixel_events
    # =========================================================================
    # WHAT: Immutable browser events with their UTM snapshot
    # WHY: Sessions are rebuilt from these rows on every attribution query
    op.create_table(
        'pixel_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('pixel_id', sa.String(), nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('page_url', sa.String(), nullable=True),
        sa.Column('referrer', sa.String(), nullable=True),

        sa.Column('utm_source', sa.String(), nullable=True),
        sa.Column('utm_medium', sa.String(), nullable=True),
        sa.Column('utm_campaign', sa.String(), nullable=True),
        sa.Column('utm_term', sa.String(), nullable=True),
        sa.Column('utm_content', sa.String(), nullable=True),

        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True, server_default='{}'),
    )
    op.create_index('ix_pixel_events_pixel_ts', 'pixel_events', ['pixel_id', 'timestamp'])
    op.create_index('ix_pixel_events_session', 'pixel_events', ['session_id'])

    # =========================================================================
    # STEP 4: verified_conversions
    # =========================================================================
    # WHAT: Attribution outcome per payment
    # WHY: Unique transaction_id makes repeated attribution resolve to one row
    op.create_table(
        'verified_conversions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('transaction_id', sa.String(), nullable=False, unique=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='PHP'),

        sa.Column('pixel_session_id', sa.String(), nullable=True),
        sa.Column('attributed_channel', sa.String(), nullable=False, server_default='direct'),
        sa.Column('confidence_score', sa.Integer(), nullable=False),
        sa.Column('confidence_level', sa.String(), nullable=False),
        sa.Column('attribution_method', sa.String(), nullable=False),
        sa.Column('is_platform_over_attributed', sa.Boolean(), nullable=False,
                  server_default=sa.text('false')),
        sa.Column('conflicting_sources', postgresql.JSONB(), nullable=True),

        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=True, server_default='{}'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('NOW()')),
    )
    op.create_index('ix_verified_conversions_timestamp', 'verified_conversions', ['timestamp'])


def downgrade() -> None:
    op.drop_index('ix_verified_conversions_timestamp', table_name='verified_conversions')
    op.drop_table('verified_conversions')
    op.drop_index('ix_pixel_events_session', table_name='pixel_events')
    op.drop_index('ix_pixel_events_pixel_ts', table_name='pixel_events')
    op.drop_table('pixel_events')
    op.drop_index('ix_raw_events_user_platform_ts', table_name='raw_events')
    op.drop_table('raw_events')
    op.drop_index('ix_users_pixel_id', table_name='users')
    op.drop_table('users')
