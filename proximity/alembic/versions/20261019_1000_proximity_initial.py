"""create routing cache, rate limit, presence and profile tables

Revision ID: proximity_initial_001
Revises:
Create Date: 2026-10-19 10:00:00.000000

This migration:
1. Creates routing_cache (TTL-windowed travel times)
2. Creates routing_rate_limits (per-window request counters)
3. Creates user_presence_private and user_presence_public
4. Creates user_profiles
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP


# revision identifiers, used by Alembic.
revision: str = 'proximity_initial_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. Routing cache
    op.create_table('routing_cache',
        sa.Column('cache_key', sa.String(length=64), nullable=False),
        sa.Column('origin_bucket', sa.String(length=64), nullable=False),
        sa.Column('dest_bucket', sa.String(length=64), nullable=False),
        sa.Column('mode', sa.String(length=20), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('distance_meters', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('computed_at', TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('expires_at', TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('duration_seconds > 0', name='routing_cache_positive_duration'),
        sa.CheckConstraint('distance_meters >= 0', name='routing_cache_non_negative_distance'),
        sa.PrimaryKeyConstraint('cache_key')
    )
    op.create_index('idx_routing_cache_expires', 'routing_cache', ['expires_at'], unique=False)

    # 2. Rate limit counters
    op.create_table('routing_rate_limits',
        sa.Column('bucket_key', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('ip', sa.String(length=64), nullable=True),
        sa.Column('window_seconds', sa.Integer(), nullable=False),
        sa.Column('window_started_at', TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False),
        sa.Column('max_requests', sa.Integer(), nullable=False),
        sa.Column('updated_at', TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('bucket_key')
    )
    op.create_index('idx_routing_rate_limits_updated', 'routing_rate_limits', ['updated_at'], unique=False)

    # 3. Presence projections
    op.create_table('user_presence_private',
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('precise_lat', sa.Float(), nullable=True),
        sa.Column('precise_lng', sa.Float(), nullable=True),
        sa.Column('accuracy_m', sa.Integer(), nullable=True),
        sa.Column('privacy_hide_proximity', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('updated_at', TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_table('user_presence_public',
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('bucketed_lat', sa.Float(), nullable=True),
        sa.Column('bucketed_lng', sa.Float(), nullable=True),
        sa.Column('accuracy_m', sa.Integer(), nullable=True),
        sa.Column('is_online', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('privacy_hide_proximity', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('updated_at', TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_index('idx_presence_public_lat_lng', 'user_presence_public', ['bucketed_lat', 'bucketed_lng'], unique=False)
    op.create_index('idx_presence_public_updated', 'user_presence_public', ['updated_at'], unique=False)

    # 4. Profiles
    op.create_table('user_profiles',
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('city', sa.String(length=255), nullable=True),
        sa.Column('availability_status', sa.String(length=50), nullable=True),
        sa.Column('subscription_tier', sa.String(length=20), server_default='FREE', nullable=False),
        sa.Column('default_travel_mode', sa.String(length=20), nullable=True),
        sa.Column('privacy_hide_proximity', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('updated_at', TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_index('ix_user_profiles_email', 'user_profiles', ['email'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_user_profiles_email', table_name='user_profiles')
    op.drop_table('user_profiles')
    op.drop_index('idx_presence_public_updated', table_name='user_presence_public')
    op.drop_index('idx_presence_public_lat_lng', table_name='user_presence_public')
    op.drop_table('user_presence_public')
    op.drop_table('user_presence_private')
    op.drop_index('idx_routing_rate_limits_updated', table_name='routing_rate_limits')
    op.drop_table('routing_rate_limits')
    op.drop_index('idx_routing_cache_expires', table_name='routing_cache')
    op.drop_table('routing_cache')
