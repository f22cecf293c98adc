"""create visitor tracking and snapshot tables

Revision ID: 3c9e1a7b2d40
Revises:
Create Date: 2026-10-19 09:12:41.218604

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c9e1a7b2d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # cars and enquiries are owned by the site back office; created here only
    # when this service runs against its own database
    op.create_table(
        'cars',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('make', sa.String(length=100), nullable=False),
        sa.Column('model', sa.String(length=100), nullable=False),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        if_not_exists=True,
    )

    op.create_table(
        'enquiries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('car_id', sa.String(length=64), nullable=True),
        sa.Column('user_name', sa.String(length=255), nullable=False),
        sa.Column('user_email', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['car_id'], ['cars.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        if_not_exists=True,
    )
    op.create_index(op.f('ix_enquiries_id'), 'enquiries', ['id'], unique=False, if_not_exists=True)
    op.create_index(op.f('ix_enquiries_car_id'), 'enquiries', ['car_id'], unique=False, if_not_exists=True)
    op.create_index(
        op.f('ix_enquiries_created_at'), 'enquiries', ['created_at'], unique=False, if_not_exists=True
    )

    # visitors table
    op.create_table(
        'visitors',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('ip_hash', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('country', sa.String(length=64), nullable=False),
        sa.Column('first_seen', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_visitors_country'), 'visitors', ['country'], unique=False)
    op.create_index(op.f('ix_visitors_first_seen'), 'visitors', ['first_seen'], unique=False)

    # sessions table
    op.create_table(
        'sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('visitor_id', sa.String(length=36), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['visitor_id'], ['visitors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_sessions_id'), 'sessions', ['id'], unique=False)
    op.create_index(op.f('ix_sessions_started_at'), 'sessions', ['started_at'], unique=False)
    op.create_index(
        'ix_sessions_visitor_activity', 'sessions', ['visitor_id', 'last_activity_at'], unique=False
    )

    # page_views table
    op.create_table(
        'page_views',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('visitor_id', sa.String(length=36), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('path', sa.String(length=2048), nullable=False),
        sa.Column('referrer', sa.Text(), nullable=True),
        sa.Column('device', sa.String(length=32), nullable=True),
        sa.Column('browser', sa.String(length=32), nullable=True),
        sa.Column('os', sa.String(length=32), nullable=True),
        sa.Column('country', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['visitor_id'], ['visitors.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_page_views_id'), 'page_views', ['id'], unique=False)
    op.create_index(op.f('ix_page_views_session_id'), 'page_views', ['session_id'], unique=False)
    op.create_index(op.f('ix_page_views_created_at'), 'page_views', ['created_at'], unique=False)
    op.create_index(
        'ix_page_views_dedup', 'page_views', ['visitor_id', 'path', 'created_at'], unique=False
    )

    # product_views table
    op.create_table(
        'product_views',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('visitor_id', sa.String(length=36), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('car_id', sa.String(length=64), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=False),
        sa.Column('scroll_depth', sa.Integer(), nullable=True),
        sa.Column('source', sa.String(length=64), nullable=True),
        sa.Column('referrer', sa.Text(), nullable=True),
        sa.Column('viewed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['visitor_id'], ['visitors.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_product_views_id'), 'product_views', ['id'], unique=False)
    op.create_index(op.f('ix_product_views_session_id'), 'product_views', ['session_id'], unique=False)
    op.create_index(op.f('ix_product_views_car_id'), 'product_views', ['car_id'], unique=False)
    op.create_index(op.f('ix_product_views_viewed_at'), 'product_views', ['viewed_at'], unique=False)
    op.create_index(
        'ix_product_views_dedup', 'product_views', ['visitor_id', 'car_id', 'viewed_at'], unique=False
    )

    # social_click_events table
    op.create_table(
        'social_click_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_name', sa.String(length=255), nullable=False),
        sa.Column('platform', sa.String(length=64), nullable=False),
        sa.Column('visitor_id', sa.String(length=36), nullable=True),
        sa.Column('ip_hash', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_social_click_events_id'), 'social_click_events', ['id'], unique=False)
    op.create_index(
        op.f('ix_social_click_events_created_at'), 'social_click_events', ['created_at'], unique=False
    )

    # analytics_daily_snapshots table
    op.create_table(
        'analytics_daily_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('total_visitors', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_sessions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_page_views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_product_views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_enquiries', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('avg_product_view_duration_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('view_to_enquiry_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('avg_session_duration_ms', sa.Integer(), nullable=True),
        sa.Column('bounce_rate', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_analytics_daily_snapshots_id'), 'analytics_daily_snapshots', ['id'], unique=False)
    op.create_index(
        op.f('ix_analytics_daily_snapshots_date'), 'analytics_daily_snapshots', ['date'], unique=True
    )


def downgrade() -> None:
    op.drop_index(op.f('ix_analytics_daily_snapshots_date'), table_name='analytics_daily_snapshots')
    op.drop_index(op.f('ix_analytics_daily_snapshots_id'), table_name='analytics_daily_snapshots')
    op.drop_table('analytics_daily_snapshots')

    op.drop_index(op.f('ix_social_click_events_created_at'), table_name='social_click_events')
    op.drop_index(op.f('ix_social_click_events_id'), table_name='social_click_events')
    op.drop_table('social_click_events')

    op.drop_index('ix_product_views_dedup', table_name='product_views')
    op.drop_index(op.f('ix_product_views_viewed_at'), table_name='product_views')
    op.drop_index(op.f('ix_product_views_car_id'), table_name='product_views')
    op.drop_index(op.f('ix_product_views_session_id'), table_name='product_views')
    op.drop_index(op.f('ix_product_views_id'), table_name='product_views')
    op.drop_table('product_views')

    op.drop_index('ix_page_views_dedup', table_name='page_views')
    op.drop_index(op.f('ix_page_views_created_at'), table_name='page_views')
    op.drop_index(op.f('ix_page_views_session_id'), table_name='page_views')
    op.drop_index(op.f('ix_page_views_id'), table_name='page_views')
    op.drop_table('page_views')

    op.drop_index('ix_sessions_visitor_activity', table_name='sessions')
    op.drop_index(op.f('ix_sessions_started_at'), table_name='sessions')
    op.drop_index(op.f('ix_sessions_id'), table_name='sessions')
    op.drop_table('sessions')

    op.drop_index(op.f('ix_visitors_first_seen'), table_name='visitors')
    op.drop_index(op.f('ix_visitors_country'), table_name='visitors')
    op.drop_table('visitors')
    # cars and enquiries are left in place: they belong to the back office
