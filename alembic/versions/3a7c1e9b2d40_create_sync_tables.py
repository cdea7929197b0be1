"""create users, sync_state, commands and notifications tables

Revision ID: 3a7c1e9b2d40
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3a7c1e9b2d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('telegram_id', sa.BigInteger(), nullable=False),
    sa.Column('username', sa.String(length=128), nullable=False),
    sa.Column('token', sa.Text(), nullable=True),
    sa.Column('notify_crash', sa.Boolean(), nullable=False),
    sa.Column('notify_marathon', sa.Boolean(), nullable=False),
    sa.Column('notify_offline', sa.Boolean(), nullable=False),
    sa.Column('notify_digest', sa.Boolean(), nullable=False),
    sa.Column('connect_code', sa.String(length=16), nullable=True),
    sa.Column('code_expires', sa.BigInteger(), nullable=False),
    sa.Column('created_at', sa.BigInteger(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema='anipilot'
    )
    op.create_index(op.f('ix_anipilot_users_telegram_id'), 'users', ['telegram_id'], unique=True, schema='anipilot')

    op.create_table('sync_state',
    sa.Column('user_id', sa.Integer(), nullable=False),
    sa.Column('is_online', sa.Boolean(), nullable=False),
    sa.Column('last_heartbeat', sa.BigInteger(), nullable=False),
    sa.Column('notified_offline', sa.Boolean(), nullable=False),
    sa.Column('current_url', sa.Text(), nullable=True),
    sa.Column('current_anime', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('current_season', sa.Integer(), nullable=True),
    sa.Column('current_episode', sa.Integer(), nullable=True),
    sa.Column('video_time', sa.Float(), nullable=False),
    sa.Column('video_duration', sa.Float(), nullable=False),
    sa.Column('is_playing', sa.Boolean(), nullable=False),
    sa.Column('marathon_on', sa.Boolean(), nullable=False),
    sa.Column('marathon_idx', sa.Integer(), nullable=False),
    sa.Column('marathon_queue', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('history', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('binge_today', sa.Integer(), nullable=False),
    sa.Column('binge_date', sa.String(length=16), nullable=True),
    sa.Column('watch_minutes', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['anipilot.users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('user_id'),
    schema='anipilot'
    )
    op.create_index('idx_sync_state_stale', 'sync_state', ['is_online', 'notified_offline', 'last_heartbeat'], unique=False, schema='anipilot')

    op.create_table('commands',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('user_id', sa.Integer(), nullable=False),
    sa.Column('type', sa.String(length=64), nullable=False),
    sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('created_at', sa.BigInteger(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['anipilot.users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    schema='anipilot'
    )
    op.create_index('idx_commands_user_created', 'commands', ['user_id', 'created_at'], unique=False, schema='anipilot')
    op.create_index(op.f('ix_anipilot_commands_created_at'), 'commands', ['created_at'], unique=False, schema='anipilot')

    op.create_table('notifications',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('user_id', sa.Integer(), nullable=False),
    sa.Column('type', sa.String(length=64), nullable=False),
    sa.Column('sent_at', sa.BigInteger(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['anipilot.users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    schema='anipilot'
    )
    op.create_index('idx_notifications_user_type_sent', 'notifications', ['user_id', 'type', 'sent_at'], unique=False, schema='anipilot')
    op.create_index(op.f('ix_anipilot_notifications_sent_at'), 'notifications', ['sent_at'], unique=False, schema='anipilot')


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_anipilot_notifications_sent_at'), table_name='notifications', schema='anipilot')
    op.drop_index('idx_notifications_user_type_sent', table_name='notifications', schema='anipilot')
    op.drop_table('notifications', schema='anipilot')
    op.drop_index(op.f('ix_anipilot_commands_created_at'), table_name='commands', schema='anipilot')
    op.drop_index('idx_commands_user_created', table_name='commands', schema='anipilot')
    op.drop_table('commands', schema='anipilot')
    op.drop_index('idx_sync_state_stale', table_name='sync_state', schema='anipilot')
    op.drop_table('sync_state', schema='anipilot')
    op.drop_index(op.f('ix_anipilot_users_telegram_id'), table_name='users', schema='anipilot')
    op.drop_table('users', schema='anipilot')
