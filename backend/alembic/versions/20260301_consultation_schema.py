"""
Consultation Schema - Create all consultation tables

This migration creates:
1. users - Requesters and their credit balance
2. partners - Providers with presence, capacity and earnings
3. conversations - Consultation lifecycle and snapshot
4. messages - Chat messages
5. service_credit_ledger - Settlement audit trail
6. conversation_sessions - Session analytics history

Revision ID: 20260301_consultation_schema
Revises:
Create Date: 2026-03-01
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20260301_consultation_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================
    # USERS
    # ============================================
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('profile', sa.JSON(), nullable=True),
        sa.Column('credit_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('profile_image', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # ============================================
    # PARTNERS
    # ============================================
    op.create_table(
        'partners',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('profile_picture', sa.String(length=500), nullable=True),
        sa.Column('specialization', sa.String(length=255), nullable=True),
        sa.Column('experience', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('online_status', sa.String(length=10), nullable=False, server_default='offline'),
        sa.Column('last_online_at', sa.DateTime(), nullable=True),
        sa.Column('last_active_at', sa.DateTime(), nullable=True),
        sa.Column('active_conversations_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_conversations', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('total_sessions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earned_credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_available', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_ratings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint("online_status IN ('online', 'offline', 'busy')", name='ck_partner_online_status'),
        sa.CheckConstraint("active_conversations_count >= 0", name='ck_partner_active_count'),
    )
    op.create_index('ix_partners_email', 'partners', ['email'], unique=True)
    op.create_index('ix_partners_online_status', 'partners', ['online_status'])

    # ============================================
    # CONVERSATIONS
    # ============================================
    op.create_table(
        'conversations',
        sa.Column('id', sa.String(length=120), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('partner_id', sa.String(length=36), sa.ForeignKey('partners.id', ondelete='CASCADE'), nullable=False),
        sa.Column('initiated_by', sa.String(length=10), nullable=False, server_default='user'),
        sa.Column('status', sa.String(length=10), nullable=False, server_default='pending'),
        # "<user_id>:<partner_id>" while open, NULL once ended/rejected
        sa.Column('active_pair_key', sa.String(length=80), nullable=True, unique=True),
        sa.Column('is_accepted_by_partner', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('session_started_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('ended_by', sa.String(length=10), nullable=True),
        sa.Column('last_message_at', sa.DateTime(), nullable=True),
        sa.Column('last_message', sa.JSON(), nullable=True),
        sa.Column('unread_user', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unread_partner', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('messages_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('billable_minutes', sa.Integer(), nullable=True),
        sa.Column('credits_used', sa.Integer(), nullable=True),
        sa.Column('credits_earned', sa.Integer(), nullable=True),
        sa.Column('user_rate_per_minute', sa.Integer(), nullable=True),
        sa.Column('partner_rate_per_minute', sa.Integer(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('rating_by_user', sa.JSON(), nullable=True),
        sa.Column('rating_by_partner', sa.JSON(), nullable=True),
        sa.Column('user_astrology_data', sa.JSON(), nullable=True),
    )
    op.create_index('ix_conversations_user_id', 'conversations', ['user_id'])
    op.create_index('ix_conversations_partner_id', 'conversations', ['partner_id'])
    op.create_index('ix_conversations_status', 'conversations', ['status'])
    op.create_index('idx_conversations_user_recent', 'conversations', ['user_id', 'last_message_at'])
    op.create_index('idx_conversations_partner_recent', 'conversations', ['partner_id', 'last_message_at'])

    # ============================================
    # MESSAGES
    # ============================================
    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('conversation_id', sa.String(length=120),
                  sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.String(length=36), nullable=False),
        sa.Column('sender_role', sa.String(length=10), nullable=False),
        sa.Column('receiver_id', sa.String(length=36), nullable=False),
        sa.Column('receiver_role', sa.String(length=10), nullable=False),
        sa.Column('message_type', sa.String(length=10), nullable=False, server_default='text'),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('media_url', sa.String(length=1000), nullable=True),
        sa.Column('is_delivered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_messages_sender_id', 'messages', ['sender_id'])
    op.create_index('ix_messages_receiver_id', 'messages', ['receiver_id'])
    op.create_index('idx_messages_conversation_created', 'messages', ['conversation_id', 'created_at'])

    # ============================================
    # SERVICE CREDIT LEDGER
    # ============================================
    op.create_table(
        'service_credit_ledger',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('conversation_id', sa.String(length=120),
                  sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_type', sa.String(length=10), nullable=False, server_default='chat'),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('partner_id', sa.String(length=36), sa.ForeignKey('partners.id', ondelete='CASCADE'), nullable=False),
        sa.Column('billable_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_debited', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('partner_credited', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_previous_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_new_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('partner_previous_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('partner_new_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_rate_per_minute', sa.Integer(), nullable=False),
        sa.Column('partner_rate_per_minute', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('conversation_id', 'service_type', name='uq_ledger_conversation_service'),
        sa.CheckConstraint("service_type IN ('chat', 'voice', 'video')", name='ck_ledger_service_type'),
    )
    op.create_index('ix_service_credit_ledger_conversation_id', 'service_credit_ledger', ['conversation_id'])
    op.create_index('idx_ledger_user_created', 'service_credit_ledger', ['user_id', 'created_at'])
    op.create_index('idx_ledger_partner_created', 'service_credit_ledger', ['partner_id', 'created_at'])

    # ============================================
    # CONVERSATION SESSIONS
    # ============================================
    op.create_table(
        'conversation_sessions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('conversation_id', sa.String(length=120),
                  sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('partner_id', sa.String(length=36), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('billable_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('messages_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_rate_per_minute', sa.Integer(), nullable=True),
        sa.Column('partner_rate_per_minute', sa.Integer(), nullable=True),
        sa.Column('rating_by_user', sa.JSON(), nullable=True),
        sa.Column('rating_by_partner', sa.JSON(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_conversation_sessions_user_id', 'conversation_sessions', ['user_id'])
    op.create_index('ix_conversation_sessions_partner_id', 'conversation_sessions', ['partner_id'])


def downgrade():
    op.drop_table('conversation_sessions')
    op.drop_table('service_credit_ledger')
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_table('partners')
    op.drop_table('users')
