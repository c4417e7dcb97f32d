"""Initial migration: users, wallets, date orders, settlement

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-12 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # 1. Users
    op.create_table('users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('vip_tier', sa.String(length=50), server_default='free', nullable=False),
        sa.Column('avatar_url', sa.String(length=1024), nullable=True),
        sa.Column('public_avatar_url', sa.String(length=1024), nullable=True),
        sa.Column('referred_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['referred_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_referred_by'), 'users', ['referred_by'], unique=False)

    # 2. Wallets and ledger
    op.create_table('wallet_accounts',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('balance', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('escrow', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='VND', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint('balance >= 0', name='ck_wallet_balance_non_negative'),
        sa.CheckConstraint('escrow >= 0', name='ck_wallet_escrow_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('user_id')
    )

    op.create_table('transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=50), server_default='completed', nullable=False),
        sa.Column('payee', sa.String(length=50), nullable=True),
        sa.Column('related_id', sa.Uuid(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key')
    )
    op.create_index(op.f('ix_transactions_user_id'), 'transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_transactions_related_id'), 'transactions', ['related_id'], unique=False)
    op.create_index('ix_transaction_user_related', 'transactions', ['user_id', 'related_id'], unique=False)

    # 3. Date orders
    op.create_table('date_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('creator_id', sa.Uuid(), nullable=False),
        sa.Column('restaurant_id', sa.Uuid(), nullable=False),
        sa.Column('combo_id', sa.Uuid(), nullable=False),
        sa.Column('date_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('payment_split', sa.String(length=50), server_default='split', nullable=False),
        sa.Column('combo_price', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('creator_charge', sa.BigInteger(), nullable=False),
        sa.Column('applicant_charge', sa.BigInteger(), nullable=False),
        sa.Column('restaurant_payout', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=50), server_default='active', nullable=False),
        sa.Column('matched_user_id', sa.Uuid(), nullable=True),
        sa.Column('matched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('auto_completed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('max_applicants', sa.Integer(), server_default='10', nullable=False),
        sa.Column('applicant_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['creator_id'], ['users.id']),
        sa.ForeignKeyConstraint(['matched_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_date_orders_creator_id'), 'date_orders', ['creator_id'], unique=False)
    op.create_index(op.f('ix_date_orders_restaurant_id'), 'date_orders', ['restaurant_id'], unique=False)
    op.create_index(op.f('ix_date_orders_matched_user_id'), 'date_orders', ['matched_user_id'], unique=False)
    # Settlement sweep scans by status + time
    op.create_index('ix_date_order_status_date', 'date_orders', ['status', 'date_time'], unique=False)
    op.create_index('ix_date_order_status_expires', 'date_orders', ['status', 'expires_at'], unique=False)
    op.create_index('ix_date_order_creator_status', 'date_orders', ['creator_id', 'status'], unique=False)

    # 4. Applications
    op.create_table('date_order_applications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('applicant_id', sa.Uuid(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=50), server_default='pending', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['date_orders.id']),
        sa.ForeignKeyConstraint(['applicant_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_date_order_applications_order_id'), 'date_order_applications', ['order_id'], unique=False)
    op.create_index(op.f('ix_date_order_applications_applicant_id'), 'date_order_applications', ['applicant_id'], unique=False)
    op.create_index('ix_application_order_status', 'date_order_applications', ['order_id', 'status'], unique=False)
    op.create_index(
        'uq_application_live',
        'date_order_applications',
        ['order_id', 'applicant_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'accepted')"),
    )

    # 5. Reviews and connections
    op.create_table('person_reviews',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('date_order_id', sa.Uuid(), nullable=False),
        sa.Column('reviewer_id', sa.Uuid(), nullable=False),
        sa.Column('reviewee_id', sa.Uuid(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('want_to_meet_again', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_review_rating_range'),
        sa.ForeignKeyConstraint(['date_order_id'], ['date_orders.id']),
        sa.ForeignKeyConstraint(['reviewer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['reviewee_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('date_order_id', 'reviewer_id', name='uq_review_order_reviewer')
    )
    op.create_index(op.f('ix_person_reviews_date_order_id'), 'person_reviews', ['date_order_id'], unique=False)
    op.create_index(op.f('ix_person_reviews_reviewer_id'), 'person_reviews', ['reviewer_id'], unique=False)
    op.create_index(op.f('ix_person_reviews_reviewee_id'), 'person_reviews', ['reviewee_id'], unique=False)

    op.create_table('connections',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user1_id', sa.Uuid(), nullable=False),
        sa.Column('user2_id', sa.Uuid(), nullable=False),
        sa.Column('date_order_id', sa.Uuid(), nullable=True),
        sa.Column('connected_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user1_id'], ['users.id']),
        sa.ForeignKeyConstraint(['user2_id'], ['users.id']),
        sa.ForeignKeyConstraint(['date_order_id'], ['date_orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user1_id', 'user2_id', name='uq_connection_pair')
    )
    op.create_index(op.f('ix_connections_user1_id'), 'connections', ['user1_id'], unique=False)
    op.create_index(op.f('ix_connections_user2_id'), 'connections', ['user2_id'], unique=False)

    # 6. Referral rewards and restaurant payouts
    op.create_table('referral_rewards',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('referrer_id', sa.Uuid(), nullable=False),
        sa.Column('referred_id', sa.Uuid(), nullable=False),
        sa.Column('referrer_reward', sa.BigInteger(), nullable=False),
        sa.Column('referred_reward', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=50), server_default='pending', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['referred_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referrer_id', 'referred_id', name='uq_referral_pair')
    )
    op.create_index(op.f('ix_referral_rewards_referrer_id'), 'referral_rewards', ['referrer_id'], unique=False)
    op.create_index(op.f('ix_referral_rewards_referred_id'), 'referral_rewards', ['referred_id'], unique=False)

    op.create_table('restaurant_payouts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('date_order_id', sa.Uuid(), nullable=False),
        sa.Column('restaurant_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=50), server_default='pending', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['date_order_id'], ['date_orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('date_order_id')
    )
    op.create_index(op.f('ix_restaurant_payouts_restaurant_id'), 'restaurant_payouts', ['restaurant_id'], unique=False)

    # 7. Notifications
    op.create_table('notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)
    op.create_index('ix_notification_user_read', 'notifications', ['user_id', 'is_read'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_notification_user_read', table_name='notifications')
    op.drop_index(op.f('ix_notifications_user_id'), table_name='notifications')
    op.drop_table('notifications')

    op.drop_index(op.f('ix_restaurant_payouts_restaurant_id'), table_name='restaurant_payouts')
    op.drop_table('restaurant_payouts')

    op.drop_index(op.f('ix_referral_rewards_referred_id'), table_name='referral_rewards')
    op.drop_index(op.f('ix_referral_rewards_referrer_id'), table_name='referral_rewards')
    op.drop_table('referral_rewards')

    op.drop_index(op.f('ix_connections_user2_id'), table_name='connections')
    op.drop_index(op.f('ix_connections_user1_id'), table_name='connections')
    op.drop_table('connections')

    op.drop_index(op.f('ix_person_reviews_reviewee_id'), table_name='person_reviews')
    op.drop_index(op.f('ix_person_reviews_reviewer_id'), table_name='person_reviews')
    op.drop_index(op.f('ix_person_reviews_date_order_id'), table_name='person_reviews')
    op.drop_table('person_reviews')

    op.drop_index('uq_application_live', table_name='date_order_applications')
    op.drop_index('ix_application_order_status', table_name='date_order_applications')
    op.drop_index(op.f('ix_date_order_applications_applicant_id'), table_name='date_order_applications')
    op.drop_index(op.f('ix_date_order_applications_order_id'), table_name='date_order_applications')
    op.drop_table('date_order_applications')

    op.drop_index('ix_date_order_creator_status', table_name='date_orders')
    op.drop_index('ix_date_order_status_expires', table_name='date_orders')
    op.drop_index('ix_date_order_status_date', table_name='date_orders')
    op.drop_index(op.f('ix_date_orders_matched_user_id'), table_name='date_orders')
    op.drop_index(op.f('ix_date_orders_restaurant_id'), table_name='date_orders')
    op.drop_index(op.f('ix_date_orders_creator_id'), table_name='date_orders')
    op.drop_table('date_orders')

    op.drop_index('ix_transaction_user_related', table_name='transactions')
    op.drop_index(op.f('ix_transactions_related_id'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_user_id'), table_name='transactions')
    op.drop_table('transactions')

    op.drop_table('wallet_accounts')

    op.drop_index(op.f('ix_users_referred_by'), table_name='users')
    op.drop_table('users')
