"""Create subscription box schema

Revision ID: boxcycle_001
Revises:
Create Date: 2026-09-01 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'boxcycle_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Catalog
    op.create_table('box_types',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price_eur', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_premium', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_subscription', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('addresses',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=False),
        sa.Column('postal_code', sa.String(), nullable=True),
        sa.Column('street_address', sa.String(), nullable=False),
        sa.Column('delivery_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_addresses_id'), 'addresses', ['id'], unique=False)
    op.create_index(op.f('ix_addresses_user_id'), 'addresses', ['user_id'], unique=False)

    op.create_table('delivery_cycles',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('is_seasonal', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('status', sa.Enum('upcoming', 'delivered', 'archived', name='cyclestatus'), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('generated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('delivery_date')
    )
    op.create_index(op.f('ix_delivery_cycles_id'), 'delivery_cycles', ['id'], unique=False)
    op.create_index(op.f('ix_delivery_cycles_status'), 'delivery_cycles', ['status'], unique=False)

    # Subscriptions
    op.create_table('subscriptions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('box_type', sa.String(), nullable=False),
        sa.Column('frequency', sa.Enum('monthly', 'seasonal', name='frequency'), nullable=False),
        sa.Column('status', sa.Enum('active', 'paused', 'cancelled', 'expired', name='subscriptionstatus'), nullable=False),
        sa.Column('wants_personalization', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('sports', sa.JSON(), nullable=True),
        sa.Column('sport_other', sa.String(), nullable=True),
        sa.Column('colors', sa.JSON(), nullable=True),
        sa.Column('flavors', sa.JSON(), nullable=True),
        sa.Column('flavor_other', sa.String(), nullable=True),
        sa.Column('dietary', sa.JSON(), nullable=True),
        sa.Column('dietary_other', sa.String(), nullable=True),
        sa.Column('size_upper', sa.String(), nullable=True),
        sa.Column('size_lower', sa.String(), nullable=True),
        sa.Column('additional_notes', sa.Text(), nullable=True),
        sa.Column('promo_code', sa.String(), nullable=True),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=True),
        sa.Column('base_price_eur', sa.Numeric(10, 2), nullable=False),
        sa.Column('current_price_eur', sa.Numeric(10, 2), nullable=False),
        sa.Column('default_address_id', sa.String(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('first_cycle_id', sa.String(), nullable=True),
        sa.Column('last_delivered_cycle_id', sa.String(), nullable=True),
        sa.Column('paused_at', sa.DateTime(), nullable=True),
        sa.Column('resumed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('base_price_eur >= 0', name='ck_subscriptions_base_price'),
        sa.CheckConstraint('current_price_eur >= 0', name='ck_subscriptions_current_price'),
        sa.CheckConstraint(
            'discount_percent IS NULL OR (discount_percent >= 0 AND discount_percent <= 100)',
            name='ck_subscriptions_discount_percent'
        ),
        sa.CheckConstraint(
            "(status = 'cancelled') = (cancellation_reason IS NOT NULL)",
            name='ck_subscriptions_cancellation_reason'
        ),
        sa.ForeignKeyConstraint(['box_type'], ['box_types.id'], ),
        sa.ForeignKeyConstraint(['default_address_id'], ['addresses.id'], ),
        sa.ForeignKeyConstraint(['first_cycle_id'], ['delivery_cycles.id'], ),
        sa.ForeignKeyConstraint(['last_delivered_cycle_id'], ['delivery_cycles.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_subscriptions_user_id'), 'subscriptions', ['user_id'], unique=False)
    op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'], unique=False)

    op.create_table('subscription_history',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('subscription_id', sa.String(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('performed_by', sa.String(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscription_history_id'), 'subscription_history', ['id'], unique=False)
    op.create_index(op.f('ix_subscription_history_subscription_id'), 'subscription_history', ['subscription_id'], unique=False)
    op.create_index(op.f('ix_subscription_history_action'), 'subscription_history', ['action'], unique=False)
    op.create_index(op.f('ix_subscription_history_created_at'), 'subscription_history', ['created_at'], unique=False)
    op.create_index('ix_subscription_history_subscription_created', 'subscription_history',
                    ['subscription_id', 'created_at'], unique=False)

    # Orders
    op.create_table('orders',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('subscription_id', sa.String(), nullable=True),
        sa.Column('delivery_cycle_id', sa.String(), nullable=True),
        sa.Column('order_type', sa.String(), nullable=False, server_default='subscription'),
        sa.Column('box_type', sa.String(), nullable=False),
        sa.Column('address_id', sa.String(), nullable=True),
        sa.Column('personalization', sa.JSON(), nullable=True),
        sa.Column('promo_code', sa.String(), nullable=True),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=True),
        sa.Column('original_price_eur', sa.Numeric(10, 2), nullable=False),
        sa.Column('final_price_eur', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ),
        sa.ForeignKeyConstraint(['delivery_cycle_id'], ['delivery_cycles.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_orders_id'), 'orders', ['id'], unique=False)
    op.create_index(op.f('ix_orders_user_id'), 'orders', ['user_id'], unique=False)
    op.create_index(op.f('ix_orders_delivery_cycle_id'), 'orders', ['delivery_cycle_id'], unique=False)
    op.create_index(op.f('ix_orders_status'), 'orders', ['status'], unique=False)
    op.create_index(op.f('ix_orders_created_at'), 'orders', ['created_at'], unique=False)
    op.create_index('uq_orders_subscription_cycle', 'orders', ['subscription_id', 'delivery_cycle_id'],
                    unique=True, postgresql_where=sa.text('subscription_id IS NOT NULL'))

    # Promotions
    op.create_table('promo_codes',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('code', sa.String(), nullable=False),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('starts_at', sa.DateTime(), nullable=True),
        sa.Column('ends_at', sa.DateTime(), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('current_uses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_uses_per_user', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('discount_percent > 0 AND discount_percent <= 100', name='ck_promo_codes_discount_percent'),
        sa.CheckConstraint('max_uses IS NULL OR current_uses <= max_uses', name='ck_promo_codes_usage_cap'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_promo_codes_id'), 'promo_codes', ['id'], unique=False)
    op.create_index('uq_promo_codes_code_upper', 'promo_codes', [sa.text('upper(code)')], unique=True)

    op.create_table('promo_code_usages',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('promo_code_id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=True),
        sa.Column('used_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['promo_code_id'], ['promo_codes.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_promo_code_usages_id'), 'promo_code_usages', ['id'], unique=False)
    op.create_index('ix_promo_code_usages_user', 'promo_code_usages', ['promo_code_id', 'user_id'], unique=False)
    op.create_index('uq_promo_code_usages_order', 'promo_code_usages', ['promo_code_id', 'order_id'],
                    unique=True, postgresql_where=sa.text('order_id IS NOT NULL'))

    # Notification outbox
    op.create_table('side_effect_outbox',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('kind', sa.String(), nullable=False),
        sa.Column('subscription_id', sa.String(), nullable=True),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_side_effect_outbox_id'), 'side_effect_outbox', ['id'], unique=False)
    op.create_index(op.f('ix_side_effect_outbox_kind'), 'side_effect_outbox', ['kind'], unique=False)
    op.create_index(op.f('ix_side_effect_outbox_subscription_id'), 'side_effect_outbox', ['subscription_id'], unique=False)
    op.create_index(op.f('ix_side_effect_outbox_status'), 'side_effect_outbox', ['status'], unique=False)
    op.create_index(op.f('ix_side_effect_outbox_created_at'), 'side_effect_outbox', ['created_at'], unique=False)


def downgrade():
    op.drop_table('side_effect_outbox')
    op.drop_table('promo_code_usages')
    op.drop_index('uq_promo_codes_code_upper', table_name='promo_codes')
    op.drop_table('promo_codes')
    op.drop_index('uq_orders_subscription_cycle', table_name='orders')
    op.drop_table('orders')
    op.drop_table('subscription_history')
    op.drop_table('subscriptions')
    op.drop_table('delivery_cycles')
    op.drop_table('addresses')
    op.drop_table('box_types')

    sa.Enum(name='subscriptionstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='frequency').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='cyclestatus').drop(op.get_bind(), checkfirst=True)
