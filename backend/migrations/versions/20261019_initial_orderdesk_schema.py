"""initial orderdesk schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

This migration creates the complete orderdesk schema from scratch:
- delivery_settings: Singleton delivery configuration (weekly templates, cutoff, closed dates)
- day_counters: Per (date, mode) booking counters and overrides
- orders: Order documents with schedule, payment and session binding
- customers: Customer aggregates keyed by phone
- products / product_variants: Catalog with per-variant stock
- inventory_movements: Append-only stock ledger
- ledger_events: Append-only audit trail

Every mutable table carries version_id for optimistic locking.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # delivery_settings: singleton configuration
    # ============================================================================
    op.create_table(
        'delivery_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('max_advance_days', sa.Integer(), nullable=False),
        sa.Column('cutoff_type', sa.String(length=32), nullable=False),
        sa.Column('cutoff_day_before_at', sa.String(length=5), nullable=True),
        sa.Column('cutoff_hours_before_slot', sa.Integer(), nullable=True),
        sa.Column('modes', sa.JSON(), nullable=False),
        sa.Column('closed_dates', sa.JSON(), nullable=False),
        sa.Column('notes_for_customer', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )

    # ============================================================================
    # day_counters: mutable booking state, keyed "{date}_{mode}"
    # ============================================================================
    op.create_table(
        'day_counters',
        sa.Column('key', sa.String(length=32), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('mode', sa.String(length=16), nullable=False),
        sa.Column('daily_booked', sa.Integer(), nullable=False),
        sa.Column('slots', sa.JSON(), nullable=False),
        sa.Column('override_closed', sa.Boolean(), nullable=True),
        sa.Column('override_daily_capacity', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('key'),
    )
    op.create_index('ix_day_counters_date', 'day_counters', ['date'], unique=False)
    op.create_index('ix_day_counters_mode_date', 'day_counters', ['mode', 'date'], unique=False)

    # ============================================================================
    # orders
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('short_id', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('pricing', sa.JSON(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('customer', sa.JSON(), nullable=False),
        sa.Column('delivery_mode', sa.String(length=16), nullable=False),
        sa.Column('schedule_date', sa.Date(), nullable=True),
        sa.Column('schedule_slot_id', sa.String(length=64), nullable=True),
        sa.Column('schedule_slot_label', sa.String(length=128), nullable=True),
        sa.Column('reservation_status', sa.String(length=16), nullable=True),
        sa.Column('reserved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reservation_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('bottles_to_return', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('idempotency_key', sa.String(length=128), nullable=True),
        sa.Column('token_hash', sa.String(length=64), nullable=True),
        sa.Column('token_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stock_debited', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('eco_points_awarded', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('eco_points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('canceled_by', sa.String(length=64), nullable=True),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        sa.Column('last_status_update_by', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
    )
    op.create_index('ix_orders_short_id', 'orders', ['short_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_customer_phone', 'orders', ['customer_phone'], unique=False)
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'], unique=False)
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'], unique=False)
    op.create_index('ix_orders_schedule', 'orders',
                    ['delivery_mode', 'schedule_date', 'schedule_slot_id'], unique=False)
    op.create_index('ix_orders_hold_expiry', 'orders',
                    ['reservation_status', 'reservation_expires_at'], unique=False)

    # ============================================================================
    # customers: aggregate keyed by normalized phone
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('order_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_value_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('eco_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_subscriber', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('addresses', sa.JSON(), nullable=False),
        sa.Column('last_order_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('phone'),
    )

    # ============================================================================
    # products / product_variants: catalog
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_kind_active', 'products', ['kind', 'is_active'], unique=False)

    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('variant_key', sa.String(length=32), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),  # Backend authority
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('stock_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'variant_key', name='uq_product_variants_product_key'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'], unique=False)

    # ============================================================================
    # inventory_movements: append-only stock ledger
    # ============================================================================
    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('variant_key', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_movements_product_variant', 'inventory_movements',
                    ['product_id', 'variant_key'], unique=False)
    op.create_index('ix_inventory_movements_type', 'inventory_movements', ['type'], unique=False)
    op.create_index('ix_inventory_movements_order_id', 'inventory_movements', ['order_id'], unique=False)
    op.create_index('ix_inventory_movements_created_at', 'inventory_movements', ['created_at'], unique=False)

    # ============================================================================
    # ledger_events: append-only audit trail
    # ============================================================================
    op.create_table(
        'ledger_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('actor', sa.String(length=64), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ledger_events_event_type', 'ledger_events', ['event_type'], unique=False)
    op.create_index('ix_ledger_events_order_id', 'ledger_events', ['order_id'], unique=False)
    op.create_index('ix_ledger_events_occurred_at', 'ledger_events', ['occurred_at'], unique=False)
    op.create_index('ix_ledger_events_entity', 'ledger_events', ['entity_type', 'entity_id'], unique=False)


def downgrade():
    op.drop_table('ledger_events')
    op.drop_table('inventory_movements')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('customers')
    op.drop_table('orders')
    op.drop_table('day_counters')
    op.drop_table('delivery_settings')
