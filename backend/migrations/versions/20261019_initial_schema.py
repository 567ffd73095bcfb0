"""Initial schema: venue, sessions and seat charge ledger, orders, checkouts

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. Venue reference data (stores, seat_types, tables, casts, pos_integrations)
2. Open sessions and their seat charge ledger and nominations
3. Orders and order items
4. Checkouts and the checkout history reporting tables
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. VENUE
    # ==========================================================================
    op.create_table('stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=True),
        sa.Column('pos_enabled', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_stores_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stores', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stores_code'), ['code'], unique=False)

    op.create_table('seat_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('display_name', sa.String(length=120), nullable=False),
        sa.Column('price_per_unit', sa.Integer(), nullable=False),
        sa.Column('time_unit_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.CheckConstraint('time_unit_minutes > 0', name='ck_seat_types_time_unit_positive'),
        sa.CheckConstraint('price_per_unit >= 0', name='ck_seat_types_price_non_negative'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('seat_types', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_seat_types_store_id'), ['store_id'], unique=False)

    op.create_table('tables',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('seat_type_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['seat_type_id'], ['seat_types.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'name', name='uq_tables_store_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('tables', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_tables_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_tables_seat_type_id'), ['seat_type_id'], unique=False)

    op.create_table('casts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('display_name', sa.String(length=120), nullable=False),
        sa.Column('nomination_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('casts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_casts_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_casts_is_active'), ['is_active'], unique=False)

    op.create_table('pos_integrations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('auth_mode', sa.String(length=16), nullable=False, server_default='oauth'),
        sa.Column('contract_id', sa.String(length=64), nullable=False),
        sa.Column('client_id', sa.String(length=128), nullable=True),
        sa.Column('client_secret', sa.String(length=255), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('provider_store_id', sa.String(length=32), nullable=False, server_default='1'),
        sa.Column('terminal_id', sa.String(length=32), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', name='uq_pos_integrations_store'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 2. SESSIONS, SEAT CHARGE LEDGER, NOMINATIONS
    # ==========================================================================
    op.create_table('sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('table_id', sa.Integer(), nullable=False),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('charge_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('charge_paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('charge_paused_ms', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('selected_cast_id', sa.Integer(), nullable=True),
        sa.Column('guest_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_new_customer', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['table_id'], ['tables.id'], ),
        sa.ForeignKeyConstraint(['selected_cast_id'], ['casts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('table_id', name='uq_sessions_table'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sessions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sessions_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sessions_table_id'), ['table_id'], unique=False)

    op.create_table('seat_charge_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('seat_type_id', sa.Integer(), nullable=False),
        sa.Column('price_snapshot', sa.Integer(), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_table_move_charge', sa.Boolean(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['seat_type_id'], ['seat_types.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('seat_charge_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_seat_charge_events_session_id'), ['session_id'], unique=False)
        batch_op.create_index('ix_seat_charge_events_session_changed', ['session_id', 'changed_at'], unique=False)

    op.create_table('nominations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('cast_id', sa.Integer(), nullable=False),
        sa.Column('nomination_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['cast_id'], ['casts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('nominations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_nominations_session_id'), ['session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_nominations_cast_id'), ['cast_id'], unique=False)

    # ==========================================================================
    # 3. ORDERS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='new'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_session_id'), ['session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)
        batch_op.create_index('ix_orders_session_status', ['session_id', 'status'], unique=False)

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('target_cast_id', sa.Integer(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['target_cast_id'], ['casts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_items_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_items_target_cast_id'), ['target_cast_id'], unique=False)

    # ==========================================================================
    # 4. CHECKOUTS AND HISTORY
    # ==========================================================================
    op.create_table('checkouts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('subtotal_amount', sa.Integer(), nullable=False),
        sa.Column('tax_amount', sa.Integer(), nullable=False),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False),
        sa.Column('charge_amount', sa.Integer(), nullable=False),
        sa.Column('order_amount', sa.Integer(), nullable=False),
        sa.Column('nomination_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('pos_receipt_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', name='uq_checkouts_session'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('checkouts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_checkouts_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_checkouts_status'), ['status'], unique=False)
        batch_op.create_index('ix_checkouts_store_created', ['store_id', 'created_at'], unique=False)

    op.create_table('checkout_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('checkout_id', sa.Integer(), nullable=True),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('table_name', sa.String(length=64), nullable=True),
        sa.Column('seat_type_name', sa.String(length=120), nullable=True),
        sa.Column('checkout_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('billing_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stay_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('subtotal_amount', sa.Integer(), nullable=False),
        sa.Column('tax_amount', sa.Integer(), nullable=False),
        sa.Column('charge_amount', sa.Integer(), nullable=False),
        sa.Column('order_amount', sa.Integer(), nullable=False),
        sa.Column('nomination_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('guest_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_new_customer', sa.Boolean(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['checkout_id'], ['checkouts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('checkout_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_checkout_history_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_checkout_history_checkout_id'), ['checkout_id'], unique=False)
        batch_op.create_index('ix_checkout_history_store_checkout_at', ['store_id', 'checkout_at'], unique=False)

    op.create_table('checkout_order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('history_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Integer(), nullable=False),
        sa.Column('target_cast_id', sa.Integer(), nullable=True),
        sa.Column('target_cast_name', sa.String(length=120), nullable=True),
        sa.Column('ordered_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['history_id'], ['checkout_history.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('checkout_order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_checkout_order_items_history_id'), ['history_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_checkout_order_items_target_cast_id'), ['target_cast_id'], unique=False)

    op.create_table('checkout_nominations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('history_id', sa.Integer(), nullable=False),
        sa.Column('cast_id', sa.Integer(), nullable=False),
        sa.Column('cast_name', sa.String(length=120), nullable=True),
        sa.Column('fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('nominated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['history_id'], ['checkout_history.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('checkout_nominations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_checkout_nominations_history_id'), ['history_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_checkout_nominations_cast_id'), ['cast_id'], unique=False)


def downgrade():
    op.drop_table('checkout_nominations')
    op.drop_table('checkout_order_items')
    op.drop_table('checkout_history')
    op.drop_table('checkouts')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('nominations')
    op.drop_table('seat_charge_events')
    op.drop_table('sessions')
    op.drop_table('pos_integrations')
    op.drop_table('casts')
    op.drop_table('tables')
    op.drop_table('seat_types')
    op.drop_table('stores')
