"""Restaurant ledger core schema

Creates the tenant root, chart of accounts, immutable journal, POS intake,
product catalog mirror, stock ledger and reconciliation tables.

1. restaurants (tenant root)
2. accounts, journal_entries, journal_lines (double-entry ledger)
3. products, stock_ledger_entries (ledger-derived stock)
4. pos_transactions, pos_transaction_items (idempotent POS intake)
5. reconciliation_sessions (versioned), reconciliation_locks (one open count per product)

Revision ID: rl001_ledger_core
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'rl001_ledger_core'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # STEP 1: Tenant root
    # ==========================================================================
    op.create_table('restaurants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_restaurants_code', 'restaurants', ['code'], unique=True)
    op.create_index('ix_restaurants_is_active', 'restaurants', ['is_active'])

    # ==========================================================================
    # STEP 2: Double-entry ledger
    # ==========================================================================
    op.create_table('accounts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('account_type', sa.String(length=20), nullable=False),
        sa.Column('normal_balance', sa.String(length=6), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('restaurant_id', 'code', name='uq_accounts_restaurant_code'),
        sa.UniqueConstraint('restaurant_id', 'role', name='uq_accounts_restaurant_role'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_accounts_restaurant_id', 'accounts', ['restaurant_id'])
    op.create_index('ix_accounts_restaurant_type', 'accounts', ['restaurant_id', 'account_type'])

    op.create_table('journal_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('affects_inventory', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('memo', sa.String(length=255), nullable=True),
        sa.Column('reverses_entry_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.ForeignKeyConstraint(['reverses_entry_id'], ['journal_entries.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_journal_entries_restaurant_id', 'journal_entries', ['restaurant_id'])
    op.create_index('ix_journal_entries_reference', 'journal_entries', ['reference'])
    op.create_index('ix_journal_entries_reverses_entry_id', 'journal_entries', ['reverses_entry_id'])
    op.create_index('ix_journal_entries_occurred_at', 'journal_entries', ['occurred_at'])
    op.create_index('ix_journal_entries_restaurant_occurred', 'journal_entries', ['restaurant_id', 'occurred_at'])
    op.create_index('ix_journal_entries_restaurant_source', 'journal_entries', ['restaurant_id', 'source'])

    op.create_table('journal_lines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('journal_entry_id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('side', sa.String(length=6), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.CheckConstraint('amount_cents >= 0', name='ck_journal_lines_amount_non_negative'),
        sa.ForeignKeyConstraint(['journal_entry_id'], ['journal_entries.id']),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('journal_entry_id', 'position', name='uq_journal_lines_entry_position'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_journal_lines_journal_entry_id', 'journal_lines', ['journal_entry_id'])
    op.create_index('ix_journal_lines_account_id', 'journal_lines', ['account_id'])
    op.create_index('ix_journal_lines_account_entry', 'journal_lines', ['account_id', 'journal_entry_id'])

    # ==========================================================================
    # STEP 3: Catalog mirror and stock ledger
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('restaurant_id', 'sku', name='uq_products_restaurant_sku'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_restaurant_id', 'products', ['restaurant_id'])
    op.create_index('ix_products_restaurant_name', 'products', ['restaurant_id', 'name'])

    op.create_table('stock_ledger_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('journal_entry_id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('quantity_delta <> 0', name='ck_stock_delta_non_zero'),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['journal_entry_id'], ['journal_entries.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_ledger_entries_restaurant_id', 'stock_ledger_entries', ['restaurant_id'])
    op.create_index('ix_stock_ledger_entries_product_id', 'stock_ledger_entries', ['product_id'])
    op.create_index('ix_stock_ledger_entries_journal_entry_id', 'stock_ledger_entries', ['journal_entry_id'])
    op.create_index('ix_stock_ledger_entries_occurred_at', 'stock_ledger_entries', ['occurred_at'])
    op.create_index(
        'ix_stock_restaurant_product_occurred',
        'stock_ledger_entries',
        ['restaurant_id', 'product_id', 'occurred_at'],
    )

    # ==========================================================================
    # STEP 4: POS intake (idempotent on restaurant_id + external_id)
    # ==========================================================================
    op.create_table('pos_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(length=128), nullable=False),
        sa.Column('gross_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tip_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('journal_entry_id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.ForeignKeyConstraint(['journal_entry_id'], ['journal_entries.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('restaurant_id', 'external_id', name='uq_pos_transactions_restaurant_external'),
        sa.UniqueConstraint('journal_entry_id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_pos_transactions_restaurant_id', 'pos_transactions', ['restaurant_id'])
    op.create_index('ix_pos_transactions_restaurant_occurred', 'pos_transactions', ['restaurant_id', 'occurred_at'])

    op.create_table('pos_transaction_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('pos_transaction_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['pos_transaction_id'], ['pos_transactions.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_pos_transaction_items_pos_transaction_id', 'pos_transaction_items', ['pos_transaction_id'])
    op.create_index('ix_pos_transaction_items_product_id', 'pos_transaction_items', ['product_id'])

    # ==========================================================================
    # STEP 5: Reconciliation sessions and per-product locks
    # ==========================================================================
    op.create_table('reconciliation_sessions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('system_quantity_snapshot', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents_snapshot', sa.Integer(), nullable=False),
        sa.Column('counted_quantity', sa.Integer(), nullable=True),
        sa.Column('adjustment_quantity', sa.Integer(), nullable=True),
        sa.Column('journal_entry_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('performed_by', sa.String(length=64), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('counted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['journal_entry_id'], ['journal_entries.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_reconciliation_sessions_restaurant_id', 'reconciliation_sessions', ['restaurant_id'])
    op.create_index('ix_reconciliation_sessions_product_id', 'reconciliation_sessions', ['product_id'])
    op.create_index('ix_reconciliation_sessions_status', 'reconciliation_sessions', ['status'])
    op.create_index('ix_reconciliation_sessions_journal_entry_id', 'reconciliation_sessions', ['journal_entry_id'])
    op.create_index(
        'ix_recon_restaurant_product_status',
        'reconciliation_sessions',
        ['restaurant_id', 'product_id', 'status'],
    )

    op.create_table('reconciliation_locks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('acquired_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['session_id'], ['reconciliation_sessions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('restaurant_id', 'product_id', name='uq_recon_locks_restaurant_product'),
        sa.UniqueConstraint('session_id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_reconciliation_locks_restaurant_id', 'reconciliation_locks', ['restaurant_id'])


def downgrade():
    op.drop_table('reconciliation_locks')
    op.drop_table('reconciliation_sessions')
    op.drop_table('pos_transaction_items')
    op.drop_table('pos_transactions')
    op.drop_table('stock_ledger_entries')
    op.drop_table('products')
    op.drop_table('journal_lines')
    op.drop_table('journal_entries')
    op.drop_table('accounts')
    op.drop_table('restaurants')
