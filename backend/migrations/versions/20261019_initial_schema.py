"""Initial schema: catalog, supplies, stockouts, sales, adjustments, returns

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. Catalog tables (categories, suppliers, employees, payment methods, products)
2. Supplies and supply lines (Pending purchase orders and Received deliveries)
3. Stockouts and stockout lines
4. Sales and sale lines
5. Stock adjustments with a unique client_request_id (idempotent posting)
6. Return / replacement records with a unique post_request_id
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
    # 1. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.PrimaryKeyConstraint('code'),
    )
    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_table('employees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=120), nullable=False),
        sa.Column('middle_name', sa.String(length=120), nullable=True),
        sa.Column('last_name', sa.String(length=120), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_table('payment_methods',
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.PrimaryKeyConstraint('code'),
    )
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category_code', sa.String(length=32), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['category_code'], ['categories.code']),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_category_code', 'products', ['category_code'])
    op.create_index('ix_products_category_active', 'products', ['category_code', 'is_active'])

    # ==========================================================================
    # 2. SUPPLIES
    # ==========================================================================
    op.create_table('supplies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('supply_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Received'),
        sa.Column('received_by', sa.Integer(), nullable=True),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.ForeignKeyConstraint(['received_by'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_supplies_supplier_id', 'supplies', ['supplier_id'])
    op.create_index('ix_supplies_supply_date', 'supplies', ['supply_date'])
    op.create_index('ix_supplies_status_date', 'supplies', ['status', 'supply_date'])

    op.create_table('supply_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('supply_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity_supplied', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['supply_id'], ['supplies.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_supply_details_supply_id', 'supply_details', ['supply_id'])
    op.create_index('ix_supply_details_product_id', 'supply_details', ['product_id'])

    # ==========================================================================
    # 3. STOCKOUTS
    # ==========================================================================
    op.create_table('stockouts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stockout_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('sale_attendant', sa.Integer(), nullable=True),
        sa.Column('manager', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity_removed', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['sale_attendant'], ['employees.id']),
        sa.ForeignKeyConstraint(['manager'], ['employees.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stockouts_stockout_date', 'stockouts', ['stockout_date'])
    op.create_index('ix_stockouts_product_id', 'stockouts', ['product_id'])

    op.create_table('stockout_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stockout_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity_removed', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['stockout_id'], ['stockouts.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stockout_details_stockout_id', 'stockout_details', ['stockout_id'])
    op.create_index('ix_stockout_details_product_id', 'stockout_details', ['product_id'])

    # ==========================================================================
    # 4. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=True),
        sa.Column('payment_method_code', sa.String(length=32), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Completed'),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['cashier_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['payment_method_code'], ['payment_methods.code']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sales_sale_date', 'sales', ['sale_date'])
    op.create_index('ix_sales_cashier_id', 'sales', ['cashier_id'])
    op.create_index('ix_sales_status_date', 'sales', ['status', 'sale_date'])

    op.create_table('sale_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity_sold', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sale_details_sale_id', 'sale_details', ['sale_id'])
    op.create_index('ix_sale_details_product_id', 'sale_details', ['product_id'])

    # ==========================================================================
    # 5. STOCK ADJUSTMENTS
    # ==========================================================================
    op.create_table('stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_request_id', sa.String(length=64), nullable=False),
        sa.Column('adjustment_type', sa.String(length=16), nullable=False, server_default='manual'),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_request_id', name='uq_stock_adjustments_client_request_id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_adjustments_transaction_date', 'stock_adjustments', ['transaction_date'])

    op.create_table('stock_adjustment_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('adjustment_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['adjustment_id'], ['stock_adjustments.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_adjustment_details_adjustment_id', 'stock_adjustment_details', ['adjustment_id'])
    op.create_index('ix_stock_adjustment_details_product_id', 'stock_adjustment_details', ['product_id'])

    # ==========================================================================
    # 6. RETURNS AND REPLACEMENTS
    # ==========================================================================
    op.create_table('return_and_replacements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_detail_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('replacement_product_id', sa.Integer(), nullable=True),
        sa.Column('return_status', sa.String(length=8), nullable=False, server_default='PEND'),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.String(length=255), nullable=True),
        sa.Column('post_request_id', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['sale_detail_id'], ['sale_details.id']),
        sa.ForeignKeyConstraint(['replacement_product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('post_request_id', name='uq_returns_post_request_id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_return_and_replacements_sale_detail_id', 'return_and_replacements', ['sale_detail_id'])
    op.create_index('ix_return_and_replacements_return_status', 'return_and_replacements', ['return_status'])
    op.create_index('ix_returns_status_date', 'return_and_replacements', ['return_status', 'transaction_date'])


def downgrade():
    op.drop_table('return_and_replacements')
    op.drop_table('stock_adjustment_details')
    op.drop_table('stock_adjustments')
    op.drop_table('sale_details')
    op.drop_table('sales')
    op.drop_table('stockout_details')
    op.drop_table('stockouts')
    op.drop_table('supply_details')
    op.drop_table('supplies')
    op.drop_table('products')
    op.drop_table('payment_methods')
    op.drop_table('employees')
    op.drop_table('suppliers')
    op.drop_table('categories')
