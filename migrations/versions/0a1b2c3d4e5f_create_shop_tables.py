"""Create shop tables

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-09-28 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0a1b2c3d4e5f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(name, nullable=False):
    return sa.Column(
        name,
        sa.Numeric(precision=10, scale=2),
        nullable=nullable,
        server_default=None if nullable else '0',
    )


def _existing_tables():
    return set(sa.inspect(op.get_bind()).get_table_names())


def upgrade() -> None:
    """Create every table missing from the database."""
    existing = _existing_tables()

    if 'users' not in existing:
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('username', sa.String(), nullable=False),
            sa.Column('password', sa.String(), nullable=False),
            sa.Column('is_admin', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('username'),
        )

    if 'app_settings' not in existing:
        op.create_table(
            'app_settings',
            sa.Column('key', sa.String(), nullable=False),
            sa.Column('value', sa.Text(), nullable=True),
            sa.Column('updated_at', sa.String(), nullable=True),
            sa.PrimaryKeyConstraint('key'),
        )

    if 'categories' not in existing:
        op.create_table(
            'categories',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('description', sa.String(length=500), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )

    if 'products' not in existing:
        op.create_table(
            'products',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('qr_code', sa.String(length=100), nullable=False, server_default=''),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('category_id', sa.Integer(), nullable=False),
            sa.Column('color', sa.String(length=50), nullable=False, server_default=''),
            sa.Column('size', sa.String(length=20), nullable=True),
            sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
            _money('price'),
            _money('cost_price'),
            _money('carton_price', nullable=True),
            sa.Column('date_added', sa.DateTime(), nullable=True),
            sa.Column('notes', sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('idx_products_qr_code', 'products', ['qr_code'])
        op.create_index('idx_products_category_id', 'products', ['category_id'])

    if 'customers' not in existing:
        op.create_table(
            'customers',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('phone_number', sa.String(length=20), nullable=False),
            sa.Column('additional_phone', sa.String(length=20), nullable=True),
            sa.Column('governorate', sa.String(length=50), nullable=True),
            sa.Column('district', sa.String(length=100), nullable=True),
            sa.Column('detailed_address', sa.String(length=200), nullable=True),
            sa.Column('email', sa.String(length=100), nullable=True),
            sa.Column('address', sa.String(length=200), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('phone_number'),
        )

    if 'customer_transactions' not in existing:
        op.create_table(
            'customer_transactions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('customer_id', sa.Integer(), nullable=False),
            sa.Column('product_id', sa.Integer(), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            _money('price'),
            _money('total_price'),
            _money('discount'),
            _money('shipping_cost'),
            _money('amount_paid'),
            sa.Column('date', sa.DateTime(), nullable=False),
            sa.Column('color', sa.String(length=50), nullable=True),
            sa.Column('size', sa.String(length=20), nullable=True),
            sa.Column('shipping_type', sa.String(length=20), nullable=True),
            sa.Column('notes', sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['product_id'], ['products.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('idx_customer_transactions_date', 'customer_transactions', ['date'])
        op.create_index(
            'idx_customer_transactions_customer_id', 'customer_transactions', ['customer_id']
        )
        op.create_index(
            'idx_customer_transactions_product_id', 'customer_transactions', ['product_id']
        )

    if 'invoices' not in existing:
        op.create_table(
            'invoices',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('invoice_number', sa.String(length=50), nullable=False),
            sa.Column('order_number', sa.String(length=50), nullable=False, server_default=''),
            sa.Column('policy_number', sa.String(length=50), nullable=True),
            sa.Column('customer_id', sa.Integer(), nullable=False),
            sa.Column('invoice_date', sa.DateTime(), nullable=False),
            sa.Column('due_date', sa.DateTime(), nullable=True),
            _money('total_amount'),
            _money('discount'),
            _money('shipping_cost'),
            sa.Column('shipping_type', sa.String(length=20), nullable=True),
            _money('amount_paid'),
            _money('remaining_amount'),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='paid'),
            sa.Column('type', sa.String(length=20), nullable=False, server_default='sale'),
            sa.Column('order_origin', sa.String(length=20), nullable=False, server_default='physical_store'),
            sa.Column('payment_method', sa.String(length=50), nullable=True),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('original_invoice_number', sa.String(length=50), nullable=True),
            sa.Column('return_reason', sa.String(length=500), nullable=True),
            sa.Column('cashier_name', sa.String(length=100), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('invoice_number'),
        )
        op.create_index('idx_invoices_invoice_date', 'invoices', ['invoice_date'])
        op.create_index('idx_invoices_customer_id', 'invoices', ['customer_id'])

    if 'invoice_items' not in existing:
        op.create_table(
            'invoice_items',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('invoice_id', sa.Integer(), nullable=False),
            sa.Column('product_id', sa.Integer(), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            _money('unit_price'),
            _money('discount'),
            _money('total_price'),
            sa.Column('color', sa.String(length=50), nullable=True),
            sa.Column('size', sa.String(length=20), nullable=True),
            sa.Column('notes', sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['product_id'], ['products.id']),
            sa.PrimaryKeyConstraint('id'),
        )

    if 'return_trackings' not in existing:
        op.create_table(
            'return_trackings',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('original_invoice_number', sa.String(length=50), nullable=False),
            sa.Column('product_id', sa.Integer(), nullable=False),
            sa.Column('returned_quantity', sa.Integer(), nullable=False),
            sa.Column(
                'return_invoice_number', sa.String(length=50), nullable=False, server_default=''
            ),
            sa.Column('return_date', sa.DateTime(), nullable=True),
            sa.Column('return_reason', sa.String(length=500), nullable=True),
            sa.Column('notes', sa.String(length=500), nullable=True),
            sa.Column('created_by', sa.String(length=100), nullable=False, server_default=''),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['product_id'], ['products.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(
            'idx_return_trackings_original',
            'return_trackings',
            ['original_invoice_number', 'product_id'],
        )

    if 'exchange_trackings' not in existing:
        op.create_table(
            'exchange_trackings',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('original_invoice_number', sa.String(length=50), nullable=False),
            sa.Column(
                'exchange_invoice_number', sa.String(length=50), nullable=False, server_default=''
            ),
            sa.Column('old_product_id', sa.Integer(), nullable=False),
            sa.Column('new_product_id', sa.Integer(), nullable=False),
            sa.Column('exchanged_quantity', sa.Integer(), nullable=False),
            _money('price_difference'),
            sa.Column('exchange_reason', sa.String(length=500), nullable=True),
            sa.Column('exchange_date', sa.DateTime(), nullable=True),
            sa.Column('notes', sa.String(length=500), nullable=True),
            sa.Column('created_by', sa.String(length=100), nullable=False, server_default=''),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['old_product_id'], ['products.id']),
            sa.ForeignKeyConstraint(['new_product_id'], ['products.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(
            'idx_exchange_trackings_original',
            'exchange_trackings',
            ['original_invoice_number', 'old_product_id'],
        )

    if 'activity_logs' not in existing:
        op.create_table(
            'activity_logs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('action', sa.String(length=100), nullable=False),
            sa.Column('entity_type', sa.String(length=100), nullable=False, server_default=''),
            sa.Column('entity_name', sa.String(length=200), nullable=True),
            sa.Column('details', sa.Text(), nullable=True),
            sa.Column('timestamp', sa.DateTime(), nullable=False),
            sa.Column('user', sa.String(length=100), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('idx_activity_logs_timestamp', 'activity_logs', ['timestamp'])

    if 'daily_inventories' not in existing:
        op.create_table(
            'daily_inventories',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('inventory_date', sa.Date(), nullable=False),
            sa.Column('start_time', sa.DateTime(), nullable=False),
            sa.Column('end_time', sa.DateTime(), nullable=False),
            _money('total_sales'),
            _money('total_cost'),
            _money('net_profit'),
            _money('total_discounts'),
            _money('total_payments'),
            _money('total_debts'),
            sa.Column('transactions_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('customers_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('products_sold_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_quantity_sold', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
            sa.Column('notes', sa.String(length=1000), nullable=True),
            sa.Column('responsible_user', sa.String(length=100), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('inventory_date'),
        )

    if 'daily_sale_transactions' not in existing:
        op.create_table(
            'daily_sale_transactions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('daily_inventory_id', sa.Integer(), nullable=False),
            sa.Column('customer_id', sa.Integer(), nullable=False),
            sa.Column('product_id', sa.Integer(), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            _money('unit_price'),
            _money('total_price'),
            _money('discount'),
            _money('amount_paid'),
            _money('cost_price'),
            sa.Column('transaction_time', sa.DateTime(), nullable=False),
            sa.Column('original_transaction_id', sa.Integer(), nullable=True),
            sa.Column('notes', sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(
                ['daily_inventory_id'], ['daily_inventories.id'], ondelete='CASCADE'
            ),
            sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
            sa.ForeignKeyConstraint(['product_id'], ['products.id']),
            sa.PrimaryKeyConstraint('id'),
        )

    if 'daily_product_summaries' not in existing:
        op.create_table(
            'daily_product_summaries',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('daily_inventory_id', sa.Integer(), nullable=False),
            sa.Column('product_id', sa.Integer(), nullable=False),
            sa.Column('total_quantity_sold', sa.Integer(), nullable=False, server_default='0'),
            _money('total_sales_value'),
            _money('total_cost_value'),
            _money('total_discounts'),
            _money('net_sales_value'),
            _money('net_profit'),
            sa.Column('transactions_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('starting_quantity', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('ending_quantity', sa.Integer(), nullable=False, server_default='0'),
            sa.ForeignKeyConstraint(
                ['daily_inventory_id'], ['daily_inventories.id'], ondelete='CASCADE'
            ),
            sa.ForeignKeyConstraint(['product_id'], ['products.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(
            'idx_daily_product_summaries_inv_product',
            'daily_product_summaries',
            ['daily_inventory_id', 'product_id'],
        )

    if 'daily_customer_summaries' not in existing:
        op.create_table(
            'daily_customer_summaries',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('daily_inventory_id', sa.Integer(), nullable=False),
            sa.Column('customer_id', sa.Integer(), nullable=False),
            sa.Column('transactions_count', sa.Integer(), nullable=False, server_default='0'),
            _money('total_purchases'),
            _money('total_payments'),
            _money('debt_amount'),
            sa.Column('last_transaction_time', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(
                ['daily_inventory_id'], ['daily_inventories.id'], ondelete='CASCADE'
            ),
            sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(
            'idx_daily_customer_summaries_inv_customer',
            'daily_customer_summaries',
            ['daily_inventory_id', 'customer_id'],
        )


def downgrade() -> None:
    """Drop the shop tables."""
    for table in (
        'daily_customer_summaries',
        'daily_product_summaries',
        'daily_sale_transactions',
        'daily_inventories',
        'activity_logs',
        'exchange_trackings',
        'return_trackings',
        'invoice_items',
        'invoices',
        'customer_transactions',
        'customers',
        'products',
        'categories',
        'users',
    ):
        op.drop_table(table)
