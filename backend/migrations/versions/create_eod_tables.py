"""create_eod_tables: orders, canceled_orders, eod_reports, daily_serial_counters

Revision ID: create_eod_tables
Revises:
Create Date: 2026-10-19

Also creates the sequences and functions behind EOD-dddd and ORD-dddd numbers.
generate_* consume a value; get_next_* only peek at the sequence.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'create_eod_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _number_functions(prefix: str, sequence: str, generate_fn: str, peek_fn: str) -> None:
    op.execute(f"CREATE SEQUENCE IF NOT EXISTS {sequence} START 1")
    # Pad to 4 digits but never truncate once the sequence passes 9999
    op.execute(
        f"""
        CREATE OR REPLACE FUNCTION {generate_fn}() RETURNS text AS $$
        DECLARE n bigint;
        BEGIN
            n := nextval('{sequence}');
            RETURN '{prefix}-' || LPAD(n::text, GREATEST(4, length(n::text)), '0');
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        f"""
        CREATE OR REPLACE FUNCTION {peek_fn}() RETURNS text AS $$
        DECLARE n bigint;
        BEGIN
            SELECT CASE WHEN is_called THEN last_value + 1 ELSE last_value END INTO n FROM {sequence};
            RETURN '{prefix}-' || LPAD(n::text, GREATEST(4, length(n::text)), '0');
        END;
        $$ LANGUAGE plpgsql STABLE
        """
    )


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('order_number', sa.String(20), nullable=False),
        sa.Column('daily_serial', sa.String(3), nullable=True),
        sa.Column('serial_date', sa.Date(), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('total_amount', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('payment_method', sa.String(20), nullable=False),
        sa.Column('delivery_platform', sa.String(30), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('cash_amount', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('card_amount', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('cash_received', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('change_amount', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
    )
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'], unique=False)
    op.create_index('ix_orders_serial_date', 'orders', ['serial_date'], unique=False)

    op.create_table(
        'canceled_orders',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('original_order_id', sa.String(36), nullable=False),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('canceled_by', sa.String(255), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('order_data', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_canceled_orders'),
    )
    op.create_index('ix_canceled_orders_canceled_at', 'canceled_orders', ['canceled_at'], unique=False)
    op.create_index('ix_canceled_orders_original_order_id', 'canceled_orders', ['original_order_id'], unique=False)

    op.create_table(
        'eod_reports',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('report_number', sa.String(20), nullable=True),
        sa.Column('report_date', sa.Date(), nullable=False),
        sa.Column('report_type', sa.String(20), nullable=False, server_default='eod'),
        sa.Column('start_date_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cancelled_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pending_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cash_orders_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('card_orders_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_revenue', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('total_with_vat', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('total_without_vat', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('vat_amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('total_cash_orders', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('total_card_orders', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('total_cash_received', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('total_change_given', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('average_order_value', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('peak_hour', sa.String(5), nullable=True),
        sa.Column('order_completion_rate', sa.DECIMAL(5, 2), nullable=False),
        sa.Column('order_cancellation_rate', sa.DECIMAL(5, 2), nullable=False),
        sa.Column('payment_breakdown', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('delivery_platform_breakdown', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('best_selling_items', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('hourly_sales', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('generated_by', sa.String(255), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_eod_reports'),
        sa.UniqueConstraint('report_number', name='uq_eod_reports_report_number'),
    )
    op.create_index('ix_eod_reports_report_date', 'eod_reports', ['report_date'], unique=False)
    op.create_index('ix_eod_reports_generated_at', 'eod_reports', ['generated_at'], unique=False)
    op.create_index('ix_eod_reports_created_at', 'eod_reports', ['created_at'], unique=False)

    op.create_table(
        'daily_serial_counters',
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('serial_date', sa.Date(), nullable=True),
        sa.Column('last_serial', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reset_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('name', name='pk_daily_serial_counters'),
    )

    _number_functions('EOD', 'eod_report_number_seq', 'generate_eod_report_number', 'get_next_eod_report_number')
    _number_functions('ORD', 'order_number_seq', 'generate_order_number', 'get_next_order_number')


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS get_next_order_number()")
    op.execute("DROP FUNCTION IF EXISTS generate_order_number()")
    op.execute("DROP FUNCTION IF EXISTS get_next_eod_report_number()")
    op.execute("DROP FUNCTION IF EXISTS generate_eod_report_number()")
    op.execute("DROP SEQUENCE IF EXISTS order_number_seq")
    op.execute("DROP SEQUENCE IF EXISTS eod_report_number_seq")

    op.drop_table('daily_serial_counters')
    op.drop_index('ix_eod_reports_created_at', table_name='eod_reports')
    op.drop_index('ix_eod_reports_generated_at', table_name='eod_reports')
    op.drop_index('ix_eod_reports_report_date', table_name='eod_reports')
    op.drop_table('eod_reports')
    op.drop_index('ix_canceled_orders_original_order_id', table_name='canceled_orders')
    op.drop_index('ix_canceled_orders_canceled_at', table_name='canceled_orders')
    op.drop_table('canceled_orders')
    op.drop_index('ix_orders_serial_date', table_name='orders')
    op.drop_index('ix_orders_status_created', table_name='orders')
    op.drop_index('ix_orders_created_at', table_name='orders')
    op.drop_table('orders')
