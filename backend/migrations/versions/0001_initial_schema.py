"""initial repair shop schema

Revision ID: 0001_initial_schema
Revises: 
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=80), nullable=False),
        sa.Column('last_name', sa.String(length=80), nullable=False),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('address', sa.String(length=255)),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='customer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('otp_code', sa.String(length=255)),
        sa.Column('otp_expires_at', sa.DateTime(timezone=True)),
        *_timestamps()
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table('customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        # unique: the find-or-create upsert conflicts on this column
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('address', sa.Text()),
        sa.Column('city', sa.String(length=80)),
        sa.Column('state', sa.String(length=80)),
        sa.Column('zip_code', sa.String(length=16)),
        sa.Column('device_preferences', sa.Text()),
        sa.Column('notes', sa.Text()),
        *_timestamps()
    )
    op.create_index('ix_customers_user_id', 'customers', ['user_id'])

    op.create_table('inventory',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('part_name', sa.String(length=128), nullable=False),
        sa.Column('part_number', sa.String(length=64), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('brand', sa.String(length=64)),
        sa.Column('supplier', sa.String(length=128)),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock_level', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('unit_cost', sa.Numeric(10, 2), nullable=False),
        sa.Column('selling_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('location', sa.String(length=64)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_quantity_non_negative'),
    )
    op.create_index('ix_inventory_part_name', 'inventory', ['part_name'])
    op.create_index('ix_inventory_part_number', 'inventory', ['part_number'])
    op.create_index('ix_inventory_category', 'inventory', ['category'])

    op.create_table('repair_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('technician_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('device_type', sa.String(length=80), nullable=False),
        sa.Column('brand', sa.String(length=80), nullable=False),
        sa.Column('model', sa.String(length=80), nullable=False),
        sa.Column('serial_number', sa.String(length=80)),
        sa.Column('issue_description', sa.Text(), nullable=False),
        sa.Column('diagnosis', sa.Text()),
        sa.Column('repair_notes', sa.Text()),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('estimated_cost', sa.Numeric(10, 2)),
        sa.Column('actual_cost', sa.Numeric(10, 2)),
        sa.Column('estimated_completion_date', sa.DateTime(timezone=True)),
        sa.Column('actual_completion_date', sa.DateTime(timezone=True)),
        sa.Column('warranty_period', sa.Integer(), server_default='30'),
        *_timestamps()
    )
    op.create_index('ix_repair_orders_customer_id', 'repair_orders', ['customer_id'])
    op.create_index('ix_repair_orders_technician_id', 'repair_orders', ['technician_id'])
    op.create_index('ix_repair_orders_status', 'repair_orders', ['status'])

    op.create_table('repair_parts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_order_id', sa.Integer(), sa.ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('inventory_id', sa.Integer(), sa.ForeignKey('inventory.id', ondelete='SET NULL'), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(10, 2)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity > 0', name='ck_repair_part_quantity_positive'),
    )
    op.create_index('ix_repair_parts_repair_order_id', 'repair_parts', ['repair_order_id'])
    op.create_index('ix_repair_parts_inventory_id', 'repair_parts', ['inventory_id'])

    op.create_table('repair_attachments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_order_id', sa.Integer(), sa.ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('filename', sa.String(length=128), nullable=False),
        sa.Column('original_name', sa.String(length=255), nullable=False),
        sa.Column('mime_type', sa.String(length=64), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('uploaded_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_repair_attachments_repair_order_id', 'repair_attachments', ['repair_order_id'])

    # no foreign key on repair_order_id: payments outlive their order
    op.create_table('payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_order_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('transaction_id', sa.String(length=128)),
        sa.Column('paid_at', sa.DateTime(timezone=True)),
        sa.Column('notes', sa.Text()),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
    )
    op.create_index('ix_payments_repair_order_id', 'payments', ['repair_order_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('actor_role', sa.String(length=16), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity', 'entity_id'])


def downgrade():
    for table in ('audit_logs', 'payments', 'repair_attachments', 'repair_parts', 'repair_orders', 'inventory', 'customers', 'users'):
        op.drop_table(table)
