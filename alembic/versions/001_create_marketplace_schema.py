"""Create warehouse marketplace schema

Revision ID: 001_marketplace
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_marketplace'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=True),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=True)
        )
    return columns


def upgrade():
    """Create warehouse, booking, billing and operations tables"""

    # ====================
    # WAREHOUSES
    # ====================
    op.create_table(
        'warehouses',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(30), unique=True, nullable=True),
        sa.Column('address', sa.Text, nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('owner_id', UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_warehouses_owner_id', 'warehouses', ['owner_id'])

    op.create_table(
        'warehouse_zones',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('zone_type', sa.String(30), server_default='pallet', nullable=False),
        sa.Column('total_slots', sa.Integer, server_default='0', nullable=False),
        sa.Column('available_slots', sa.Integer, server_default='0', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('available_slots >= 0', name='ck_zone_available_non_negative'),
        sa.CheckConstraint('available_slots <= total_slots', name='ck_zone_available_le_total'),
    )
    op.create_index('ix_warehouse_zones_warehouse_id', 'warehouse_zones', ['warehouse_id'])
    op.create_index('ix_warehouse_zones_warehouse_available', 'warehouse_zones', ['warehouse_id', 'available_slots'])

    op.create_table(
        'warehouse_floors',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('floor_number', sa.Integer, nullable=False),
        sa.Column('name', sa.String(100), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint('warehouse_id', 'floor_number', name='uq_warehouse_floor_number'),
    )
    op.create_index('ix_warehouse_floors_warehouse_id', 'warehouse_floors', ['warehouse_id'])

    op.create_table(
        'warehouse_halls',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('floor_id', UUID(as_uuid=True), sa.ForeignKey('warehouse_floors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('total_sq_ft', sa.Integer, server_default='0', nullable=False),
        sa.Column('available_sq_ft', sa.Integer, server_default='0', nullable=False),
        sa.Column('occupied_sq_ft', sa.Integer, server_default='0', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('available_sq_ft >= 0', name='ck_hall_available_non_negative'),
        sa.CheckConstraint('available_sq_ft <= total_sq_ft', name='ck_hall_available_le_total'),
    )
    op.create_index('ix_warehouse_halls_floor_id', 'warehouse_halls', ['floor_id'])

    op.create_table(
        'warehouse_pricing',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('pricing_type', sa.String(20), nullable=False),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('unit', sa.String(20), server_default='per_month', nullable=False),
        sa.Column('min_quantity', sa.Integer, nullable=True),
        sa.Column('max_quantity', sa.Integer, nullable=True),
        sa.Column('volume_discounts', JSONB, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_warehouse_pricing_warehouse_id', 'warehouse_pricing', ['warehouse_id'])
    op.create_index('ix_warehouse_pricing_lookup', 'warehouse_pricing', ['warehouse_id', 'pricing_type', 'is_active'])

    # ====================
    # MEMBERSHIP & TEAMS
    # ====================
    op.create_table(
        'membership_settings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tier_name', sa.String(20), unique=True, nullable=False),
        sa.Column('min_spend', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('discount_percent', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('program_enabled', sa.Boolean, server_default='true', nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'client_teams',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_client_teams_company_id', 'client_teams', ['company_id'])

    op.create_table(
        'client_team_members',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('team_id', UUID(as_uuid=True), sa.ForeignKey('client_teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), nullable=False),
        sa.Column('role', sa.String(20), server_default='member', nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.UniqueConstraint('team_id', 'member_id', name='uq_team_member'),
    )
    op.create_index('ix_client_team_members_team_id', 'client_team_members', ['team_id'])
    op.create_index('ix_client_team_members_member_id', 'client_team_members', ['member_id'])

    # ====================
    # BOOKINGS
    # ====================
    op.create_table(
        'bookings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('booking_number', sa.String(30), unique=True, nullable=False),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('booking_type', sa.String(20), nullable=False),
        sa.Column('pallet_count', sa.Integer, nullable=True),
        sa.Column('area_sq_ft', sa.Integer, nullable=True),
        sa.Column('floor_number', sa.Integer, nullable=True),
        sa.Column('hall_id', UUID(as_uuid=True), sa.ForeignKey('warehouse_halls.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reserved_zone_id', UUID(as_uuid=True), sa.ForeignKey('warehouse_zones.id', ondelete='SET NULL'), nullable=True),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('months', sa.Integer, nullable=True),
        sa.Column('base_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('volume_discount_percent', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('membership_discount_percent', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('membership_tier', sa.String(20), nullable=True),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(30), server_default='pending', nullable=False),
        sa.Column('booked_on_behalf', sa.Boolean, server_default='false', nullable=False),
        sa.Column('booked_by_id', UUID(as_uuid=True), nullable=True),
        sa.Column('booked_by_name', sa.String(200), nullable=True),
        sa.Column('requires_approval', sa.Boolean, server_default='false', nullable=False),
        sa.Column('approval_status', sa.String(20), nullable=True),
        sa.Column('scheduled_dropoff_datetime', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_slot_set_by', UUID(as_uuid=True), nullable=True),
        sa.Column('time_slot_set_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_slot_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_bookings_customer_id', 'bookings', ['customer_id'])
    op.create_index('ix_bookings_warehouse_id', 'bookings', ['warehouse_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_customer_status', 'bookings', ['customer_id', 'status'])
    op.create_index('ix_bookings_type_status', 'bookings', ['booking_type', 'status'])

    op.create_table(
        'booking_approvals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('requested_by', UUID(as_uuid=True), nullable=False),
        sa.Column('requested_by_name', sa.String(200), nullable=True),
        sa.Column('request_message', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('responded_by', UUID(as_uuid=True), nullable=True),
        sa.Column('responded_by_name', sa.String(200), nullable=True),
        sa.Column('response_message', sa.Text, nullable=True),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_booking_approvals_booking_id', 'booking_approvals', ['booking_id'])

    # ====================
    # BILLING
    # ====================
    op.create_table(
        'service_orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_number', sa.String(30), unique=True, nullable=False),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('items', JSONB, server_default='[]', nullable=False),
        sa.Column('status', sa.String(20), server_default='draft', nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_service_orders_customer_id', 'service_orders', ['customer_id'])

    op.create_table(
        'invoices',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('invoice_number', sa.String(30), unique=True, nullable=False),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True),
        sa.Column('service_order_id', UUID(as_uuid=True), sa.ForeignKey('service_orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('items', JSONB, server_default='[]', nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax', sa.Numeric(12, 2), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('due_date', sa.Date, nullable=False),
        sa.Column('paid_date', sa.Date, nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_booking_created', 'invoices', ['booking_id', 'created_at'])

    op.create_table(
        'payments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True),
        sa.Column('booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), server_default='USD', nullable=False),
        sa.Column('status', sa.String(30), server_default='pending', nullable=False),
        sa.Column('payment_method', sa.String(30), nullable=False),
        sa.Column('gateway_customer_id', sa.String(100), nullable=True),
        sa.Column('payment_intent_id', sa.String(100), nullable=True),
        sa.Column('client_secret', sa.String(255), nullable=True),
        sa.Column('charge_id', sa.String(100), nullable=True),
        sa.Column('credit_balance_used', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('refunded_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('failure_reason', sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint('refunded_amount <= amount', name='ck_payment_refund_le_amount'),
    )
    op.create_index('ix_payments_customer_id', 'payments', ['customer_id'])
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_payment_intent_id', 'payments', ['payment_intent_id'])

    op.create_table(
        'payment_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('payment_id', UUID(as_uuid=True), sa.ForeignKey('payments.id', ondelete='CASCADE'), nullable=True),
        sa.Column('invoice_id', UUID(as_uuid=True), nullable=True),
        sa.Column('transaction_type', sa.String(30), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_payment_transactions_customer_id', 'payment_transactions', ['customer_id'])

    op.create_table(
        'refunds',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('payment_id', UUID(as_uuid=True), sa.ForeignKey('payments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('refund_to_credit', sa.Boolean, server_default='false', nullable=False),
        sa.Column('gateway_refund_id', sa.String(100), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_refunds_payment_id', 'refunds', ['payment_id'])

    op.create_table(
        'customer_credits',
        sa.Column('customer_id', UUID(as_uuid=True), primary_key=True),
        sa.Column('credit_balance', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_spend', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('gateway_customer_id', sa.String(100), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.CheckConstraint('credit_balance >= 0', name='ck_credit_balance_non_negative'),
    )

    # ====================
    # OPERATIONS
    # ====================
    op.create_table(
        'workers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), unique=True, nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_on_shift', sa.Boolean, server_default='false', nullable=False),
        sa.Column('skills', JSONB, server_default='[]', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_workers_warehouse_id', 'workers', ['warehouse_id'])

    op.create_table(
        'tasks',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('task_type', sa.String(30), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('priority', sa.String(20), server_default='medium', nullable=False),
        sa.Column('assigned_to', UUID(as_uuid=True), nullable=True),
        sa.Column('assigned_to_name', sa.String(200), nullable=True),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True),
        sa.Column('zone', sa.String(100), nullable=True),
        sa.Column('location', sa.String(100), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_tasks_assignee_status', 'tasks', ['assigned_to', 'status'])
    op.create_index('ix_tasks_warehouse_status', 'tasks', ['warehouse_id', 'status'])

    op.create_table(
        'incidents',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('affected_booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reported_by', UUID(as_uuid=True), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('severity', sa.String(20), server_default='medium', nullable=False),
        sa.Column('status', sa.String(20), server_default='open', nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'claims',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('claim_number', sa.String(30), unique=True, nullable=False),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('incident_id', UUID(as_uuid=True), sa.ForeignKey('incidents.id', ondelete='SET NULL'), nullable=True),
        sa.Column('claim_type', sa.String(20), server_default='damage', nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('approved_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(20), server_default='submitted', nullable=False),
        sa.Column('reviewed_by', UUID(as_uuid=True), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_notes', sa.Text, nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_claims_customer_id', 'claims', ['customer_id'])
    op.create_index('ix_claims_incident_id', 'claims', ['incident_id'])
    op.create_index('ix_claims_status_created', 'claims', ['status', 'created_at'])


def downgrade():
    """Drop all marketplace tables"""
    for table in (
        'claims',
        'incidents',
        'tasks',
        'workers',
        'customer_credits',
        'refunds',
        'payment_transactions',
        'payments',
        'invoices',
        'service_orders',
        'booking_approvals',
        'bookings',
        'client_team_members',
        'client_teams',
        'membership_settings',
        'warehouse_pricing',
        'warehouse_halls',
        'warehouse_floors',
        'warehouse_zones',
        'warehouses',
    ):
        op.drop_table(table)
