"""Create rent billing schema

Revision ID: 001_billing
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_billing'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create buildings, rooms, tenants, bills and their ledgers"""

    # ====================
    # BUILDINGS TABLE
    # ====================
    op.create_table(
        'buildings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('address', sa.Text, nullable=True),
        sa.Column('manager_name', sa.String(200), nullable=True),
        sa.Column('contact_phone', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    # ====================
    # ROOMS TABLE
    # ====================
    op.create_table(
        'rooms',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('room_code', sa.String(20), unique=True, nullable=False),
        sa.Column('building_id', UUID(as_uuid=True), sa.ForeignKey('buildings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('number', sa.String(20), nullable=False),
        sa.Column('floor', sa.String(20), nullable=True),
        sa.Column('capacity', sa.Integer, server_default='1', nullable=True),
        sa.Column('monthly_rent', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('additional_charges', JSONB, server_default='[]', nullable=False),
        sa.Column('is_booked', sa.Boolean, server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('building_id', 'number', name='uq_room_building_number'),
    )

    op.create_index('ix_rooms_building_id', 'rooms', ['building_id'])

    # ====================
    # TENANTS TABLE
    # ====================
    op.create_table(
        'tenants',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_code', sa.String(20), unique=True, nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('address', sa.Text, nullable=True),
        sa.Column('id_proof_type', sa.String(50), nullable=True),
        sa.Column('id_proof_number', sa.String(50), nullable=True),
        sa.Column('number_of_persons', sa.Integer, server_default='1', nullable=True),
        sa.Column('room_id', UUID(as_uuid=True), sa.ForeignKey('rooms.id', ondelete='SET NULL'), nullable=True),
        sa.Column('move_in_date', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('move_out_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rent_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('advanced_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('last_payment_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_payment_method', sa.String(50), nullable=True),
        sa.Column('last_payment_receipt', sa.String(100), nullable=True),
        sa.Column('pending_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('due_date', sa.Date, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_index('ix_tenants_tenant_code', 'tenants', ['tenant_code'])
    op.create_index('ix_tenants_room_id', 'tenants', ['room_id'])

    # ====================
    # ROOM TENANCIES TABLE (history snapshots)
    # ====================
    op.create_table(
        'room_tenancies',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('room_id', UUID(as_uuid=True), sa.ForeignKey('rooms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id', ondelete='SET NULL'), nullable=True),
        sa.Column('tenant_code', sa.String(20), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('booking_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('leaving_date', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_index('ix_room_tenancies_room_id', 'room_tenancies', ['room_id'])
    op.create_index('ix_room_tenancies_tenant_id', 'room_tenancies', ['tenant_id'])

    # ====================
    # BILLS TABLE
    # ====================
    op.create_table(
        'bills',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('room_id', UUID(as_uuid=True), sa.ForeignKey('rooms.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('building_id', UUID(as_uuid=True), sa.ForeignKey('buildings.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('billing_month', sa.Date, nullable=False),
        sa.Column('charges', JSONB, server_default='[]', nullable=False),
        sa.Column('rent_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('electricity_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('processing_fee', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('additional_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_amount', sa.Integer, nullable=False),
        sa.Column('due_date', sa.Date, nullable=True),
        sa.Column('payment_status', sa.String(20), server_default='NOT_PAID', nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('razorpay_order_id', sa.String(100), nullable=True),
        sa.Column('razorpay_payment_id', sa.String(100), nullable=True),
        sa.Column('razorpay_payment_link_id', sa.String(100), nullable=True),
        sa.Column('pdf_url', sa.String(500), nullable=True),
        sa.Column('payment_link', sa.String(500), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('room_id', 'tenant_id', 'billing_month', name='uq_bill_room_tenant_month'),
    )

    op.create_index('ix_bills_tenant_id', 'bills', ['tenant_id'])
    op.create_index('ix_bills_room_id', 'bills', ['room_id'])
    op.create_index('ix_bills_payment_status', 'bills', ['payment_status'])
    op.create_index('ix_bills_razorpay_order_id', 'bills', ['razorpay_order_id'])
    op.create_index('ix_bills_razorpay_payment_link_id', 'bills', ['razorpay_payment_link_id'])
    op.create_index('ix_bills_building_month_status', 'bills', ['building_id', 'billing_month', 'payment_status'])

    # ====================
    # TENANT PAYMENTS TABLE (append-only ledger)
    # ====================
    op.create_table(
        'tenant_payments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('bill_id', UUID(as_uuid=True), sa.ForeignKey('bills.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('paid_on', sa.DateTime(timezone=True), nullable=False),
        sa.Column('method', sa.String(50), nullable=False),
        sa.Column('receipt_number', sa.String(100), nullable=True),
        sa.Column('note', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_index('ix_tenant_payments_tenant_id', 'tenant_payments', ['tenant_id'])
    op.create_index('ix_tenant_payments_bill_id', 'tenant_payments', ['bill_id'])

    # ====================
    # IDENTIFIER SEQUENCES TABLE
    # ====================
    op.create_table(
        'identifier_sequences',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('prefix', sa.String(10), unique=True, nullable=False),
        sa.Column('current_number', sa.Integer, server_default='0', nullable=False),
        sa.Column('padding_length', sa.Integer, server_default='3', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )


def downgrade():
    """Drop billing tables"""
    op.drop_table('identifier_sequences')
    op.drop_table('tenant_payments')
    op.drop_table('bills')
    op.drop_table('room_tenancies')
    op.drop_table('tenants')
    op.drop_table('rooms')
    op.drop_table('buildings')
