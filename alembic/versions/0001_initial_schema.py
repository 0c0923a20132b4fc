"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# SQLAlchemy Enum columns store member names
user_role = sa.Enum('ADMIN', 'MANAGER', 'CASHIER', 'ATTENDANT', name='userrole')
service_category = sa.Enum(
    'EXTERIOR', 'INTERIOR', 'FULL_WASH', 'ENGINE', 'WAX_POLISH', 'UNDERWASH', 'DETAILING', 'OTHER',
    name='servicecategory',
)
bay_status = sa.Enum('AVAILABLE', 'OCCUPIED', 'MAINTENANCE', name='baystatus')
job_status = sa.Enum(
    'CHECKED_IN', 'IN_QUEUE', 'WASHING', 'DETAILING', 'COMPLETED', 'PAID', 'CANCELLED',
    name='jobstatus',
)
job_payment_status = sa.Enum('UNPAID', 'PARTIAL', 'PAID', name='jobpaymentstatus')
job_priority = sa.Enum('NORMAL', 'HIGH', 'URGENT', name='jobpriority')
job_item_status = sa.Enum('PENDING', 'IN_PROGRESS', 'COMPLETED', name='jobitemstatus')
discount_type = sa.Enum('PERCENTAGE', 'FIXED', name='discounttype')
payment_method = sa.Enum('CASH', 'MPESA', 'CARD', 'LOYALTY_POINTS', name='paymentmethod')
payment_status = sa.Enum('PENDING', 'COMPLETED', 'FAILED', name='paymentstatus')


def timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('loyalty_points', sa.Integer(), nullable=False),
        sa.Column('total_visits', sa.Integer(), nullable=False),
        sa.Column('total_spent', sa.Numeric(12, 2), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_customers_phone', 'customers', ['phone'], unique=True)

    op.create_table(
        'vehicles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('registration_no', sa.String(20), nullable=False),
        sa.Column('vehicle_type', sa.String(30), nullable=False),
        sa.Column('make', sa.String(50), nullable=True),
        sa.Column('model', sa.String(50), nullable=True),
        sa.Column('color', sa.String(30), nullable=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_vehicles_registration_no', 'vehicles', ['registration_no'], unique=True)
    op.create_index('ix_vehicles_customer_id', 'vehicles', ['customer_id'])

    op.create_table(
        'wash_services',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', service_category, nullable=False),
        sa.Column('base_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *timestamps(),
    )

    op.create_table(
        'bays',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('bay_number', sa.Integer(), nullable=False, unique=True),
        sa.Column('status', bay_status, nullable=False),
        sa.Column('current_job_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *timestamps(),
    )

    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('job_number', sa.String(30), nullable=False),
        sa.Column('status', job_status, nullable=False),
        sa.Column('payment_status', job_payment_status, nullable=False),
        sa.Column('priority', job_priority, nullable=False),
        sa.Column('vehicle_id', sa.Integer(), sa.ForeignKey('vehicles.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('bay_id', sa.Integer(), sa.ForeignKey('bays.id', ondelete='SET NULL'), nullable=True),
        sa.Column('assigned_staff_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('checked_in_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_type', discount_type, nullable=True),
        sa.Column('discount_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('check_in_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('estimated_duration', sa.Integer(), nullable=False),
        sa.Column('estimated_completion', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_completion', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_rewash', sa.Boolean(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        *timestamps(),
    )
    op.create_index('ix_jobs_job_number', 'jobs', ['job_number'], unique=True)
    op.create_index('ix_jobs_status', 'jobs', ['status'])
    op.create_index('ix_jobs_vehicle_id', 'jobs', ['vehicle_id'])
    op.create_index('ix_jobs_customer_id', 'jobs', ['customer_id'])

    op.create_table(
        'job_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('job_id', sa.Integer(), sa.ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', sa.Integer(), sa.ForeignKey('wash_services.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount', sa.Numeric(10, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', job_item_status, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_job_items_job_id', 'job_items', ['job_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('job_id', sa.Integer(), sa.ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('status', payment_status, nullable=False),
        sa.Column('reference_number', sa.String(100), nullable=True),
        sa.Column('mpesa_checkout_request_id', sa.String(100), nullable=True),
        sa.Column('mpesa_receipt_number', sa.String(30), nullable=True),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('received_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
        sa.CheckConstraint(
            "(payment_method = 'MPESA' AND mpesa_checkout_request_id IS NOT NULL) OR "
            "(payment_method != 'MPESA' AND mpesa_checkout_request_id IS NULL)",
            name='ck_payments_checkout_id_mpesa_only',
        ),
    )
    op.create_index('ix_payments_job_id', 'payments', ['job_id'])
    op.create_index(
        'ix_payments_mpesa_checkout_request_id', 'payments', ['mpesa_checkout_request_id'], unique=True,
    )


def downgrade() -> None:
    op.drop_table('payments')
    op.drop_table('job_items')
    op.drop_table('jobs')
    op.drop_table('bays')
    op.drop_table('wash_services')
    op.drop_table('vehicles')
    op.drop_table('customers')
    op.drop_table('users')

    bind = op.get_bind()
    for enum in (
        payment_status, payment_method, discount_type, job_item_status, job_priority,
        job_payment_status, job_status, bay_status, service_category, user_role,
    ):
        enum.drop(bind, checkfirst=True)
