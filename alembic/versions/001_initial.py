"""Initial migration

Revision ID: 001
Revises:
Create Date: 2025-11-03 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create tenants table
    op.create_table(
        'tenants',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('timezone', sa.String(50), default='Europe/Paris'),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('agent_id', sa.String(100), unique=True),
        sa.Column('api_key', sa.String(80), unique=True),
        sa.Column('contact_email', sa.String(255)),
        sa.Column('contact_phone', sa.String(20)),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id')),
        sa.Column('email', sa.String(255), unique=True, nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255)),
        sa.Column(
            'role',
            sa.Enum('PLATFORM_ADMIN', 'MERCHANT_ADMIN', 'MERCHANT_STAFF', name='userrole'),
            default='MERCHANT_STAFF',
        ),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('refresh_token', sa.String(500)),
        sa.Column('last_login', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create guarantee_configs table
    op.create_table(
        'guarantee_configs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), unique=True, nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stripe_account_id', sa.String(100)),
        sa.Column('penalty_amount', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('cancellation_delay_hours', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('apply_to', sa.String(30), nullable=False, server_default='all'),
        sa.Column('min_persons', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('logo_url', sa.Text()),
        sa.Column('brand_color', sa.String(7), server_default='#C8B88A'),
        sa.Column('terms_url', sa.Text()),
        sa.Column('company_name', sa.String(200)),
        sa.Column('company_address', sa.String(500)),
        sa.Column('company_phone', sa.String(20)),
        sa.Column('sender_email', sa.String(255)),
        sa.Column('sender_name', sa.String(100)),
        sa.Column('calendar_id', sa.String(255)),
        sa.Column('sms_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_send_email_on_create', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('auto_send_sms_on_create', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_send_email_on_validation', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('auto_send_sms_on_validation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.CheckConstraint('penalty_amount BETWEEN 1 AND 200', name='ck_guarantee_configs_penalty_amount'),
        sa.CheckConstraint(
            'cancellation_delay_hours BETWEEN 1 AND 72',
            name='ck_guarantee_configs_cancellation_delay_hours',
        ),
        sa.CheckConstraint('min_persons BETWEEN 1 AND 20', name='ck_guarantee_configs_min_persons'),
    )

    # Create guarantee_sessions table
    op.create_table(
        'guarantee_sessions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('reservation_id', sa.String(200), nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=False),
        sa.Column('customer_email', sa.String(255)),
        sa.Column('customer_phone', sa.String(20)),
        sa.Column('nb_persons', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('reservation_date', sa.DateTime(), nullable=False),
        sa.Column('reservation_time', sa.String(10)),
        sa.Column('duration_minutes', sa.Integer()),
        sa.Column('timezone', sa.String(50), server_default='Europe/Paris'),
        sa.Column('agent_id', sa.String(100)),
        sa.Column('business_type', sa.String(100)),
        sa.Column('calendar_id', sa.String(255)),
        sa.Column('company_name', sa.String(200)),
        sa.Column('company_email', sa.String(255)),
        sa.Column('vehicle', sa.String(200)),
        sa.Column('service_type', sa.String(200)),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending'),
        sa.Column('checkout_session_id', sa.String(255)),
        sa.Column('setup_intent_id', sa.String(255)),
        sa.Column('payment_method_id', sa.String(255)),
        sa.Column('stripe_customer_id', sa.String(255)),
        sa.Column('penalty_amount', sa.Integer(), nullable=False),
        sa.Column('charged_amount', sa.Integer()),
        sa.Column('charge_error', sa.Text()),
        sa.Column('charge_claimed_at', sa.DateTime()),
        sa.Column('reminder_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reminder_at', sa.DateTime()),
        sa.Column('appointment_reminder_sent_at', sa.DateTime()),
        sa.Column('validated_at', sa.DateTime()),
        sa.Column('charged_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'reservation_id', name='uq_guarantee_sessions_tenant_reservation'),
        sa.CheckConstraint('nb_persons BETWEEN 1 AND 100', name='ck_guarantee_sessions_nb_persons'),
    )

    # Create noshow_charges table
    op.create_table(
        'noshow_charges',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'guarantee_session_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('guarantee_sessions.id'),
            nullable=False,
        ),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('payment_intent_id', sa.String(255)),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='eur'),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('failure_reason', sa.Text()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )

    # Create audit_logs table
    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id')),
        sa.Column('actor_type', sa.String(50), default='system'),
        sa.Column('actor_id', sa.String(100)),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('resource_type', sa.String(50), default='guarantee_session'),
        sa.Column('resource_id', postgresql.UUID(as_uuid=True)),
        sa.Column('data_json', postgresql.JSON()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )

    # Create indexes
    op.create_index('ix_tenants_agent_id', 'tenants', ['agent_id'])
    op.create_index('ix_tenants_api_key', 'tenants', ['api_key'])
    op.create_index('ix_guarantee_sessions_tenant_id', 'guarantee_sessions', ['tenant_id'])
    op.create_index('ix_guarantee_sessions_status', 'guarantee_sessions', ['status'])
    op.create_index('ix_guarantee_sessions_checkout_session_id', 'guarantee_sessions', ['checkout_session_id'])
    op.create_index('ix_guarantee_sessions_reservation_date', 'guarantee_sessions', ['reservation_date'])
    op.create_index('ix_noshow_charges_guarantee_session_id', 'noshow_charges', ['guarantee_session_id'])
    op.create_index('ix_noshow_charges_tenant_id', 'noshow_charges', ['tenant_id'])
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])
    op.create_index('ix_audit_logs_resource_id', 'audit_logs', ['resource_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('noshow_charges')
    op.drop_table('guarantee_sessions')
    op.drop_table('guarantee_configs')
    op.drop_table('users')
    op.drop_table('tenants')
    sa.Enum(name='userrole').drop(op.get_bind(), checkfirst=True)
