"""Tenants, users, mobile keys, devices and provision tokens.

Revision ID: 001
Revises: 
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('slug', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('country', sa.String(length=2), nullable=True),
        sa.Column('accent_color', sa.String(length=16), nullable=True),
        sa.Column('logo_url', sa.String(length=1024), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_tenants_slug', 'tenants', ['slug'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=True),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('email_verified_at', sa.DateTime(), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('first_name', sa.String(length=120), nullable=True),
        sa.Column('last_name', sa.String(length=120), nullable=True),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'mobile_api_keys',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('prefix', sa.String(length=8), nullable=False),
        sa.Column('key_hash', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('key_hash', name='uq_mobile_api_keys_key_hash'),
    )
    op.create_index('ix_mobile_api_keys_tenant_id', 'mobile_api_keys', ['tenant_id'])
    op.create_index('ix_mobile_api_keys_prefix', 'mobile_api_keys', ['prefix'])
    op.create_index('ix_mobile_api_keys_status', 'mobile_api_keys', ['status'])

    op.create_table(
        'mobile_devices',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('api_key_id', sa.String(length=36), sa.ForeignKey('mobile_api_keys.id'), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('active_event_id', sa.String(length=36), nullable=True),
        sa.Column('last_seen_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('api_key_id', name='uq_mobile_devices_api_key_id'),
    )
    op.create_index('ix_mobile_devices_tenant_id', 'mobile_devices', ['tenant_id'])

    op.create_table(
        'mobile_provision_tokens',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('prefix', sa.String(length=8), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('token_plaintext', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('device_id', sa.String(length=36), sa.ForeignKey('mobile_devices.id'), nullable=True),
        sa.Column('requested_device_name', sa.String(length=120), nullable=True),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('used_by_device_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('token_hash', name='uq_mobile_provision_tokens_token_hash'),
    )
    op.create_index('ix_mobile_provision_tokens_tenant_id', 'mobile_provision_tokens', ['tenant_id'])


def downgrade() -> None:
    op.drop_table('mobile_provision_tokens')
    op.drop_table('mobile_devices')
    op.drop_table('mobile_api_keys')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_tenant_id', table_name='users')
    op.drop_table('users')
    op.drop_index('ix_tenants_slug', table_name='tenants')
    op.drop_table('tenants')
