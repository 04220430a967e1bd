"""initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RUN_STATUS = sa.Enum('RUNNING', 'COMPLETED', 'FAILED', name='runstatus')
RETENTION_ITEM_STATUS = sa.Enum(
    'NO_GRACE', 'WITHIN_RETENTION', 'CLEANUP_SKIPPED', 'CLEANUP_DONE', 'FAILED',
    name='retentionitemstatus'
)
DELETION_ITEM_STATUS = sa.Enum('DELETED', 'FAILED', name='deletionitemstatus')


def upgrade() -> None:
    # users is created before tenants: tenants.owner_id references it
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('account_deletion_requested_at', sa.DateTime(), nullable=True),
        sa.Column('account_deletion_deadline', sa.DateTime(), nullable=True),
        sa.Column('account_deletion_canceled_at', sa.DateTime(), nullable=True),
        sa.Column('account_deletion_completed_at', sa.DateTime(), nullable=True),
        sa.Column('account_deletion_notice_sent_at', sa.DateTime(), nullable=True),
        sa.Column('account_deletion_final_notice_sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_account_deletion_deadline'), 'users', ['account_deletion_deadline'], unique=False)

    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('subscription_tier', sa.String(length=32), nullable=False, server_default='free'),
        sa.Column('subscription_id', sa.String(length=255), nullable=True),
        sa.Column('billing_customer_id', sa.String(length=255), nullable=True),
        sa.Column('storage_limit', sa.BigInteger(), nullable=True),
        sa.Column('model_count_limit', sa.Integer(), nullable=True),
        sa.Column('member_limit', sa.Integer(), nullable=True),
        sa.Column('current_storage', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('current_model_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('grace_deadline', sa.DateTime(), nullable=True),
        sa.Column('account_deletion_requested_at', sa.DateTime(), nullable=True),
        sa.Column('account_deletion_deadline', sa.DateTime(), nullable=True),
        sa.Column('account_deletion_canceled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tenants_name'), 'tenants', ['name'], unique=False)
    op.create_index(op.f('ix_tenants_owner_id'), 'tenants', ['owner_id'], unique=False)
    op.create_index(op.f('ix_tenants_grace_deadline'), 'tenants', ['grace_deadline'], unique=False)

    op.create_table(
        'user_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=255), nullable=False),
        sa.Column('active_tenant_id', sa.Integer(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['active_tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token')
    )
    op.create_index(op.f('ix_user_sessions_user_id'), 'user_sessions', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_sessions_active_tenant_id'), 'user_sessions', ['active_tenant_id'], unique=False)

    op.create_table(
        'models',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('current_version', sa.String(length=32), nullable=False, server_default='v1'),
        sa.Column('total_versions', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'slug', name='uq_models_tenant_slug')
    )
    op.create_index(op.f('ix_models_tenant_id'), 'models', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_models_owner_id'), 'models', ['owner_id'], unique=False)
    op.create_index(op.f('ix_models_created_at'), 'models', ['created_at'], unique=False)
    op.create_index(op.f('ix_models_deleted_at'), 'models', ['deleted_at'], unique=False)

    op.create_table(
        'model_versions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('model_id', sa.String(length=32), nullable=False),
        sa.Column('version', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('thumbnail_path', sa.String(length=1024), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['model_id'], ['models.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('model_id', 'version', name='uq_model_versions_model_version')
    )
    op.create_index(op.f('ix_model_versions_model_id'), 'model_versions', ['model_id'], unique=False)

    op.create_table(
        'model_files',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('original_name', sa.String(length=255), nullable=False),
        sa.Column('size', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('mime_type', sa.String(length=255), nullable=False),
        sa.Column('extension', sa.String(length=32), nullable=False),
        sa.Column('storage_key', sa.String(length=512), nullable=False),
        sa.Column('storage_bucket', sa.String(length=255), nullable=False),
        sa.Column('file_metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['version_id'], ['model_versions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('storage_key')
    )
    op.create_index(op.f('ix_model_files_version_id'), 'model_files', ['version_id'], unique=False)

    op.create_table(
        'tags',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_tags_tenant_name')
    )
    op.create_index(op.f('ix_tags_tenant_id'), 'tags', ['tenant_id'], unique=False)

    op.create_table(
        'model_tags',
        sa.Column('model_id', sa.String(length=32), nullable=False),
        sa.Column('tag_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['model_id'], ['models.id'], ),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id'], ),
        sa.PrimaryKeyConstraint('model_id', 'tag_id')
    )

    # Audit tables keep plain tenant/user ids so they survive the rows they describe
    op.create_table(
        'retention_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('status', RUN_STATUS, nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('total_tenants', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cleaned_tenants', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_models', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_retention_runs_status'), 'retention_runs', ['status'], unique=False)

    op.create_table(
        'retention_run_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('status', RETENTION_ITEM_STATUS, nullable=False),
        sa.Column('deleted_models', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['run_id'], ['retention_runs.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_retention_run_items_run_id'), 'retention_run_items', ['run_id'], unique=False)
    op.create_index(op.f('ix_retention_run_items_tenant_id'), 'retention_run_items', ['tenant_id'], unique=False)

    op.create_table(
        'account_deletion_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('status', RUN_STATUS, nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('total_users', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_users', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_users', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_tenants', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_account_deletion_runs_status'), 'account_deletion_runs', ['status'], unique=False)

    op.create_table(
        'account_deletion_run_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('status', DELETION_ITEM_STATUS, nullable=False),
        sa.Column('deleted_tenants', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_objects', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('tenant_results', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['run_id'], ['account_deletion_runs.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_account_deletion_run_items_run_id'), 'account_deletion_run_items', ['run_id'], unique=False)
    op.create_index(op.f('ix_account_deletion_run_items_user_id'), 'account_deletion_run_items', ['user_id'], unique=False)


def downgrade() -> None:
    # Reverse dependency order; MySQL drops a table's indexes and FKs with it
    op.drop_table('account_deletion_run_items')
    op.drop_table('account_deletion_runs')
    op.drop_table('retention_run_items')
    op.drop_table('retention_runs')
    op.drop_table('model_tags')
    op.drop_table('tags')
    op.drop_table('model_files')
    op.drop_table('model_versions')
    op.drop_table('models')
    op.drop_table('user_sessions')
    op.drop_table('tenants')
    op.drop_table('users')
    RUN_STATUS.drop(op.get_bind(), checkfirst=True)
    RETENTION_ITEM_STATUS.drop(op.get_bind(), checkfirst=True)
    DELETION_ITEM_STATUS.drop(op.get_bind(), checkfirst=True)
