"""create_tenant_inventory_tables

Revision ID: 3f9c2a7b1e04
Revises:
Create Date: 2024-01-15 09:12:41.203518

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a7b1e04'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TENANT_SCOPED_TABLES = ('aws_accounts', 'ebs_volumes', 'volume_snapshots', 'scan_history', 'audit_logs')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'aws_accounts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('account_id', sa.String(length=12), nullable=False),
        sa.Column('account_alias', sa.String(length=255), nullable=True),
        sa.Column('role_arn', sa.String(length=512), nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('regions', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'account_id', name='uq_aws_accounts_tenant_account'),
    )
    op.create_index('ix_aws_accounts_tenant_id', 'aws_accounts', ['tenant_id'])

    op.create_table(
        'ebs_volumes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('aws_account_id', sa.Uuid(), nullable=False),
        sa.Column('volume_id', sa.String(length=255), nullable=False),
        sa.Column('size_gb', sa.Integer(), nullable=False),
        sa.Column('volume_type', sa.String(length=50), nullable=True),
        sa.Column('state', sa.String(length=50), nullable=True),
        sa.Column('encrypted', sa.Boolean(), nullable=False),
        sa.Column('kms_key_id', sa.String(length=512), nullable=True),
        sa.Column('region', sa.String(length=50), nullable=False),
        sa.Column('availability_zone', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('iops', sa.Integer(), nullable=True),
        sa.Column('throughput', sa.Integer(), nullable=True),
        sa.Column('instance_id', sa.String(length=255), nullable=True),
        sa.Column('device', sa.String(length=50), nullable=True),
        sa.Column('attached_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cost_per_month', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('last_scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['aws_account_id'], ['aws_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'volume_id', name='uq_ebs_volumes_tenant_volume'),
    )
    op.create_index('ix_ebs_volumes_tenant_id', 'ebs_volumes', ['tenant_id'])
    op.create_index('ix_ebs_volumes_aws_account_id', 'ebs_volumes', ['aws_account_id'])
    op.create_index('idx_volumes_state', 'ebs_volumes', ['state'])
    op.create_index('idx_volumes_region', 'ebs_volumes', ['region'])

    op.create_table(
        'volume_snapshots',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('volume_id', sa.Uuid(), nullable=True),
        sa.Column('source_volume_id', sa.String(length=255), nullable=True),
        sa.Column('snapshot_id', sa.String(length=255), nullable=False),
        sa.Column('size_gb', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(length=50), nullable=True),
        sa.Column('progress', sa.String(length=50), nullable=True),
        sa.Column('encrypted', sa.Boolean(), nullable=False),
        sa.Column('kms_key_id', sa.String(length=512), nullable=True),
        sa.Column('region', sa.String(length=50), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('last_scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['volume_id'], ['ebs_volumes.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'snapshot_id', name='uq_volume_snapshots_tenant_snapshot'),
    )
    op.create_index('ix_volume_snapshots_tenant_id', 'volume_snapshots', ['tenant_id'])
    op.create_index('ix_volume_snapshots_volume_id', 'volume_snapshots', ['volume_id'])

    op.create_table(
        'scan_history',
        sa.Column('scan_id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('aws_account_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('volumes_found', sa.Integer(), nullable=False),
        sa.Column('snapshots_found', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metrics', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['aws_account_id'], ['aws_accounts.id']),
        sa.PrimaryKeyConstraint('scan_id'),
    )
    op.create_index('ix_scan_history_tenant_id', 'scan_history', ['tenant_id'])
    op.create_index('ix_scan_history_aws_account_id', 'scan_history', ['aws_account_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=True),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    # Row-level security only exists on PostgreSQL
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute("ALTER TABLE tenants ENABLE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE tenants FORCE ROW LEVEL SECURITY")
    op.execute(
        "CREATE POLICY tenant_isolation ON tenants "
        "USING (id = current_setting('app.current_tenant_id', true)) "
        "WITH CHECK (id = current_setting('app.current_tenant_id', true))"
    )
    for table in TENANT_SCOPED_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY tenant_isolation ON {table} "
            "USING (tenant_id = current_setting('app.current_tenant_id', true)) "
            "WITH CHECK (tenant_id = current_setting('app.current_tenant_id', true))"
        )


def downgrade() -> None:
    """Downgrade schema."""
    if op.get_bind().dialect.name == 'postgresql':
        for table in ('tenants',) + TENANT_SCOPED_TABLES:
            op.execute(f"DROP POLICY IF EXISTS tenant_isolation ON {table}")

    op.drop_table('audit_logs')
    op.drop_table('scan_history')
    op.drop_table('volume_snapshots')
    op.drop_table('ebs_volumes')
    op.drop_table('aws_accounts')
    op.drop_table('tenants')
