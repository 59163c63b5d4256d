"""Create store, log and per-entity migration ledger tables.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None

# table -> (source key column, destination column, descriptive columns)
LEDGER_TABLES = {
    'collection_migrations': ('source_collection_id', 'destination_collection_id', [
        ('source_collection_slug', sa.String(255)),
        ('source_collection_name', sa.String(255)),
    ]),
    'product_migrations': ('source_product_id', 'destination_product_id', [
        ('source_product_sku', sa.String(255)),
        ('source_product_name', sa.String(255)),
    ]),
    'contact_migrations': ('contact_email', 'destination_contact_id', [
        ('contact_name', sa.String(255)),
        ('source_contact_id', sa.String(100)),
    ]),
    'order_migrations': ('source_order_id', 'destination_order_id', [
        ('order_number', sa.String(50)),
    ]),
    'coupon_migrations': ('source_coupon_code', 'destination_coupon_id', [
        ('source_coupon_name', sa.String(255)),
        ('source_coupon_id', sa.String(100)),
    ]),
    'discount_rule_migrations': ('source_rule_id', 'destination_rule_id', [
        ('source_rule_name', sa.String(255)),
    ]),
    'media_migrations': ('folder_id', 'destination_folder_id', [
        ('folder_name', sa.String(255)),
        ('total_files', sa.Integer()),
        ('imported_files', sa.Integer()),
        ('failed_files', sa.JSON()),
    ]),
    'loyalty_account_migrations': ('source_account_id', 'destination_account_id', [
        ('source_contact_id', sa.String(100)),
        ('source_email', sa.String(255)),
        ('source_name', sa.String(255)),
        ('source_points_balance', sa.Integer()),
        ('source_tier_name', sa.String(100)),
        ('destination_contact_id', sa.String(100)),
    ]),
}


def upgrade():
    """Create migration tables."""
    op.create_table(
        'migration_stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.String(100), nullable=False),
        ('instance_token', sa.Text()),
        ('store_name', sa.String(255)),
        ('store_logo', sa.String(500)),
        ('created_at', sa.DateTime()),
        ('updated_at', sa.DateTime()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'instance_id', name='uq_user_store_instance')
    )
    op.create_index('ix_migration_stores_user_id', 'migration_stores', ['user_id'])

    op.create_table(
        'migration_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        ('user_id', sa.Integer()),
        sa.Column('action', sa.String(100), nullable=False),
        ('details', sa.Text()),
        ('status', sa.String(20)),
        ('created_at', sa.DateTime()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_migration_logs_user_id', 'migration_logs', ['user_id'])
    op.create_index('ix_migration_logs_created_at', 'migration_logs', ['created_at'])

    for table, (key_column, destination_column, descriptive) in LEDGER_TABLES.items():
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('from_store_id', sa.String(100), nullable=False),
            ('to_store_id', sa.String(100)),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
            ('error_message', sa.Text()),
            ('created_at', sa.DateTime()),
            ('updated_at', sa.DateTime()),
            sa.Column(key_column, sa.String(255 if key_column == 'contact_email' else 100), nullable=True),
            sa.Column(destination_column, sa.String(100), nullable=True),
            *[sa.Column(name, type_, nullable=True) for name, type_ in descriptive],
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint(
                'user_id', 'from_store_id', 'to_store_id', key_column,
                name=f'uq_{table}_pair_key'
            )
        )
        for column in ('user_id', 'from_store_id', 'to_store_id'):
            op.create_index(f'ix_{table}_{column}', table, [column])


def downgrade():
    """Drop migration tables."""
    for table in reversed(list(LEDGER_TABLES)):
        for column in ('to_store_id', 'from_store_id', 'user_id'):
            op.drop_index(f'ix_{table}_{column}', table)
        op.drop_table(table)

    op.drop_index('ix_migration_logs_created_at', 'migration_logs')
    op.drop_index('ix_migration_logs_user_id', 'migration_logs')
    op.drop_table('migration_logs')

    op.drop_index('ix_migration_stores_user_id', 'migration_stores')
    op.drop_table('migration_stores')
