"""create_datastore_tables

Revision ID: 3f2a9c1d7e4b
Revises:
Create Date: 2026-10-18 09:12:44.108215

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f2a9c1d7e4b'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'organization',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('current_plan', sa.String(length=32), nullable=False, server_default='trial'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # One usage row per organization
    op.create_table(
        'usage',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organization_id', sa.UUID(), nullable=False),
        sa.Column('storage_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('stored_tokens', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('datasources', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_documents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('recomputed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id'),
    )

    op.create_table(
        'datastore',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organization_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('visibility', sa.String(length=16), nullable=False, server_default='private'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_datastore_organization_id', 'datastore', ['organization_id'])
    op.create_index('ix_datastore_status', 'datastore', ['status'])

    op.create_table(
        'datasource',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('organization_id', sa.UUID(), nullable=False),
        sa.Column('datastore_id', sa.UUID(), nullable=False),
        sa.Column('group_id', sa.UUID(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='unsynced'),
        sa.Column('last_synch', sa.DateTime(), nullable=True),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('nb_tokens', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('nb_chunks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['datastore_id'], ['datastore.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['group_id'], ['datasource.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_datasource_organization_id', 'datasource', ['organization_id'])
    op.create_index('ix_datasource_datastore_id', 'datasource', ['datastore_id'])
    op.create_index('ix_datasource_group_id', 'datasource', ['group_id'])

    # Covers the listing filter (datastore, parent) and the active-children lookup
    op.create_index(
        'ix_datasource_datastore_group_status',
        'datasource',
        ['datastore_id', 'group_id', 'status'],
    )


def downgrade():
    op.drop_index('ix_datasource_datastore_group_status', table_name='datasource')
    op.drop_index('ix_datasource_group_id', table_name='datasource')
    op.drop_index('ix_datasource_datastore_id', table_name='datasource')
    op.drop_index('ix_datasource_organization_id', table_name='datasource')
    op.drop_table('datasource')

    op.drop_index('ix_datastore_status', table_name='datastore')
    op.drop_index('ix_datastore_organization_id', table_name='datastore')
    op.drop_table('datastore')

    op.drop_table('usage')
    op.drop_table('organization')
