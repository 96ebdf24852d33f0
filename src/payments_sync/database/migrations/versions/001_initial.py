"""Initial migration - create sync_states and synced_records tables

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create sync_states table
    op.create_table(
        'sync_states',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('connector_id', sa.String(255), nullable=False),
        sa.Column('resource', sa.String(100), nullable=False),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('state_json', sa.Text(), nullable=True),
        sa.Column('has_more', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('connector_id', 'resource', name='uq_sync_states_stream'),
    )

    # Create synced_records table
    op.create_table(
        'synced_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('connector_id', sa.String(255), nullable=False),
        sa.Column('resource', sa.String(100), nullable=False),
        sa.Column('reference', sa.String(255), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('raw_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('connector_id', 'resource', 'reference', name='uq_synced_records_reference'),
    )

    # Create indexes for synced_records
    op.create_index(
        'ix_synced_records_stream_timestamp',
        'synced_records',
        ['connector_id', 'resource', 'timestamp'],
    )


def downgrade() -> None:
    # Drop indexes
    op.drop_index('ix_synced_records_stream_timestamp', table_name='synced_records')

    # Drop tables
    op.drop_table('synced_records')
    op.drop_table('sync_states')
