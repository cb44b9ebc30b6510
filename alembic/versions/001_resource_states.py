"""Resource state table

Revision ID: 001
Revises: 
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'resource_states',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('deployment_id', sa.String(length=255), nullable=False),
        sa.Column('resource_id', sa.String(length=255), nullable=False),
        sa.Column('kind', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('fingerprint', sa.String(length=64), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('depends_on', sa.JSON(), nullable=False),
        sa.Column('backend', sa.String(length=100), nullable=True),
        sa.Column('outputs', sa.JSON(), nullable=False),
        sa.Column('last_operation', sa.String(length=20), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('deployment_id', 'resource_id', name='uq_deployment_resource')
    )
    op.create_index('idx_resource_states_deployment', 'resource_states', ['deployment_id', 'position'])
    op.create_index('ix_resource_states_status', 'resource_states', ['status'])


def downgrade() -> None:
    op.drop_index('ix_resource_states_status', table_name='resource_states')
    op.drop_index('idx_resource_states_deployment', table_name='resource_states')
    op.drop_table('resource_states')
