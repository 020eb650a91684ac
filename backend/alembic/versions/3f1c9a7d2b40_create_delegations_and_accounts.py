"""create_delegations_and_accounts

Revision ID: 3f1c9a7d2b40
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'delegations',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('upstream_id', sa.BigInteger(), nullable=False),
        sa.Column('delegator', sa.String(length=36), nullable=False),
        sa.Column('delegate', sa.String(length=36), nullable=False, server_default=''),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=24, scale=6), nullable=False, server_default='0'),
        sa.Column('level', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('upstream_id')
    )
    op.create_index('ix_delegations_timestamp_desc', 'delegations', [sa.text('timestamp DESC')], unique=False)
    op.create_index('ix_delegations_level', 'delegations', ['level'], unique=False)
    op.create_index('ix_delegations_delegator', 'delegations', ['delegator'], unique=False)

    op.create_table(
        'accounts',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('address', sa.String(length=36), nullable=False),
        sa.Column('alias', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('address')
    )


def downgrade() -> None:
    op.drop_table('accounts')
    op.drop_index('ix_delegations_delegator', table_name='delegations')
    op.drop_index('ix_delegations_level', table_name='delegations')
    op.drop_index('ix_delegations_timestamp_desc', table_name='delegations')
    op.drop_table('delegations')
