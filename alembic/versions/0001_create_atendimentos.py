"""create atendimentos table and its indexes

Revision ID: 0001
Revises:
Create Date: 2025-10-20 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'atendimentos',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('recurrence_id', sa.Uuid(), nullable=True),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_index('idx_atendimentos_start', 'atendimentos', ['start'])
    op.create_index('idx_atendimentos_recurrence_id', 'atendimentos', ['recurrence_id'])
    op.create_index('idx_atendimentos_paid', 'atendimentos', ['paid'])
    op.create_index('idx_atendimentos_start_paid', 'atendimentos', ['start', 'paid'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_atendimentos_start_paid', table_name='atendimentos')
    op.drop_index('idx_atendimentos_paid', table_name='atendimentos')
    op.drop_index('idx_atendimentos_recurrence_id', table_name='atendimentos')
    op.drop_index('idx_atendimentos_start', table_name='atendimentos')
    op.drop_table('atendimentos')
