"""add_margin_start_date_unique_and_timeline_lock

Revision ID: 2b3c4d5e6f7a
Revises: 1a2b3c4d5e6f
Create Date: 2025-11-27 09:30:00.000000

Database Integrity Enhancement:
- Unique constraint on margins.start_date, no two margins may start on the same day
- Single-row margin_timeline_locks table; every margin write locks row 1
  FOR UPDATE so concurrent writers cannot both miss a conflict
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2b3c4d5e6f7a'
down_revision: Union[str, None] = '1a2b3c4d5e6f'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Batch mode for SQLite compatibility
    with op.batch_alter_table('margins', schema=None) as batch_op:
        batch_op.create_unique_constraint(
            'uix_margin_start_date',
            ['start_date']
        )

    lock_table = op.create_table(
        'margin_timeline_locks',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.bulk_insert(lock_table, [{'id': 1}])


def downgrade() -> None:
    op.drop_table('margin_timeline_locks')

    with op.batch_alter_table('margins', schema=None) as batch_op:
        batch_op.drop_constraint(
            'uix_margin_start_date',
            type_='unique'
        )
