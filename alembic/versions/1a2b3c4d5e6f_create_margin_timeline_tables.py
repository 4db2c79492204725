"""create_margin_timeline_tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2025-11-20 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1a2b3c4d5e6f'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table(
        'currencies',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('currency_code', sa.String(3), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('currency_code')
    )

    # end_date NULL = open-ended margin
    op.create_table(
        'margins',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('value', sa.Numeric(7, 6), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL')
    )

    op.create_table(
        'currency_rates',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('to_currency_id', sa.Integer(), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(18, 6), nullable=False),
        sa.Column('margin_id', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['to_currency_id'], ['currencies.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['margin_id'], ['margins.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('date', 'to_currency_id', name='uix_currency_rate_date_currency')
    )
    op.create_index('ix_currency_rates_date', 'currency_rates', ['date'])
    op.create_index('ix_currency_rates_margin_id', 'currency_rates', ['margin_id'])

    op.create_table(
        'margin_histories',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('old_margin_id', sa.Integer(), nullable=True),
        sa.Column('new_margin_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('changed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('comment', sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL')
    )

    op.create_index('ix_margin_histories_old_margin_id', 'margin_histories', ['old_margin_id'])


def downgrade() -> None:
    op.drop_index('ix_margin_histories_old_margin_id', table_name='margin_histories')
    op.drop_table('margin_histories')
    op.drop_index('ix_currency_rates_margin_id', table_name='currency_rates')
    op.drop_index('ix_currency_rates_date', table_name='currency_rates')
    op.drop_table('currency_rates')
    op.drop_table('margins')
    op.drop_table('currencies')
    op.drop_table('users')
