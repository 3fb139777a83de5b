"""Create ledger, balance and period balance cache tables

Revision ID: a7c2e9d41b6f
Revises:
Create Date: 2026-10-18 09:12:40.118301

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a7c2e9d41b6f'
down_revision = None
branch_labels = None
depends_on = None


def _ledger_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    ]


def upgrade():
    op.create_table(
        'incomes',
        *_ledger_columns(),
        sa.Column('source', sa.String(length=100), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_incomes_amount_positive'),
    )
    op.create_index('ix_incomes_date', 'incomes', ['date'], unique=False)

    op.create_table(
        'expenses',
        *_ledger_columns(),
        sa.Column('recipient', sa.String(length=100), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_expenses_amount_positive'),
    )
    op.create_index('ix_expenses_date', 'expenses', ['date'], unique=False)

    op.create_table(
        'balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=16, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # Cache table: one row per (period_type, year, month, week)
    op.create_table(
        'period_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('period_type', sa.String(length=10), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=True),
        sa.Column('week', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('balance_start', sa.Numeric(precision=16, scale=2), nullable=False),
        sa.Column('total_income', sa.Numeric(precision=16, scale=2), nullable=False),
        sa.Column('total_expense', sa.Numeric(precision=16, scale=2), nullable=False),
        sa.Column('balance_end', sa.Numeric(precision=16, scale=2), nullable=False),
        sa.Column('net_change', sa.Numeric(precision=16, scale=2), nullable=False),
        sa.Column('is_real_time', sa.Boolean(), nullable=False),
        sa.Column('last_calculated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('period_type', 'year', 'month', 'week', name='unique_period'),
        sa.CheckConstraint("period_type IN ('weekly', 'monthly', 'yearly')", name='ck_period_type'),
    )
    op.create_index('idx_period_key', 'period_balances', ['period_type', 'year', 'month', 'week'], unique=False)
    op.create_index('idx_period_range', 'period_balances', ['start_date', 'end_date'], unique=False)


def downgrade():
    # Drop indexes first
    op.drop_index('idx_period_range', table_name='period_balances')
    op.drop_index('idx_period_key', table_name='period_balances')
    op.drop_table('period_balances')

    op.drop_table('balances')

    op.drop_index('ix_expenses_date', table_name='expenses')
    op.drop_table('expenses')

    op.drop_index('ix_incomes_date', table_name='incomes')
    op.drop_table('incomes')
