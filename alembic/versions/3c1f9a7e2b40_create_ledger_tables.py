"""create users, accounts, transactions, budgets and budget_categories tables

Revision ID: 3c1f9a7e2b40
Revises: 
Create Date: 2026-10-19 10:12:44.318205

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f9a7e2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

account_type = sa.Enum('SAVINGS', 'CHECKING', 'CREDIT_CARD', 'CASH', 'INVESTMENT', 'LOAN', 'OTHER', name='accounttype')
transaction_type = sa.Enum('INCOME', 'EXPENSE', name='transactiontype')
budget_period = sa.Enum('MONTHLY', 'QUARTERLY', 'ANNUALLY', 'CUSTOM', name='budgetperiod')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('db_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('id', sa.Uuid, nullable=False, unique=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('email', name='uq_user_email'),
        sa.UniqueConstraint('username', name='uq_user_username'),
    )
    op.create_index('idx_users_email', 'users', ['email'])

    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.db_id'), nullable=False),
        sa.Column('account_name', sa.String(50), nullable=False),
        sa.Column('account_type', account_type, nullable=True),
        sa.Column('currency', sa.String(5), nullable=False),
        sa.Column('description', sa.String(200), nullable=True),
        sa.Column('initial_balance', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('current_balance', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('user_id', 'account_name', name='uq_user_account_name'),
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.db_id'), nullable=False),
        sa.Column('account_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('transaction_type', transaction_type, nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('description', sa.String(200), nullable=True),
        sa.Column('transaction_date', sa.Date, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )
    op.create_index('idx_transactions_user_date', 'transactions', ['user_id', 'transaction_date'])
    op.create_index('idx_transactions_user_account', 'transactions', ['user_id', 'account_id'])
    op.create_index('idx_transactions_user_category', 'transactions', ['user_id', 'category'])

    op.create_table(
        'budgets',
        sa.Column('budget_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.db_id'), nullable=False),
        sa.Column('budget_name', sa.String(255), nullable=False),
        sa.Column('period', budget_period, nullable=True),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=False),
        sa.Column('total_allocated_amount', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )
    op.create_index('idx_budgets_user_window', 'budgets', ['user_id', 'start_date', 'end_date'])

    op.create_table(
        'budget_categories',
        sa.Column('budget_category_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('budget_id', sa.Integer, sa.ForeignKey('budgets.budget_id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('category_type', transaction_type, nullable=True),
        sa.Column('allocated_amount', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('spent_amount', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('budget_id', 'name', name='uq_budget_category_name'),
    )
    op.create_index('idx_budget_categories_name', 'budget_categories', ['name'])


def downgrade() -> None:
    op.drop_index('idx_budget_categories_name', table_name='budget_categories')
    op.drop_table('budget_categories')
    op.drop_index('idx_budgets_user_window', table_name='budgets')
    op.drop_table('budgets')
    op.drop_index('idx_transactions_user_category', table_name='transactions')
    op.drop_index('idx_transactions_user_account', table_name='transactions')
    op.drop_index('idx_transactions_user_date', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('accounts')
    op.drop_index('idx_users_email', table_name='users')
    op.drop_table('users')
    transaction_type.drop(op.get_bind(), checkfirst=True)
    account_type.drop(op.get_bind(), checkfirst=True)
    budget_period.drop(op.get_bind(), checkfirst=True)
