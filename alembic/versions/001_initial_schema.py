"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # Create ENUM types
    op.execute("CREATE TYPE user_role AS ENUM ('admin', 'borrower', 'investor')")
    op.execute("CREATE TYPE loan_stage AS ENUM ('Active', 'Approved', 'Funded', 'PaidOff', 'Cancelled')")
    op.execute("""
        CREATE TYPE cancellation_reason AS ENUM (
            'borrower_request', 'unmet_criteria', 'funding_expired', 'admin_action'
        )
    """)

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('account_balance', sa.Numeric(precision=15, scale=2), nullable=False, server_default=sa.text('0')),
        sa.Column('annual_income', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('other_monthly_debt', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.CheckConstraint('account_balance >= 0', name='ck_users_account_balance_non_negative'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    # Create user_roles table
    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', postgresql.ENUM(name='user_role', create_type=False), nullable=False),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])

    # Create purposes table
    op.create_table(
        'purposes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column('title', sa.String(length=100), nullable=False, unique=True),
    )

    # Create loan_applications table
    op.create_table(
        'loan_applications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column('stage', postgresql.ENUM(name='loan_stage', create_type=False), nullable=False),
        sa.Column('borrower_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('purpose_id', sa.Integer(), sa.ForeignKey('purposes.id'), nullable=False),
        sa.Column('amt_requested', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('amt_approved', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('amt_funded', sa.Numeric(precision=15, scale=2), nullable=False, server_default=sa.text('0')),
        sa.Column('interest_rate', sa.Numeric(precision=6, scale=4), nullable=False),
        sa.Column('term_months', sa.Integer(), nullable=False),
        sa.Column('installment_amt', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('remaining_balance', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('available_for_funding', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('is_funded', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('was_approved', sa.Boolean(), nullable=True),
        sa.Column('cancellation_reason', postgresql.ENUM(name='cancellation_reason', create_type=False), nullable=True),
        sa.Column('app_open_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('app_approved_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('funding_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('funded_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_off_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('app_cancelled_date', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amt_requested > 0', name='ck_loan_applications_amt_requested_positive'),
        sa.CheckConstraint('amt_funded >= 0', name='ck_loan_applications_amt_funded_non_negative'),
        sa.CheckConstraint(
            'amt_approved IS NULL OR amt_funded <= amt_approved',
            name='ck_loan_applications_amt_funded_within_approved',
        ),
        sa.CheckConstraint(
            'remaining_balance IS NULL OR remaining_balance >= 0',
            name='ck_loan_applications_remaining_balance_non_negative',
        ),
    )
    op.create_index('ix_loan_applications_stage', 'loan_applications', ['stage'])
    op.create_index('ix_loan_applications_borrower_id', 'loan_applications', ['borrower_id'])

    # Create pledges table
    op.create_table(
        'pledges',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column('application_id', sa.Integer(), sa.ForeignKey('loan_applications.id', ondelete='CASCADE'), nullable=False),
        sa.Column('investor_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('pledged_amt', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.UniqueConstraint('application_id', 'investor_id', name='uq_pledges_application_investor'),
        sa.CheckConstraint('pledged_amt > 0', name='ck_pledges_pledged_amt_positive'),
    )
    op.create_index('ix_pledges_application_id', 'pledges', ['application_id'])
    op.create_index('ix_pledges_investor_id', 'pledges', ['investor_id'])

    # Create investments table
    op.create_table(
        'investments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column('loan_id', sa.Integer(), sa.ForeignKey('loan_applications.id', ondelete='CASCADE'), nullable=False),
        sa.Column('investor_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('invested_amt', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.UniqueConstraint('loan_id', 'investor_id', name='uq_investments_loan_investor'),
        sa.CheckConstraint('invested_amt > 0', name='ck_investments_invested_amt_positive'),
    )
    op.create_index('ix_investments_loan_id', 'investments', ['loan_id'])
    op.create_index('ix_investments_investor_id', 'investments', ['investor_id'])


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign key constraints)
    op.drop_index('ix_investments_investor_id', table_name='investments')
    op.drop_index('ix_investments_loan_id', table_name='investments')
    op.drop_table('investments')

    op.drop_index('ix_pledges_investor_id', table_name='pledges')
    op.drop_index('ix_pledges_application_id', table_name='pledges')
    op.drop_table('pledges')

    op.drop_index('ix_loan_applications_borrower_id', table_name='loan_applications')
    op.drop_index('ix_loan_applications_stage', table_name='loan_applications')
    op.drop_table('loan_applications')

    op.drop_table('purposes')

    op.drop_index('ix_user_roles_user_id', table_name='user_roles')
    op.drop_table('user_roles')

    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')

    # Drop ENUM types
    op.execute('DROP TYPE cancellation_reason')
    op.execute('DROP TYPE loan_stage')
    op.execute('DROP TYPE user_role')
