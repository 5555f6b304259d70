"""initial_schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('last_sign_in_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('user', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_user_email'), ['email'], unique=True)

    op.create_table(
        'profile',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('reference_name', sa.String(length=10), nullable=True),
        sa.Column('role', _enum('profilerole', 'member', 'admin'), nullable=False),
        sa.Column('outstanding_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('membership_start_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('profile', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_profile_reference_name'), ['reference_name'], unique=False)

    op.create_table(
        'loan_tier',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('eligibility_months', sa.Integer(), nullable=False),
        sa.Column('fine', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('repayment_info', sa.String(length=255), nullable=True),
        sa.Column('repayment_months', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('loan_tier', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_loan_tier_amount'), ['amount'], unique=True)

    op.create_table(
        'loan_request',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('guarantor_id', sa.Uuid(), nullable=True),
        sa.Column('guarantor_name', sa.String(length=200), nullable=True),
        sa.Column('guarantor_2_id', sa.Uuid(), nullable=True),
        sa.Column('guarantor_2_name', sa.String(length=200), nullable=True),
        sa.Column('status', _enum('loanstatus', 'pending', 'approved', 'in-process', 'rejected', 'closed'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.Uuid(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['profile.id'], ),
        sa.ForeignKeyConstraint(['guarantor_id'], ['profile.id'], ),
        sa.ForeignKeyConstraint(['guarantor_2_id'], ['profile.id'], ),
        sa.ForeignKeyConstraint(['processed_by'], ['user.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('loan_request', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_loan_request_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_loan_request_guarantor_id'), ['guarantor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_loan_request_guarantor_2_id'), ['guarantor_2_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_loan_request_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_loan_request_due_date'), ['due_date'], unique=False)

    op.create_table(
        'ledger_transaction',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('type', _enum('transactiontype', 'deposit', 'withdrawal', 'due'), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('user_full_name', sa.String(length=200), nullable=True),
        sa.Column('source', _enum('transactionsource', 'loan_disbursement', 'contribution', 'manual', 'monthly_due', 'balance_adjustment'), nullable=False),
        sa.Column('source_ref', sa.String(length=100), nullable=True),
        sa.Column('outstanding_effect', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('main_effect', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profile.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['user.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('ledger_transaction', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_ledger_transaction_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_transaction_source'), ['source'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_transaction_source_ref'), ['source_ref'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_transaction_created_at'), ['created_at'], unique=False)
        batch_op.create_index('idx_ledger_transaction_type_date', ['type', 'created_at'], unique=False)

    op.create_table(
        'main_account',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('balance', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'payment_proof',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('user_full_name', sa.String(length=200), nullable=True),
        sa.Column('contribution_month', sa.Date(), nullable=False),
        sa.Column('file_path', sa.String(length=500), nullable=False),
        sa.Column('status', _enum('paymentproofstatus', 'pending', 'approved', 'rejected'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('processed_by', sa.Uuid(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profile.id'], ),
        sa.ForeignKeyConstraint(['processed_by'], ['user.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('payment_proof', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_proof_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payment_proof_contribution_month'), ['contribution_month'], unique=False)
        batch_op.create_index(batch_op.f('ix_payment_proof_status'), ['status'], unique=False)

    op.create_table(
        'notification',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('link', sa.String(length=255), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('dedupe_key', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profile.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'dedupe_key', name='uq_notification_user_dedupe')
    )
    with op.batch_alter_table('notification', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_notification_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_notification_created_at'), ['created_at'], unique=False)

    op.create_table(
        'job_run',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('job_name', sa.String(length=100), nullable=False),
        sa.Column('period_key', sa.String(length=50), nullable=False),
        sa.Column('result', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['created_by'], ['user.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_name', 'period_key', name='uq_job_run_period')
    )


def downgrade() -> None:
    op.drop_table('job_run')
    op.drop_table('notification')
    op.drop_table('payment_proof')
    op.drop_table('main_account')
    op.drop_table('ledger_transaction')
    op.drop_table('loan_request')
    op.drop_table('loan_tier')
    op.drop_table('profile')
    op.drop_table('user')
