"""Create ledger core tables

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MONEY = sa.DECIMAL(24, 6)
RATE = sa.DECIMAL(7, 6)


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())
        )
    return columns


def upgrade() -> None:
    # Genealogy tree
    op.create_table(
        'genealogy_nodes',
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('parent_user_id', sa.String(64), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('path', sa.String(326), nullable=False, server_default='/'),
        sa.Column('total_team_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_team_volume', MONEY, nullable=False, server_default='0'),
        sa.Column('commission_earned', MONEY, nullable=False, server_default='0'),
        sa.Column('ancestor_level_1', sa.String(64), nullable=True),
        sa.Column('ancestor_level_2', sa.String(64), nullable=True),
        sa.Column('ancestor_level_3', sa.String(64), nullable=True),
        sa.Column('ancestor_level_4', sa.String(64), nullable=True),
        sa.Column('ancestor_level_5', sa.String(64), nullable=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('level >= 0 AND level <= 5', name='check_genealogy_level_range'),
        sa.CheckConstraint('total_team_size >= 0', name='check_genealogy_team_size_non_negative'),
        sa.CheckConstraint('total_team_volume >= 0', name='check_genealogy_team_volume_non_negative'),
        sa.CheckConstraint('commission_earned >= 0', name='check_genealogy_commission_non_negative'),
        sa.CheckConstraint(
            'parent_user_id IS NULL OR parent_user_id != user_id',
            name='check_genealogy_not_own_parent',
        ),
        sa.ForeignKeyConstraint(['parent_user_id'], ['genealogy_nodes.user_id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('user_id'),
    )
    op.create_index('ix_genealogy_nodes_parent_user_id', 'genealogy_nodes', ['parent_user_id'])
    for level in range(1, 6):
        op.create_index(
            f'ix_genealogy_nodes_ancestor_level_{level}',
            'genealogy_nodes',
            [f'ancestor_level_{level}'],
        )
    op.create_index('idx_genealogy_path', 'genealogy_nodes', ['path'])
    op.create_index('idx_genealogy_level', 'genealogy_nodes', ['level'])

    op.create_table(
        'direct_referrals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('parent_user_id', sa.String(64), nullable=False),
        sa.Column('child_user_id', sa.String(64), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('parent_user_id != child_user_id', name='check_direct_referral_not_self'),
        sa.ForeignKeyConstraint(['parent_user_id'], ['genealogy_nodes.user_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['child_user_id'], ['genealogy_nodes.user_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('child_user_id'),
    )
    op.create_index(
        'idx_direct_referral_parent_created', 'direct_referrals', ['parent_user_id', 'created_at']
    )

    # Ledger
    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('bucket', sa.String(20), nullable=False),
        sa.Column('balance', MONEY, nullable=False, server_default='0'),
        sa.Column('lifetime_credits', MONEY, nullable=False, server_default='0'),
        sa.Column('lifetime_debits', MONEY, nullable=False, server_default='0'),
        sa.Column('last_transaction_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "bucket IN ('principal', 'periodic_income', 'commission')",
            name='check_ledger_bucket_stored',
        ),
        sa.CheckConstraint('balance >= 0', name='check_ledger_balance_non_negative'),
        sa.CheckConstraint('lifetime_credits >= 0', name='check_ledger_credits_non_negative'),
        sa.CheckConstraint('lifetime_debits >= 0', name='check_ledger_debits_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'bucket', name='uq_ledger_user_bucket'),
    )
    op.create_index('ix_ledger_entries_user_id', 'ledger_entries', ['user_id'])

    op.create_table(
        'ledger_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('bucket', sa.String(20), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('balance_after', MONEY, nullable=False),
        sa.Column('reference_type', sa.String(32), nullable=True),
        sa.Column('reference_id', sa.String(64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint('amount > 0', name='check_ledger_tx_amount_positive'),
        sa.CheckConstraint("direction IN ('credit', 'debit')", name='check_ledger_tx_direction'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_ledger_tx_user_created', 'ledger_transactions', ['user_id', 'created_at'])
    op.create_index('idx_ledger_tx_reference', 'ledger_transactions', ['reference_type', 'reference_id'])

    # Commissions
    op.create_table(
        'commission_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('recipient_user_id', sa.String(64), nullable=False),
        sa.Column('source_user_id', sa.String(64), nullable=False),
        sa.Column('source_deposit_id', sa.String(64), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('rate', RATE, nullable=False),
        sa.Column('source_amount', MONEY, nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('distribution_batch_id', sa.String(36), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('level >= 1 AND level <= 5', name='check_commission_level_range'),
        sa.CheckConstraint('amount >= 0', name='check_commission_amount_non_negative'),
        sa.CheckConstraint('amount <= source_amount', name='check_commission_amount_not_exceeds_source'),
        sa.CheckConstraint('recipient_user_id != source_user_id', name='check_commission_not_self'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'source_deposit_id', 'recipient_user_id', 'level',
            name='uq_commission_deposit_recipient_level',
        ),
        sa.UniqueConstraint('source_deposit_id', 'level', name='uq_commission_deposit_level'),
    )
    op.create_index(
        'idx_commission_recipient_created', 'commission_records', ['recipient_user_id', 'created_at']
    )
    op.create_index('idx_commission_source_created', 'commission_records', ['source_user_id', 'created_at'])
    op.create_index('idx_commission_status_created', 'commission_records', ['status', 'created_at'])
    op.create_index(
        'idx_commission_batch_created', 'commission_records', ['distribution_batch_id', 'created_at']
    )

    # Accruals
    op.create_table(
        'accrual_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('period', sa.String(7), nullable=False),
        sa.Column('base_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('accrual_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('rate', RATE, nullable=False, server_default='0.08'),
        sa.Column('deposit_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('batch_id', sa.String(36), nullable=False),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('base_amount >= 0', name='check_accrual_base_non_negative'),
        sa.CheckConstraint('accrual_amount >= 0', name='check_accrual_amount_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'period', name='uq_accrual_user_period'),
    )
    op.create_index('ix_accrual_records_user_id', 'accrual_records', ['user_id'])
    op.create_index('idx_accrual_period_status', 'accrual_records', ['period', 'status'])
    op.create_index('idx_accrual_batch', 'accrual_records', ['batch_id'])

    # Deposits
    op.create_table(
        'deposits',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('months_active', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earnings', MONEY, nullable=False, server_default='0'),
        sa.Column('last_income_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='check_deposit_amount_positive'),
        sa.CheckConstraint(
            'months_active >= 0 AND months_active <= 25', name='check_deposit_months_active_range'
        ),
        sa.CheckConstraint('total_earnings >= 0', name='check_deposit_earnings_non_negative'),
        sa.CheckConstraint('total_earnings <= amount * 2', name='check_deposit_earnings_not_exceeds_cap'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_deposits_user_id', 'deposits', ['user_id'])
    op.create_index('idx_deposit_user_status', 'deposits', ['user_id', 'status'])
    op.create_index('idx_deposit_status_months', 'deposits', ['status', 'months_active'])


def downgrade() -> None:
    op.drop_index('idx_deposit_status_months', 'deposits')
    op.drop_index('idx_deposit_user_status', 'deposits')
    op.drop_index('ix_deposits_user_id', 'deposits')
    op.drop_table('deposits')

    op.drop_index('idx_accrual_batch', 'accrual_records')
    op.drop_index('idx_accrual_period_status', 'accrual_records')
    op.drop_index('ix_accrual_records_user_id', 'accrual_records')
    op.drop_table('accrual_records')

    op.drop_index('idx_commission_batch_created', 'commission_records')
    op.drop_index('idx_commission_status_created', 'commission_records')
    op.drop_index('idx_commission_source_created', 'commission_records')
    op.drop_index('idx_commission_recipient_created', 'commission_records')
    op.drop_table('commission_records')

    op.drop_index('idx_ledger_tx_reference', 'ledger_transactions')
    op.drop_index('idx_ledger_tx_user_created', 'ledger_transactions')
    op.drop_table('ledger_transactions')

    op.drop_index('ix_ledger_entries_user_id', 'ledger_entries')
    op.drop_table('ledger_entries')

    op.drop_index('idx_direct_referral_parent_created', 'direct_referrals')
    op.drop_table('direct_referrals')

    op.drop_index('idx_genealogy_level', 'genealogy_nodes')
    op.drop_index('idx_genealogy_path', 'genealogy_nodes')
    for level in range(1, 6):
        op.drop_index(f'ix_genealogy_nodes_ancestor_level_{level}', 'genealogy_nodes')
    op.drop_index('ix_genealogy_nodes_parent_user_id', 'genealogy_nodes')
    op.drop_table('genealogy_nodes')
