# alembic/versions/001_initial.py

"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


requirement_status = sa.Enum('COMPLETED', 'ON_TRACK', 'ATTENTION', 'CRITICAL', name='requirementstatus')
execution_status = sa.Enum('DRAFT', 'EXECUTING', 'CLOSED', name='executionstatus')
contribution_source = sa.Enum('MANUAL_DEPOSIT', name='contributionsource')


def upgrade():
    # Create goal table
    op.create_table('goal',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('currency', sa.String(length=16), nullable=False),
        sa.Column('target_amount', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('deadline', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Create asset table
    op.create_table('asset',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('currency', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_asset_currency', 'asset', ['currency'])

    # Create allocation table
    op.create_table('allocation',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('goal_id', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.Numeric(precision=12, scale=10), nullable=False),
        sa.Column('target_amount', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['asset.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['goal_id'], ['goal.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('asset_id', 'goal_id', name='uq_allocation_asset_goal'),
        sa.CheckConstraint('percentage >= 0 AND percentage <= 1', name='ck_allocation_percentage')
    )

    # Create allocation_history table
    op.create_table('allocation_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('goal_id', sa.Integer(), nullable=False),
        sa.Column('target_amount', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('month_label', sa.String(length=7), nullable=False),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['asset.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['goal_id'], ['goal.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_allocation_history_asset_goal', 'allocation_history', ['asset_id', 'goal_id', 'recorded_at']
    )

    # Create asset_transaction table
    op.create_table('asset_transaction',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['asset.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='ck_transaction_amount_positive')
    )
    op.create_index('ix_asset_transaction_asset_id', 'asset_transaction', ['asset_id'])

    # Create monthly_plan table
    op.create_table('monthly_plan',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('goal_id', sa.Integer(), nullable=False),
        sa.Column('month_label', sa.String(length=7), nullable=False),
        sa.Column('required_monthly', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('remaining_amount', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('months_remaining', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=16), nullable=False),
        sa.Column('status', requirement_status, nullable=False),
        sa.Column('total_contributed', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['goal_id'], ['goal.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('goal_id', 'month_label', name='uq_monthly_plan_goal_month')
    )
    op.create_index('ix_monthly_plan_month_label', 'monthly_plan', ['month_label'])

    # Create monthly_execution_record table
    op.create_table('monthly_execution_record',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('month_label', sa.String(length=7), nullable=False),
        sa.Column('status', execution_status, nullable=False),
        sa.Column('tracked_goal_ids', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('undo_until', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_monthly_execution_record_month_label', 'monthly_execution_record', ['month_label'], unique=True
    )

    # Create contribution table
    op.create_table('contribution',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('monthly_plan_id', sa.Integer(), nullable=False),
        sa.Column('execution_record_id', sa.Integer(), nullable=True),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('asset_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('asset_amount', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('currency_code', sa.String(length=16), nullable=False),
        sa.Column('asset_currency', sa.String(length=16), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column('source', contribution_source, nullable=False),
        sa.Column('month_label', sa.String(length=7), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_planned', sa.Boolean(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['monthly_plan_id'], ['monthly_plan.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['execution_record_id'], ['monthly_execution_record.id'], ondelete='SET NULL'
        ),
        sa.ForeignKeyConstraint(['transaction_id'], ['asset_transaction.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['asset_id'], ['asset.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id', 'monthly_plan_id', name='uq_contribution_transaction_plan')
    )
    op.create_index('ix_contribution_execution_record_id', 'contribution', ['execution_record_id'])
    op.create_index('ix_contribution_transaction_id', 'contribution', ['transaction_id'])
    op.create_index('ix_contribution_month_label', 'contribution', ['month_label'])


def downgrade():
    op.drop_table('contribution')
    op.drop_table('monthly_execution_record')
    op.drop_table('monthly_plan')
    op.drop_table('asset_transaction')
    op.drop_table('allocation_history')
    op.drop_table('allocation')
    op.drop_table('asset')
    op.drop_table('goal')

    bind = op.get_bind()
    contribution_source.drop(bind, checkfirst=True)
    execution_status.drop(bind, checkfirst=True)
    requirement_status.drop(bind, checkfirst=True)
