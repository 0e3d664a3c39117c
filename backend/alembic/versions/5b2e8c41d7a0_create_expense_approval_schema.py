"""create_expense_approval_schema

Revision ID: 5b2e8c41d7a0
Revises:
Create Date: 2026-03-09 11:20:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '5b2e8c41d7a0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto;')

    op.create_table(
        'companies',
        _id_column(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('base_currency', sa.String(3), nullable=False),
        sa.Column('country', sa.String(100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_companies'),
    )
    op.create_index('ix_companies_name', 'companies', ['name'])

    op.create_table(
        'categories',
        _id_column(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_categories_company_id_companies'),
        sa.PrimaryKeyConstraint('id', name='pk_categories'),
        sa.UniqueConstraint('company_id', 'name', name='uq_categories_company_id'),
    )
    op.create_index('ix_categories_company_id', 'categories', ['company_id'])

    op.create_table(
        'users',
        _id_column(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('manager_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_users_company_id_companies'),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id'], name='fk_users_manager_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'approval_rules',
        _id_column(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('min_amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('max_amount', sa.Numeric(18, 2), nullable=True),
        sa.Column('category_ids', postgresql.ARRAY(postgresql.UUID(as_uuid=True)), nullable=True),
        sa.Column('approval_type', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_approval_rules_company_id_companies'),
        sa.PrimaryKeyConstraint('id', name='pk_approval_rules'),
        sa.CheckConstraint(
            'max_amount IS NULL OR max_amount >= min_amount',
            name='ck_approval_rules_amount_band',
        ),
        sa.CheckConstraint(
            "approval_type IN ('sequential', 'parallel')",
            name='ck_approval_rules_approval_type',
        ),
    )
    op.create_index('ix_approval_rules_company_id', 'approval_rules', ['company_id'])

    op.create_table(
        'approver_assignments',
        _id_column(),
        sa.Column('approval_rule_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['approval_rule_id'], ['approval_rules.id'],
            name='fk_approver_assignments_approval_rule_id_approval_rules',
        ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_approver_assignments_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_approver_assignments'),
        sa.UniqueConstraint('approval_rule_id', 'user_id', name='uq_approver_assignments_approval_rule_id'),
        sa.CheckConstraint('"order" >= 1', name='ck_approver_assignments_order_positive'),
    )
    op.create_index('ix_approver_assignments_approval_rule_id', 'approver_assignments', ['approval_rule_id'])
    op.create_index('ix_approver_assignments_user_id', 'approver_assignments', ['user_id'])

    op.create_table(
        'expenses',
        _id_column(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(24, 10), nullable=True),
        sa.Column('amount_in_base_currency', sa.Numeric(24, 6), nullable=True),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('approval_rule_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_expenses_company_id_companies'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_expenses_user_id_users'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name='fk_expenses_category_id_categories'),
        sa.ForeignKeyConstraint(
            ['approval_rule_id'], ['approval_rules.id'],
            name='fk_expenses_approval_rule_id_approval_rules',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_expenses'),
        sa.CheckConstraint('amount > 0', name='ck_expenses_amount_positive'),
    )
    op.create_index('ix_expenses_company_id', 'expenses', ['company_id'])
    op.create_index('ix_expenses_user_id', 'expenses', ['user_id'])
    op.create_index('ix_expenses_category_id', 'expenses', ['category_id'])
    op.create_index('ix_expenses_status', 'expenses', ['status'])
    op.create_index('ix_expenses_approval_rule_id', 'expenses', ['approval_rule_id'])

    op.create_table(
        'expense_approval_logs',
        _id_column(),
        sa.Column('expense_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('approval_rule_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('approver_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['expense_id'], ['expenses.id'], name='fk_expense_approval_logs_expense_id_expenses'),
        sa.ForeignKeyConstraint(
            ['approval_rule_id'], ['approval_rules.id'],
            name='fk_expense_approval_logs_approval_rule_id_approval_rules',
        ),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id'], name='fk_expense_approval_logs_approver_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_expense_approval_logs'),
    )
    op.create_index('ix_expense_approval_logs_expense_id', 'expense_approval_logs', ['expense_id'])
    op.create_index('ix_expense_approval_logs_approval_rule_id', 'expense_approval_logs', ['approval_rule_id'])
    op.create_index('ix_expense_approval_logs_expense_order', 'expense_approval_logs', ['expense_id', 'order'])
    op.create_index('ix_expense_approval_logs_approver_status', 'expense_approval_logs', ['approver_id', 'status'])

    op.create_table(
        'audit_logs',
        _id_column(),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('before_state', sa.Text(), nullable=True),
        sa.Column('after_state', sa.Text(), nullable=True),
        sa.Column('request_id', sa.String(64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], name='fk_audit_logs_actor_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_audit_logs'),
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('expense_approval_logs')
    op.drop_table('expenses')
    op.drop_table('approver_assignments')
    op.drop_table('approval_rules')
    op.drop_table('users')
    op.drop_table('categories')
    op.drop_table('companies')
