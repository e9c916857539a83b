"""initial schema

Revision ID: p0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete PMS schema:
- regions, areas, branches, staff: organisational roster
- session_tokens: bearer sessions
- baseline_balances: period snapshots of account balances
- account_mappings, product_kpi_mappings: account ownership and product classification
- plan_share_configs, plans, staff_plans: branch plans and their cascade
- cbs_validations, daily_tasks, cbs_discrepancies: task capture and reconciliation
- behavioral_evaluations, performance_scores: scoring
- audit_events: append-only audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'p0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # Roster
    # ============================================================================
    op.create_table(
        'regions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_regions_code'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'areas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('region_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['region_id'], ['regions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_areas_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_areas_region_id', 'areas', ['region_id'])

    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('region_id', sa.Integer(), nullable=True),
        sa.Column('area_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['region_id'], ['regions.id']),
        sa.ForeignKeyConstraint(['area_id'], ['areas.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_branches_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_branches_region_id', 'branches', ['region_id'])
    op.create_index('ix_branches_area_id', 'branches', ['area_id'])

    op.create_table(
        'staff',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('position', sa.String(length=32), nullable=True),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('area_id', sa.Integer(), nullable=True),
        sa.Column('region_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['area_id'], ['areas.id']),
        sa.ForeignKeyConstraint(['region_id'], ['regions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('employee_id', name='uq_staff_employee_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_branch_id', 'staff', ['branch_id'])
    op.create_index('ix_staff_area_id', 'staff', ['area_id'])
    op.create_index('ix_staff_region_id', 'staff', ['region_id'])
    op.create_index('ix_staff_branch_active', 'staff', ['branch_id', 'is_active'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=128), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash', name='uq_session_tokens_hash'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_staff_id', 'session_tokens', ['staff_id'])
    op.create_index('ix_session_tokens_staff_revoked', 'session_tokens', ['staff_id', 'is_revoked'])

    # ============================================================================
    # Baselines and ownership
    # ============================================================================
    op.create_table(
        'baseline_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('account_number', sa.String(length=64), nullable=True),
        sa.Column('branch_code', sa.String(length=32), nullable=True),
        sa.Column('balance', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('baseline_period', sa.String(length=32), nullable=False),
        sa.Column('baseline_date', sa.Date(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'baseline_period', name='uq_baseline_account_period'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_baseline_balances_branch_code', 'baseline_balances', ['branch_code'])
    op.create_index('ix_baseline_balances_baseline_period', 'baseline_balances', ['baseline_period'])
    op.create_index('ix_baseline_active_account', 'baseline_balances', ['is_active', 'account_id'])
    op.create_index('ix_baseline_account_number', 'baseline_balances', ['account_number'])

    op.create_table(
        'account_mappings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_number', sa.String(length=64), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('account_type', sa.String(length=32), nullable=True),
        sa.Column('product_name', sa.String(length=128), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('current_balance', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('baseline_balance', sa.Numeric(18, 2), nullable=True),
        sa.Column('last_transaction_date', sa.Date(), nullable=True),
        sa.Column('active_status', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('is_auto_balanced', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('mapped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('mapped_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['mapped_by_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_number', name='uq_account_mappings_account_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_account_mappings_staff_status', 'account_mappings', ['staff_id', 'status'])
    op.create_index('ix_account_mappings_branch', 'account_mappings', ['branch_id'])

    op.create_table(
        'product_kpi_mappings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=128), nullable=False),
        sa.Column('kpi_category', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['created_by_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_name', name='uq_product_kpi_mappings_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_kpi_mappings_status', 'product_kpi_mappings', ['status'])

    # ============================================================================
    # Plans
    # ============================================================================
    op.create_table(
        'plan_share_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_code', sa.String(length=32), nullable=True),
        sa.Column('kpi_category', sa.String(length=32), nullable=False),
        sa.Column('branch_manager_share', sa.Numeric(7, 4), nullable=False, server_default='0'),
        sa.Column('msm_share', sa.Numeric(7, 4), nullable=False, server_default='0'),
        sa.Column('accountant_share', sa.Numeric(7, 4), nullable=False, server_default='0'),
        sa.Column('mso_share', sa.Numeric(7, 4), nullable=False, server_default='0'),
        sa.Column('total_percent', sa.Numeric(7, 4), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['created_by_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_plan_share_configs_lookup', 'plan_share_configs',
                    ['kpi_category', 'branch_code', 'is_active'])

    op.create_table(
        'plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_code', sa.String(length=32), nullable=False),
        sa.Column('kpi_category', sa.String(length=32), nullable=False),
        sa.Column('period', sa.String(length=32), nullable=False),
        sa.Column('period_type', sa.String(length=16), nullable=False),
        sa.Column('target_value', sa.Numeric(18, 2), nullable=False),
        sa.Column('target_type', sa.String(length=16), nullable=False, server_default='INCREMENTAL'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['created_by_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_plans_status', 'plans', ['status'])
    op.create_index('ix_plans_branch_category_period', 'plans', ['branch_code', 'kpi_category', 'period'])

    op.create_table(
        'staff_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('branch_code', sa.String(length=32), nullable=False),
        sa.Column('position', sa.String(length=32), nullable=False),
        sa.Column('kpi_category', sa.String(length=32), nullable=False),
        sa.Column('period', sa.String(length=32), nullable=False),
        sa.Column('individual_target', sa.Numeric(18, 2), nullable=False),
        sa.Column('yearly_target', sa.Numeric(18, 2), nullable=False),
        sa.Column('monthly_target', sa.Numeric(18, 2), nullable=False),
        sa.Column('weekly_target', sa.Numeric(18, 2), nullable=False),
        sa.Column('daily_target', sa.Numeric(18, 2), nullable=False),
        sa.Column('plan_share_percent', sa.Numeric(9, 4), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_plans_staff_period', 'staff_plans', ['staff_id', 'period', 'status'])
    op.create_index('ix_staff_plans_plan', 'staff_plans', ['plan_id'])

    # ============================================================================
    # Tasks and reconciliation
    # ============================================================================
    op.create_table(
        'cbs_validations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('validation_date', sa.Date(), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('uploaded_by_id', sa.Integer(), nullable=True),
        sa.Column('total_records', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('matched_records', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unmatched_records', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discrepancy_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('auto_mapped_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('validation_rate', sa.Numeric(7, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PROCESSING'),
        sa.Column('unmapped_products', sa.JSON(), nullable=False),
        sa.Column('row_errors', sa.JSON(), nullable=False),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['uploaded_by_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cbs_validations_branch_date', 'cbs_validations', ['branch_id', 'validation_date'])

    op.create_table(
        'daily_tasks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('task_type', sa.String(length=32), nullable=False),
        sa.Column('account_number', sa.String(length=64), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('task_date', sa.Date(), nullable=False),
        sa.Column('submitted_by_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('mapping_status', sa.String(length=20), nullable=False),
        sa.Column('can_count_for_kpi', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('approval_policy', sa.String(length=32), nullable=False),
        sa.Column('approval_status', sa.String(length=16), nullable=False),
        sa.Column('approval_chain', sa.JSON(), nullable=False),
        sa.Column('cbs_validated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cbs_validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cbs_validation_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['submitted_by_id'], ['staff.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['cbs_validation_id'], ['cbs_validations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_daily_tasks_branch_date_status', 'daily_tasks',
                    ['branch_id', 'task_date', 'approval_status'])
    op.create_index('ix_daily_tasks_submitter_type', 'daily_tasks', ['submitted_by_id', 'task_type'])
    op.create_index('ix_daily_tasks_account', 'daily_tasks', ['account_number'])

    op.create_table(
        'cbs_discrepancies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('validation_id', sa.Integer(), nullable=False),
        sa.Column('account_number', sa.String(length=64), nullable=False),
        sa.Column('task_id', sa.Integer(), nullable=True),
        sa.Column('discrepancy_type', sa.String(length=20), nullable=False),
        sa.Column('cbs_amount', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('pms_amount', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('difference', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('resolved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('resolved_by_id', sa.Integer(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['validation_id'], ['cbs_validations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['task_id'], ['daily_tasks.id']),
        sa.ForeignKeyConstraint(['resolved_by_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cbs_discrepancies_validation', 'cbs_discrepancies', ['validation_id'])

    # ============================================================================
    # Scoring
    # ============================================================================
    op.create_table(
        'behavioral_evaluations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('evaluator_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('period', sa.String(length=32), nullable=False),
        sa.Column('period_type', sa.String(length=16), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('period_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('competencies', sa.JSON(), nullable=False),
        sa.Column('total_score', sa.Numeric(7, 2), nullable=False, server_default='0'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('approval_policy', sa.String(length=32), nullable=False),
        sa.Column('approval_status', sa.String(length=16), nullable=False),
        sa.Column('approval_chain', sa.JSON(), nullable=False),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.ForeignKeyConstraint(['evaluator_id'], ['staff.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_behavioral_evaluations_staff_period', 'behavioral_evaluations',
                    ['staff_id', 'period_type', 'year', 'period_index'])

    op.create_table(
        'performance_scores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('period', sa.String(length=32), nullable=False),
        sa.Column('period_type', sa.String(length=16), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('period_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('kpi_scores', sa.JSON(), nullable=False),
        sa.Column('kpi_total_score', sa.Numeric(7, 2), nullable=False, server_default='0'),
        sa.Column('behavioral_score', sa.Numeric(7, 2), nullable=False, server_default='0'),
        sa.Column('behavioral_evaluation_id', sa.Integer(), nullable=True),
        sa.Column('final_score', sa.Numeric(7, 2), nullable=False, server_default='0'),
        sa.Column('rating', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('calculated_by_id', sa.Integer(), nullable=True),
        sa.Column('calculated_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['behavioral_evaluation_id'], ['behavioral_evaluations.id']),
        sa.ForeignKeyConstraint(['calculated_by_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('staff_id', 'period_type', 'year', 'period_index',
                            name='uq_performance_scores_staff_period'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_performance_scores_branch_period', 'performance_scores',
                    ['branch_id', 'period_type', 'year', 'period_index'])

    # ============================================================================
    # audit_events: append-only trail
    # ============================================================================
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('entity_name', sa.String(length=255), nullable=True),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['actor_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_events_entity', 'audit_events', ['entity_type', 'entity_id'])
    op.create_index('ix_audit_events_actor_occurred', 'audit_events', ['actor_id', 'occurred_at'])
    op.create_index('ix_audit_events_action', 'audit_events', ['action'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('audit_events')
    op.drop_table('performance_scores')
    op.drop_table('behavioral_evaluations')
    op.drop_table('cbs_discrepancies')
    op.drop_table('daily_tasks')
    op.drop_table('cbs_validations')
    op.drop_table('staff_plans')
    op.drop_table('plans')
    op.drop_table('plan_share_configs')
    op.drop_table('product_kpi_mappings')
    op.drop_table('account_mappings')
    op.drop_table('baseline_balances')
    op.drop_table('session_tokens')
    op.drop_table('staff')
    op.drop_table('branches')
    op.drop_table('areas')
    op.drop_table('regions')
