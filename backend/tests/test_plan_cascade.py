"""
Plan share configuration and plan cascade tests.

Verifies:
- Share configs: bounds, total limits, branch-over-default precedence
- Cascade amounts, breakdowns and the sum property
- Re-cascade idempotence and roster changes
- ConfigurationMissing leaves no plan behind
"""

from decimal import Decimal

import pytest

from pms.extensions import db
from pms.kpi import KpiCategory
from pms.models import Plan, StaffPlan
from pms.positions import Position
from pms.services import cascade_service, org_service, plan_service, plan_share_service
from pms.validation import ConfigurationMissing, ConflictError, ValidationError


def _by_staff(staff_plans):
    return {sp.staff_id: sp for sp in staff_plans}


# =============================================================================
# PLAN SHARE CONFIG
# =============================================================================


class TestPlanShareConfig:

    def test_total_is_sum_of_shares(self, deposit_shares):
        assert deposit_shares.total_percent == Decimal("75")
        assert deposit_shares.branch_code is None

    def test_share_above_100_rejected(self, roster):
        with pytest.raises(ValidationError):
            plan_share_service.create_config(kpi_category="Loan & NPL", plan_shares={"MSO": 101})

    def test_negative_share_rejected(self, roster):
        with pytest.raises(ValidationError):
            plan_share_service.create_config(kpi_category="Loan & NPL", plan_shares={"MSO": -5})

    def test_total_over_100_rejected(self, roster):
        with pytest.raises(ValidationError):
            plan_share_service.create_config(
                kpi_category="Loan & NPL", plan_shares={"Branch Manager": 60, "MSO": 50}
            )

    def test_all_zero_rejected(self, roster):
        with pytest.raises(ValidationError):
            plan_share_service.create_config(kpi_category="Loan & NPL", plan_shares={"MSO": 0})

    def test_unknown_position_rejected(self, roster):
        with pytest.raises(ValidationError):
            plan_share_service.create_config(kpi_category="Loan & NPL", plan_shares={"Teller": 10})

    def test_second_active_default_conflicts(self, deposit_shares):
        with pytest.raises(ConflictError):
            plan_share_service.create_config(kpi_category="Deposit Mobilization", plan_shares={"MSO": 10})

    def test_branch_config_takes_precedence(self, deposit_shares):
        branch_config = plan_share_service.create_config(
            kpi_category=KpiCategory.DEPOSIT_MOBILIZATION, branch_code="atote", plan_shares={"MSO": 60}
        )
        assert plan_share_service.resolve_config(KpiCategory.DEPOSIT_MOBILIZATION, "ATOTE").id == branch_config.id
        assert plan_share_service.resolve_config(KpiCategory.DEPOSIT_MOBILIZATION, "BOLE").id == deposit_shares.id

    def test_missing_config_raises(self, roster):
        with pytest.raises(ConfigurationMissing):
            plan_share_service.resolve_config(KpiCategory.CUSTOMER_BASE, "ATOTE")

    def test_update_merges_shares(self, deposit_shares):
        updated = plan_share_service.update_config(deposit_shares.id, plan_shares={"MSO": 40})
        assert updated.mso_share == Decimal("40")
        assert updated.branch_manager_share == Decimal("20")
        assert updated.total_percent == Decimal("85")


# =============================================================================
# CASCADE AMOUNTS
# =============================================================================


class TestCascade:

    def test_named_positions_and_mso_pool(self, roster, deposit_shares):
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        plans = _by_staff(plan.staff_plans)

        assert plans[roster.bm.id].individual_target == Decimal("1800.00")
        assert plans[roster.msm.id].individual_target == Decimal("1350.00")
        assert plans[roster.accountant.id].individual_target == Decimal("900.00")
        for mso in (roster.mso1, roster.mso2, roster.mso3):
            assert plans[mso.id].individual_target == Decimal("900.00")
            assert plans[mso.id].plan_share_percent == Decimal("10")
            assert plans[mso.id].position in Position.MSO_POOL

    def test_auditor_and_other_branch_excluded(self, roster, deposit_shares):
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        staff_ids = {sp.staff_id for sp in plan.staff_plans}
        assert roster.auditor.id not in staff_ids
        assert roster.other_mso.id not in staff_ids
        assert len(staff_ids) == 6

    def test_sum_equals_target_times_total_share(self, roster, deposit_shares):
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        total = sum((sp.individual_target for sp in plan.staff_plans), Decimal("0"))
        assert total == Decimal("6750.00")

    def test_quarterly_breakdowns(self, roster, deposit_shares):
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        mso = _by_staff(plan.staff_plans)[roster.mso1.id]
        assert mso.yearly_target == Decimal("900.00")
        assert mso.monthly_target == Decimal("300.00")
        assert mso.weekly_target == Decimal("69.23")
        assert mso.daily_target == Decimal("9.78")

    def test_duplicate_named_position_splits_share(self, roster, deposit_shares):
        second = org_service.create_staff(
            employee_id="E008", name="Second Accountant", role="Staff", position="Accountant", branch_id=roster.branch.id
        )
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        plans = _by_staff(plan.staff_plans)
        assert plans[roster.accountant.id].individual_target == Decimal("450.00")
        assert plans[second.id].individual_target == Decimal("450.00")
        assert plans[second.id].plan_share_percent == Decimal("5")

    def test_zero_share_position_gets_no_plan(self, roster):
        plan_share_service.create_config(kpi_category="Customer Base", plan_shares={"MSO": 30})
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Customer Base", period="2025", target_value=300
        )
        assert {sp.staff_id for sp in plan.staff_plans} == {roster.mso1.id, roster.mso2.id, roster.mso3.id}

    def test_staff_plans_ordered_by_staff_id(self, roster, deposit_shares):
        plan = Plan(
            branch_code="ATOTE", kpi_category=KpiCategory.DEPOSIT_MOBILIZATION,
            period="Q4-2025", period_type="QUARTERLY", target_value=Decimal("9000"),
        )
        db.session.add(plan)
        db.session.flush()
        produced = cascade_service.compute_allocations(plan)
        assert [sp.staff_id for sp in produced] == sorted(sp.staff_id for sp in produced)
        db.session.rollback()


# =============================================================================
# RE-CASCADE AND FAILURE
# =============================================================================


class TestRecascade:

    def test_recascade_is_idempotent(self, roster, deposit_shares):
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        first = {(sp.staff_id, sp.individual_target) for sp in plan.staff_plans}

        plan_service.recascade_plan(plan.id)
        plan_service.recascade_plan(plan.id)

        rows = db.session.query(StaffPlan).filter_by(plan_id=plan.id).all()
        assert len(rows) == 6
        assert {(sp.staff_id, sp.individual_target) for sp in rows} == first

    def test_deactivated_mso_drops_out(self, roster, deposit_shares):
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        org_service.set_staff_active(roster.mso3.id, False)
        staff_plans = _by_staff(plan_service.recascade_plan(plan.id))

        assert roster.mso3.id not in staff_plans
        assert staff_plans[roster.mso1.id].individual_target == Decimal("1350.00")
        assert staff_plans[roster.mso1.id].plan_share_percent == Decimal("15")

    def test_target_change_recascades(self, roster, deposit_shares):
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        plan_service.update_plan(plan.id, target_value=12000)
        rows = _by_staff(db.session.query(StaffPlan).filter_by(plan_id=plan.id).all())
        assert rows[roster.mso1.id].individual_target == Decimal("1200.00")

    def test_missing_config_leaves_no_plan(self, roster):
        with pytest.raises(ConfigurationMissing):
            plan_service.create_plan(
                branch_code="ATOTE", kpi_category="Loan & NPL", period="Q4-2025", target_value=9000
            )
        assert db.session.query(Plan).count() == 0
        assert db.session.query(StaffPlan).count() == 0

    def test_duplicate_open_plan_conflicts(self, roster, deposit_shares):
        plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        with pytest.raises(ConflictError):
            plan_service.create_plan(
                branch_code="ATOTE", kpi_category="Deposit Mobilization", period="2025-Q4", target_value=100
            )

    def test_closed_plan_is_read_only(self, roster, deposit_shares):
        plan = plan_service.create_plan(
            branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )
        plan_service.update_plan(plan.id, status="completed")
        statuses = {sp.status for sp in db.session.query(StaffPlan).filter_by(plan_id=plan.id)}
        assert statuses == {"INACTIVE"}
        with pytest.raises(ConflictError):
            plan_service.update_plan(plan.id, target_value=100)

    def test_weekly_period_rejected(self, roster, deposit_shares):
        with pytest.raises(ValidationError):
            plan_service.create_plan(
                branch_code="ATOTE", kpi_category="Deposit Mobilization", period="2025-W07", target_value=100
            )

    def test_non_positive_target_rejected(self, roster, deposit_shares):
        with pytest.raises(ValidationError):
            plan_service.create_plan(
                branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=0
            )

    def test_upload_reports_failed_rows(self, roster, deposit_shares):
        result = plan_service.upload_plans([
            {"branch_code": "ATOTE", "kpi_category": "Deposit Mobilization", "period": "Q4-2025", "target_value": 9000},
            {"branch_code": "ATOTE", "kpi_category": "Loan & NPL", "period": "Q4-2025", "target_value": 5000},
        ])
        assert result["created"] == 1
        assert result["errors"][0]["row"] == 3
        assert result["errors"][0]["kind"] == "configuration_missing"
