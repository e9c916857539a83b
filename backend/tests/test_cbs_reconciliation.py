"""
CBS reconciliation tests.

Verifies:
- Amount matching within the 0.01 tolerance, one row to at most one task
- Missing_in_PMS / Missing_in_CBS / Amount_Mismatch discrepancies
- Balance refresh: active window, baseline backfill
- Unmapped product reporting and auto-mapping of owner-less accounts
- Failed runs are recorded, resolved discrepancies stay resolved
"""

from datetime import date
from decimal import Decimal

import pytest

from pms.extensions import db
from pms.models import AccountMapping, CBSValidation, DailyTask
from pms.models.cbs import (
    DISCREPANCY_AMOUNT_MISMATCH,
    DISCREPANCY_MISSING_IN_CBS,
    DISCREPANCY_MISSING_IN_PMS,
    VALIDATION_COMPLETED,
    VALIDATION_FAILED,
    VALIDATION_PARTIAL,
)
from pms.models.tasks import MAPPING_MAPPED_TO_YOU
from pms.services import baseline_service, cbs_service, product_mapping_service, task_service
from pms.validation import ValidationError


DAY = "2025-10-01"


@pytest.fixture
def savings(roster):
    return product_mapping_service.upsert_product_mapping(product_name="Savings", kpi_category="Deposit Mobilization")


@pytest.fixture
def approved_task(roster, approve_all):
    def _make(account_number, amount, submitter=None, task_date=DAY, task_type="Deposit Mobilization"):
        task = task_service.create_task(
            submitter_id=(submitter or roster.mso1).id,
            task_type=task_type,
            account_number=account_number,
            amount=amount,
            task_date=task_date,
        )
        return approve_all(task)
    return _make


def _row(account, amount, balance=1000, product="Savings", transaction_date=DAY):
    return {
        "accountNumber": account,
        "amount": amount,
        "balance": balance,
        "product": product,
        "transactionDate": transaction_date,
    }


def _reconcile(roster, rows):
    return cbs_service.reconcile(rows, branch_id=roster.branch.id, validation_date=DAY, actor_id=roster.bm.id)


def _types(validation):
    return [d.discrepancy_type for d in validation.discrepancies]


# =============================================================================
# MATCHING
# =============================================================================


class TestMatching:

    def test_within_tolerance_matches(self, roster, savings, approved_task):
        task = approved_task("1001", "1000.00")
        validation = _reconcile(roster, [_row("1001", "1000.01")])

        assert validation.matched_records == 1
        assert validation.discrepancies == []
        assert validation.status == VALIDATION_COMPLETED
        assert validation.validation_rate == Decimal("100.00")
        task = db.session.get(DailyTask, task.id)
        assert task.cbs_validated is True
        assert task.cbs_validation_id == validation.id

    def test_beyond_tolerance_is_amount_mismatch(self, roster, savings, approved_task):
        task = approved_task("1001", "1000.00")
        validation = _reconcile(roster, [_row("1001", "1000.011")])

        assert validation.matched_records == 0
        assert _types(validation) == [DISCREPANCY_AMOUNT_MISMATCH]
        assert validation.discrepancies[0].task_id == task.id
        assert validation.status == VALIDATION_PARTIAL
        assert db.session.get(DailyTask, task.id).cbs_validated is False

    def test_row_without_task_is_missing_in_pms(self, roster, savings):
        validation = _reconcile(roster, [_row("A1", 1000)])

        assert _types(validation) == [DISCREPANCY_MISSING_IN_PMS]
        discrepancy = validation.discrepancies[0]
        assert discrepancy.account_number == "A1"
        assert discrepancy.cbs_amount == Decimal("1000.00")
        assert discrepancy.pms_amount == Decimal("0")
        assert discrepancy.difference == Decimal("1000.00")

    def test_task_without_row_is_missing_in_cbs(self, roster, savings, approved_task):
        approved_task("1001", "1000.00")
        orphan = approved_task("1002", "500.00")
        validation = _reconcile(roster, [_row("1001", "1000.00")])

        assert validation.matched_records == 1
        assert _types(validation) == [DISCREPANCY_MISSING_IN_CBS]
        assert validation.discrepancies[0].task_id == orphan.id
        assert validation.discrepancies[0].pms_amount == Decimal("500.00")

    def test_mismatched_task_not_reported_twice(self, roster, savings, approved_task):
        approved_task("1001", "1000.00")
        validation = _reconcile(roster, [_row("1001", "900.00")])
        assert _types(validation) == [DISCREPANCY_AMOUNT_MISMATCH]

    def test_one_row_consumes_one_task(self, roster, savings, approved_task):
        approved_task("1001", "1000.00")
        approved_task("1001", "1000.00")
        validation = _reconcile(roster, [_row("1001", "1000.00"), _row("1001", "1000.00")])
        assert validation.matched_records == 2
        assert validation.discrepancies == []

    def test_duplicate_row_does_not_rematch(self, roster, savings, approved_task):
        approved_task("1001", "1000.00")
        validation = _reconcile(roster, [_row("1001", "1000.00"), _row("1001", "1000.00")])
        assert validation.matched_records == 1
        assert validation.discrepancy_count == 1

    def test_pending_task_is_not_matched(self, roster, savings):
        task_service.create_task(
            submitter_id=roster.mso1.id, task_type="Deposit Mobilization",
            account_number="1001", amount=1000, task_date=DAY,
        )
        validation = _reconcile(roster, [_row("1001", 1000)])
        assert _types(validation) == [DISCREPANCY_MISSING_IN_PMS]

    def test_tasks_of_other_days_ignored(self, roster, savings, approved_task):
        approved_task("1001", "1000.00", task_date="2025-09-30")
        validation = _reconcile(roster, [_row("1001", "1000.00")])
        assert _types(validation) == [DISCREPANCY_MISSING_IN_PMS]

    def test_totals_and_rate(self, roster, savings, approved_task):
        approved_task("1001", "100.00")
        approved_task("1002", "200.00")
        validation = _reconcile(roster, [_row("1001", 100), _row("1002", 200), _row("1003", 300), _row("1004", 400)])

        assert validation.total_records == 4
        assert validation.matched_records == 2
        assert validation.unmatched_records == 2
        assert validation.discrepancy_count == 2
        assert validation.validation_rate == Decimal("50.00")


# =============================================================================
# BALANCE REFRESH AND PRODUCTS
# =============================================================================


class TestBalanceRefresh:

    def test_mapping_created_with_balance(self, roster, savings):
        _reconcile(roster, [_row("5001", 0, balance="2,500.75")])
        mapping = db.session.query(AccountMapping).filter_by(account_number="5001").one()
        assert mapping.current_balance == Decimal("2500.75")
        assert mapping.branch_id == roster.branch.id
        assert mapping.staff_id is None
        assert mapping.product_name == "Savings"

    def test_active_window_is_fifteen_days(self, roster, savings):
        _reconcile(roster, [
            _row("5001", 0, transaction_date="2025-09-16"),
            _row("5002", 0, transaction_date="2025-09-15"),
        ])
        assert db.session.query(AccountMapping).filter_by(account_number="5001").one().active_status is True
        assert db.session.query(AccountMapping).filter_by(account_number="5002").one().active_status is False

    def test_missing_transaction_date_uses_validation_date(self, roster, savings):
        _reconcile(roster, [{"accountNumber": "5001", "balance": 700, "product": "Savings"}])
        mapping = db.session.query(AccountMapping).filter_by(account_number="5001").one()
        assert mapping.last_transaction_date == date(2025, 10, 1)
        assert mapping.active_status is True

    def test_baseline_backfilled_from_active_period(self, roster, savings):
        baseline_service.import_baselines([{"account_id": "5001", "june_balance": 800}], baseline_period="2025-H1")
        _reconcile(roster, [_row("5001", 0, balance=1200)])
        mapping = db.session.query(AccountMapping).filter_by(account_number="5001").one()
        assert mapping.baseline_balance == Decimal("800.00")

    def test_unmapped_products_reported(self, roster, savings):
        validation = _reconcile(roster, [
            _row("5001", 0, balance=100, product="Fixed Deposit"),
            _row("5002", 0, balance=200, product="Fixed Deposit"),
            _row("5002", 0, balance=250, product="Fixed Deposit"),
            _row("5003", 0, balance=300),
        ])
        assert validation.unmapped_products == [
            {"product": "Fixed Deposit", "account_count": 2, "total_balance": 350.0}
        ]
        assert validation.status == VALIDATION_PARTIAL

    def test_malformed_rows_reported_and_counted(self, roster, savings):
        validation = _reconcile(roster, [_row("5001", 0), {"amount": 10}, _row("5003", 0, transaction_date="not a date")])
        assert [e["row"] for e in validation.row_errors] == [3, 4]
        assert validation.total_records == 3


# =============================================================================
# AUTO-MAPPING
# =============================================================================


class TestAutoMapping:

    def test_unowned_account_goes_to_task_submitter(self, roster, savings, approved_task):
        task = approved_task("6001", "600.00", submitter=roster.mso2)
        validation = _reconcile(roster, [_row("6001", "600.00", balance=600)])

        assert validation.auto_mapped_count == 1
        mapping = db.session.query(AccountMapping).filter_by(account_number="6001").one()
        assert mapping.staff_id == roster.mso2.id
        task = db.session.get(DailyTask, task.id)
        assert task.mapping_status == MAPPING_MAPPED_TO_YOU
        assert task.can_count_for_kpi is True
        assert task.cbs_validated is True

    def test_small_balance_not_auto_mapped(self, roster, savings, approved_task):
        approved_task("6001", "400.00")
        validation = _reconcile(roster, [_row("6001", "400.00", balance="499.99")])
        assert validation.auto_mapped_count == 0
        assert db.session.query(AccountMapping).filter_by(account_number="6001").one().staff_id is None

    def test_owned_account_keeps_owner(self, roster, savings, approved_task):
        _reconcile(roster, [_row("6001", 0, balance=600)])
        mapping = db.session.query(AccountMapping).filter_by(account_number="6001").one()
        mapping.staff_id = roster.mso1.id
        db.session.commit()

        approved_task("6001", "600.00", submitter=roster.mso2)
        validation = _reconcile(roster, [_row("6001", "600.00", balance=600)])
        assert validation.auto_mapped_count == 0
        assert db.session.query(AccountMapping).filter_by(account_number="6001").one().staff_id == roster.mso1.id


# =============================================================================
# RUN LIFECYCLE
# =============================================================================


class TestRunLifecycle:

    def test_failure_marks_run_failed(self, roster, savings, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("matcher crashed")

        monkeypatch.setattr(cbs_service, "_match", boom)
        with pytest.raises(RuntimeError):
            _reconcile(roster, [_row("1001", 10)])

        validation = db.session.query(CBSValidation).one()
        assert validation.status == VALIDATION_FAILED
        assert "matcher crashed" in validation.failure_reason
        # the balance refresh step had already committed
        assert db.session.query(AccountMapping).filter_by(account_number="1001").count() == 1

    def test_validation_date_required(self, roster):
        with pytest.raises(ValidationError):
            cbs_service.reconcile([], branch_id=roster.branch.id, validation_date=None)

    def test_resolve_discrepancy_once(self, roster, savings):
        validation = _reconcile(roster, [_row("A1", 1000)])
        discrepancy = validation.discrepancies[0]

        resolved = cbs_service.resolve_discrepancy(validation.id, discrepancy.id, notes="posted late", actor_id=roster.bm.id)
        assert resolved.resolved is True
        assert resolved.resolution_notes == "posted late"
        with pytest.raises(ValidationError):
            cbs_service.resolve_discrepancy(validation.id, discrepancy.id)

    def test_list_validations_filters(self, roster, savings):
        _reconcile(roster, [_row("A1", 1000)])
        assert len(cbs_service.list_validations(branch_id=roster.branch.id, status="partial")) == 1
        assert cbs_service.list_validations(branch_id=roster.other_branch.id) == []
