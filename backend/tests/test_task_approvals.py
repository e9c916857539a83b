"""
Daily task and approval chain tests.

Verifies:
- Status derivation is a pure, order-independent function of the chain
- Chains are resolved from the submitter's position and branch roster
- Only task-submitting positions can log tasks
- Decisions: own pending entry only, terminal records are frozen
- Mapping status is captured when the task is logged
"""

from decimal import Decimal

import pytest

from pms.extensions import db
from pms.models import AuditEvent, DailyTask
from pms.models.tasks import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    MAPPING_MAPPED_TO_OTHER,
    MAPPING_MAPPED_TO_YOU,
    MAPPING_UNMAPPED,
)
from pms.services import approval, mapping_service, task_service
from pms.validation import AuthorizationError, ConflictError, ValidationError


def _chain(*statuses):
    return [{"approver_id": i + 1, "status": s} for i, s in enumerate(statuses)]


# =============================================================================
# PURE STATUS DERIVATION
# =============================================================================


class TestDeriveStatus:

    def test_all_approved(self):
        assert approval.derive_status(_chain(APPROVAL_APPROVED, APPROVAL_APPROVED)) == APPROVAL_APPROVED

    def test_any_rejected_wins(self):
        assert approval.derive_status(_chain(APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_PENDING)) == APPROVAL_REJECTED

    def test_partial_is_pending(self):
        assert approval.derive_status(_chain(APPROVAL_APPROVED, APPROVAL_PENDING)) == APPROVAL_PENDING

    def test_empty_chain_pending_by_default(self):
        assert approval.derive_status([]) == APPROVAL_PENDING
        assert approval.derive_status([], empty_chain_approves=True) == APPROVAL_APPROVED

    def test_decision_order_does_not_matter(self):
        chain = _chain(APPROVAL_PENDING, APPROVAL_PENDING, APPROVAL_PENDING)
        forward = chain
        for approver_id in (1, 2, 3):
            forward = approval.apply_decision(forward, approver_id=approver_id, decision=APPROVAL_APPROVED)
        backward = chain
        for approver_id in (3, 1, 2):
            backward = approval.apply_decision(backward, approver_id=approver_id, decision=APPROVAL_APPROVED)
        assert approval.derive_status(forward) == approval.derive_status(backward) == APPROVAL_APPROVED

    def test_apply_decision_does_not_mutate_input(self):
        chain = _chain(APPROVAL_PENDING)
        approval.apply_decision(chain, approver_id=1, decision=APPROVAL_APPROVED)
        assert chain[0]["status"] == APPROVAL_PENDING

    def test_apply_decision_requires_pending_entry(self):
        with pytest.raises(AuthorizationError):
            approval.apply_decision(_chain(APPROVAL_PENDING), approver_id=99, decision=APPROVAL_APPROVED)

    def test_parse_decision(self):
        assert approval.parse_decision("Approve") == APPROVAL_APPROVED
        assert approval.parse_decision("reject") == APPROVAL_REJECTED
        with pytest.raises(ValidationError):
            approval.parse_decision("maybe")


# =============================================================================
# CHAIN RESOLUTION
# =============================================================================


class TestTaskChains:

    def test_mso_chain_is_accountant_msm_bm(self, roster):
        task = task_service.create_task(
            submitter_id=roster.mso1.id, task_type="Deposit Mobilization", account_number="1001", amount=500
        )
        assert [e["approver_id"] for e in task.approval_chain] == [roster.accountant.id, roster.msm.id, roster.bm.id]
        assert task.approval_status == APPROVAL_PENDING
        assert task.branch_id == roster.branch.id

    def test_accountant_chain_is_msm_bm(self, roster):
        task = task_service.create_task(
            submitter_id=roster.accountant.id, task_type="New Customer", account_number="1002"
        )
        assert [e["approver_id"] for e in task.approval_chain] == [roster.msm.id, roster.bm.id]

    def test_empty_seats_are_omitted(self, roster):
        task = task_service.create_task(
            submitter_id=roster.other_mso.id, task_type="New Customer", account_number="2001"
        )
        assert [e["approver_id"] for e in task.approval_chain] == [roster.other_bm.id]

    def test_auditor_task_with_no_chain_stays_pending(self, roster):
        task = task_service.create_task(
            submitter_id=roster.auditor.id, task_type="New Customer", account_number="1003"
        )
        assert task.approval_chain == []
        assert task.approval_status == APPROVAL_PENDING

    def test_empty_chain_auto_approve_option(self, app, roster, monkeypatch):
        monkeypatch.setitem(app.config, "EMPTY_CHAIN_AUTO_APPROVE", True)
        task = task_service.create_task(
            submitter_id=roster.auditor.id, task_type="New Customer", account_number="1003"
        )
        assert task.approval_status == APPROVAL_APPROVED


# =============================================================================
# SUBMISSION RULES
# =============================================================================


class TestTaskSubmission:

    @pytest.mark.parametrize("seat", ["bm", "msm", "admin", "area_manager"])
    def test_non_submitting_positions_rejected(self, roster, seat):
        with pytest.raises(AuthorizationError):
            task_service.create_task(
                submitter_id=getattr(roster, seat).id, task_type="New Customer", account_number="1004"
            )

    def test_negative_amount_rejected(self, roster):
        with pytest.raises(ValidationError):
            task_service.create_task(
                submitter_id=roster.mso1.id, task_type="Loan Follow-up", account_number="1005", amount=-1
            )

    def test_unknown_task_type_rejected(self, roster):
        with pytest.raises(ValidationError):
            task_service.create_task(submitter_id=roster.mso1.id, task_type="Coffee Run", account_number="1005")

    def test_amount_and_date_stored(self, roster):
        task = task_service.create_task(
            submitter_id=roster.mso1.id,
            task_type="Loan Follow-up",
            account_number="1005",
            amount="1,250.50",
            task_date="2025-10-01",
        )
        assert task.amount == Decimal("1250.50")
        assert task.task_date.isoformat() == "2025-10-01"

    def test_mapping_status_frozen_at_creation(self, roster):
        mapping_service.create_mapping(account_number="M-1", staff_id=roster.mso1.id, balance=1000)
        mapping_service.create_mapping(account_number="M-2", staff_id=roster.mso2.id, balance=1000)

        mine = task_service.create_task(submitter_id=roster.mso1.id, task_type="New Customer", account_number="M-1")
        other = task_service.create_task(submitter_id=roster.mso1.id, task_type="New Customer", account_number="M-2")
        unmapped = task_service.create_task(submitter_id=roster.mso1.id, task_type="New Customer", account_number="M-3")

        assert (mine.mapping_status, mine.can_count_for_kpi) == (MAPPING_MAPPED_TO_YOU, True)
        assert (other.mapping_status, other.can_count_for_kpi) == (MAPPING_MAPPED_TO_OTHER, False)
        assert (unmapped.mapping_status, unmapped.can_count_for_kpi) == (MAPPING_UNMAPPED, False)

    def test_small_balance_does_not_count(self, roster):
        mapping_service.create_mapping(account_number="M-4", staff_id=roster.mso1.id, balance=499.99)
        task = task_service.create_task(submitter_id=roster.mso1.id, task_type="New Customer", account_number="M-4")
        assert task.mapping_status == MAPPING_MAPPED_TO_YOU
        assert task.can_count_for_kpi is False


# =============================================================================
# DECISIONS
# =============================================================================


class TestTaskDecisions:

    @pytest.fixture
    def task(self, roster):
        return task_service.create_task(
            submitter_id=roster.mso1.id, task_type="Deposit Mobilization", account_number="1001", amount=500
        )

    def test_full_chain_approves(self, roster, task, approve_all):
        task = approve_all(task)
        assert task.approval_status == APPROVAL_APPROVED
        assert all(e["decided_at"] for e in task.approval_chain)

    def test_bm_first_still_pending(self, roster, task):
        task = task_service.decide_task(task.id, approver_id=roster.bm.id, decision="approve")
        assert task.approval_status == APPROVAL_PENDING
        task = task_service.decide_task(task.id, approver_id=roster.accountant.id, decision="approve")
        task = task_service.decide_task(task.id, approver_id=roster.msm.id, decision="approve")
        assert task.approval_status == APPROVAL_APPROVED

    def test_single_rejection_rejects(self, roster, task):
        task = task_service.decide_task(task.id, approver_id=roster.msm.id, decision="reject", comments="wrong account")
        assert task.approval_status == APPROVAL_REJECTED
        entry = next(e for e in task.approval_chain if e["approver_id"] == roster.msm.id)
        assert entry["comments"] == "wrong account"

    def test_terminal_task_is_frozen(self, roster, task):
        task_service.decide_task(task.id, approver_id=roster.msm.id, decision="reject")
        with pytest.raises(ConflictError):
            task_service.decide_task(task.id, approver_id=roster.bm.id, decision="approve")

    def test_outsider_cannot_decide(self, roster, task):
        with pytest.raises(AuthorizationError):
            task_service.decide_task(task.id, approver_id=roster.mso2.id, decision="approve")

    def test_double_decision_rejected(self, roster, task):
        task_service.decide_task(task.id, approver_id=roster.accountant.id, decision="approve")
        with pytest.raises(AuthorizationError):
            task_service.decide_task(task.id, approver_id=roster.accountant.id, decision="approve")

    def test_decisions_are_audited(self, roster, task, approve_all):
        approve_all(task)
        events = db.session.query(AuditEvent).filter_by(entity_type="daily_task", entity_id=task.id).all()
        assert sorted(e.action for e in events) == ["APPROVE", "APPROVE", "APPROVE", "CREATE"]

    def test_pending_for_approver_listing(self, roster, task):
        assert [t.id for t in task_service.list_tasks(approver_id=roster.bm.id)] == [task.id]
        assert task_service.list_tasks(approver_id=roster.mso2.id) == []
        assert db.session.query(DailyTask).count() == 1
