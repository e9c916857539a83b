"""
Behavioral evaluation and performance score tests.

Verifies:
- Competency normalisation and the 15-point behavioral total
- Evaluator eligibility and role-derived approval chains
- Finalize: KPI total + approved behavioral score, rating, upsert per period
- Locking freezes the score; evaluation approval locks and finalizes
"""

from decimal import Decimal

import pytest

from pms.extensions import db
from pms.kpi import COMPETENCY_WEIGHTS, Rating
from pms.models import AccountMapping, BehavioralEvaluation, PerformanceScore
from pms.models.performance import SCORE_STATUS_CALCULATED, SCORE_STATUS_LOCKED
from pms.models.tasks import APPROVAL_APPROVED, APPROVAL_PENDING, APPROVAL_REJECTED
from pms.services import baseline_service, behavioral_service, performance_service, plan_service
from pms.validation import AuthorizationError, ConflictError, NoPlanFound, NotFoundError, ValidationError


ALL_FIVES = {name: 5 for name in COMPETENCY_WEIGHTS}
ALL_THREES = {name: 3 for name in COMPETENCY_WEIGHTS}


@pytest.fixture
def scored_mso(roster, deposit_shares):
    """mso1 carries 900 for Q4-2025 and has grown 450: KPI total 10.63."""
    plan_service.create_plan(
        branch_code="ATOTE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
    )
    baseline_service.import_baselines([{"account_id": "7001", "june_balance": 1000}], baseline_period="2025-H1")
    db.session.add(AccountMapping(
        account_number="7001",
        staff_id=roster.mso1.id,
        branch_id=roster.branch.id,
        current_balance=Decimal("1450"),
        active_status=True,
    ))
    db.session.commit()
    return roster.mso1


# =============================================================================
# COMPETENCIES
# =============================================================================


class TestCompetencies:

    def test_all_fives_is_full_share(self):
        scored = behavioral_service.normalize_competencies(ALL_FIVES)
        assert behavioral_service.behavioral_total(scored) == Decimal("15.00")

    def test_all_threes(self):
        scored = behavioral_service.normalize_competencies(ALL_THREES)
        assert behavioral_service.behavioral_total(scored) == Decimal("9.00")

    def test_missing_competencies_contribute_nothing(self):
        scored = behavioral_service.normalize_competencies({"Communication": 5})
        assert behavioral_service.behavioral_total(scored) == Decimal("2.25")

    def test_weight_override(self):
        scored = behavioral_service.normalize_competencies({"communication": {"score": 5, "weight": 100}})
        assert scored["communication"] == {"score": 5.0, "weight": 100.0}
        assert behavioral_service.behavioral_total(scored) == Decimal("15.00")

    def test_names_are_normalised(self):
        scored = behavioral_service.normalize_competencies({"Problem Solving": 4, "customer-focus": 4})
        assert set(scored) == {"problem_solving", "customer_focus"}

    def test_weights_over_100_rejected(self):
        with pytest.raises(ValidationError):
            behavioral_service.normalize_competencies({
                "communication": {"score": 5, "weight": 60},
                "teamwork": {"score": 5, "weight": 50},
            })

    @pytest.mark.parametrize("score", [0, 6, "n/a"])
    def test_score_out_of_range_rejected(self, score):
        with pytest.raises(ValidationError):
            behavioral_service.normalize_competencies({"communication": score})

    def test_unknown_competency_rejected(self):
        with pytest.raises(ValidationError):
            behavioral_service.normalize_competencies({"punctuality": 4})

    def test_empty_rejected(self):
        with pytest.raises(ValidationError):
            behavioral_service.normalize_competencies({})


# =============================================================================
# EVALUATION SUBMISSION
# =============================================================================


class TestEvaluationSubmission:

    def test_line_manager_goes_to_branch_manager(self, roster):
        evaluation = behavioral_service.create_evaluation(
            evaluator_id=roster.msm.id, staff_id=roster.mso1.id, period="Q4-2025", competencies=ALL_THREES
        )
        assert [e["approver_id"] for e in evaluation.approval_chain] == [roster.bm.id]
        assert evaluation.approval_status == APPROVAL_PENDING
        assert evaluation.total_score == Decimal("9.00")
        assert evaluation.period == "Q4-2025"

    def test_sub_team_leader_goes_to_branch_manager(self, roster):
        evaluation = behavioral_service.create_evaluation(
            evaluator_id=roster.mso3.id, staff_id=roster.mso2.id, period="Q4-2025", competencies=ALL_THREES
        )
        assert [e["approver_id"] for e in evaluation.approval_chain] == [roster.bm.id]

    def test_branch_manager_goes_to_area_manager(self, roster):
        evaluation = behavioral_service.create_evaluation(
            evaluator_id=roster.bm.id, staff_id=roster.msm.id, period="Q4-2025", competencies=ALL_THREES
        )
        assert [e["approver_id"] for e in evaluation.approval_chain] == [roster.area_manager.id]

    def test_plain_staff_cannot_evaluate(self, roster):
        with pytest.raises(AuthorizationError):
            behavioral_service.create_evaluation(
                evaluator_id=roster.mso1.id, staff_id=roster.mso2.id, period="Q4-2025", competencies=ALL_THREES
            )

    def test_self_evaluation_rejected(self, roster):
        with pytest.raises(ValidationError):
            behavioral_service.create_evaluation(
                evaluator_id=roster.msm.id, staff_id=roster.msm.id, period="Q4-2025", competencies=ALL_THREES
            )

    def test_other_branch_rejected(self, roster):
        with pytest.raises(AuthorizationError):
            behavioral_service.create_evaluation(
                evaluator_id=roster.other_bm.id, staff_id=roster.mso1.id, period="Q4-2025", competencies=ALL_THREES
            )

    def test_listing_by_period_alias(self, roster):
        behavioral_service.create_evaluation(
            evaluator_id=roster.msm.id, staff_id=roster.mso1.id, period="Q4-2025", competencies=ALL_THREES
        )
        assert len(behavioral_service.list_evaluations(staff_id=roster.mso1.id, period="2025-Q4")) == 1
        assert behavioral_service.list_evaluations(period="Q3-2025") == []
        with pytest.raises(ValidationError):
            behavioral_service.list_evaluations(approval_status="maybe")


# =============================================================================
# FINALIZE AND LOCK
# =============================================================================


class TestFinalize:

    def test_kpi_only_score(self, scored_mso):
        record = performance_service.finalize(scored_mso.id, "Q4-2025")
        assert record.kpi_total_score == Decimal("10.63")
        assert record.behavioral_score == Decimal("0")
        assert record.final_score == Decimal("10.63")
        assert record.rating == Rating.UNSATISFACTORY
        assert record.status == SCORE_STATUS_CALCULATED
        assert record.is_locked is False
        assert record.kpi_scores["categories"][0]["score"] == 12.5

    def test_refinalize_updates_same_row(self, scored_mso):
        first = performance_service.finalize(scored_mso.id, "Q4-2025")
        mapping = db.session.query(AccountMapping).filter_by(account_number="7001").one()
        mapping.current_balance = Decimal("1900")
        db.session.commit()

        second = performance_service.finalize(scored_mso.id, "2025-Q4")
        assert second.id == first.id
        assert second.final_score == Decimal("21.25")
        assert db.session.query(PerformanceScore).count() == 1

    def test_transferred_staff_scored_on_current_branch(self, roster, scored_mso):
        scored_mso.branch_id = roster.other_branch.id
        db.session.commit()
        # BOLE pool: other_mso and the transferred mso1 share 2700
        plan_service.create_plan(
            branch_code="BOLE", kpi_category="Deposit Mobilization", period="Q4-2025", target_value=9000
        )

        record = performance_service.finalize(scored_mso.id, "Q4-2025")
        categories = record.kpi_scores["categories"]
        assert len(categories) == 1
        assert categories[0]["target"] == 1350.0
        assert record.branch_id == roster.other_branch.id

    def test_no_plan_raises(self, roster):
        with pytest.raises(NoPlanFound):
            performance_service.finalize(roster.mso1.id, "Q4-2025")
        assert db.session.query(PerformanceScore).count() == 0

    def test_locked_score_is_frozen(self, scored_mso):
        record = performance_service.finalize(scored_mso.id, "Q4-2025")
        locked = performance_service.lock_score(record.id)
        assert locked.status == SCORE_STATUS_LOCKED
        with pytest.raises(ConflictError):
            performance_service.finalize(scored_mso.id, "Q4-2025")
        with pytest.raises(ConflictError):
            performance_service.lock_score(record.id)

    def test_lookup(self, scored_mso):
        record = performance_service.finalize(scored_mso.id, "Q4-2025")
        assert performance_service.get_score_for(scored_mso.id, "2025-Q4").id == record.id
        assert [s.id for s in performance_service.list_scores(locked=False)] == [record.id]
        assert performance_service.list_scores(locked=True) == []
        with pytest.raises(NotFoundError):
            performance_service.get_score_for(scored_mso.id, "Q3-2025")


# =============================================================================
# EVALUATION APPROVAL
# =============================================================================


class TestEvaluationApproval:

    def test_approval_locks_and_finalizes(self, roster, scored_mso):
        evaluation = behavioral_service.create_evaluation(
            evaluator_id=roster.msm.id, staff_id=scored_mso.id, period="Q4-2025", competencies=ALL_FIVES
        )
        evaluation = behavioral_service.decide_evaluation(evaluation.id, approver_id=roster.bm.id, decision="approve")

        assert evaluation.approval_status == APPROVAL_APPROVED
        evaluation = db.session.get(BehavioralEvaluation, evaluation.id)
        assert evaluation.is_locked is True

        record = performance_service.get_score_for(scored_mso.id, "Q4-2025")
        assert record.behavioral_score == Decimal("15.00")
        assert record.final_score == Decimal("25.63")
        assert record.behavioral_evaluation_id == evaluation.id
        assert record.is_locked is True

    def test_approval_without_plan_keeps_evaluation(self, roster):
        evaluation = behavioral_service.create_evaluation(
            evaluator_id=roster.msm.id, staff_id=roster.mso2.id, period="Q4-2025", competencies=ALL_FIVES
        )
        behavioral_service.decide_evaluation(evaluation.id, approver_id=roster.bm.id, decision="approve")

        evaluation = db.session.get(BehavioralEvaluation, evaluation.id)
        assert evaluation.approval_status == APPROVAL_APPROVED
        assert evaluation.is_locked is True
        assert db.session.query(PerformanceScore).count() == 0

    def test_rejection_leaves_score_alone(self, roster, scored_mso):
        evaluation = behavioral_service.create_evaluation(
            evaluator_id=roster.msm.id, staff_id=scored_mso.id, period="Q4-2025", competencies=ALL_FIVES
        )
        evaluation = behavioral_service.decide_evaluation(evaluation.id, approver_id=roster.bm.id, decision="reject")
        assert evaluation.approval_status == APPROVAL_REJECTED
        assert evaluation.is_locked is False
        assert db.session.query(PerformanceScore).count() == 0

    def test_only_chain_members_decide(self, roster):
        evaluation = behavioral_service.create_evaluation(
            evaluator_id=roster.msm.id, staff_id=roster.mso1.id, period="Q4-2025", competencies=ALL_THREES
        )
        with pytest.raises(AuthorizationError):
            behavioral_service.decide_evaluation(evaluation.id, approver_id=roster.area_manager.id, decision="approve")
