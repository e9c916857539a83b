# Overview: Behavioral evaluations: competency scoring, role-derived approval and score locking.

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from flask import current_app

from ..extensions import db
from ..kpi import BEHAVIORAL_SHARE, COMPETENCY_MAX_SCORE, COMPETENCY_MIN_SCORE, COMPETENCY_WEIGHTS, parse_period
from ..models import BehavioralEvaluation
from ..models.tasks import APPROVAL_APPROVED, APPROVAL_STATUSES
from ..positions import Role
from ..validation import (
    AuthorizationError,
    ConflictError,
    NoPlanFound,
    NotFoundError,
    PMSError,
    ValidationError,
    round2,
    to_decimal,
    to_text,
)
from .concurrency import lock_for_update, run_with_retry
from . import approval, audit_service, org_service, performance_service
from pms.time_utils import utcnow


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
EVALUATOR_ROLES = (Role.SUB_TEAM_LEADER, Role.LINE_MANAGER, Role.BRANCH_MANAGER)


def normalize_competencies(raw: Any) -> dict[str, dict]:
    """
    Accept {"communication": 4, ...} or {"communication": {"score": 4, "weight": 15}, ...}.

    Names are matched case-insensitively with spaces/dashes as underscores.
    Weights default to the standard competency weights. Competencies left out
    contribute nothing.
    """
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("competencies must be a non-empty object")

    result: dict[str, dict] = {}
    for key, value in raw.items():
        name = str(key).strip().lower().replace(" ", "_").replace("-", "_")
        if name not in COMPETENCY_WEIGHTS:
            raise ValidationError(f"Unknown competency: {key}")
        if isinstance(value, dict):
            score = to_decimal(value.get("score"), f"{key} score")
            weight = to_decimal(value.get("weight"), f"{key} weight")
        else:
            score = to_decimal(value, f"{key} score")
            weight = None
        if score is None or not (COMPETENCY_MIN_SCORE <= score <= COMPETENCY_MAX_SCORE):
            raise ValidationError(f"{key} score must be between {COMPETENCY_MIN_SCORE} and {COMPETENCY_MAX_SCORE}")
        if weight is None:
            weight = COMPETENCY_WEIGHTS[name]
        if weight < 0 or weight > HUNDRED:
            raise ValidationError(f"{key} weight must be between 0 and 100")
        result[name] = {"score": float(score), "weight": float(weight)}

    total_weight = sum(Decimal(str(c["weight"])) for c in result.values())
    if total_weight > HUNDRED:
        raise ValidationError(f"Competency weights total {total_weight}, more than 100")
    return result


def behavioral_total(competencies: dict[str, dict]) -> Decimal:
    """Weighted competency score scaled to the 15-point behavioral share."""
    weighted = Decimal("0")
    for entry in competencies.values():
        normalized = Decimal(str(entry["score"])) / COMPETENCY_MAX_SCORE * HUNDRED
        weighted += normalized * Decimal(str(entry["weight"])) / HUNDRED
    return round2(weighted / HUNDRED * BEHAVIORAL_SHARE)


def create_evaluation(
    *,
    evaluator_id: int,
    staff_id: int,
    period: Any,
    competencies: Any,
    comments: str | None = None,
) -> BehavioralEvaluation:
    """
    Record an evaluation of `staff_id` by `evaluator_id`.

    The approval chain follows the evaluator's role: sub-team leaders and
    line managers go to their Branch Manager, branch managers to the Area
    Manager of their branch.
    """
    evaluator = org_service.get_staff(evaluator_id)
    staff = org_service.get_staff(staff_id)
    if not evaluator.is_active:
        raise AuthorizationError("Inactive staff cannot submit evaluations")
    if evaluator.role not in EVALUATOR_ROLES:
        raise AuthorizationError("Only sub-team leaders, line managers and branch managers can submit evaluations")
    if evaluator.id == staff.id:
        raise ValidationError("Staff cannot evaluate themselves")
    if evaluator.branch_id is None or staff.branch_id != evaluator.branch_id:
        raise AuthorizationError("Evaluations are limited to staff of the evaluator's branch")

    descriptor = parse_period(period)
    scored = normalize_competencies(competencies)

    def _op():
        policy = approval.evaluation_policy_for(evaluator.role)
        chain = approval.resolve_chain(policy, evaluator.branch_id, exclude_staff_id=evaluator.id)
        evaluation = BehavioralEvaluation(
            staff_id=staff.id,
            evaluator_id=evaluator.id,
            branch_id=staff.branch_id,
            period=descriptor.label,
            period_type=descriptor.period_type,
            year=descriptor.year,
            period_index=descriptor.index,
            competencies=scored,
            total_score=behavioral_total(scored),
            comments=to_text(comments),
            approval_policy=policy,
            approval_chain=chain,
            approval_status=approval.derive_status(
                chain, empty_chain_approves=current_app.config.get("EMPTY_CHAIN_AUTO_APPROVE", False)
            ),
        )
        db.session.add(evaluation)
        db.session.flush()

        audit_service.record_event(
            action=audit_service.ACTION_CREATE,
            entity_type="behavioral_evaluation",
            entity_id=evaluation.id,
            entity_name=f"{staff.employee_id}:{descriptor.label}",
            actor_id=evaluator.id,
            detail=f"Behavioral evaluation of {staff.name} for {descriptor.label}: {evaluation.total_score}",
        )
        db.session.commit()
        return evaluation

    evaluation = run_with_retry(_op)
    if evaluation.approval_status == APPROVAL_APPROVED:
        _lock_and_finalize(evaluation.id, actor_id=evaluator.id)
    return evaluation


def _lock_and_finalize(evaluation_id: int, *, actor_id: int | None) -> None:
    """
    Lock an approved evaluation and finalize (and lock) the staff score.

    A missing staff plan or an already locked score leaves the evaluation
    approved and locked; the score is simply not written.
    """
    evaluation = db.session.get(BehavioralEvaluation, evaluation_id)
    if not evaluation.is_locked:
        evaluation.is_locked = True
        evaluation.locked_at = utcnow()
        db.session.commit()
    try:
        performance_service.finalize(evaluation.staff_id, evaluation.period, actor_id=actor_id, lock=True)
    except NoPlanFound as e:
        logger.info("Evaluation %s approved without a score: %s", evaluation.id, e.message)
    except ConflictError as e:
        logger.warning("Evaluation %s approved but score not updated: %s", evaluation.id, e.message)


def decide_evaluation(
    evaluation_id: int,
    *,
    approver_id: int,
    decision: str,
    comments: str | None = None,
) -> BehavioralEvaluation:
    outcome = approval.parse_decision(decision)

    def _op():
        evaluation = lock_for_update(
            db.session.query(BehavioralEvaluation).filter_by(id=evaluation_id)
        ).first()
        if not evaluation:
            raise NotFoundError(f"Behavioral evaluation {evaluation_id} not found")

        status = approval.decide(
            evaluation,
            approver_id=approver_id,
            decision=outcome,
            comments=to_text(comments),
            empty_chain_approves=current_app.config.get("EMPTY_CHAIN_AUTO_APPROVE", False),
        )
        audit_service.record_event(
            action=audit_service.ACTION_APPROVE if outcome == APPROVAL_APPROVED else audit_service.ACTION_REJECT,
            entity_type="behavioral_evaluation",
            entity_id=evaluation.id,
            entity_name=f"{evaluation.staff_id}:{evaluation.period}",
            actor_id=approver_id,
            detail=f"{outcome.title()} by staff {approver_id}; evaluation is now {status}",
        )
        db.session.commit()
        return evaluation

    try:
        evaluation = run_with_retry(_op)
    except PMSError:
        db.session.rollback()
        raise

    if evaluation.approval_status == APPROVAL_APPROVED:
        _lock_and_finalize(evaluation.id, actor_id=approver_id)
    return evaluation


def get_evaluation(evaluation_id: int) -> BehavioralEvaluation:
    evaluation = db.session.get(BehavioralEvaluation, evaluation_id)
    if not evaluation:
        raise NotFoundError(f"Behavioral evaluation {evaluation_id} not found")
    return evaluation


def list_evaluations(
    *,
    staff_id: int | None = None,
    evaluator_id: int | None = None,
    branch_id: int | None = None,
    period: Any = None,
    approval_status: str | None = None,
) -> list[BehavioralEvaluation]:
    query = db.session.query(BehavioralEvaluation)
    if staff_id is not None:
        query = query.filter(BehavioralEvaluation.staff_id == staff_id)
    if evaluator_id is not None:
        query = query.filter(BehavioralEvaluation.evaluator_id == evaluator_id)
    if branch_id is not None:
        query = query.filter(BehavioralEvaluation.branch_id == branch_id)
    if period:
        descriptor = parse_period(period)
        query = query.filter(
            BehavioralEvaluation.period_type == descriptor.period_type,
            BehavioralEvaluation.year == descriptor.year,
            BehavioralEvaluation.period_index == descriptor.index,
        )
    if approval_status:
        status = approval_status.upper()
        if status not in APPROVAL_STATUSES:
            raise ValidationError(f"approval_status must be one of: {', '.join(APPROVAL_STATUSES)}")
        query = query.filter(BehavioralEvaluation.approval_status == status)
    return query.order_by(BehavioralEvaluation.id.desc()).all()
