# Overview: Performance score aggregation: KPI total plus approved behavioral score, rating and locking.

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..kpi import parse_period, rating_for
from ..models import BehavioralEvaluation, PerformanceScore
from ..models.performance import SCORE_STATUS_CALCULATED, SCORE_STATUS_LOCKED
from ..models.tasks import APPROVAL_APPROVED
from ..validation import ConflictError, NotFoundError, PMSError, round2
from .concurrency import lock_for_update, run_with_retry
from . import audit_service, org_service, scoring_service
from pms.time_utils import utcnow


logger = logging.getLogger(__name__)


def approved_evaluation(staff_id: int, descriptor) -> BehavioralEvaluation | None:
    """Most recent approved behavioral evaluation of the staff member for the period."""
    return (
        db.session.query(BehavioralEvaluation)
        .filter(
            BehavioralEvaluation.staff_id == staff_id,
            BehavioralEvaluation.period_type == descriptor.period_type,
            BehavioralEvaluation.year == descriptor.year,
            BehavioralEvaluation.period_index == descriptor.index,
            BehavioralEvaluation.approval_status == APPROVAL_APPROVED,
        )
        .order_by(BehavioralEvaluation.id.desc())
        .first()
    )


def _find_score(staff_id: int, descriptor, *, for_update: bool = False) -> PerformanceScore | None:
    query = db.session.query(PerformanceScore).filter(
        PerformanceScore.staff_id == staff_id,
        PerformanceScore.period_type == descriptor.period_type,
        PerformanceScore.year == descriptor.year,
        PerformanceScore.period_index == descriptor.index,
    )
    if for_update:
        query = lock_for_update(query)
    return query.first()


def finalize(staff_id: int, period, *, actor_id: int | None = None, lock: bool = False) -> PerformanceScore:
    """
    Compute and upsert the staff member's score for a period.

    final = KPI total (out of 85) + behavioral score (out of 15, 0 without an
    approved evaluation). A locked score is never recomputed: ConflictError.
    With lock=True the stored score is locked in the same transaction.
    """
    staff = org_service.get_staff(staff_id)
    descriptor = parse_period(period)

    def _op():
        existing = _find_score(staff.id, descriptor, for_update=True)
        if existing is not None and existing.is_locked:
            raise ConflictError(f"Performance score for {staff.name} in {descriptor.label} is locked")

        branch_code = staff.branch.code if staff.branch is not None else None
        kpi = scoring_service.score(staff.id, descriptor.label, branch_code=branch_code)
        evaluation = approved_evaluation(staff.id, descriptor)
        behavioral = Decimal(evaluation.total_score) if evaluation is not None else Decimal("0")
        final = round2(kpi["kpi_total_score"] + behavioral)

        record = existing or PerformanceScore(
            staff_id=staff.id,
            period_type=descriptor.period_type,
            year=descriptor.year,
            period_index=descriptor.index,
        )
        record.branch_id = staff.branch_id
        record.period = descriptor.label
        record.kpi_scores = {
            "categories": kpi["category_scores"],
            "kpi_total_score": float(kpi["kpi_total_score"]),
        }
        record.kpi_total_score = kpi["kpi_total_score"]
        record.behavioral_score = round2(behavioral)
        record.behavioral_evaluation_id = evaluation.id if evaluation is not None else None
        record.final_score = final
        record.rating = rating_for(final)
        record.status = SCORE_STATUS_CALCULATED
        record.calculated_by_id = actor_id
        record.calculated_at = utcnow()
        if lock:
            record.is_locked = True
            record.locked_at = utcnow()
            record.status = SCORE_STATUS_LOCKED
        if existing is None:
            db.session.add(record)
        db.session.flush()

        audit_service.record_event(
            action=audit_service.ACTION_CALCULATE,
            entity_type="performance_score",
            entity_id=record.id,
            entity_name=f"{staff.employee_id}:{descriptor.label}",
            actor_id=actor_id,
            detail=(
                f"Final score {record.final_score} ({record.rating}) for {staff.name} in {descriptor.label}"
                + (", locked" if lock else "")
            ),
        )
        db.session.commit()
        return record

    try:
        return run_with_retry(_op)
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Performance score for {staff.name} in {descriptor.label} was written concurrently")
    except PMSError:
        db.session.rollback()
        raise


def lock_score(score_id: int, *, actor_id: int | None = None) -> PerformanceScore:
    def _op():
        record = lock_for_update(db.session.query(PerformanceScore).filter_by(id=score_id)).first()
        if not record:
            raise NotFoundError(f"Performance score {score_id} not found")
        if record.is_locked:
            raise ConflictError(f"Performance score {score_id} is already locked")
        record.is_locked = True
        record.locked_at = utcnow()
        record.status = SCORE_STATUS_LOCKED
        audit_service.record_event(
            action=audit_service.ACTION_LOCK,
            entity_type="performance_score",
            entity_id=record.id,
            entity_name=f"{record.staff_id}:{record.period}",
            actor_id=actor_id,
            detail=f"Locked score {record.final_score} for {record.period}",
        )
        db.session.commit()
        return record

    try:
        return run_with_retry(_op)
    except PMSError:
        db.session.rollback()
        raise


def get_score(score_id: int) -> PerformanceScore:
    record = db.session.get(PerformanceScore, score_id)
    if not record:
        raise NotFoundError(f"Performance score {score_id} not found")
    return record


def get_score_for(staff_id: int, period) -> PerformanceScore:
    descriptor = parse_period(period)
    record = _find_score(staff_id, descriptor)
    if not record:
        raise NotFoundError(f"No performance score for staff {staff_id} in {descriptor.label}")
    return record


def list_scores(
    *,
    staff_id: int | None = None,
    branch_id: int | None = None,
    period=None,
    locked: bool | None = None,
) -> list[PerformanceScore]:
    query = db.session.query(PerformanceScore)
    if staff_id is not None:
        query = query.filter(PerformanceScore.staff_id == staff_id)
    if branch_id is not None:
        query = query.filter(PerformanceScore.branch_id == branch_id)
    if period:
        descriptor = parse_period(period)
        query = query.filter(
            PerformanceScore.period_type == descriptor.period_type,
            PerformanceScore.year == descriptor.year,
            PerformanceScore.period_index == descriptor.index,
        )
    if locked is not None:
        query = query.filter(PerformanceScore.is_locked.is_(locked))
    return query.order_by(PerformanceScore.year.desc(), PerformanceScore.period_index.desc(), PerformanceScore.staff_id).all()
