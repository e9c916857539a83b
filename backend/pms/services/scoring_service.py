# Overview: KPI scoring: actuals per category from mappings and validated tasks, weighted to the 85-point share.

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..kpi import (
    CATEGORY_MEASURES,
    CATEGORY_WEIGHTS,
    KPI_SHARE,
    MEASURE_DEPOSIT_GROWTH,
    MEASURE_TASK_AMOUNT,
    MEASURE_TASK_COUNT,
    MIN_QUALIFYING_BALANCE,
    KpiCategory,
    parse_period,
)
from ..models import AccountMapping, DailyTask, StaffPlan
from ..models.mapping import MAPPING_STATUS_ACTIVE
from ..models.plans import STAFF_PLAN_STATUS_ACTIVE
from ..models.tasks import APPROVAL_APPROVED
from ..validation import NoPlanFound, round2
from . import baseline_service, org_service


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
ZERO = Decimal("0")


def qualifying_mappings(staff_id: int) -> list[AccountMapping]:
    """Accounts owned by the staff member that count toward deposit growth."""
    return (
        db.session.query(AccountMapping)
        .filter(
            AccountMapping.staff_id == staff_id,
            AccountMapping.status == MAPPING_STATUS_ACTIVE,
            AccountMapping.current_balance >= MIN_QUALIFYING_BALANCE,
            AccountMapping.active_status.is_(True),
        )
        .order_by(AccountMapping.id)
        .all()
    )


def deposit_growth(staff_id: int) -> Decimal:
    """
    Sum of per-account growth over the active baseline.

    Each account contributes max(0, current - baseline); a shrinking account
    adds nothing. An account with no record in the active baseline period
    grows from 0, whatever baseline an earlier period left on the mapping.
    """
    mappings = qualifying_mappings(staff_id)
    baselines = baseline_service.active_balances_for(m.account_number for m in mappings)
    growth = ZERO
    for mapping in mappings:
        record = baselines.get(mapping.account_number)
        baseline = Decimal(record.balance) if record is not None else ZERO
        delta = Decimal(mapping.current_balance or 0) - baseline
        if delta > 0:
            growth += delta
    return growth


def _validated_tasks(staff_id: int, task_type: str):
    return db.session.query(DailyTask).filter(
        DailyTask.submitted_by_id == staff_id,
        DailyTask.task_type == task_type,
        DailyTask.approval_status == APPROVAL_APPROVED,
        DailyTask.cbs_validated.is_(True),
    )


def actual_for(staff_id: int, kpi_category: str) -> Decimal:
    measure, task_type = CATEGORY_MEASURES[kpi_category]
    if measure == MEASURE_DEPOSIT_GROWTH:
        return deposit_growth(staff_id)
    if measure == MEASURE_TASK_COUNT:
        return Decimal(_validated_tasks(staff_id, task_type).count())
    if measure == MEASURE_TASK_AMOUNT:
        total = _validated_tasks(staff_id, task_type).with_entities(func.sum(DailyTask.amount)).scalar()
        return Decimal(total or 0)
    raise ValueError(f"No measure for category {kpi_category}")


def percent_of_target(actual: Decimal, target: Decimal) -> Decimal:
    if not target:
        return ZERO
    return round2(Decimal(actual) / Decimal(target) * HUNDRED)


def category_score(percent: Decimal, kpi_category: str) -> Decimal:
    return round2(percent / HUNDRED * CATEGORY_WEIGHTS[kpi_category])


def kpi_total(scores) -> Decimal:
    return round2(sum(scores, ZERO) / HUNDRED * KPI_SHARE)


def score(staff_id: int, period, *, branch_code: str | None = None) -> dict:
    """
    Score a staff member's active plans for a period.

    Every intermediate figure (percent, category score, total) is rounded to
    2 places half-up, so the total is reproducible from the category rows.
    Raises NoPlanFound when the staff member has no active plan.
    """
    staff = org_service.get_staff(staff_id)
    descriptor = parse_period(period)

    query = db.session.query(StaffPlan).filter(
        StaffPlan.staff_id == staff.id,
        StaffPlan.period == descriptor.label,
        StaffPlan.status == STAFF_PLAN_STATUS_ACTIVE,
    )
    if branch_code:
        query = query.filter(StaffPlan.branch_code == branch_code.upper())
    staff_plans = query.order_by(StaffPlan.id).all()
    if not staff_plans:
        raise NoPlanFound(f"No active staff plan for {staff.name} in {descriptor.label}")

    rows = []
    actuals: dict[str, Decimal] = {}
    for staff_plan in staff_plans:
        category = staff_plan.kpi_category
        if category not in actuals:
            actuals[category] = actual_for(staff.id, category)
        actual = actuals[category]
        target = Decimal(staff_plan.individual_target or 0)
        percent = percent_of_target(actual, target)
        rows.append({
            "staff_plan_id": staff_plan.id,
            "kpi_category": category,
            "kpi_category_label": KpiCategory.LABELS.get(category, category),
            "target": float(target),
            "actual": float(round2(actual)),
            "percent": float(percent),
            "weight": float(CATEGORY_WEIGHTS[category]),
            "score": category_score(percent, category),
        })

    total = kpi_total(row["score"] for row in rows)
    for row in rows:
        row["score"] = float(row["score"])

    logger.debug("Scored staff %s for %s: %s over %d plans", staff.id, descriptor.label, total, len(rows))
    return {
        "staff_id": staff.id,
        "period": descriptor.label,
        "category_scores": rows,
        "kpi_total_score": total,
    }
