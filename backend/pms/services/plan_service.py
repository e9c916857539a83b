# Overview: Branch plans: creation with cascade, target updates, uploads and staff plan queries.

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from ..extensions import db
from ..kpi import KpiCategory, category_from_display, parse_plan_period
from ..models import Plan, StaffPlan
from ..models.plans import (
    PLAN_OPEN_STATUSES,
    PLAN_STATUS_ACTIVE,
    PLAN_STATUSES,
    STAFF_PLAN_STATUS_ACTIVE,
    STAFF_PLAN_STATUS_INACTIVE,
    TARGET_TYPE_INCREMENTAL,
)
from ..validation import (
    ConflictError,
    NotFoundError,
    PMSError,
    ValidationError,
    require_decimal,
    require_text,
    round2,
    to_text,
)
from .concurrency import lock_for_update, run_with_retry
from .import_schemas import PlanSchema
from . import audit_service, cascade_service, org_service


logger = logging.getLogger(__name__)


def _validate_target(value: Any) -> Decimal:
    target = require_decimal(value, "target_value")
    if target <= 0:
        raise ValidationError("target_value must be greater than 0")
    return round2(target)


def _validate_target_type(value: Any) -> str:
    target_type = (to_text(value) or TARGET_TYPE_INCREMENTAL).upper()
    if target_type != TARGET_TYPE_INCREMENTAL:
        raise ValidationError("target_type must be 'incremental'")
    return target_type


def _open_plan_exists(branch_code: str, kpi_category: str, period: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Plan.id).filter(
        Plan.branch_code == branch_code,
        Plan.kpi_category == kpi_category,
        Plan.period == period,
        Plan.status.in_(PLAN_OPEN_STATUSES),
    )
    if exclude_id is not None:
        query = query.filter(Plan.id != exclude_id)
    return query.first() is not None


def create_plan(
    *,
    branch_code: str,
    kpi_category: str,
    period: Any,
    target_value: Any,
    target_type: str | None = None,
    description: str | None = None,
    status: str = PLAN_STATUS_ACTIVE,
    actor_id: int | None = None,
) -> Plan:
    """
    Create a branch plan and cascade it to staff in one transaction.

    If the cascade fails (e.g. ConfigurationMissing) the plan is rolled back
    with it; no plan is left without staff targets.
    """
    branch = org_service.get_branch_by_code(require_text(branch_code, "branch_code"))
    category = category_from_display(kpi_category)
    descriptor = period if hasattr(period, "period_type") else parse_plan_period(period)
    target = _validate_target(target_value)
    target_kind = _validate_target_type(target_type)
    status = (status or PLAN_STATUS_ACTIVE).upper()
    if status not in PLAN_OPEN_STATUSES:
        raise ValidationError(f"New plans must be {' or '.join(PLAN_OPEN_STATUSES)}")

    def _op():
        if _open_plan_exists(branch.code, category, descriptor.label):
            raise ConflictError(
                f"An open {KpiCategory.LABELS[category]} plan for {branch.code} {descriptor.label} already exists"
            )

        plan = Plan(
            branch_code=branch.code,
            kpi_category=category,
            period=descriptor.label,
            period_type=descriptor.period_type,
            target_value=target,
            target_type=target_kind,
            status=status,
            description=to_text(description),
            created_by_id=actor_id,
        )
        db.session.add(plan)
        db.session.flush()

        staff_plans = cascade_service.cascade(plan)

        audit_service.record_event(
            action=audit_service.ACTION_CREATE,
            entity_type="plan",
            entity_id=plan.id,
            entity_name=f"{plan.branch_code}:{plan.kpi_category}:{plan.period}",
            actor_id=actor_id,
            detail=f"Created plan with target {plan.target_value}, cascaded to {len(staff_plans)} staff",
        )
        db.session.commit()
        return plan

    try:
        return run_with_retry(_op)
    except PMSError:
        db.session.rollback()
        raise


def update_plan(
    plan_id: int,
    *,
    target_value: Any = None,
    status: str | None = None,
    description: str | None = None,
    actor_id: int | None = None,
) -> Plan:
    """
    Patch a plan. A changed target re-cascades; moving the plan to a terminal
    status deactivates its staff plans. Terminal plans are read-only.
    """
    def _op():
        plan = lock_for_update(db.session.query(Plan).filter_by(id=plan_id)).first()
        if not plan:
            raise NotFoundError(f"Plan {plan_id} not found")
        if plan.status not in PLAN_OPEN_STATUSES:
            raise ConflictError(f"Plan {plan_id} is {plan.status} and can no longer be changed")

        changes: list[str] = []
        recascaded = False

        if description is not None:
            plan.description = to_text(description)
            changes.append("description")

        if target_value is not None:
            new_target = _validate_target(target_value)
            if new_target != Decimal(plan.target_value):
                changes.append(f"target {plan.target_value} -> {new_target}")
                plan.target_value = new_target
                db.session.flush()
                cascade_service.cascade(plan)
                recascaded = True

        if status is not None:
            new_status = status.upper()
            if new_status not in PLAN_STATUSES:
                raise ValidationError(f"status must be one of: {', '.join(PLAN_STATUSES)}")
            if new_status != plan.status:
                changes.append(f"status {plan.status} -> {new_status}")
                plan.status = new_status
                staff_status = STAFF_PLAN_STATUS_ACTIVE if new_status in PLAN_OPEN_STATUSES else STAFF_PLAN_STATUS_INACTIVE
                db.session.query(StaffPlan).filter(StaffPlan.plan_id == plan.id).update(
                    {StaffPlan.status: staff_status}, synchronize_session=False
                )
                db.session.expire(plan, ["staff_plans"])

        audit_service.record_event(
            action=audit_service.ACTION_CASCADE if recascaded else audit_service.ACTION_UPDATE,
            entity_type="plan",
            entity_id=plan.id,
            entity_name=f"{plan.branch_code}:{plan.kpi_category}:{plan.period}",
            actor_id=actor_id,
            detail="; ".join(changes) or "No changes",
        )
        db.session.commit()
        return plan

    try:
        return run_with_retry(_op)
    except PMSError:
        db.session.rollback()
        raise


def recascade_plan(plan_id: int, *, actor_id: int | None = None) -> list[StaffPlan]:
    """Rebuild the staff plans of an open plan from the current config and roster."""
    def _op():
        plan = lock_for_update(db.session.query(Plan).filter_by(id=plan_id)).first()
        if not plan:
            raise NotFoundError(f"Plan {plan_id} not found")
        if plan.status not in PLAN_OPEN_STATUSES:
            raise ConflictError(f"Plan {plan_id} is {plan.status} and cannot be re-cascaded")
        staff_plans = cascade_service.cascade(plan)
        audit_service.record_event(
            action=audit_service.ACTION_CASCADE,
            entity_type="plan",
            entity_id=plan.id,
            entity_name=f"{plan.branch_code}:{plan.kpi_category}:{plan.period}",
            actor_id=actor_id,
            detail=f"Re-cascaded to {len(staff_plans)} staff",
        )
        db.session.commit()
        return staff_plans

    try:
        return run_with_retry(_op)
    except PMSError:
        db.session.rollback()
        raise


def upload_plans(rows: list[dict[str, Any]], *, actor_id: int | None = None) -> dict:
    """
    Create plans from uploaded rows. Each row is its own transaction: a row
    that fails validation or cascade is reported and leaves no plan behind.
    """
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list")
    schema = PlanSchema()
    result = {"processed": len(rows), "created": 0, "errors": [], "plans": []}

    for index, raw in enumerate(rows):
        row_number = index + 2
        if not isinstance(raw, dict):
            result["errors"].append({"row": row_number, "errors": ["row must be an object"]})
            continue
        row, errors = schema.normalize_row(raw)
        if errors:
            result["errors"].append({"row": row_number, "errors": errors})
            continue
        try:
            plan = create_plan(
                branch_code=row["branch_code"],
                kpi_category=row["kpi_category"],
                period=row["period"],
                target_value=row["target_value"],
                target_type=row["target_type"],
                description=row["description"],
                actor_id=actor_id,
            )
        except PMSError as e:
            result["errors"].append({"row": row_number, "kind": e.kind, "errors": [e.message]})
            continue
        result["created"] += 1
        result["plans"].append(plan.id)

    if result["errors"]:
        logger.info("Plan upload: %d created, %d rows rejected", result["created"], len(result["errors"]))
    return result


def get_plan(plan_id: int) -> Plan:
    plan = db.session.get(Plan, plan_id)
    if not plan:
        raise NotFoundError(f"Plan {plan_id} not found")
    return plan


def list_plans(
    *,
    branch_code: str | None = None,
    kpi_category: str | None = None,
    period: str | None = None,
    status: str | None = None,
) -> list[Plan]:
    query = db.session.query(Plan)
    if branch_code:
        query = query.filter(Plan.branch_code == branch_code.upper())
    if kpi_category:
        query = query.filter(Plan.kpi_category == category_from_display(kpi_category))
    if period:
        query = query.filter(Plan.period == parse_plan_period(period).label)
    if status:
        query = query.filter(Plan.status == status.upper())
    return query.order_by(Plan.id).all()


def list_staff_plans(
    *,
    staff_id: int | None = None,
    branch_code: str | None = None,
    period: str | None = None,
    kpi_category: str | None = None,
    active_only: bool = True,
) -> list[StaffPlan]:
    query = db.session.query(StaffPlan)
    if staff_id is not None:
        query = query.filter(StaffPlan.staff_id == staff_id)
    if branch_code:
        query = query.filter(StaffPlan.branch_code == branch_code.upper())
    if period:
        query = query.filter(StaffPlan.period == parse_plan_period(period).label)
    if kpi_category:
        query = query.filter(StaffPlan.kpi_category == category_from_display(kpi_category))
    if active_only:
        query = query.filter(StaffPlan.status == STAFF_PLAN_STATUS_ACTIVE)
    return query.order_by(StaffPlan.plan_id, StaffPlan.staff_id).all()
