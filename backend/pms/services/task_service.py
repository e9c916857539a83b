# Overview: Daily task submission and approval decisions.

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from flask import current_app

from ..extensions import db
from ..kpi import TaskType, task_type_from_display
from ..models import DailyTask
from ..models.tasks import APPROVAL_APPROVED, APPROVAL_STATUSES
from ..positions import Position, position_to_display
from ..validation import (
    AuthorizationError,
    NotFoundError,
    PMSError,
    ValidationError,
    require_text,
    round2,
    to_decimal,
    to_text,
)
from .concurrency import lock_for_update, run_with_retry
from . import approval, audit_service, mapping_service, org_service
from pms.time_utils import parse_date


logger = logging.getLogger(__name__)


def _empty_chain_approves() -> bool:
    return bool(current_app.config.get("EMPTY_CHAIN_AUTO_APPROVE", False))


def create_task(
    *,
    submitter_id: int,
    task_type: str,
    account_number: str,
    amount: Any = None,
    task_date: Any = None,
    customer_name: str | None = None,
    remarks: str | None = None,
) -> DailyTask:
    """
    Log a task for the submitter's branch.

    Only MSOs, Accountants and Auditors may log tasks. The approval chain is
    resolved from the submitter's position and the mapping status from the
    account registry, both frozen at creation.
    """
    submitter = org_service.get_staff(submitter_id)
    if not submitter.is_active:
        raise AuthorizationError("Inactive staff cannot log tasks")
    if submitter.position not in Position.TASK_SUBMITTERS:
        raise AuthorizationError(
            f"{position_to_display(submitter.position) or 'This role'} cannot log tasks; "
            "only MSO, Accountant and Auditor positions can"
        )
    if submitter.branch_id is None:
        raise ValidationError("Submitter is not assigned to a branch")

    kind = task_type_from_display(task_type)
    account = require_text(account_number, "account_number")
    value = to_decimal(amount, "amount")
    if value is None:
        value = 0
    if value < 0:
        raise ValidationError("amount must not be negative")
    try:
        day = parse_date(task_date) or date.today()
    except ValueError:
        raise ValidationError("task_date must be a date")

    def _op():
        mapping_status, can_count = mapping_service.classify(account, submitter.id)
        policy = approval.task_policy_for(submitter.position)
        chain = approval.resolve_chain(policy, submitter.branch_id, exclude_staff_id=submitter.id)

        task = DailyTask(
            task_type=kind,
            account_number=account,
            customer_name=to_text(customer_name),
            amount=round2(value),
            remarks=to_text(remarks),
            task_date=day,
            submitted_by_id=submitter.id,
            branch_id=submitter.branch_id,
            mapping_status=mapping_status,
            can_count_for_kpi=can_count,
            approval_policy=policy,
            approval_chain=chain,
            approval_status=approval.derive_status(chain, empty_chain_approves=_empty_chain_approves()),
        )
        db.session.add(task)
        db.session.flush()

        audit_service.record_event(
            action=audit_service.ACTION_CREATE,
            entity_type="daily_task",
            entity_id=task.id,
            entity_name=f"{TaskType.LABELS[kind]} {account}",
            actor_id=submitter.id,
            detail=f"Logged {TaskType.LABELS[kind]} for {account} ({task.amount}), {len(chain)} approvers",
        )
        db.session.commit()
        return task

    task = run_with_retry(_op)
    if not task.approval_chain:
        logger.info("Task %s by staff %s has no approvers in branch %s", task.id, submitter.id, submitter.branch_id)
    return task


def decide_task(task_id: int, *, approver_id: int, decision: str, comments: str | None = None) -> DailyTask:
    """
    Record an approver's decision and re-derive the task status.

    The task row is locked (and version-checked) so two approvers acting on
    the same task at once cannot both recompute the status from a stale chain.
    """
    outcome = approval.parse_decision(decision)

    def _op():
        task = lock_for_update(db.session.query(DailyTask).filter_by(id=task_id)).first()
        if not task:
            raise NotFoundError(f"Task {task_id} not found")

        status = approval.decide(
            task,
            approver_id=approver_id,
            decision=outcome,
            comments=to_text(comments),
            empty_chain_approves=_empty_chain_approves(),
        )
        audit_service.record_event(
            action=audit_service.ACTION_APPROVE if outcome == APPROVAL_APPROVED else audit_service.ACTION_REJECT,
            entity_type="daily_task",
            entity_id=task.id,
            entity_name=f"{TaskType.LABELS.get(task.task_type, task.task_type)} {task.account_number}",
            actor_id=approver_id,
            detail=f"{outcome.title()} by staff {approver_id}; task is now {status}",
        )
        db.session.commit()
        return task

    try:
        return run_with_retry(_op)
    except PMSError:
        db.session.rollback()
        raise


def get_task(task_id: int) -> DailyTask:
    task = db.session.get(DailyTask, task_id)
    if not task:
        raise NotFoundError(f"Task {task_id} not found")
    return task


def list_tasks(
    *,
    branch_id: int | None = None,
    submitted_by_id: int | None = None,
    approver_id: int | None = None,
    approval_status: str | None = None,
    task_type: str | None = None,
    task_date: Any = None,
    cbs_validated: bool | None = None,
) -> list[DailyTask]:
    query = db.session.query(DailyTask)
    if branch_id is not None:
        query = query.filter(DailyTask.branch_id == branch_id)
    if submitted_by_id is not None:
        query = query.filter(DailyTask.submitted_by_id == submitted_by_id)
    if approval_status:
        status = approval_status.upper().replace(" ", "_")
        if status not in APPROVAL_STATUSES:
            raise ValidationError(f"approval_status must be one of: {', '.join(APPROVAL_STATUSES)}")
        query = query.filter(DailyTask.approval_status == status)
    if task_type:
        query = query.filter(DailyTask.task_type == task_type_from_display(task_type))
    if task_date:
        try:
            query = query.filter(DailyTask.task_date == parse_date(task_date))
        except ValueError:
            raise ValidationError("task_date must be a date")
    if cbs_validated is not None:
        query = query.filter(DailyTask.cbs_validated.is_(cbs_validated))

    tasks = query.order_by(DailyTask.task_date.desc(), DailyTask.id.desc()).all()
    if approver_id is not None:
        # chain membership lives in JSON; filter in Python for portability
        tasks = [
            t for t in tasks
            if any(e.get("approver_id") == approver_id for e in (t.approval_chain or []))
        ]
    return tasks
