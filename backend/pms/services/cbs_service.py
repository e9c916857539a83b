# Overview: CBS reconciliation: balance refresh, product checks, auto-mapping and task matching.

"""
Reconciliation of a core banking (CBS) extract against approved tasks

One run covers one branch and one validation date and goes through fixed
steps, each committed on its own so a crash never leaves a step half-applied:

1. balance refresh     upsert AccountMapping per account: balance, last
                       transaction date, active flag (15-day window) and a
                       baseline backfill from the active baseline period
2. unmapped products   products with no active ProductKpiMapping row
3. auto-mapping        owner-less accounts (balance >= 500) go to the
                       submitter of an approved, unmapped task for the
                       account dated on the validation date
4. matching            one CBS row to at most one approved task of the day,
                       amounts equal within 0.01; discrepancies otherwise
5. finalize            totals, rate, Completed / Partial

If any step raises, the validation row is marked Failed and the error
re-raised. Steps already committed stay committed; re-uploading the same
extract is the recovery path.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from ..extensions import db
from ..kpi import ACTIVE_WINDOW_DAYS, AMOUNT_TOLERANCE, MIN_QUALIFYING_BALANCE
from ..models import AccountMapping, CBSDiscrepancy, CBSValidation, DailyTask
from ..models.cbs import (
    DISCREPANCY_AMOUNT_MISMATCH,
    DISCREPANCY_MISSING_IN_CBS,
    DISCREPANCY_MISSING_IN_PMS,
    VALIDATION_COMPLETED,
    VALIDATION_FAILED,
    VALIDATION_PARTIAL,
    VALIDATION_PROCESSING,
    VALIDATION_STATUSES,
)
from ..models.mapping import MAPPING_STATUS_ACTIVE
from ..models.tasks import APPROVAL_APPROVED, MAPPING_MAPPED_TO_YOU, MAPPING_UNMAPPED
from ..validation import NotFoundError, ValidationError, round2, to_text
from .import_schemas import CbsSchema
from . import audit_service, baseline_service, mapping_service, org_service, product_mapping_service
from pms.time_utils import parse_date, utcnow


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def _normalize_rows(rows: list[Any], validation_date: date) -> tuple[list[dict], list[dict]]:
    schema = CbsSchema(validation_date)
    valid: list[dict] = []
    errors: list[dict] = []
    for index, raw in enumerate(rows):
        row_number = index + 2
        if not isinstance(raw, dict):
            errors.append({"row": row_number, "errors": ["row must be an object"]})
            continue
        row, row_errors = schema.normalize_row(raw)
        if row_errors:
            errors.append({"row": row_number, "account_number": row.get("account_number"), "errors": row_errors})
            continue
        row["row"] = row_number
        valid.append(row)
    return valid, errors


def _refresh_balances(rows: list[dict], *, branch_id: int, validation_date: date) -> dict[str, AccountMapping]:
    """Step 1. Returns the refreshed mappings keyed by account number."""
    window_start = validation_date - timedelta(days=ACTIVE_WINDOW_DAYS)
    baselines = baseline_service.active_balances_for(r["account_number"] for r in rows)
    mappings: dict[str, AccountMapping] = {}

    for row in rows:
        account = row["account_number"]
        mapping = mappings.get(account) or mapping_service.get_by_account(account)
        if mapping is None:
            mapping = AccountMapping(
                account_number=account,
                branch_id=branch_id,
                status=MAPPING_STATUS_ACTIVE,
            )
            db.session.add(mapping)
        if mapping.branch_id is None:
            mapping.branch_id = branch_id
        if row["customer_name"] and not mapping.customer_name:
            mapping.customer_name = row["customer_name"]
        if row["product"]:
            mapping.product_name = row["product"]

        mapping.current_balance = round2(row["balance"])
        mapping.last_transaction_date = row["transaction_date"]
        mapping.active_status = row["transaction_date"] >= window_start

        if not mapping.baseline_balance:
            baseline = baselines.get(account)
            if baseline is not None:
                mapping.baseline_balance = baseline.balance
        mappings[account] = mapping

    db.session.flush()
    return mappings


def _unmapped_products(rows: list[dict]) -> list[dict]:
    """Step 2. Distinct accounts and their balance per product with no active KPI mapping."""
    known = product_mapping_service.active_product_names()
    per_product: dict[str, OrderedDict] = {}
    for row in rows:
        product = row["product"]
        if not product or product in known:
            continue
        # last row wins for an account listed twice under the same product
        per_product.setdefault(product, OrderedDict())[row["account_number"]] = row["balance"]

    return [
        {
            "product": product,
            "account_count": len(accounts),
            "total_balance": float(round2(sum(accounts.values(), Decimal("0")))),
        }
        for product, accounts in sorted(per_product.items())
    ]


def _auto_map(
    rows: list[dict],
    mappings: dict[str, AccountMapping],
    *,
    branch_id: int,
    validation_date: date,
    actor_id: int | None,
) -> int:
    """Step 3. Returns how many accounts were given an owner."""
    assigned = 0
    seen: set[str] = set()
    for row in rows:
        account = row["account_number"]
        if account in seen:
            continue
        seen.add(account)
        mapping = mappings.get(account)
        if mapping is None or mapping.staff_id is not None:
            continue
        if (mapping.current_balance or 0) < MIN_QUALIFYING_BALANCE:
            continue

        task = (
            db.session.query(DailyTask)
            .filter(
                DailyTask.account_number == account,
                DailyTask.branch_id == branch_id,
                DailyTask.task_date == validation_date,
                DailyTask.approval_status == APPROVAL_APPROVED,
                DailyTask.mapping_status == MAPPING_UNMAPPED,
            )
            .order_by(DailyTask.id)
            .first()
        )
        if task is None:
            continue
        if not mapping_service.assign_owner(
            mapping_id=mapping.id,
            expected_owner_id=None,
            new_owner_id=task.submitted_by_id,
            actor_id=actor_id,
            auto_balanced=False,
        ):
            logger.info("Account %s was claimed concurrently; auto-mapping skipped", account)
            continue
        task.mapping_status = MAPPING_MAPPED_TO_YOU
        task.can_count_for_kpi = True
        assigned += 1

    db.session.flush()
    return assigned


def _within_tolerance(cbs_amount: Decimal, task_amount: Decimal) -> bool:
    return abs(Decimal(cbs_amount) - Decimal(task_amount)) <= AMOUNT_TOLERANCE


def _match(rows: list[dict], validation: CBSValidation, *, branch_id: int, validation_date: date) -> int:
    """
    Step 4. Returns the matched count and adds discrepancies to the run.

    A task is consumed by its first matching row. A task already paired with
    an Amount_Mismatch is not reported again as Missing_in_CBS.
    """
    tasks = (
        db.session.query(DailyTask)
        .filter(
            DailyTask.branch_id == branch_id,
            DailyTask.task_date == validation_date,
            DailyTask.approval_status == APPROVAL_APPROVED,
        )
        .order_by(DailyTask.id)
        .all()
    )
    by_account: dict[str, list[DailyTask]] = {}
    for task in tasks:
        by_account.setdefault(task.account_number, []).append(task)

    matched_ids: set[int] = set()
    paired_ids: set[int] = set()
    matched = 0
    now = utcnow()

    for row in rows:
        account = row["account_number"]
        amount = row["amount"]
        candidates = by_account.get(account, [])
        if not candidates:
            validation.discrepancies.append(CBSDiscrepancy(
                account_number=account,
                discrepancy_type=DISCREPANCY_MISSING_IN_PMS,
                cbs_amount=round2(amount),
                pms_amount=Decimal("0"),
                difference=round2(abs(amount)),
            ))
            continue

        hit = next(
            (t for t in candidates if t.id not in matched_ids and _within_tolerance(amount, t.amount)),
            None,
        )
        if hit is not None:
            matched_ids.add(hit.id)
            hit.cbs_validated = True
            hit.cbs_validated_at = now
            hit.cbs_validation_id = validation.id
            matched += 1
            continue

        partner = next(
            (t for t in candidates if t.id not in matched_ids and t.id not in paired_ids),
            None,
        ) or next((t for t in candidates if t.id not in matched_ids), candidates[0])
        paired_ids.add(partner.id)
        validation.discrepancies.append(CBSDiscrepancy(
            account_number=account,
            task_id=partner.id,
            discrepancy_type=DISCREPANCY_AMOUNT_MISMATCH,
            cbs_amount=round2(amount),
            pms_amount=partner.amount,
            difference=round2(abs(Decimal(amount) - Decimal(partner.amount))),
        ))

    for task in tasks:
        if task.id in matched_ids or task.id in paired_ids:
            continue
        validation.discrepancies.append(CBSDiscrepancy(
            account_number=task.account_number,
            task_id=task.id,
            discrepancy_type=DISCREPANCY_MISSING_IN_CBS,
            cbs_amount=Decimal("0"),
            pms_amount=task.amount,
            difference=task.amount,
        ))

    db.session.flush()
    return matched


def reconcile(
    rows: list[Any],
    *,
    branch_id: int,
    validation_date: Any,
    actor_id: int | None = None,
    file_name: str | None = None,
    file_size: int | None = None,
) -> CBSValidation:
    """
    Reconcile a CBS extract for one branch and date.

    Malformed rows are reported in row_errors and skipped; they still count
    toward total_records. Returns the CBSValidation with its discrepancies.
    """
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list")
    branch = org_service.get_branch(branch_id)
    try:
        day = parse_date(validation_date)
    except ValueError:
        raise ValidationError("validation_date must be a date")
    if day is None:
        raise ValidationError("validation_date is required")

    validation = CBSValidation(
        branch_id=branch.id,
        validation_date=day,
        file_name=to_text(file_name),
        file_size=file_size,
        uploaded_by_id=actor_id,
        total_records=len(rows),
        status=VALIDATION_PROCESSING,
    )
    db.session.add(validation)
    db.session.commit()
    validation_id = validation.id

    try:
        valid_rows, row_errors = _normalize_rows(rows, day)
        validation.row_errors = row_errors
        db.session.commit()

        mappings = _refresh_balances(valid_rows, branch_id=branch.id, validation_date=day)
        db.session.commit()

        validation.unmapped_products = _unmapped_products(valid_rows)
        db.session.commit()

        validation.auto_mapped_count = _auto_map(
            valid_rows, mappings, branch_id=branch.id, validation_date=day, actor_id=actor_id
        )
        db.session.commit()

        matched = _match(valid_rows, validation, branch_id=branch.id, validation_date=day)

        total = validation.total_records
        validation.matched_records = matched
        validation.unmatched_records = total - matched
        validation.discrepancy_count = len(validation.discrepancies)
        validation.validation_rate = round2(Decimal(matched) / Decimal(total) * HUNDRED) if total else Decimal("0")
        clean = not validation.discrepancies and not validation.unmapped_products
        validation.status = VALIDATION_COMPLETED if clean else VALIDATION_PARTIAL
        validation.completed_at = utcnow()

        audit_service.record_event(
            action=audit_service.ACTION_CBS_UPLOAD,
            entity_type="cbs_validation",
            entity_id=validation.id,
            entity_name=f"{branch.code}:{day.isoformat()}",
            actor_id=actor_id,
            detail=(
                f"Reconciled {total} CBS rows for {branch.code} on {day.isoformat()}: "
                f"{matched} matched, {validation.discrepancy_count} discrepancies, "
                f"{len(validation.unmapped_products)} unmapped products"
            ),
        )
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        failed = db.session.get(CBSValidation, validation_id)
        if failed is not None:
            failed.status = VALIDATION_FAILED
            failed.failure_reason = str(exc)[:2000]
            failed.completed_at = utcnow()
            db.session.commit()
        logger.exception("CBS reconciliation %s for branch %s failed", validation_id, branch.code)
        raise

    if row_errors:
        logger.info("CBS reconciliation %s skipped %d malformed rows", validation.id, len(row_errors))
    return validation


def get_validation(validation_id: int) -> CBSValidation:
    validation = db.session.get(CBSValidation, validation_id)
    if not validation:
        raise NotFoundError(f"CBS validation {validation_id} not found")
    return validation


def list_validations(
    *,
    branch_id: int | None = None,
    validation_date: Any = None,
    status: str | None = None,
) -> list[CBSValidation]:
    query = db.session.query(CBSValidation)
    if branch_id is not None:
        query = query.filter(CBSValidation.branch_id == branch_id)
    if validation_date:
        try:
            query = query.filter(CBSValidation.validation_date == parse_date(validation_date))
        except ValueError:
            raise ValidationError("validation_date must be a date")
    if status:
        status = status.upper()
        if status not in VALIDATION_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(VALIDATION_STATUSES)}")
        query = query.filter(CBSValidation.status == status)
    return query.order_by(CBSValidation.validation_date.desc(), CBSValidation.id.desc()).all()


def resolve_discrepancy(
    validation_id: int,
    discrepancy_id: int,
    *,
    notes: str | None = None,
    actor_id: int | None = None,
) -> CBSDiscrepancy:
    discrepancy = db.session.get(CBSDiscrepancy, discrepancy_id)
    if not discrepancy or discrepancy.validation_id != validation_id:
        raise NotFoundError(f"Discrepancy {discrepancy_id} not found in validation {validation_id}")
    if discrepancy.resolved:
        raise ValidationError("Discrepancy is already resolved")

    discrepancy.resolved = True
    discrepancy.resolved_by_id = actor_id
    discrepancy.resolved_at = utcnow()
    discrepancy.resolution_notes = to_text(notes)

    audit_service.record_event(
        action=audit_service.ACTION_RESOLVE,
        entity_type="cbs_discrepancy",
        entity_id=discrepancy.id,
        entity_name=discrepancy.account_number,
        actor_id=actor_id,
        detail=f"Resolved {discrepancy.discrepancy_type} discrepancy on {discrepancy.account_number}",
    )
    db.session.commit()
    return discrepancy
