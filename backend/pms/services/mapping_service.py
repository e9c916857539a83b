# Overview: Account mapping registry: ownership, classification, bulk upload and auto-balance.

from __future__ import annotations

import logging
from itertools import cycle
from typing import Any

from ..extensions import db
from ..kpi import MIN_QUALIFYING_BALANCE
from ..models import AccountMapping, Staff
from ..models.mapping import (
    ACCOUNT_TYPES,
    MAPPING_STATUS_ACTIVE,
    mapping_status_from_display,
)
from ..models.tasks import MAPPING_MAPPED_TO_OTHER, MAPPING_MAPPED_TO_YOU, MAPPING_UNMAPPED
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    require_text,
    to_decimal,
    to_text,
)
from .concurrency import run_with_retry
from .import_schemas import MappingSchema
from . import audit_service, org_service
from pms.time_utils import utcnow


logger = logging.getLogger(__name__)

_UNSET = object()


def classify(account_number: str, staff_id: int) -> tuple[str, bool]:
    """
    Mapping status of an account from the point of view of `staff_id`.

    Returns (mapping_status, can_count_for_kpi). Only an account mapped to
    the staff member with a balance of at least the qualifying minimum counts.
    """
    mapping = db.session.query(AccountMapping).filter_by(account_number=account_number).first()
    if not mapping or mapping.staff_id is None:
        return MAPPING_UNMAPPED, False
    if mapping.staff_id == staff_id:
        return MAPPING_MAPPED_TO_YOU, (mapping.current_balance or 0) >= MIN_QUALIFYING_BALANCE
    return MAPPING_MAPPED_TO_OTHER, False


def assign_owner(
    *,
    mapping_id: int,
    expected_owner_id: Any,
    new_owner_id: int | None,
    actor_id: int | None = None,
    auto_balanced: bool = False,
    status: str = MAPPING_STATUS_ACTIVE,
) -> bool:
    """
    Move an account to a new owner only if it is still held by `expected_owner_id`.

    The check and the write are one conditional UPDATE, so of two concurrent
    reassignments of the same account only one can succeed. Returns False when
    the owner changed underneath the caller. The mapping ends in `status`,
    ACTIVE unless the caller asks otherwise. Does not commit.
    """
    criteria = [AccountMapping.id == mapping_id]
    if expected_owner_id is None:
        criteria.append(AccountMapping.staff_id.is_(None))
    else:
        criteria.append(AccountMapping.staff_id == expected_owner_id)

    updated = (
        db.session.query(AccountMapping)
        .filter(*criteria)
        .update(
            {
                AccountMapping.staff_id: new_owner_id,
                AccountMapping.status: status,
                AccountMapping.is_auto_balanced: auto_balanced,
                AccountMapping.mapped_at: utcnow(),
                AccountMapping.mapped_by_id: actor_id,
                AccountMapping.version_id: AccountMapping.version_id + 1,
            },
            synchronize_session=False,
        )
    )
    if updated:
        mapping = db.session.get(AccountMapping, mapping_id)
        if mapping is not None:
            db.session.refresh(mapping)
    return updated == 1


def _validate_owner(staff_id: int | None, branch_id: int | None) -> Staff | None:
    if staff_id is None:
        return None
    staff = org_service.get_staff(staff_id)
    if not staff.is_active:
        raise ValidationError(f"Staff {staff_id} is not active")
    if branch_id is not None and staff.branch_id != branch_id:
        raise ValidationError(f"Staff {staff_id} does not belong to branch {branch_id}")
    return staff


def _validate_account_type(value: Any) -> str | None:
    account_type = to_text(value)
    if account_type is not None and account_type not in ACCOUNT_TYPES:
        raise ValidationError(f"account_type must be one of: {', '.join(ACCOUNT_TYPES)}")
    return account_type


def create_mapping(
    *,
    account_number: str,
    customer_name: str | None = None,
    staff_id: int | None = None,
    branch_id: int | None = None,
    account_type: str | None = None,
    balance: Any = None,
    phone_number: str | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> AccountMapping:
    account_number = require_text(account_number, "account_number")
    if branch_id is not None:
        org_service.get_branch(branch_id)
    owner = _validate_owner(staff_id, branch_id)

    def _op():
        if db.session.query(AccountMapping.id).filter_by(account_number=account_number).first():
            raise ConflictError(f"Account {account_number} is already mapped")

        mapping = AccountMapping(
            account_number=account_number,
            customer_name=to_text(customer_name),
            account_type=_validate_account_type(account_type),
            phone_number=to_text(phone_number),
            notes=to_text(notes),
            staff_id=owner.id if owner else None,
            branch_id=branch_id if branch_id is not None else (owner.branch_id if owner else None),
            current_balance=to_decimal(balance, "balance") or 0,
            status=MAPPING_STATUS_ACTIVE,
            mapped_at=utcnow() if owner else None,
            mapped_by_id=actor_id if owner else None,
        )
        db.session.add(mapping)
        db.session.flush()

        audit_service.record_event(
            action=audit_service.ACTION_CREATE,
            entity_type="account_mapping",
            entity_id=mapping.id,
            entity_name=mapping.account_number,
            actor_id=actor_id,
            detail=f"Mapped account {mapping.account_number}" + (f" to {owner.name}" if owner else ""),
        )
        db.session.commit()
        return mapping

    return run_with_retry(_op)


def update_mapping(
    mapping_id: int,
    *,
    staff_id: Any = _UNSET,
    status: str | None = None,
    customer_name: str | None = None,
    account_type: str | None = None,
    phone_number: str | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> AccountMapping:
    """
    Patch a mapping. Changing the owner is a conditional reassignment keyed on
    the owner this request read; a concurrent change raises ConflictError.
    """
    mapping = get_mapping(mapping_id)
    changes: list[str] = []

    if status is not None:
        status = mapping_status_from_display(status)
        if status != mapping.status:
            changes.append(f"status {mapping.status} -> {status}")
        mapping.status = status
    if customer_name is not None:
        mapping.customer_name = to_text(customer_name)
    if account_type is not None:
        mapping.account_type = _validate_account_type(account_type)
    if phone_number is not None:
        mapping.phone_number = to_text(phone_number)
    if notes is not None:
        mapping.notes = to_text(notes)
    db.session.flush()

    if staff_id is not _UNSET and staff_id != mapping.staff_id:
        new_owner = _validate_owner(staff_id, mapping.branch_id)
        previous = mapping.staff_id
        if not assign_owner(
            mapping_id=mapping.id,
            expected_owner_id=previous,
            new_owner_id=new_owner.id if new_owner else None,
            actor_id=actor_id,
            status=mapping.status,
        ):
            db.session.rollback()
            raise ConflictError(f"Account {mapping.account_number} was reassigned concurrently")
        changes.append(f"owner {previous} -> {new_owner.id if new_owner else None}")

    audit_service.record_event(
        action=audit_service.ACTION_UPDATE,
        entity_type="account_mapping",
        entity_id=mapping.id,
        entity_name=mapping.account_number,
        actor_id=actor_id,
        detail="; ".join(changes) or "Updated mapping details",
    )
    db.session.commit()
    return mapping


def get_mapping(mapping_id: int) -> AccountMapping:
    mapping = db.session.get(AccountMapping, mapping_id)
    if not mapping:
        raise NotFoundError(f"Account mapping {mapping_id} not found")
    return mapping


def get_by_account(account_number: str) -> AccountMapping | None:
    return db.session.query(AccountMapping).filter_by(account_number=account_number).first()


def list_mappings(
    *,
    branch_id: int | None = None,
    staff_id: int | None = None,
    status: str | None = None,
    unassigned: bool = False,
    page: int = 1,
    per_page: int = 100,
) -> dict:
    query = db.session.query(AccountMapping)
    if branch_id is not None:
        query = query.filter(AccountMapping.branch_id == branch_id)
    if staff_id is not None:
        query = query.filter(AccountMapping.staff_id == staff_id)
    if status:
        query = query.filter(AccountMapping.status == mapping_status_from_display(status))
    if unassigned:
        query = query.filter(AccountMapping.staff_id.is_(None))

    page = max(1, page)
    per_page = max(1, min(per_page, 500))
    total = query.count()
    items = query.order_by(AccountMapping.id).offset((page - 1) * per_page).limit(per_page).all()
    return {"items": [m.to_dict() for m in items], "page": page, "per_page": per_page, "total": total}


def bulk_upload(rows: list[dict[str, Any]], *, branch_id: int, actor_id: int | None = None) -> dict:
    """
    Create or reassign mappings from an uploaded sheet.

    Each row names the owner by employee ID, looked up inside `branch_id`.
    Bad rows are reported with their spreadsheet row number and skipped.
    """
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list")
    branch = org_service.get_branch(branch_id)
    schema = MappingSchema()
    result = {"processed": len(rows), "created": 0, "updated": 0, "errors": []}

    for index, raw in enumerate(rows):
        row_number = index + 2
        if not isinstance(raw, dict):
            result["errors"].append({"row": row_number, "errors": ["row must be an object"]})
            continue
        row, errors = schema.normalize_row(raw)
        staff = None
        if not errors:
            staff = org_service.find_staff_in_branch(row["employee_id"], branch.id)
            if staff is None or not staff.is_active:
                errors.append(f"Staff {row['employee_id']} not found in branch {branch.code}")
        if not errors and row["account_type"] and row["account_type"] not in ACCOUNT_TYPES:
            errors.append(f"account_type must be one of: {', '.join(ACCOUNT_TYPES)}")
        if errors:
            result["errors"].append({"row": row_number, "account_number": row.get("account_number"), "errors": errors})
            continue

        mapping = get_by_account(row["account_number"])
        if mapping is None:
            mapping = AccountMapping(
                account_number=row["account_number"],
                branch_id=branch.id,
                staff_id=staff.id,
                current_balance=row["balance"] or 0,
                status=MAPPING_STATUS_ACTIVE,
                mapped_at=utcnow(),
                mapped_by_id=actor_id,
            )
            db.session.add(mapping)
            result["created"] += 1
        else:
            if mapping.staff_id != staff.id and not assign_owner(
                mapping_id=mapping.id,
                expected_owner_id=mapping.staff_id,
                new_owner_id=staff.id,
                actor_id=actor_id,
            ):
                result["errors"].append({
                    "row": row_number,
                    "account_number": row["account_number"],
                    "errors": ["Account was reassigned concurrently"],
                })
                continue
            if row["balance"] is not None:
                mapping.current_balance = row["balance"]
            mapping.branch_id = branch.id
            result["updated"] += 1

        mapping.customer_name = row["customer_name"]
        if row["account_type"]:
            mapping.account_type = row["account_type"]
        if row["phone_number"]:
            mapping.phone_number = row["phone_number"]
        if row["notes"]:
            mapping.notes = row["notes"]
        db.session.flush()

    audit_service.record_event(
        action=audit_service.ACTION_UPLOAD,
        entity_type="account_mapping",
        entity_name=branch.code,
        actor_id=actor_id,
        detail=(
            f"Bulk mapping upload for {branch.code}: {result['created']} created, "
            f"{result['updated']} updated, {len(result['errors'])} errors"
        ),
    )
    db.session.commit()
    return result


def auto_balance(*, branch_id: int, actor_id: int | None = None) -> dict:
    """
    Hand out the branch's owner-less accounts round-robin across active MSOs.

    Accounts are taken in id order and officers in id order, so the first
    officers receive one extra account when the split is uneven.
    """
    branch = org_service.get_branch(branch_id)
    officers = org_service.mso_staff_in_branch(branch.id)
    if not officers:
        raise ValidationError(f"Branch {branch.code} has no active MSO staff to balance across")

    unowned = (
        db.session.query(AccountMapping)
        .filter(AccountMapping.branch_id == branch.id, AccountMapping.staff_id.is_(None))
        .order_by(AccountMapping.id)
        .all()
    )

    per_staff = {officer.id: 0 for officer in officers}
    skipped = 0
    for mapping, officer in zip(unowned, cycle(officers)):
        if assign_owner(
            mapping_id=mapping.id,
            expected_owner_id=None,
            new_owner_id=officer.id,
            actor_id=actor_id,
            auto_balanced=True,
        ):
            per_staff[officer.id] += 1
        else:
            skipped += 1

    assigned = sum(per_staff.values())
    audit_service.record_event(
        action=audit_service.ACTION_ASSIGN,
        entity_type="account_mapping",
        entity_name=branch.code,
        actor_id=actor_id,
        detail=f"Auto-balanced {assigned} accounts across {len(officers)} MSO staff in {branch.code}",
        payload={"per_staff": {str(k): v for k, v in per_staff.items()}},
    )
    db.session.commit()
    if skipped:
        logger.info("Auto-balance in %s skipped %d accounts claimed concurrently", branch.code, skipped)
    return {"assigned": assigned, "skipped": skipped, "per_staff": per_staff}
