# Overview: Baseline ("June") balance store: import, single-active-period switch, lookups.

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import BaselineBalance
from ..validation import NotFoundError, ValidationError, require_text
from .concurrency import run_with_retry
from .import_schemas import BaselineSchema
from . import audit_service
from pms.time_utils import parse_date, to_iso_date


logger = logging.getLogger(__name__)

DEFAULT_BASELINE_PERIOD = "2025"
DEFAULT_BASELINE_DATE = date(2025, 6, 30)


def _switch_active_period(period: str) -> int:
    """
    Make `period` the only active baseline period.

    Both statements run in the caller's transaction so there is never a
    committed state with zero or two active periods. Returns the number of
    rows activated.
    """
    db.session.query(BaselineBalance).filter(BaselineBalance.is_active.is_(True)).update(
        {BaselineBalance.is_active: False}, synchronize_session=False
    )
    activated = db.session.query(BaselineBalance).filter(BaselineBalance.baseline_period == period).update(
        {BaselineBalance.is_active: True}, synchronize_session=False
    )
    db.session.expire_all()
    return activated


def import_baselines(
    rows: list[dict[str, Any]],
    *,
    baseline_period: str | None = None,
    baseline_date: Any = None,
    make_active: bool = True,
    actor_id: int | None = None,
) -> dict:
    """
    Upsert baseline balances keyed by (account_id, baseline_period).

    Bad rows are reported with their 1-based spreadsheet row number (header is
    row 1) and skipped. With make_active the imported period becomes the only
    active one in the same transaction.
    """
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list")
    period = require_text(baseline_period or DEFAULT_BASELINE_PERIOD, "baseline_period")
    try:
        as_of = parse_date(baseline_date) or DEFAULT_BASELINE_DATE
    except ValueError:
        raise ValidationError("baseline_date must be a date")

    schema = BaselineSchema()

    def _op():
        result = {"processed": len(rows), "created": 0, "updated": 0, "errors": []}
        seen: dict[str, BaselineBalance] = {}

        for index, raw in enumerate(rows):
            row_number = index + 2
            if not isinstance(raw, dict):
                result["errors"].append({"row": row_number, "errors": ["row must be an object"]})
                continue
            row, errors = schema.normalize_row(raw)
            if errors:
                result["errors"].append({"row": row_number, "account_id": row.get("account_id"), "errors": errors})
                continue

            record = seen.get(row["account_id"]) or db.session.query(BaselineBalance).filter_by(
                account_id=row["account_id"], baseline_period=period
            ).first()
            if record:
                result["updated"] += 1
            else:
                record = BaselineBalance(account_id=row["account_id"], baseline_period=period, is_active=False)
                db.session.add(record)
                result["created"] += 1

            record.balance = row["balance"]
            record.baseline_date = as_of
            if row["account_number"]:
                record.account_number = row["account_number"]
            if row["branch_code"]:
                record.branch_code = row["branch_code"]
            seen[row["account_id"]] = record

        db.session.flush()

        activated = False
        if make_active and (result["created"] or result["updated"]):
            _switch_active_period(period)
            activated = True

        audit_service.record_event(
            action=audit_service.ACTION_UPLOAD,
            entity_type="baseline_balance",
            entity_name=period,
            actor_id=actor_id,
            detail=(
                f"Imported baseline period {period}: {result['created']} created, "
                f"{result['updated']} updated, {len(result['errors'])} errors"
                + (" (activated)" if activated else "")
            ),
            payload={"baseline_period": period, "activated": activated},
        )
        db.session.commit()

        result["baseline_period"] = period
        result["baseline_date"] = to_iso_date(as_of)
        result["activated"] = activated
        return result

    result = run_with_retry(_op)
    if result["errors"]:
        logger.info("Baseline import for %s skipped %d rows", period, len(result["errors"]))
    return result


def activate_period(baseline_period: str, *, actor_id: int | None = None) -> dict:
    """
    Deactivate every baseline period and activate `baseline_period`, atomically.

    Raises NotFoundError, before touching anything, when the period has no rows.
    """
    period = require_text(baseline_period, "baseline_period")

    def _op():
        exists = db.session.query(BaselineBalance.id).filter_by(baseline_period=period).first()
        if not exists:
            raise NotFoundError(f"Baseline period {period} not found")

        activated = _switch_active_period(period)
        audit_service.record_event(
            action=audit_service.ACTION_ACTIVATE,
            entity_type="baseline_period",
            entity_name=period,
            actor_id=actor_id,
            detail=f"Activated baseline period {period} ({activated} accounts)",
        )
        db.session.commit()
        return {"baseline_period": period, "activated_accounts": activated}

    return run_with_retry(_op)


def list_periods() -> list[dict]:
    rows = (
        db.session.query(
            BaselineBalance.baseline_period,
            func.count(BaselineBalance.id),
            func.max(BaselineBalance.baseline_date),
            func.max(case((BaselineBalance.is_active.is_(True), 1), else_=0)),
            func.sum(BaselineBalance.balance),
        )
        .group_by(BaselineBalance.baseline_period)
        .order_by(BaselineBalance.baseline_period)
        .all()
    )
    return [
        {
            "baseline_period": period,
            "account_count": count,
            "baseline_date": to_iso_date(as_of),
            "is_active": bool(active),
            "total_balance": float(total or 0),
        }
        for period, count, as_of, active, total in rows
    ]


def active_period() -> str | None:
    row = db.session.query(BaselineBalance.baseline_period).filter(BaselineBalance.is_active.is_(True)).first()
    return row[0] if row else None


def get_balance_for_account(account: str, baseline_period: str | None = None) -> BaselineBalance | None:
    """
    Baseline record for an account, matched on account_id or account_number.

    Uses the active period unless one is named.
    """
    query = db.session.query(BaselineBalance).filter(
        or_(BaselineBalance.account_id == account, BaselineBalance.account_number == account)
    )
    if baseline_period:
        query = query.filter(BaselineBalance.baseline_period == baseline_period)
    else:
        query = query.filter(BaselineBalance.is_active.is_(True))
    return query.order_by(BaselineBalance.id).first()


def active_balances_for(accounts) -> dict[str, BaselineBalance]:
    """Active baseline records for many accounts, keyed by the account string asked for."""
    accounts = [a for a in set(accounts) if a]
    if not accounts:
        return {}
    records = (
        db.session.query(BaselineBalance)
        .filter(
            BaselineBalance.is_active.is_(True),
            or_(BaselineBalance.account_id.in_(accounts), BaselineBalance.account_number.in_(accounts)),
        )
        .order_by(BaselineBalance.id)
        .all()
    )
    found: dict[str, BaselineBalance] = {}
    for record in records:
        for key in (record.account_id, record.account_number):
            if key in accounts and key not in found:
                found[key] = record
    return found


def list_balances(
    *,
    baseline_period: str | None = None,
    branch_code: str | None = None,
    active_only: bool = False,
    page: int = 1,
    per_page: int = 100,
) -> dict:
    query = db.session.query(BaselineBalance)
    if baseline_period:
        query = query.filter(BaselineBalance.baseline_period == baseline_period)
    if branch_code:
        query = query.filter(BaselineBalance.branch_code == branch_code.upper())
    if active_only:
        query = query.filter(BaselineBalance.is_active.is_(True))

    page = max(1, page)
    per_page = max(1, min(per_page, 500))
    total = query.count()
    items = query.order_by(BaselineBalance.id).offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [b.to_dict() for b in items],
        "page": page,
        "per_page": per_page,
        "total": total,
    }
