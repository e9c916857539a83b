# Overview: Append-only audit trail written alongside every mutating operation.

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from flask import has_request_context, request

from ..extensions import db
from ..models import AuditEvent
from pms.time_utils import parse_iso_datetime

"""
Audit invariants

- One event per mutating operation, added in the same transaction as the change.
- No deletes/updates of existing events.
- occurred_at is business time; created_at is system time (DB default).
"""

ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_DELETE = "DELETE"
ACTION_UPLOAD = "UPLOAD"
ACTION_APPROVE = "APPROVE"
ACTION_REJECT = "REJECT"
ACTION_ACTIVATE = "ACTIVATE"
ACTION_CASCADE = "CASCADE"
ACTION_CALCULATE = "CALCULATE"
ACTION_CBS_UPLOAD = "CBS_UPLOAD"
ACTION_RESOLVE = "RESOLVE"
ACTION_ASSIGN = "ASSIGN"
ACTION_LOCK = "LOCK"


def record_event(
    *,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    entity_name: str | None = None,
    actor_id: int | None = None,
    detail: str | None = None,
    payload: Optional[dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> AuditEvent:
    """
    Append one audit event to the current transaction.

    Client address and user agent are captured when called inside a request.
    """
    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    ev = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        actor_id=actor_id,
        detail=detail,
        payload=payload,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=occurred_at,  # if None, db default applies
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events(
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    actor_id: int | None = None,
    action: str | None = None,
    as_of: str | None = None,
    limit: int = 200,
) -> list[AuditEvent]:
    query = db.session.query(AuditEvent)
    if entity_type:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditEvent.entity_id == entity_id)
    if actor_id is not None:
        query = query.filter(AuditEvent.actor_id == actor_id)
    if action:
        query = query.filter(AuditEvent.action == action)
    if as_of:
        cutoff = parse_iso_datetime(as_of)
        query = query.filter(AuditEvent.occurred_at <= cutoff)
    return query.order_by(AuditEvent.id.desc()).limit(max(1, min(limit, 1000))).all()
