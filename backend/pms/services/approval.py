# Overview: Approval chains: policy templates, roster resolution and the pure status derivation.

"""
Approval chains

A chain is an ordered list of entries owned by the record being approved
(a DailyTask or a BehavioralEvaluation):

    {"approver_id", "approver_name", "role", "position", "status",
     "decided_at", "comments"}

It is built once, at creation, from a policy template. Each template is a
fixed ordered list of approver slots; a slot whose seat is empty in the
roster is simply left out. The record's overall status is never set
directly: derive_status() recomputes it after every decision.
"""

from __future__ import annotations

from typing import NamedTuple

from ..models.tasks import APPROVAL_APPROVED, APPROVAL_PENDING, APPROVAL_REJECTED
from ..positions import Position, Role
from ..validation import AuthorizationError, ConflictError, ValidationError
from . import org_service
from pms.time_utils import to_utc_z, utcnow


DECISIONS = {
    "approve": APPROVAL_APPROVED,
    "approved": APPROVAL_APPROVED,
    "reject": APPROVAL_REJECTED,
    "rejected": APPROVAL_REJECTED,
}

SCOPE_BRANCH = "BRANCH"
SCOPE_AREA = "AREA"


class ApproverSlot(NamedTuple):
    label: str
    seat: str  # a Position code for branch slots, a Role code for area slots
    scope: str


POLICY_MSO_CHAIN = "MSO_CHAIN"
POLICY_ACCOUNTANT_CHAIN = "ACCOUNTANT_CHAIN"
POLICY_BRANCH_REVIEW = "BRANCH_REVIEW"
POLICY_AREA_REVIEW = "AREA_REVIEW"
POLICY_NONE = "NONE"

POLICY_TEMPLATES: dict[str, tuple[ApproverSlot, ...]] = {
    POLICY_MSO_CHAIN: (
        ApproverSlot("Accountant", Position.ACCOUNTANT, SCOPE_BRANCH),
        ApproverSlot("MSM", Position.MSM, SCOPE_BRANCH),
        ApproverSlot("Branch Manager", Position.BRANCH_MANAGER, SCOPE_BRANCH),
    ),
    POLICY_ACCOUNTANT_CHAIN: (
        ApproverSlot("MSM", Position.MSM, SCOPE_BRANCH),
        ApproverSlot("Branch Manager", Position.BRANCH_MANAGER, SCOPE_BRANCH),
    ),
    POLICY_BRANCH_REVIEW: (
        ApproverSlot("Branch Manager", Position.BRANCH_MANAGER, SCOPE_BRANCH),
    ),
    POLICY_AREA_REVIEW: (
        ApproverSlot("Area Manager", Role.AREA_MANAGER, SCOPE_AREA),
    ),
    POLICY_NONE: (),
}


def task_policy_for(position: str | None) -> str:
    if position in Position.MSO_POOL:
        return POLICY_MSO_CHAIN
    if position == Position.ACCOUNTANT:
        return POLICY_ACCOUNTANT_CHAIN
    return POLICY_NONE


def evaluation_policy_for(role: str | None) -> str:
    if role in (Role.SUB_TEAM_LEADER, Role.LINE_MANAGER):
        return POLICY_BRANCH_REVIEW
    if role == Role.BRANCH_MANAGER:
        return POLICY_AREA_REVIEW
    return POLICY_NONE


def resolve_chain(policy: str, branch_id: int, *, exclude_staff_id: int | None = None) -> list[dict]:
    """
    Instantiate a policy template against the active roster of a branch.

    Empty seats are omitted. A submitter never approves their own record,
    so `exclude_staff_id` is skipped when filling seats.
    """
    if policy not in POLICY_TEMPLATES:
        raise ValidationError(f"Unknown approval policy: {policy}")

    chain: list[dict] = []
    for slot in POLICY_TEMPLATES[policy]:
        if slot.scope == SCOPE_AREA:
            approver = org_service.area_manager_for_branch(branch_id)
        else:
            approver = next(
                (s for s in org_service.active_staff_in_branch(branch_id, (slot.seat,)) if s.id != exclude_staff_id),
                None,
            )
        if approver is None or approver.id == exclude_staff_id:
            continue
        chain.append({
            "approver_id": approver.id,
            "approver_name": approver.name,
            "role": slot.label,
            "position": slot.seat,
            "status": APPROVAL_PENDING,
            "decided_at": None,
            "comments": None,
        })
    return chain


def derive_status(chain: list[dict], *, empty_chain_approves: bool = False) -> str:
    """
    Overall status as a pure function of the chain entries.

    Rejected if any entry is rejected, Approved if every entry is approved,
    otherwise Pending. An empty chain is Pending unless the deployment opts
    into auto-approval.
    """
    statuses = [entry.get("status") for entry in chain]
    if any(s == APPROVAL_REJECTED for s in statuses):
        return APPROVAL_REJECTED
    if not statuses:
        return APPROVAL_APPROVED if empty_chain_approves else APPROVAL_PENDING
    if all(s == APPROVAL_APPROVED for s in statuses):
        return APPROVAL_APPROVED
    return APPROVAL_PENDING


def parse_decision(value) -> str:
    decision = DECISIONS.get(str(value or "").strip().lower())
    if decision is None:
        raise ValidationError("decision must be 'approve' or 'reject'")
    return decision


def apply_decision(chain: list[dict], *, approver_id: int, decision: str, comments: str | None = None) -> list[dict]:
    """
    Return a new chain with the approver's pending entry decided.

    Only the acting approver's own PENDING entry changes. Raises
    AuthorizationError if they have none.
    """
    if decision not in (APPROVAL_APPROVED, APPROVAL_REJECTED):
        raise ValidationError(f"Invalid decision: {decision}")

    updated = [dict(entry) for entry in chain]
    for entry in updated:
        if entry.get("approver_id") == approver_id and entry.get("status") == APPROVAL_PENDING:
            entry["status"] = decision
            entry["decided_at"] = to_utc_z(utcnow())
            entry["comments"] = comments
            return updated
    raise AuthorizationError("You have no pending approval on this record")


def decide(record, *, approver_id: int, decision: str, comments: str | None, empty_chain_approves: bool) -> str:
    """
    Apply a decision to a record carrying approval_chain/approval_status.

    Terminal records refuse further decisions. The chain list is reassigned
    so the JSON column is flushed. Returns the new overall status.
    """
    if record.approval_status in (APPROVAL_APPROVED, APPROVAL_REJECTED):
        raise ConflictError(f"Record is already {record.approval_status.lower()}")
    record.approval_chain = apply_decision(
        record.approval_chain or [], approver_id=approver_id, decision=decision, comments=comments
    )
    record.approval_status = derive_status(record.approval_chain, empty_chain_approves=empty_chain_approves)
    return record.approval_status
