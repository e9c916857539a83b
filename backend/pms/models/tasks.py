from __future__ import annotations

from ..extensions import db
from ..kpi import TaskType
from ..validation import as_number
from pms.time_utils import to_iso_date, to_utc_z


APPROVAL_PENDING = "PENDING"
APPROVAL_APPROVED = "APPROVED"
APPROVAL_REJECTED = "REJECTED"
# Part of the status vocabulary; no transition produces it
APPROVAL_REQUESTED_EDIT = "REQUESTED_EDIT"
APPROVAL_STATUSES = (APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_REQUESTED_EDIT)
APPROVAL_LABELS = {
    APPROVAL_PENDING: "Pending",
    APPROVAL_APPROVED: "Approved",
    APPROVAL_REJECTED: "Rejected",
    APPROVAL_REQUESTED_EDIT: "Requested Edit",
}

MAPPING_MAPPED_TO_YOU = "MAPPED_TO_YOU"
MAPPING_MAPPED_TO_OTHER = "MAPPED_TO_OTHER"
MAPPING_UNMAPPED = "UNMAPPED"
MAPPING_LABELS = {
    MAPPING_MAPPED_TO_YOU: "Mapped to You",
    MAPPING_MAPPED_TO_OTHER: "Mapped to Another Staff",
    MAPPING_UNMAPPED: "Unmapped",
}


def chain_to_dict(chain: list | None) -> list[dict]:
    return [
        {**entry, "status_label": APPROVAL_LABELS.get(entry.get("status"), entry.get("status"))}
        for entry in (chain or [])
    ]


class DailyTask(db.Model):
    """
    A task record self-reported by branch staff.

    approval_chain is a JSON list of entries
    {approver_id, approver_name, role, position, status, decided_at, comments}
    owned by the task. approval_status is always re-derived from it; the
    list is reassigned (never mutated in place) so the change is persisted.
    """
    __tablename__ = "daily_tasks"
    __table_args__ = (
        db.Index("ix_daily_tasks_branch_date_status", "branch_id", "task_date", "approval_status"),
        db.Index("ix_daily_tasks_submitter_type", "submitted_by_id", "task_type"),
        db.Index("ix_daily_tasks_account", "account_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    task_type = db.Column(db.String(32), nullable=False)
    account_number = db.Column(db.String(64), nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    remarks = db.Column(db.Text, nullable=True)
    task_date = db.Column(db.Date, nullable=False)

    submitted_by_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)

    mapping_status = db.Column(db.String(20), nullable=False, default=MAPPING_UNMAPPED)
    can_count_for_kpi = db.Column(db.Boolean, nullable=False, default=False)

    approval_policy = db.Column(db.String(32), nullable=False)
    approval_status = db.Column(db.String(16), nullable=False, default=APPROVAL_PENDING)
    approval_chain = db.Column(db.JSON, nullable=False, default=list)

    cbs_validated = db.Column(db.Boolean, nullable=False, default=False)
    cbs_validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cbs_validation_id = db.Column(db.Integer, db.ForeignKey("cbs_validations.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    submitted_by = db.relationship("Staff", backref=db.backref("tasks", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("tasks", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_type": self.task_type,
            "task_type_label": TaskType.LABELS.get(self.task_type, self.task_type),
            "account_number": self.account_number,
            "customer_name": self.customer_name,
            "amount": as_number(self.amount),
            "remarks": self.remarks,
            "task_date": to_iso_date(self.task_date),
            "submitted_by_id": self.submitted_by_id,
            "branch_id": self.branch_id,
            "mapping_status": self.mapping_status,
            "mapping_status_label": MAPPING_LABELS.get(self.mapping_status, self.mapping_status),
            "can_count_for_kpi": self.can_count_for_kpi,
            "approval_policy": self.approval_policy,
            "approval_status": self.approval_status,
            "approval_status_label": APPROVAL_LABELS.get(self.approval_status, self.approval_status),
            "approval_chain": chain_to_dict(self.approval_chain),
            "cbs_validated": self.cbs_validated,
            "cbs_validated_at": to_utc_z(self.cbs_validated_at) if self.cbs_validated_at else None,
            "cbs_validation_id": self.cbs_validation_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
