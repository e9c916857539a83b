from __future__ import annotations

from ..extensions import db
from ..validation import as_number
from pms.time_utils import to_iso_date, to_utc_z


VALIDATION_PROCESSING = "PROCESSING"
VALIDATION_COMPLETED = "COMPLETED"
VALIDATION_PARTIAL = "PARTIAL"
VALIDATION_FAILED = "FAILED"
VALIDATION_STATUSES = (VALIDATION_PROCESSING, VALIDATION_COMPLETED, VALIDATION_PARTIAL, VALIDATION_FAILED)
VALIDATION_LABELS = {
    VALIDATION_PROCESSING: "Processing",
    VALIDATION_COMPLETED: "Completed",
    VALIDATION_PARTIAL: "Partial",
    VALIDATION_FAILED: "Failed",
}

DISCREPANCY_AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
DISCREPANCY_MISSING_IN_PMS = "MISSING_IN_PMS"
DISCREPANCY_MISSING_IN_CBS = "MISSING_IN_CBS"
# Part of the type vocabulary; matching never emits it
DISCREPANCY_ACCOUNT_MISMATCH = "ACCOUNT_MISMATCH"
DISCREPANCY_LABELS = {
    DISCREPANCY_AMOUNT_MISMATCH: "Amount_Mismatch",
    DISCREPANCY_MISSING_IN_PMS: "Missing_in_PMS",
    DISCREPANCY_MISSING_IN_CBS: "Missing_in_CBS",
    DISCREPANCY_ACCOUNT_MISMATCH: "Account_Mismatch",
}


class CBSValidation(db.Model):
    """
    One reconciliation run of a CBS extract against approved tasks for a
    branch and date. Owns its discrepancy rows.
    """
    __tablename__ = "cbs_validations"
    __table_args__ = (
        db.Index("ix_cbs_validations_branch_date", "branch_id", "validation_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    validation_date = db.Column(db.Date, nullable=False)

    file_name = db.Column(db.String(255), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)

    total_records = db.Column(db.Integer, nullable=False, default=0)
    matched_records = db.Column(db.Integer, nullable=False, default=0)
    unmatched_records = db.Column(db.Integer, nullable=False, default=0)
    discrepancy_count = db.Column(db.Integer, nullable=False, default=0)
    auto_mapped_count = db.Column(db.Integer, nullable=False, default=0)
    validation_rate = db.Column(db.Numeric(7, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=VALIDATION_PROCESSING)
    unmapped_products = db.Column(db.JSON, nullable=False, default=list)
    row_errors = db.Column(db.JSON, nullable=False, default=list)
    failure_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    branch = db.relationship("Branch", backref=db.backref("cbs_validations", lazy=True))
    discrepancies = db.relationship(
        "CBSDiscrepancy",
        back_populates="validation",
        cascade="all, delete-orphan",
        order_by="CBSDiscrepancy.id",
    )

    def to_dict(self, include_discrepancies: bool = True) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "validation_date": to_iso_date(self.validation_date),
            "file_name": self.file_name,
            "file_size": self.file_size,
            "uploaded_by_id": self.uploaded_by_id,
            "total_records": self.total_records,
            "matched_records": self.matched_records,
            "unmatched_records": self.unmatched_records,
            "discrepancy_count": self.discrepancy_count,
            "auto_mapped_count": self.auto_mapped_count,
            "validation_rate": as_number(self.validation_rate),
            "status": self.status,
            "status_label": VALIDATION_LABELS.get(self.status, self.status),
            "unmapped_products": self.unmapped_products or [],
            "row_errors": self.row_errors or [],
            "failure_reason": self.failure_reason,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
        if include_discrepancies:
            data["discrepancies"] = [d.to_dict() for d in self.discrepancies]
        return data


class CBSDiscrepancy(db.Model):
    __tablename__ = "cbs_discrepancies"
    __table_args__ = (
        db.Index("ix_cbs_discrepancies_validation", "validation_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    validation_id = db.Column(db.Integer, db.ForeignKey("cbs_validations.id", ondelete="CASCADE"), nullable=False)
    account_number = db.Column(db.String(64), nullable=False)
    task_id = db.Column(db.Integer, db.ForeignKey("daily_tasks.id"), nullable=True)
    discrepancy_type = db.Column(db.String(20), nullable=False)

    cbs_amount = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    pms_amount = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    difference = db.Column(db.Numeric(18, 2), nullable=False, default=0)

    resolved = db.Column(db.Boolean, nullable=False, default=False)
    resolved_by_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolution_notes = db.Column(db.Text, nullable=True)

    validation = db.relationship("CBSValidation", back_populates="discrepancies")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "validation_id": self.validation_id,
            "account_number": self.account_number,
            "task_id": self.task_id,
            "discrepancy_type": self.discrepancy_type,
            "discrepancy_type_label": DISCREPANCY_LABELS.get(self.discrepancy_type, self.discrepancy_type),
            "cbs_amount": as_number(self.cbs_amount),
            "pms_amount": as_number(self.pms_amount),
            "difference": as_number(self.difference),
            "resolved": self.resolved,
            "resolved_by_id": self.resolved_by_id,
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "resolution_notes": self.resolution_notes,
        }
