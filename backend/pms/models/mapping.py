from __future__ import annotations

from ..extensions import db
from ..kpi import KpiCategory
from ..validation import ValidationError, as_number
from pms.time_utils import to_iso_date, to_utc_z


MAPPING_STATUS_ACTIVE = "ACTIVE"
MAPPING_STATUS_INACTIVE = "INACTIVE"
MAPPING_STATUS_TRANSFERRED = "TRANSFERRED"
MAPPING_STATUSES = (MAPPING_STATUS_ACTIVE, MAPPING_STATUS_INACTIVE, MAPPING_STATUS_TRANSFERRED)
MAPPING_STATUS_LABELS = {
    MAPPING_STATUS_ACTIVE: "Active",
    MAPPING_STATUS_INACTIVE: "Inactive",
    MAPPING_STATUS_TRANSFERRED: "Transferred",
}


def mapping_status_from_display(value) -> str:
    """Map a status code or its display label ("Transferred", "active") to the code."""
    text = str(value).strip().upper() if value is not None else ""
    if text not in MAPPING_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(MAPPING_STATUS_LABELS.values())}")
    return text


ACCOUNT_TYPES = ("Savings", "Current", "Fixed Deposit", "Recurring Deposit", "Loan")

PRODUCT_STATUS_ACTIVE = "ACTIVE"
PRODUCT_STATUS_INACTIVE = "INACTIVE"


class AccountMapping(db.Model):
    """
    Assignment of one bank account to one staff owner.

    Balance fields are refreshed by every CBS upload; ownership changes go
    through mapping_service.assign_owner (conditional on the current owner).
    staff_id is NULL while an account seen in CBS has no owner yet.
    """
    __tablename__ = "account_mappings"
    __table_args__ = (
        db.UniqueConstraint("account_number", name="uq_account_mappings_account_number"),
        db.Index("ix_account_mappings_staff_status", "staff_id", "status"),
        db.Index("ix_account_mappings_branch", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_number = db.Column(db.String(64), nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)
    account_type = db.Column(db.String(32), nullable=True)
    product_name = db.Column(db.String(128), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)

    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    current_balance = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    baseline_balance = db.Column(db.Numeric(18, 2), nullable=True)
    last_transaction_date = db.Column(db.Date, nullable=True)
    active_status = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default=MAPPING_STATUS_ACTIVE)
    is_auto_balanced = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    mapped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    mapped_by_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    staff = db.relationship("Staff", foreign_keys=[staff_id], backref=db.backref("account_mappings", lazy=True))
    mapped_by = db.relationship("Staff", foreign_keys=[mapped_by_id])
    branch = db.relationship("Branch", backref=db.backref("account_mappings", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_number": self.account_number,
            "customer_name": self.customer_name,
            "account_type": self.account_type,
            "product_name": self.product_name,
            "phone_number": self.phone_number,
            "staff_id": self.staff_id,
            "branch_id": self.branch_id,
            "current_balance": as_number(self.current_balance),
            "baseline_balance": as_number(self.baseline_balance),
            "last_transaction_date": to_iso_date(self.last_transaction_date),
            "active_status": self.active_status,
            "status": self.status,
            "status_label": MAPPING_STATUS_LABELS.get(self.status, self.status),
            "is_auto_balanced": self.is_auto_balanced,
            "notes": self.notes,
            "mapped_at": to_utc_z(self.mapped_at) if self.mapped_at else None,
            "mapped_by_id": self.mapped_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class ProductKpiMapping(db.Model):
    """CBS product name -> KPI category. Products without an active row are reported as unmapped."""
    __tablename__ = "product_kpi_mappings"
    __table_args__ = (
        db.UniqueConstraint("product_name", name="uq_product_kpi_mappings_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_name = db.Column(db.String(128), nullable=False)
    kpi_category = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_ACTIVE, index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "kpi_category": self.kpi_category,
            "kpi_category_label": KpiCategory.LABELS.get(self.kpi_category, self.kpi_category),
            "description": self.description,
            "status": self.status,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
