from __future__ import annotations

from ..extensions import db
from ..kpi import KpiCategory
from ..positions import position_to_display
from ..validation import as_number
from pms.time_utils import to_utc_z


PLAN_STATUS_DRAFT = "DRAFT"
PLAN_STATUS_ACTIVE = "ACTIVE"
PLAN_STATUS_COMPLETED = "COMPLETED"
PLAN_STATUS_CANCELLED = "CANCELLED"
PLAN_STATUSES = (PLAN_STATUS_DRAFT, PLAN_STATUS_ACTIVE, PLAN_STATUS_COMPLETED, PLAN_STATUS_CANCELLED)
PLAN_OPEN_STATUSES = (PLAN_STATUS_DRAFT, PLAN_STATUS_ACTIVE)

TARGET_TYPE_INCREMENTAL = "INCREMENTAL"

STAFF_PLAN_STATUS_ACTIVE = "ACTIVE"
STAFF_PLAN_STATUS_INACTIVE = "INACTIVE"


class PlanShareConfig(db.Model):
    """
    Percentage split of a branch target across positions for one KPI category.

    branch_code NULL is the network-wide default; an active branch-specific
    row for the same category takes precedence over it.
    """
    __tablename__ = "plan_share_configs"
    __table_args__ = (
        db.Index("ix_plan_share_configs_lookup", "kpi_category", "branch_code", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_code = db.Column(db.String(32), nullable=True)
    kpi_category = db.Column(db.String(32), nullable=False)

    branch_manager_share = db.Column(db.Numeric(7, 4), nullable=False, default=0)
    msm_share = db.Column(db.Numeric(7, 4), nullable=False, default=0)
    accountant_share = db.Column(db.Numeric(7, 4), nullable=False, default=0)
    mso_share = db.Column(db.Numeric(7, 4), nullable=False, default=0)
    total_percent = db.Column(db.Numeric(7, 4), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def shares(self) -> dict:
        return {
            "branch_manager": self.branch_manager_share,
            "msm": self.msm_share,
            "accountant": self.accountant_share,
            "mso": self.mso_share,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_code": self.branch_code,
            "kpi_category": self.kpi_category,
            "kpi_category_label": KpiCategory.LABELS.get(self.kpi_category, self.kpi_category),
            "plan_shares": {key: as_number(value) for key, value in self.shares().items()},
            "total_percent": as_number(self.total_percent),
            "is_active": self.is_active,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Plan(db.Model):
    """
    Branch-level target for one KPI category and period.

    Owns its StaffPlans: every cascade deletes and recreates them.
    At most one DRAFT/ACTIVE plan exists per (branch_code, kpi_category, period).
    """
    __tablename__ = "plans"
    __table_args__ = (
        db.Index("ix_plans_branch_category_period", "branch_code", "kpi_category", "period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_code = db.Column(db.String(32), nullable=False)
    kpi_category = db.Column(db.String(32), nullable=False)
    period = db.Column(db.String(32), nullable=False)
    period_type = db.Column(db.String(16), nullable=False)

    target_value = db.Column(db.Numeric(18, 2), nullable=False)
    target_type = db.Column(db.String(16), nullable=False, default=TARGET_TYPE_INCREMENTAL)
    status = db.Column(db.String(16), nullable=False, default=PLAN_STATUS_ACTIVE, index=True)
    description = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    staff_plans = db.relationship(
        "StaffPlan",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="StaffPlan.staff_id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_staff_plans: bool = False) -> dict:
        data = {
            "id": self.id,
            "branch_code": self.branch_code,
            "kpi_category": self.kpi_category,
            "kpi_category_label": KpiCategory.LABELS.get(self.kpi_category, self.kpi_category),
            "period": self.period,
            "period_type": self.period_type,
            "target_value": as_number(self.target_value),
            "target_type": self.target_type,
            "status": self.status,
            "description": self.description,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_staff_plans:
            data["staff_plans"] = [sp.to_dict() for sp in self.staff_plans]
        return data


class StaffPlan(db.Model):
    """Individual target derived from Plan x PlanShareConfig x roster. Never edited directly."""
    __tablename__ = "staff_plans"
    __table_args__ = (
        db.Index("ix_staff_plans_staff_period", "staff_id", "period", "status"),
        db.Index("ix_staff_plans_plan", "plan_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False)
    branch_code = db.Column(db.String(32), nullable=False)
    position = db.Column(db.String(32), nullable=False)
    kpi_category = db.Column(db.String(32), nullable=False)
    period = db.Column(db.String(32), nullable=False)

    individual_target = db.Column(db.Numeric(18, 2), nullable=False)
    yearly_target = db.Column(db.Numeric(18, 2), nullable=False)
    monthly_target = db.Column(db.Numeric(18, 2), nullable=False)
    weekly_target = db.Column(db.Numeric(18, 2), nullable=False)
    daily_target = db.Column(db.Numeric(18, 2), nullable=False)
    plan_share_percent = db.Column(db.Numeric(9, 4), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STAFF_PLAN_STATUS_ACTIVE)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    plan = db.relationship("Plan", back_populates="staff_plans")
    staff = db.relationship("Staff", backref=db.backref("staff_plans", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "staff_id": self.staff_id,
            "branch_code": self.branch_code,
            "position": self.position,
            "position_label": position_to_display(self.position),
            "kpi_category": self.kpi_category,
            "period": self.period,
            "individual_target": as_number(self.individual_target),
            "yearly_target": as_number(self.yearly_target),
            "monthly_target": as_number(self.monthly_target),
            "weekly_target": as_number(self.weekly_target),
            "daily_target": as_number(self.daily_target),
            "plan_share_percent": as_number(self.plan_share_percent),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
