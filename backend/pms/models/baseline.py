from __future__ import annotations

from ..extensions import db
from ..validation import as_number
from pms.time_utils import to_iso_date, to_utc_z


class BaselineBalance(db.Model):
    """
    Per-account starting balance for one baseline period (the "June" snapshot).

    At most one baseline_period has is_active=True at any time; the switch is
    done by baseline_service.activate_period in a single transaction.
    """
    __tablename__ = "baseline_balances"
    __table_args__ = (
        db.UniqueConstraint("account_id", "baseline_period", name="uq_baseline_account_period"),
        db.Index("ix_baseline_active_account", "is_active", "account_id"),
        db.Index("ix_baseline_account_number", "account_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False)
    account_number = db.Column(db.String(64), nullable=True)
    branch_code = db.Column(db.String(32), nullable=True, index=True)

    balance = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    baseline_period = db.Column(db.String(32), nullable=False, index=True)
    baseline_date = db.Column(db.Date, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account_number": self.account_number,
            "branch_code": self.branch_code,
            "balance": as_number(self.balance),
            "baseline_period": self.baseline_period,
            "baseline_date": to_iso_date(self.baseline_date),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
