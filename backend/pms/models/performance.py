from __future__ import annotations

from ..extensions import db
from ..kpi import Rating
from ..validation import as_number
from .tasks import APPROVAL_LABELS, APPROVAL_PENDING, chain_to_dict
from pms.time_utils import to_utc_z


SCORE_STATUS_DRAFT = "DRAFT"
SCORE_STATUS_CALCULATED = "CALCULATED"
SCORE_STATUS_LOCKED = "LOCKED"
SCORE_STATUS_FINALIZED = "FINALIZED"
SCORE_STATUS_LABELS = {
    SCORE_STATUS_DRAFT: "Draft",
    SCORE_STATUS_CALCULATED: "Calculated",
    SCORE_STATUS_LOCKED: "Locked",
    SCORE_STATUS_FINALIZED: "Finalized",
}


class PerformanceScore(db.Model):
    """
    Final score for one staff member and period.

    The period is stored as (period_type, year, period_index) so that
    "Q4-2025" and "2025-Q4" land on the same row. Once is_locked is set
    the score values are frozen.
    """
    __tablename__ = "performance_scores"
    __table_args__ = (
        db.UniqueConstraint("staff_id", "period_type", "year", "period_index", name="uq_performance_scores_staff_period"),
        db.Index("ix_performance_scores_branch_period", "branch_id", "period_type", "year", "period_index"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    period = db.Column(db.String(32), nullable=False)
    period_type = db.Column(db.String(16), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    period_index = db.Column(db.Integer, nullable=False, default=0)

    kpi_scores = db.Column(db.JSON, nullable=False, default=dict)
    kpi_total_score = db.Column(db.Numeric(7, 2), nullable=False, default=0)
    behavioral_score = db.Column(db.Numeric(7, 2), nullable=False, default=0)
    behavioral_evaluation_id = db.Column(db.Integer, db.ForeignKey("behavioral_evaluations.id"), nullable=True)
    final_score = db.Column(db.Numeric(7, 2), nullable=False, default=0)
    rating = db.Column(db.String(20), nullable=False, default=Rating.UNSATISFACTORY)

    status = db.Column(db.String(16), nullable=False, default=SCORE_STATUS_DRAFT)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    calculated_by_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    calculated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    staff = db.relationship("Staff", foreign_keys=[staff_id], backref=db.backref("performance_scores", lazy=True))
    behavioral_evaluation = db.relationship("BehavioralEvaluation")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "staff_id": self.staff_id,
            "branch_id": self.branch_id,
            "period": self.period,
            "period_type": self.period_type,
            "year": self.year,
            "period_index": self.period_index,
            "kpi_scores": self.kpi_scores or {},
            "kpi_total_score": as_number(self.kpi_total_score),
            "behavioral_score": as_number(self.behavioral_score),
            "behavioral_evaluation_id": self.behavioral_evaluation_id,
            "final_score": as_number(self.final_score),
            "rating": self.rating,
            "rating_label": Rating.LABELS.get(self.rating, self.rating),
            "status": self.status,
            "status_label": SCORE_STATUS_LABELS.get(self.status, self.status),
            "is_locked": self.is_locked,
            "locked_at": to_utc_z(self.locked_at) if self.locked_at else None,
            "calculated_at": to_utc_z(self.calculated_at) if self.calculated_at else None,
            "version_id": self.version_id,
        }


class BehavioralEvaluation(db.Model):
    """
    Competency evaluation of one staff member by their evaluator.

    competencies maps a competency name to {"score": 1..5, "weight": pct}.
    total_score is already scaled to the 15-point behavioral share.
    """
    __tablename__ = "behavioral_evaluations"
    __table_args__ = (
        db.Index("ix_behavioral_evaluations_staff_period", "staff_id", "period_type", "year", "period_index"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False)
    evaluator_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    period = db.Column(db.String(32), nullable=False)
    period_type = db.Column(db.String(16), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    period_index = db.Column(db.Integer, nullable=False, default=0)

    competencies = db.Column(db.JSON, nullable=False, default=dict)
    total_score = db.Column(db.Numeric(7, 2), nullable=False, default=0)
    comments = db.Column(db.Text, nullable=True)

    approval_policy = db.Column(db.String(32), nullable=False)
    approval_status = db.Column(db.String(16), nullable=False, default=APPROVAL_PENDING)
    approval_chain = db.Column(db.JSON, nullable=False, default=list)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    staff = db.relationship("Staff", foreign_keys=[staff_id])
    evaluator = db.relationship("Staff", foreign_keys=[evaluator_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "staff_id": self.staff_id,
            "evaluator_id": self.evaluator_id,
            "branch_id": self.branch_id,
            "period": self.period,
            "period_type": self.period_type,
            "year": self.year,
            "period_index": self.period_index,
            "competencies": self.competencies or {},
            "total_score": as_number(self.total_score),
            "comments": self.comments,
            "approval_policy": self.approval_policy,
            "approval_status": self.approval_status,
            "approval_status_label": APPROVAL_LABELS.get(self.approval_status, self.approval_status),
            "approval_chain": chain_to_dict(self.approval_chain),
            "is_locked": self.is_locked,
            "locked_at": to_utc_z(self.locked_at) if self.locked_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
