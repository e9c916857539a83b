from __future__ import annotations

from ..extensions import db
from ..positions import position_to_display, role_to_display
from pms.time_utils import to_utc_z


class Region(db.Model):
    __tablename__ = "regions"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_regions_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Area(db.Model):
    __tablename__ = "areas"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_areas_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    region_id = db.Column(db.Integer, db.ForeignKey("regions.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    region = db.relationship("Region", backref=db.backref("areas", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "region_id": self.region_id,
            "code": self.code,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Branch(db.Model):
    """
    A branch office. Plans, baselines and CBS extracts are keyed by the
    branch code, tasks and mappings by branch id.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_branches_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    region_id = db.Column(db.Integer, db.ForeignKey("regions.id"), nullable=True, index=True)
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    region = db.relationship("Region", backref=db.backref("branches", lazy=True))
    area = db.relationship("Area", backref=db.backref("branches", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "region_id": self.region_id,
            "area_id": self.area_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Staff(db.Model):
    """
    An employee on the roster.

    position is the branch seat (None for area/region/HQ staff);
    role is the hierarchy level. Both hold codes from pms.positions.
    """
    __tablename__ = "staff"
    __table_args__ = (
        db.UniqueConstraint("employee_id", name="uq_staff_employee_id"),
        db.Index("ix_staff_branch_active", "branch_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)

    role = db.Column(db.String(32), nullable=False)
    position = db.Column(db.String(32), nullable=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id"), nullable=True, index=True)
    region_id = db.Column(db.Integer, db.ForeignKey("regions.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("staff", lazy=True))
    area = db.relationship("Area", backref=db.backref("staff", lazy=True))
    region = db.relationship("Region", backref=db.backref("staff", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "name": self.name,
            "email": self.email,
            "phone_number": self.phone_number,
            "role": self.role,
            "role_label": role_to_display(self.role),
            "position": self.position,
            "position_label": position_to_display(self.position),
            "branch_id": self.branch_id,
            "area_id": self.area_id,
            "region_id": self.region_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
