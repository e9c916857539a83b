# Overview: Organization roster (regions, areas, branches, staff) read by the cascade and approval engines.

from __future__ import annotations

from ..extensions import db
from ..models import Area, Branch, Region, Staff
from ..positions import Position, Role, position_from_display, role_from_display
from ..validation import ConflictError, NotFoundError, ValidationError, require_text, to_text
from . import audit_service


def create_region(*, code: str, name: str, actor_id: int | None = None) -> Region:
    code = require_text(code, "code").upper()
    if db.session.query(Region).filter_by(code=code).first():
        raise ConflictError(f"Region code {code} already exists")
    region = Region(code=code, name=require_text(name, "name"))
    db.session.add(region)
    db.session.flush()
    audit_service.record_event(
        action=audit_service.ACTION_CREATE,
        entity_type="region",
        entity_id=region.id,
        entity_name=region.code,
        actor_id=actor_id,
        detail=f"Created region {region.name}",
    )
    db.session.commit()
    return region


def create_area(*, code: str, name: str, region_id: int, actor_id: int | None = None) -> Area:
    code = require_text(code, "code").upper()
    if not db.session.get(Region, region_id):
        raise NotFoundError(f"Region {region_id} not found")
    if db.session.query(Area).filter_by(code=code).first():
        raise ConflictError(f"Area code {code} already exists")
    area = Area(code=code, name=require_text(name, "name"), region_id=region_id)
    db.session.add(area)
    db.session.flush()
    audit_service.record_event(
        action=audit_service.ACTION_CREATE,
        entity_type="area",
        entity_id=area.id,
        entity_name=area.code,
        actor_id=actor_id,
        detail=f"Created area {area.name}",
    )
    db.session.commit()
    return area


def create_branch(
    *,
    code: str,
    name: str,
    area_id: int | None = None,
    region_id: int | None = None,
    actor_id: int | None = None,
) -> Branch:
    code = require_text(code, "code").upper()
    if db.session.query(Branch).filter_by(code=code).first():
        raise ConflictError(f"Branch code {code} already exists")

    if area_id is not None:
        area = db.session.get(Area, area_id)
        if not area:
            raise NotFoundError(f"Area {area_id} not found")
        region_id = region_id or area.region_id

    branch = Branch(code=code, name=require_text(name, "name"), area_id=area_id, region_id=region_id)
    db.session.add(branch)
    db.session.flush()
    audit_service.record_event(
        action=audit_service.ACTION_CREATE,
        entity_type="branch",
        entity_id=branch.id,
        entity_name=branch.code,
        actor_id=actor_id,
        detail=f"Created branch {branch.name}",
    )
    db.session.commit()
    return branch


def create_staff(
    *,
    employee_id: str,
    name: str,
    role: str,
    position: str | None = None,
    branch_id: int | None = None,
    area_id: int | None = None,
    email: str | None = None,
    phone_number: str | None = None,
    actor_id: int | None = None,
) -> Staff:
    """
    Add a staff member to the roster.

    role and position accept display labels ("Line Manager", "MSO II") and
    are stored as codes. Branch staff inherit area/region from the branch.
    """
    employee_id = require_text(employee_id, "employee_id")
    role_code = role_from_display(role)
    position_code = position_from_display(position) if to_text(position) else None

    if db.session.query(Staff).filter_by(employee_id=employee_id).first():
        raise ConflictError(f"Employee ID {employee_id} already exists")

    region_id = None
    if branch_id is not None:
        branch = db.session.get(Branch, branch_id)
        if not branch:
            raise NotFoundError(f"Branch {branch_id} not found")
        area_id = area_id or branch.area_id
        region_id = branch.region_id
    elif position_code is not None:
        raise ValidationError("Staff holding a branch position must belong to a branch")

    if area_id is not None and region_id is None:
        area = db.session.get(Area, area_id)
        if not area:
            raise NotFoundError(f"Area {area_id} not found")
        region_id = area.region_id

    staff = Staff(
        employee_id=employee_id,
        name=require_text(name, "name"),
        email=to_text(email),
        phone_number=to_text(phone_number),
        role=role_code,
        position=position_code,
        branch_id=branch_id,
        area_id=area_id,
        region_id=region_id,
        is_active=True,
    )
    db.session.add(staff)
    db.session.flush()
    audit_service.record_event(
        action=audit_service.ACTION_CREATE,
        entity_type="staff",
        entity_id=staff.id,
        entity_name=staff.employee_id,
        actor_id=actor_id,
        detail=f"Added {staff.name} ({role_code}{', ' + position_code if position_code else ''})",
    )
    db.session.commit()
    return staff


def set_staff_active(staff_id: int, is_active: bool, *, actor_id: int | None = None) -> Staff:
    staff = get_staff(staff_id)
    staff.is_active = is_active
    audit_service.record_event(
        action=audit_service.ACTION_UPDATE,
        entity_type="staff",
        entity_id=staff.id,
        entity_name=staff.employee_id,
        actor_id=actor_id,
        detail=f"{'Activated' if is_active else 'Deactivated'} {staff.name}",
    )
    db.session.commit()
    return staff


def get_staff(staff_id: int) -> Staff:
    staff = db.session.get(Staff, staff_id)
    if not staff:
        raise NotFoundError(f"Staff {staff_id} not found")
    return staff


def get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if not branch:
        raise NotFoundError(f"Branch {branch_id} not found")
    return branch


def get_branch_by_code(code: str) -> Branch:
    code = require_text(code, "branch_code").upper()
    branch = db.session.query(Branch).filter_by(code=code).first()
    if not branch:
        raise NotFoundError(f"Branch {code} not found")
    return branch


def find_staff_in_branch(employee_id: str, branch_id: int) -> Staff | None:
    return db.session.query(Staff).filter_by(employee_id=employee_id, branch_id=branch_id).first()


def list_branches() -> list[Branch]:
    return db.session.query(Branch).order_by(Branch.code).all()


def list_staff(*, branch_id: int | None = None, active_only: bool = True) -> list[Staff]:
    query = db.session.query(Staff)
    if branch_id is not None:
        query = query.filter(Staff.branch_id == branch_id)
    if active_only:
        query = query.filter(Staff.is_active.is_(True))
    return query.order_by(Staff.id).all()


def active_staff_in_branch(branch_id: int, positions) -> list[Staff]:
    """Active staff of a branch holding one of the given positions, ordered by id."""
    return (
        db.session.query(Staff)
        .filter(
            Staff.branch_id == branch_id,
            Staff.is_active.is_(True),
            Staff.position.in_(tuple(positions)),
        )
        .order_by(Staff.id)
        .all()
    )


def first_in_position(branch_id: int, position: str) -> Staff | None:
    staff = active_staff_in_branch(branch_id, (position,))
    return staff[0] if staff else None


def area_manager_for_branch(branch_id: int) -> Staff | None:
    branch = get_branch(branch_id)
    if branch.area_id is None:
        return None
    return (
        db.session.query(Staff)
        .filter(
            Staff.area_id == branch.area_id,
            Staff.role == Role.AREA_MANAGER,
            Staff.is_active.is_(True),
        )
        .order_by(Staff.id)
        .first()
    )


def mso_staff_in_branch(branch_id: int) -> list[Staff]:
    return active_staff_in_branch(branch_id, Position.MSO_POOL)
