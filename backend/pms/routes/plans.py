# Overview: Flask API routes for branch plans, cascades and plan uploads.

"""
Plan Routes

Creating a plan or changing its target cascades it to staff in the same
transaction. Plans are managed by network roles and branch managers; branch
managers only for their own branch.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, internal_error, require_auth, require_role
from ..extensions import db
from ..positions import Role
from ..services import org_service, plan_service
from ..uploads import rows_from_request
from ..validation import AuthorizationError, PMSError


plans_bp = Blueprint("plans", __name__, url_prefix="/api/plans")


def _ensure_plan_branch(branch_code) -> None:
    staff = g.current_staff
    if staff.role in Role.NETWORK:
        return
    own = org_service.get_branch(staff.branch_id).code if staff.branch_id else None
    if not branch_code or own != str(branch_code).strip().upper():
        raise AuthorizationError("You can only manage plans of your own branch")


@plans_bp.get("")
@require_auth
def list_plans_route():
    try:
        plans = plan_service.list_plans(
            branch_code=request.args.get("branch_code"),
            kpi_category=request.args.get("kpi_category"),
            period=request.args.get("period"),
            status=request.args.get("status"),
        )
        return jsonify({"items": [p.to_dict() for p in plans], "count": len(plans)})
    except PMSError as e:
        return error_response(e)


@plans_bp.get("/<int:plan_id>")
@require_auth
def get_plan_route(plan_id: int):
    try:
        return jsonify(plan_service.get_plan(plan_id).to_dict(include_staff_plans=True))
    except PMSError as e:
        return error_response(e)


@plans_bp.post("")
@require_auth
@require_role(*Role.MANAGEMENT)
def create_plan_route():
    """
    Body: {"branch_code", "kpi_category", "period", "target_value",
           "target_type" (optional, incremental), "description" (optional)}
    """
    data = request.get_json(silent=True) or {}
    try:
        _ensure_plan_branch(data.get("branch_code"))
        plan = plan_service.create_plan(
            branch_code=data.get("branch_code"),
            kpi_category=data.get("kpi_category"),
            period=data.get("period"),
            target_value=data.get("target_value"),
            target_type=data.get("target_type"),
            description=data.get("description"),
            actor_id=g.current_staff.id,
        )
        return jsonify(plan.to_dict(include_staff_plans=True)), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create plan")
        return internal_error("Failed to create plan")


@plans_bp.patch("/<int:plan_id>")
@require_auth
@require_role(*Role.MANAGEMENT)
def update_plan_route(plan_id: int):
    data = request.get_json(silent=True) or {}
    try:
        _ensure_plan_branch(plan_service.get_plan(plan_id).branch_code)
        plan = plan_service.update_plan(
            plan_id,
            target_value=data.get("target_value"),
            status=data.get("status"),
            description=data.get("description"),
            actor_id=g.current_staff.id,
        )
        return jsonify(plan.to_dict(include_staff_plans=True))
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update plan")
        return internal_error("Failed to update plan")


@plans_bp.post("/<int:plan_id>/cascade")
@require_auth
@require_role(*Role.MANAGEMENT)
def recascade_route(plan_id: int):
    try:
        _ensure_plan_branch(plan_service.get_plan(plan_id).branch_code)
        staff_plans = plan_service.recascade_plan(plan_id, actor_id=g.current_staff.id)
        return jsonify({"plan_id": plan_id, "staff_plans": [sp.to_dict() for sp in staff_plans]})
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cascade plan")
        return internal_error("Failed to cascade plan")


@plans_bp.post("/upload")
@require_auth
@require_role(*Role.NETWORK)
def upload_plans_route():
    try:
        rows, _file_name, _size = rows_from_request()
        result = plan_service.upload_plans(rows, actor_id=g.current_staff.id)
        return jsonify(result), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to upload plans")
        return internal_error("Failed to upload plans")
