# Overview: Flask API routes for reading cascaded staff plans.

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_auth
from ..positions import Role
from ..services import plan_service
from ..validation import PMSError


staff_plans_bp = Blueprint("staff_plans", __name__, url_prefix="/api/staff-plans")


@staff_plans_bp.get("")
@require_auth
def list_staff_plans_route():
    """
    Query parameters: staff_id, branch_code, period, kpi_category,
    include_inactive. Staff without a supervising role see only their own.
    """
    staff = g.current_staff
    staff_id = request.args.get("staff_id", type=int)
    if staff.role not in Role.SUPERVISORS:
        staff_id = staff.id
    try:
        items = plan_service.list_staff_plans(
            staff_id=staff_id,
            branch_code=request.args.get("branch_code"),
            period=request.args.get("period"),
            kpi_category=request.args.get("kpi_category"),
            active_only=request.args.get("include_inactive", "false").lower() != "true",
        )
        return jsonify({"items": [sp.to_dict() for sp in items], "count": len(items)})
    except PMSError as e:
        return error_response(e)


@staff_plans_bp.get("/me")
@require_auth
def my_staff_plans_route():
    try:
        items = plan_service.list_staff_plans(staff_id=g.current_staff.id, period=request.args.get("period"))
        return jsonify({"items": [sp.to_dict() for sp in items], "count": len(items)})
    except PMSError as e:
        return error_response(e)
