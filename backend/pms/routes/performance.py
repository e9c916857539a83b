# Overview: Flask API routes for KPI scores and final performance scores.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, internal_error, require_auth, require_role
from ..extensions import db
from ..positions import Role
from ..services import org_service, performance_service, scoring_service
from ..validation import AuthorizationError, PMSError, ValidationError, as_number


performance_bp = Blueprint("performance", __name__, url_prefix="/api/performance")


def _ensure_can_view(staff_id: int) -> None:
    viewer = g.current_staff
    if viewer.id == staff_id or viewer.role in Role.NETWORK:
        return
    if viewer.role in Role.SUPERVISORS and org_service.get_staff(staff_id).branch_id == viewer.branch_id:
        return
    raise AuthorizationError("You cannot view this staff member's performance")


@performance_bp.get("/kpi/<int:staff_id>")
@require_auth
def kpi_score_route(staff_id: int):
    """Live KPI score for ?period=... without persisting anything."""
    period = request.args.get("period")
    try:
        if not period:
            raise ValidationError("period is required")
        _ensure_can_view(staff_id)
        result = scoring_service.score(staff_id, period, branch_code=request.args.get("branch_code"))
        result["kpi_total_score"] = as_number(result["kpi_total_score"])
        return jsonify(result)
    except PMSError as e:
        return error_response(e)


@performance_bp.post("/finalize")
@require_auth
@require_role(*Role.MANAGEMENT)
def finalize_route():
    """Body: {"staff_id": 12, "period": "Q4-2025", "lock": false}"""
    data = request.get_json(silent=True) or {}
    try:
        staff_id = data.get("staff_id")
        if staff_id is None:
            raise ValidationError("staff_id is required")
        _ensure_can_view(int(staff_id))
        score = performance_service.finalize(
            int(staff_id),
            data.get("period"),
            actor_id=g.current_staff.id,
            lock=bool(data.get("lock", False)),
        )
        return jsonify(score.to_dict())
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except (TypeError, ValueError):
        return error_response(ValidationError("staff_id must be an integer"))
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to finalize performance score")
        return internal_error("Failed to finalize performance score")


@performance_bp.get("")
@require_auth
def list_scores_route():
    viewer = g.current_staff
    staff_id = request.args.get("staff_id", type=int)
    branch_id = request.args.get("branch_id", type=int)
    if viewer.role not in Role.SUPERVISORS:
        staff_id = viewer.id
    elif viewer.role not in Role.NETWORK:
        branch_id = viewer.branch_id
    locked = request.args.get("locked")
    try:
        scores = performance_service.list_scores(
            staff_id=staff_id,
            branch_id=branch_id,
            period=request.args.get("period"),
            locked=None if locked is None else locked.lower() == "true",
        )
        return jsonify({"items": [s.to_dict() for s in scores], "count": len(scores)})
    except PMSError as e:
        return error_response(e)


@performance_bp.get("/<int:score_id>")
@require_auth
def get_score_route(score_id: int):
    try:
        score = performance_service.get_score(score_id)
        _ensure_can_view(score.staff_id)
        return jsonify(score.to_dict())
    except PMSError as e:
        return error_response(e)


@performance_bp.post("/<int:score_id>/lock")
@require_auth
@require_role(*Role.MANAGEMENT)
def lock_score_route(score_id: int):
    try:
        _ensure_can_view(performance_service.get_score(score_id).staff_id)
        score = performance_service.lock_score(score_id, actor_id=g.current_staff.id)
        return jsonify(score.to_dict())
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
