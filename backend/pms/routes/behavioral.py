# Overview: Flask API routes for behavioral evaluations and their approval.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, internal_error, require_auth
from ..extensions import db
from ..positions import Role
from ..services import behavioral_service
from ..validation import AuthorizationError, PMSError


behavioral_bp = Blueprint("behavioral", __name__, url_prefix="/api/behavioral")


@behavioral_bp.get("")
@require_auth
def list_evaluations_route():
    viewer = g.current_staff
    staff_id = request.args.get("staff_id", type=int)
    branch_id = request.args.get("branch_id", type=int)
    if viewer.role not in Role.SUPERVISORS:
        staff_id = viewer.id
    elif viewer.role not in Role.NETWORK:
        branch_id = viewer.branch_id
    try:
        evaluations = behavioral_service.list_evaluations(
            staff_id=staff_id,
            evaluator_id=request.args.get("evaluator_id", type=int),
            branch_id=branch_id,
            period=request.args.get("period"),
            approval_status=request.args.get("approval_status"),
        )
        return jsonify({"items": [e.to_dict() for e in evaluations], "count": len(evaluations)})
    except PMSError as e:
        return error_response(e)


@behavioral_bp.get("/<int:evaluation_id>")
@require_auth
def get_evaluation_route(evaluation_id: int):
    try:
        evaluation = behavioral_service.get_evaluation(evaluation_id)
        viewer = g.current_staff
        if viewer.role not in Role.NETWORK and viewer.id != evaluation.staff_id \
                and viewer.branch_id != evaluation.branch_id:
            raise AuthorizationError("Evaluation belongs to another branch")
        return jsonify(evaluation.to_dict())
    except PMSError as e:
        return error_response(e)


@behavioral_bp.post("")
@require_auth
def create_evaluation_route():
    """
    Body: {"staff_id": 12, "period": "Q4-2025",
           "competencies": {"communication": 4, "teamwork": {"score": 5, "weight": 12}, ...},
           "comments": "..."}
    """
    data = request.get_json(silent=True) or {}
    try:
        evaluation = behavioral_service.create_evaluation(
            evaluator_id=g.current_staff.id,
            staff_id=data.get("staff_id"),
            period=data.get("period"),
            competencies=data.get("competencies"),
            comments=data.get("comments"),
        )
        return jsonify(evaluation.to_dict()), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create behavioral evaluation")
        return internal_error("Failed to create behavioral evaluation")


@behavioral_bp.post("/<int:evaluation_id>/decision")
@require_auth
def decide_evaluation_route(evaluation_id: int):
    """Body: {"decision": "approve" | "reject", "comments": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        evaluation = behavioral_service.decide_evaluation(
            evaluation_id,
            approver_id=g.current_staff.id,
            decision=data.get("decision"),
            comments=data.get("comments"),
        )
        return jsonify(evaluation.to_dict())
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record evaluation decision")
        return internal_error("Failed to record evaluation decision")
