# Overview: Flask API routes for daily task submission and approval decisions.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, internal_error, require_auth
from ..extensions import db
from ..positions import Role
from ..services import task_service
from ..validation import AuthorizationError, PMSError, to_bool


tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")


@tasks_bp.get("")
@require_auth
def list_tasks_route():
    """
    Query parameters: branch_id, submitted_by_id, approval_status, task_type,
    task_date, cbs_validated, pending_for_me. Branch-bound staff are limited
    to their own branch; staff without a supervising role to their own tasks
    unless asking for tasks awaiting their approval.
    """
    staff = g.current_staff
    branch_id = request.args.get("branch_id", type=int)
    submitted_by_id = request.args.get("submitted_by_id", type=int)
    approver_id = None
    if request.args.get("pending_for_me", "false").lower() == "true":
        approver_id = staff.id
    if staff.role not in Role.NETWORK:
        branch_id = staff.branch_id
    if staff.role not in Role.SUPERVISORS and approver_id is None:
        submitted_by_id = staff.id

    cbs_validated = request.args.get("cbs_validated")
    try:
        tasks = task_service.list_tasks(
            branch_id=branch_id,
            submitted_by_id=submitted_by_id,
            approver_id=approver_id,
            approval_status=request.args.get("approval_status"),
            task_type=request.args.get("task_type"),
            task_date=request.args.get("task_date"),
            cbs_validated=to_bool(cbs_validated) if cbs_validated is not None else None,
        )
        return jsonify({"items": [t.to_dict() for t in tasks], "count": len(tasks)})
    except PMSError as e:
        return error_response(e)


@tasks_bp.get("/<int:task_id>")
@require_auth
def get_task_route(task_id: int):
    try:
        task = task_service.get_task(task_id)
        staff = g.current_staff
        if staff.role not in Role.NETWORK and task.branch_id != staff.branch_id:
            raise AuthorizationError("Task belongs to another branch")
        return jsonify(task.to_dict())
    except PMSError as e:
        return error_response(e)


@tasks_bp.post("")
@require_auth
def create_task_route():
    """
    Body: {"task_type", "account_number", "amount", "task_date",
           "customer_name" (optional), "remarks" (optional)}
    The submitter is the authenticated staff member.
    """
    data = request.get_json(silent=True) or {}
    try:
        task = task_service.create_task(
            submitter_id=g.current_staff.id,
            task_type=data.get("task_type"),
            account_number=data.get("account_number"),
            amount=data.get("amount"),
            task_date=data.get("task_date"),
            customer_name=data.get("customer_name"),
            remarks=data.get("remarks"),
        )
        return jsonify(task.to_dict()), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create task")
        return internal_error("Failed to create task")


@tasks_bp.post("/<int:task_id>/decision")
@require_auth
def decide_task_route(task_id: int):
    """Body: {"decision": "approve" | "reject", "comments": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        task = task_service.decide_task(
            task_id,
            approver_id=g.current_staff.id,
            decision=data.get("decision"),
            comments=data.get("comments"),
        )
        return jsonify(task.to_dict())
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record task decision")
        return internal_error("Failed to record task decision")
