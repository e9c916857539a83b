# Overview: Flask API routes for CBS extract reconciliation and discrepancy follow-up.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ensure_branch_access, error_response, internal_error, require_auth, require_role
from ..extensions import db
from ..positions import Role
from ..services import cbs_service
from ..uploads import form_or_json, rows_from_request
from ..validation import PMSError, ValidationError


cbs_bp = Blueprint("cbs", __name__, url_prefix="/api/cbs")

RECONCILERS = Role.MANAGEMENT + (Role.LINE_MANAGER,)


@cbs_bp.post("/upload")
@require_auth
@require_role(*RECONCILERS)
def upload_route():
    """
    Reconcile a CBS extract. File (.csv/.json/.xlsx) or {"rows": [...]},
    plus validation_date and branch_id (defaults to the caller's branch).
    """
    try:
        rows, file_name, file_size = rows_from_request()
        params = form_or_json()
        branch_id = params.get("branch_id") or g.current_staff.branch_id
        try:
            branch_id = int(branch_id) if branch_id is not None else None
        except (TypeError, ValueError):
            raise ValidationError("branch_id must be an integer")
        if branch_id is None:
            raise ValidationError("branch_id is required")
        ensure_branch_access(branch_id)

        validation = cbs_service.reconcile(
            rows,
            branch_id=branch_id,
            validation_date=params.get("validation_date"),
            actor_id=g.current_staff.id,
            file_name=file_name,
            file_size=file_size,
        )
        return jsonify(validation.to_dict()), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reconcile CBS upload")
        return internal_error("Failed to reconcile CBS upload")


@cbs_bp.get("/validations")
@require_auth
@require_role(*RECONCILERS)
def list_validations_route():
    staff = g.current_staff
    branch_id = request.args.get("branch_id", type=int)
    if staff.role not in Role.NETWORK:
        branch_id = staff.branch_id
    try:
        validations = cbs_service.list_validations(
            branch_id=branch_id,
            validation_date=request.args.get("validation_date"),
            status=request.args.get("status"),
        )
        return jsonify({
            "items": [v.to_dict(include_discrepancies=False) for v in validations],
            "count": len(validations),
        })
    except PMSError as e:
        return error_response(e)


@cbs_bp.get("/validations/<int:validation_id>")
@require_auth
@require_role(*RECONCILERS)
def get_validation_route(validation_id: int):
    try:
        validation = cbs_service.get_validation(validation_id)
        ensure_branch_access(validation.branch_id)
        return jsonify(validation.to_dict())
    except PMSError as e:
        return error_response(e)


@cbs_bp.post("/validations/<int:validation_id>/discrepancies/<int:discrepancy_id>/resolve")
@require_auth
@require_role(*RECONCILERS)
def resolve_discrepancy_route(validation_id: int, discrepancy_id: int):
    data = request.get_json(silent=True) or {}
    try:
        ensure_branch_access(cbs_service.get_validation(validation_id).branch_id)
        discrepancy = cbs_service.resolve_discrepancy(
            validation_id, discrepancy_id, notes=data.get("notes"), actor_id=g.current_staff.id
        )
        return jsonify(discrepancy.to_dict())
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to resolve discrepancy")
        return internal_error("Failed to resolve discrepancy")
