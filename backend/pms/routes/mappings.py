# Overview: Flask API routes for the account mapping registry.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ensure_branch_access, error_response, internal_error, require_auth, require_role
from ..extensions import db
from ..positions import Role
from ..services import mapping_service
from ..uploads import form_or_json, rows_from_request
from ..validation import PMSError, ValidationError


mappings_bp = Blueprint("mappings", __name__, url_prefix="/api/mappings")

MAPPING_MANAGERS = Role.MANAGEMENT + (Role.LINE_MANAGER,)


def _branch_param(value):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("branch_id must be an integer")


@mappings_bp.get("")
@require_auth
def list_mappings_route():
    """
    Query parameters: branch_id, staff_id, status, unassigned, page, per_page.
    Staff without a supervising role only see their own accounts.
    """
    staff = g.current_staff
    staff_id = request.args.get("staff_id", type=int)
    if staff.role not in Role.SUPERVISORS:
        staff_id = staff.id
    result = mapping_service.list_mappings(
        branch_id=request.args.get("branch_id", type=int),
        staff_id=staff_id,
        status=request.args.get("status"),
        unassigned=request.args.get("unassigned", "false").lower() == "true",
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 100, type=int),
    )
    return jsonify(result)


@mappings_bp.get("/classify")
@require_auth
def classify_route():
    account_number = request.args.get("account_number")
    if not account_number:
        return error_response(ValidationError("account_number is required"))
    status, can_count = mapping_service.classify(account_number, g.current_staff.id)
    return jsonify({"account_number": account_number, "mapping_status": status, "can_count_for_kpi": can_count})


@mappings_bp.get("/<int:mapping_id>")
@require_auth
def get_mapping_route(mapping_id: int):
    try:
        return jsonify(mapping_service.get_mapping(mapping_id).to_dict())
    except PMSError as e:
        return error_response(e)


@mappings_bp.post("")
@require_auth
@require_role(*MAPPING_MANAGERS)
def create_mapping_route():
    data = request.get_json(silent=True) or {}
    try:
        branch_id = _branch_param(data.get("branch_id")) or g.current_staff.branch_id
        ensure_branch_access(branch_id)
        mapping = mapping_service.create_mapping(
            account_number=data.get("account_number"),
            customer_name=data.get("customer_name"),
            staff_id=data.get("staff_id"),
            branch_id=branch_id,
            account_type=data.get("account_type"),
            balance=data.get("balance"),
            phone_number=data.get("phone_number"),
            notes=data.get("notes"),
            actor_id=g.current_staff.id,
        )
        return jsonify(mapping.to_dict()), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create account mapping")
        return internal_error("Failed to create account mapping")


@mappings_bp.patch("/<int:mapping_id>")
@require_auth
@require_role(*MAPPING_MANAGERS)
def update_mapping_route(mapping_id: int):
    """Body may carry staff_id (null unassigns), status, customer_name, account_type, phone_number, notes."""
    data = request.get_json(silent=True) or {}
    fields = {k: data[k] for k in ("status", "customer_name", "account_type", "phone_number", "notes") if k in data}
    if "staff_id" in data:
        fields["staff_id"] = data["staff_id"]
    try:
        mapping = mapping_service.get_mapping(mapping_id)
        ensure_branch_access(mapping.branch_id)
        mapping = mapping_service.update_mapping(mapping_id, actor_id=g.current_staff.id, **fields)
        return jsonify(mapping.to_dict())
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update account mapping")
        return internal_error("Failed to update account mapping")


@mappings_bp.post("/upload")
@require_auth
@require_role(*MAPPING_MANAGERS)
def upload_route():
    try:
        rows, _file_name, _size = rows_from_request()
        branch_id = _branch_param(form_or_json().get("branch_id")) or g.current_staff.branch_id
        ensure_branch_access(branch_id)
        result = mapping_service.bulk_upload(rows, branch_id=branch_id, actor_id=g.current_staff.id)
        return jsonify(result), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to upload account mappings")
        return internal_error("Failed to upload account mappings")


@mappings_bp.post("/auto-balance")
@require_auth
@require_role(*MAPPING_MANAGERS)
def auto_balance_route():
    data = request.get_json(silent=True) or {}
    try:
        branch_id = _branch_param(data.get("branch_id")) or g.current_staff.branch_id
        ensure_branch_access(branch_id)
        result = mapping_service.auto_balance(branch_id=branch_id, actor_id=g.current_staff.id)
        result["per_staff"] = {str(k): v for k, v in result["per_staff"].items()}
        return jsonify(result)
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to auto-balance account mappings")
        return internal_error("Failed to auto-balance account mappings")
