# Overview: Flask API routes for the CBS product to KPI category registry.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, internal_error, require_auth, require_role
from ..extensions import db
from ..positions import Role
from ..services import product_mapping_service
from ..uploads import rows_from_request
from ..validation import PMSError, to_bool


product_mappings_bp = Blueprint("product_mappings", __name__, url_prefix="/api/product-mappings")


@product_mappings_bp.get("")
@require_auth
def list_route():
    try:
        items = product_mapping_service.list_product_mappings(
            status=request.args.get("status"),
            kpi_category=request.args.get("kpi_category"),
        )
        return jsonify({"items": [m.to_dict() for m in items], "count": len(items)})
    except PMSError as e:
        return error_response(e)


@product_mappings_bp.post("")
@require_auth
@require_role(Role.ADMIN)
def upsert_route():
    data = request.get_json(silent=True) or {}
    try:
        mapping = product_mapping_service.upsert_product_mapping(
            product_name=data.get("product_name"),
            kpi_category=data.get("kpi_category"),
            description=data.get("description"),
            is_active=to_bool(data.get("is_active"), default=True),
            actor_id=g.current_staff.id,
        )
        return jsonify(mapping.to_dict()), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to save product mapping")
        return internal_error("Failed to save product mapping")


@product_mappings_bp.post("/upload")
@require_auth
@require_role(Role.ADMIN)
def upload_route():
    try:
        rows, _file_name, _size = rows_from_request()
        result = product_mapping_service.bulk_upsert(rows, actor_id=g.current_staff.id)
        return jsonify(result), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to upload product mappings")
        return internal_error("Failed to upload product mappings")


@product_mappings_bp.delete("/<int:mapping_id>")
@require_auth
@require_role(Role.ADMIN)
def deactivate_route(mapping_id: int):
    try:
        mapping = product_mapping_service.deactivate(mapping_id, actor_id=g.current_staff.id)
        return jsonify(mapping.to_dict())
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
