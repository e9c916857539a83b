# Overview: Flask API routes for plan share configurations.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, internal_error, require_auth, require_role
from ..extensions import db
from ..kpi import category_from_display
from ..positions import Role
from ..services import plan_share_service
from ..validation import PMSError


plan_share_configs_bp = Blueprint("plan_share_configs", __name__, url_prefix="/api/plan-share-configs")


def _shares_from(data: dict):
    return data.get("plan_shares", data.get("planShares"))


@plan_share_configs_bp.get("")
@require_auth
def list_route():
    try:
        configs = plan_share_service.list_configs(
            kpi_category=request.args.get("kpi_category"),
            branch_code=request.args.get("branch_code"),
            include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        )
        return jsonify({"items": [c.to_dict() for c in configs], "count": len(configs)})
    except PMSError as e:
        return error_response(e)


@plan_share_configs_bp.get("/resolve")
@require_auth
def resolve_route():
    """The config a plan for (kpi_category, branch_code) would cascade with."""
    try:
        config = plan_share_service.resolve_config(
            category_from_display(request.args.get("kpi_category")),
            request.args.get("branch_code") or "",
        )
        return jsonify(config.to_dict())
    except PMSError as e:
        return error_response(e)


@plan_share_configs_bp.post("")
@require_auth
@require_role(Role.ADMIN)
def create_route():
    """
    Body: {"kpi_category": "...", "branch_code": "optional",
           "plan_shares": {"Branch Manager": 20, "MSM": 15, "Accountant": 10, "MSO": 55}}
    """
    data = request.get_json(silent=True) or {}
    try:
        config = plan_share_service.create_config(
            kpi_category=data.get("kpi_category"),
            plan_shares=_shares_from(data),
            branch_code=data.get("branch_code"),
            actor_id=g.current_staff.id,
        )
        return jsonify(config.to_dict()), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create plan share config")
        return internal_error("Failed to create plan share config")


@plan_share_configs_bp.patch("/<int:config_id>")
@require_auth
@require_role(Role.ADMIN)
def update_route(config_id: int):
    data = request.get_json(silent=True) or {}
    try:
        config = plan_share_service.update_config(
            config_id, plan_shares=_shares_from(data), actor_id=g.current_staff.id
        )
        return jsonify(config.to_dict())
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update plan share config")
        return internal_error("Failed to update plan share config")


@plan_share_configs_bp.delete("/<int:config_id>")
@require_auth
@require_role(Role.ADMIN)
def deactivate_route(config_id: int):
    try:
        config = plan_share_service.deactivate_config(config_id, actor_id=g.current_staff.id)
        return jsonify(config.to_dict())
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
