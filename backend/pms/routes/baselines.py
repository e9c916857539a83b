# Overview: Flask API routes for baseline balance imports and period activation.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, internal_error, require_auth, require_role
from ..extensions import db
from ..positions import Role
from ..services import baseline_service
from ..uploads import form_or_json, rows_from_request
from ..validation import PMSError, to_bool


baselines_bp = Blueprint("baselines", __name__, url_prefix="/api/baselines")


@baselines_bp.get("")
@require_auth
def list_balances_route():
    return jsonify(baseline_service.list_balances(
        baseline_period=request.args.get("baseline_period"),
        branch_code=request.args.get("branch_code"),
        active_only=request.args.get("active_only", "false").lower() == "true",
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 100, type=int),
    ))


@baselines_bp.get("/periods")
@require_auth
def list_periods_route():
    return jsonify({
        "items": baseline_service.list_periods(),
        "active_period": baseline_service.active_period(),
    })


@baselines_bp.post("/upload")
@require_auth
@require_role(Role.ADMIN)
def upload_route():
    """
    Import baseline balances from a .csv/.json/.xlsx file or {"rows": [...]}.

    Parameters (form fields or JSON): baseline_period, baseline_date,
    make_active (default true).
    """
    try:
        rows, _file_name, _size = rows_from_request()
        params = form_or_json()
        result = baseline_service.import_baselines(
            rows,
            baseline_period=params.get("baseline_period"),
            baseline_date=params.get("baseline_date"),
            make_active=to_bool(params.get("make_active"), default=True),
            actor_id=g.current_staff.id,
        )
        return jsonify(result), 201
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to import baseline balances")
        return internal_error("Failed to import baseline balances")


@baselines_bp.post("/activate")
@require_auth
@require_role(Role.ADMIN)
def activate_route():
    data = request.get_json(silent=True) or {}
    try:
        result = baseline_service.activate_period(data.get("baseline_period"), actor_id=g.current_staff.id)
        return jsonify(result)
    except PMSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to activate baseline period")
        return internal_error("Failed to activate baseline period")
