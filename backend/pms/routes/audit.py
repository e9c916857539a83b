# Overview: Read-only access to the audit trail.

from flask import Blueprint, jsonify, request

from ..decorators import error_response, require_auth, require_role
from ..positions import Role
from ..services import audit_service
from ..validation import ValidationError


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_auth
@require_role(*Role.NETWORK)
def list_events_route():
    """Query parameters: entity_type, entity_id, actor_id, action, as_of (ISO timestamp), limit."""
    try:
        events = audit_service.list_events(
            entity_type=request.args.get("entity_type"),
            entity_id=request.args.get("entity_id", type=int),
            actor_id=request.args.get("actor_id", type=int),
            action=request.args.get("action"),
            as_of=request.args.get("as_of"),
            limit=request.args.get("limit", 200, type=int),
        )
    except ValueError:
        return error_response(ValidationError("as_of must be an ISO timestamp"))
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events)})
