# Overview: Request authentication, role checks and JSON error responses for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service
from .positions import Role
from .validation import AuthorizationError, PMSError


def error_response(error: PMSError):
    """JSON body and status for a domain error: {"error": {"kind", "message"}}."""
    return jsonify({"error": error.to_dict()}), error.status_code


def internal_error(message: str):
    return jsonify({"error": {"kind": "internal_error", "message": message}}), 500


def require_auth(f):
    """
    Require a bearer session token.

    Sets g.current_staff (the authenticated Staff) and g.session_context.
    Answers 401 when the header is missing or the session is invalid,
    expired, revoked, or belongs to a deactivated staff member.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": {"kind": "authentication_required", "message": "Authentication required"}}), 401

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": {"kind": "authentication_required", "message": "Invalid or expired token"}}), 401

        g.current_staff = context.staff
        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Allow only staff whose hierarchy role is one of `roles`. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            staff = getattr(g, "current_staff", None)
            if staff is None:
                return jsonify({"error": {"kind": "authentication_required", "message": "Authentication required"}}), 401
            if staff.role not in roles:
                return error_response(AuthorizationError(
                    f"This action requires one of the roles: {', '.join(roles)}"
                ))
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def ensure_branch_access(branch_id) -> None:
    """Branch-bound staff may only act on their own branch; network roles on any."""
    staff = g.current_staff
    if staff.role in Role.NETWORK:
        return
    if branch_id is None or staff.branch_id != branch_id:
        raise AuthorizationError("You can only act on your own branch")
