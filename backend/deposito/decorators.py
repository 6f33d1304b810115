# Overview: Request identity decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


EMPLOYEE_HEADER = "X-Employee-Id"
ROLE_HEADER = "X-Employee-Role"


def require_employee(f):
    """
    Require the caller's employee identity.

    The identity provider sits in front of this API and forwards the
    authenticated employee id in X-Employee-Id. Sets:
    - g.employee_id: recorded on every movement, sale and till operation
    - g.employee_role: optional role forwarded in X-Employee-Role

    Returns 401 when the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        employee_id = (request.headers.get(EMPLOYEE_HEADER) or "").strip()
        if not employee_id:
            return jsonify({"error": "Authentication required", "code": "AuthenticationRequired"}), 401
        if len(employee_id) > 64:
            return jsonify({"error": "Invalid employee id", "code": "AuthenticationRequired"}), 401

        g.employee_id = employee_id
        g.employee_role = (request.headers.get(ROLE_HEADER) or "").strip().lower() or None
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require one of the given roles (e.g. "gestor").

    Must be stacked under @require_employee.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "employee_id"):
                return jsonify({"error": "Authentication required", "code": "AuthenticationRequired"}), 401
            if g.employee_role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "code": "PermissionDenied",
                    "details": {"required_roles": list(roles)},
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
