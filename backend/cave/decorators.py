# Overview: Request decorators for API routes and the current-caller accessor.

from functools import wraps
from flask import request, jsonify, g

from .services import token_service
from .services.errors import AuthorizationError


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def current_user_id() -> int:
    """
    The authenticated caller's user id.

    Raises AuthorizationError when no identity was resolved for this
    request; callers must never fall back to an anonymous id.
    """
    if not _is_authenticated() or g.current_user is None:
        raise AuthorizationError("Authentication required")
    return g.current_user.id


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.auth_context: The full AuthContext object

    Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = token_service.validate_token(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.auth_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to be a Cave operator."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not g.current_user.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
