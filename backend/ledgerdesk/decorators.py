# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


USER_HEADER = "X-User-Id"


def require_user(f):
    """
    Resolve the acting user and store it in Flask g.

    The desktop shell owns login and session storage; it forwards the
    authenticated user's id in the X-User-Id header.

    Sets:
    - g.current_user: the active User

    Returns 401 if:
    - No X-User-Id header, or it is not an integer
    - No such user
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(USER_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the acting user to hold one of the given roles.

    Must be applied after @require_user.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401
            if user.role not in roles:
                return jsonify({"error": f"Only {' or '.join(roles)} users can do this"}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
