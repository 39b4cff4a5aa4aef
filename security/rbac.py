from functools import wraps
from flask import g, jsonify

ADMIN_ROLES = {"ADMIN", "SUPER_ADMIN"}

def is_admin() -> bool:
    actor = getattr(g, "actor", None)
    return actor is not None and actor.role in ADMIN_ROLES

def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify(error="Authentication required"), 401

            if actor.role != "SUPER_ADMIN" and actor.role not in role_names:
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
