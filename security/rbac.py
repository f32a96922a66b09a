from functools import wraps
from flask import g, jsonify

def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return any(r.name == role_name for r in user.roles)

def is_admin() -> bool:
    return has_role("ADMIN")

def require_roles(*role_names: str):
    """
    Usage: @require_roles("FACILITY_OWNER")
    ADMIN passes every role check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            user_roles = {r.name for r in user.roles}
            if "ADMIN" not in user_roles and not user_roles.intersection(set(role_names)):
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator

def can_manage_facility(facility) -> bool:
    """Facility owner or ADMIN."""
    user = getattr(g, "user", None)
    if user is None or facility is None:
        return False
    return facility.owner_user_id == user.id or is_admin()
