# ------- storefront/utils/decorators.py -------
from functools import wraps
from flask import request, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..extensions import db
from ..errors import InvalidRequest
from ..utils.api import api_error
from ..model.user import User

def _current_user():
    verify_jwt_in_request()
    uid = get_jwt_identity()
    try:
        uid = int(uid)
    except (TypeError, ValueError):
        uid = None
    return db.session.get(User, uid) if uid else None

def role_required(*roles, message: str | None = None):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            u = _current_user()
            if not u:
                return jsonify(api_error("Unauthorized", {"code": "UNAUTHORIZED"})), 401
            if u.role not in roles:
                return jsonify(api_error(message or "Forbidden", {"code": "FORBIDDEN"})), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator

def _to_int(value, field):
    if isinstance(value, bool):
        raise InvalidRequest(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{field} must be an integer")

def resolve_user_id(data: dict | None = None, *, message="userId required") -> int:
    """
    userId from the JSON body or query string; falls back to the JWT
    identity when a token is presented. 400 when none is available.
    """
    raw = (data or {}).get("userId") or request.args.get("userId")
    if not raw:
        verify_jwt_in_request(optional=True)
        raw = get_jwt_identity()
    if not raw:
        raise InvalidRequest(message)
    return _to_int(raw, "userId")

