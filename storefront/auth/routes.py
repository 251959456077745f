from flask import request
from flask_jwt_extended import jwt_required, get_jwt_identity

from . import bp
from ..extensions import db
from ..errors import NotFound
from ..model import User
from ..services import auth_service
from ..utils.api import ok
from ..utils.decorators import resolve_user_id


@bp.post("/register")
def register():
    """
    Body: { "name", "email", "phone"?, "referralCode"? }
    Creates the user and its pending referral; an email OTP is issued.
    """
    data = request.get_json(silent=True) or {}
    user = auth_service.register(data)
    return ok("User created, email verification sent", {"userId": user.id}, status=201)


@bp.post("/verify-otp")
def verify_otp():
    """Body: { "userId", "otp", "type": "email" | "phone" }"""
    data = request.get_json(silent=True) or {}
    user_id = resolve_user_id(data, message="Invalid input: userId, otp, and type (email or phone) are required")
    user, token = auth_service.verify_otp(user_id, data.get("otp"), data.get("type"))
    return ok("OTP verified", {"user": user.as_dict(), "token": token})


@bp.get("/me")
@jwt_required()
def me():
    uid = get_jwt_identity()
    user = db.session.get(User, int(uid))
    if not user:
        raise NotFound("user not found")
    return ok("OK", {"user": user.as_dict()})
