# storefront/discount/routes.py
from flask import request

from . import bp
from ..services import coupon_service
from ..utils.api import ok
from ..utils.decorators import resolve_user_id


@bp.post("/validate-coupon")
def validate_coupon():
    """Body: { "code", "userId", "cartTotal" } -> {id, code, type, value, couponType}"""
    data = request.get_json(silent=True) or {}
    user_id = resolve_user_id(data, message="Invalid request data")
    discount = coupon_service.validate(data.get("code"), user_id, data.get("cartTotal"))
    return ok("Coupon is valid", discount.as_api())


@bp.post("/redeem")
def redeem_coupon():
    """
    Body: { "code", "userId", "couponType"? }
    Only after a successful payment; the order flow redeems on its own.
    """
    data = request.get_json(silent=True) or {}
    user_id = resolve_user_id(data, message="Coupon code and user ID are required")
    discount = coupon_service.redeem(data.get("code"), user_id, data.get("couponType"))
    return ok("Coupon marked as used", discount.as_api())


@bp.get("/coupons")
def my_coupons():
    user_id = resolve_user_id(message="User ID is required")
    coupons = coupon_service.user_coupons(user_id)
    return ok("coupons", {"coupons": [c.as_api() for c in coupons]})
