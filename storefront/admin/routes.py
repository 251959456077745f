# storefront/admin/routes.py
from flask import request

from . import bp
from ..model import SpecialCoupon, IndividualCoupon
from ..services import coupon_service
from ..utils.api import ok
from ..utils.decorators import role_required


@bp.post("/coupons/special")
@role_required("admin")
def create_special_coupon():
    """
    Body: { "code", "amount" | "percentage", "limit", "minOrderAmount"?,
            "expiryDate": ISO8601 }
    """
    data = request.get_json(silent=True) or {}
    c = coupon_service.create_special_coupon(data)
    return ok("Coupon created", {"coupon": c.as_api()}, status=201)


@bp.get("/coupons/special")
@role_required("admin")
def list_special_coupons():
    items = SpecialCoupon.query.order_by(SpecialCoupon.id.desc()).all()
    return ok("ok", {"coupons": [c.as_api() for c in items]})


@bp.delete("/coupons/special/<int:coupon_id>")
@role_required("admin")
def delete_special_coupon(coupon_id: int):
    coupon_service.delete_special_coupon(coupon_id)
    return ok("Coupon deleted")


@bp.get("/coupons/referral")
@role_required("admin")
def list_referral_coupons():
    q = IndividualCoupon.query
    used = request.args.get("used")
    if used is not None:
        q = q.filter(IndividualCoupon.is_used == (used.lower() == "true"))
    items = q.order_by(IndividualCoupon.id.desc()).all()
    return ok("ok", {"coupons": [c.as_api() for c in items]})
