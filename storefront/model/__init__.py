# ------ storefront/model/__init__.py ------

from .types import GUID
from .user import User, OtpToken
from .checkout import CheckoutSession, CheckoutItem
from .coupon import IndividualCoupon, SpecialCoupon, SpecialCouponUsage
from .referral import Referral
from .order import Order, OrderItem

__all__ = [
    "GUID",
    "User",
    "OtpToken",
    "CheckoutSession",
    "CheckoutItem",
    "IndividualCoupon",
    "SpecialCoupon",
    "SpecialCouponUsage",
    "Referral",
    "Order",
    "OrderItem",
]
