# storefront/services/coupon_service.py
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Union

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
import structlog

from ..extensions import db, atomic
from ..errors import (
    InvalidRequest, InvalidCode, Expired, AlreadyUsed, LimitReached,
    MinAmountNotMet, NotFoundOrUnauthorized,
)
from ..model import IndividualCoupon, SpecialCoupon, SpecialCouponUsage, Referral
from ..model.referral import REFERRAL_COMPLETED
from ..utils.codes import unique_code
from ..utils.dates import utcnow, parse_iso8601
from ..utils.money import D, parse_money, round_money

logger = structlog.get_logger(__name__)

INDIVIDUAL = "individual"
SPECIAL = "special"


# ---- discount descriptors --------------------------------------------------

@dataclass(frozen=True)
class IndividualDiscount:
    coupon_id: int
    code: str
    amount: Decimal

    coupon_type = INDIVIDUAL

    def amount_off(self, subtotal) -> Decimal:
        subtotal = D(subtotal)
        if subtotal <= 0:
            return Decimal("0.00")
        return round_money(min(self.amount, subtotal))

    def as_api(self):
        return {
            "id": self.coupon_id,
            "code": self.code,
            "type": "amount",
            "value": float(self.amount),
            "couponType": self.coupon_type,
        }


@dataclass(frozen=True)
class SpecialDiscount:
    coupon_id: int
    code: str
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None

    coupon_type = SPECIAL

    def amount_off(self, subtotal) -> Decimal:
        subtotal = D(subtotal)
        if subtotal <= 0:
            return Decimal("0.00")
        if self.amount is not None:
            return round_money(min(self.amount, subtotal))
        pct = min(D(self.percentage), Decimal("100"))
        return round_money(subtotal * pct / Decimal("100"))

    def as_api(self):
        is_amount = self.amount is not None
        return {
            "id": self.coupon_id,
            "code": self.code,
            "type": "amount" if is_amount else "percentage",
            "value": float(self.amount if is_amount else self.percentage),
            "couponType": self.coupon_type,
        }


Discount = Union[IndividualDiscount, SpecialDiscount]


def normalize_code(code) -> str:
    return code.strip().upper() if isinstance(code, str) else ""


def _special_descriptor(c: SpecialCoupon) -> SpecialDiscount:
    if c.amount is not None and D(c.amount) > 0:
        return SpecialDiscount(coupon_id=c.id, code=c.code, amount=D(c.amount))
    return SpecialDiscount(coupon_id=c.id, code=c.code, percentage=D(c.percentage))


# ---- validate --------------------------------------------------------------

def validate(code, user_id, cart_total) -> Discount:
    """
    Read-only check of a code for this user and cart total. Individual
    (referral) coupons owned by the user take precedence over special ones.
    """
    normalized = normalize_code(code)
    total = parse_money(cart_total)
    if not normalized or not user_id or total is None:
        raise InvalidRequest("Invalid request data")
    if total <= 0:
        raise MinAmountNotMet("Cart total must be greater than zero")

    now = utcnow()

    individual = IndividualCoupon.query.filter_by(code=normalized, user_id=user_id).first()
    if individual:
        if individual.is_used:
            raise AlreadyUsed()
        if individual.expiry_date < now:
            raise Expired()
        return IndividualDiscount(coupon_id=individual.id, code=normalized, amount=D(individual.amount))

    special = SpecialCoupon.query.filter_by(code=normalized).first()
    if not special:
        raise InvalidCode()
    if special.expiry_date < now:
        raise Expired()
    if special.limit <= 0:
        raise LimitReached()

    minimum = D(special.min_order_amount or 0)
    if total < minimum:
        shown = minimum.normalize() if minimum == minimum.to_integral() else minimum
        raise MinAmountNotMet(f"Minimum order value is {shown:f}", data={"minOrderAmount": float(minimum)})

    used = SpecialCouponUsage.query.filter_by(user_id=user_id, coupon_id=special.id).first()
    if used:
        raise AlreadyUsed()

    return _special_descriptor(special)


def resolve(code, user_id, coupon_type=None) -> Discount:
    """
    Which discount a bare code refers to for this user, without the cart
    checks of validate. Used by the redemption endpoint.
    """
    normalized = normalize_code(code)
    if not normalized or not user_id:
        raise InvalidRequest("Coupon code and user ID are required")

    if coupon_type in (None, INDIVIDUAL):
        individual = IndividualCoupon.query.filter_by(code=normalized, user_id=user_id).first()
        if individual:
            return IndividualDiscount(coupon_id=individual.id, code=normalized, amount=D(individual.amount))
        if coupon_type == INDIVIDUAL:
            raise NotFoundOrUnauthorized()

    if coupon_type in (None, SPECIAL):
        special = SpecialCoupon.query.filter_by(code=normalized).first()
        if special:
            return _special_descriptor(special)

    if coupon_type is None:
        # indistinguishable from someone else's referral coupon
        raise NotFoundOrUnauthorized()
    if coupon_type != SPECIAL:
        raise InvalidRequest("couponType must be 'individual' or 'special'")
    raise InvalidCode("Coupon not found")


# ---- redeem ----------------------------------------------------------------

def _redeem_individual(discount: IndividualDiscount, user_id):
    # a used coupon reports like a missing one
    n = (IndividualCoupon.query
         .filter(IndividualCoupon.id == discount.coupon_id,
                 IndividualCoupon.user_id == user_id,
                 IndividualCoupon.is_used == False)  # noqa: E712
         .update({IndividualCoupon.is_used: True}, synchronize_session=False))
    if n != 1:
        raise NotFoundOrUnauthorized("No matching unused coupon")


def _redeem_special(discount: SpecialDiscount, user_id):
    coupon = (SpecialCoupon.query
              .filter(SpecialCoupon.id == discount.coupon_id)
              .with_for_update()
              .first())
    if coupon is None:
        raise InvalidCode("Coupon not found")
    if coupon.expiry_date < utcnow():
        raise Expired()
    if coupon.limit <= 0:
        raise LimitReached()
    if SpecialCouponUsage.query.filter_by(user_id=user_id, coupon_id=coupon.id).first():
        raise AlreadyUsed()

    try:
        db.session.add(SpecialCouponUsage(user_id=user_id, coupon_id=coupon.id))
        db.session.flush()
    except IntegrityError:
        # unique (user_id, coupon_id) lost a race with another redemption
        raise AlreadyUsed()

    n = (SpecialCoupon.query
         .filter(SpecialCoupon.id == coupon.id, SpecialCoupon.limit > 0)
         .update({SpecialCoupon.limit: SpecialCoupon.limit - 1}, synchronize_session=False))
    if n != 1:
        raise LimitReached()
    db.session.expire(coupon)


def redeem_discount(discount: Discount, user_id) -> None:
    """
    Flush-only redemption of an already-resolved discount; re-checks state
    at write time and raises instead of writing when it no longer holds.
    The caller owns the transaction, so a failure rolls back every write.
    """
    if isinstance(discount, IndividualDiscount):
        _redeem_individual(discount, user_id)
    elif isinstance(discount, SpecialDiscount):
        _redeem_special(discount, user_id)
    else:
        raise TypeError(f"unknown discount {discount!r}")
    logger.info("coupon_redeemed", code=discount.code, coupon_type=discount.coupon_type,
                coupon_id=discount.coupon_id, user_id=user_id)


def redeem(code, user_id, coupon_type=None) -> Discount:
    discount = resolve(code, user_id, coupon_type)
    with atomic():
        redeem_discount(discount, user_id)
    return discount


def discount_from_order(order) -> Discount | None:
    """Rebuild the descriptor persisted on an order at checkout time."""
    if not order.coupon_code or not order.coupon_id:
        return None
    if order.coupon_type == INDIVIDUAL:
        return IndividualDiscount(coupon_id=order.coupon_id, code=order.coupon_code,
                                  amount=D(order.discount_amount))
    return SpecialDiscount(coupon_id=order.coupon_id, code=order.coupon_code)


def user_coupons(user_id):
    return (IndividualCoupon.query
            .filter_by(user_id=user_id)
            .order_by(IndividualCoupon.created_at.desc())
            .all())


# ---- referral rewards ------------------------------------------------------

def _coupon_code_taken(code: str) -> bool:
    return (db.session.query(IndividualCoupon.id).filter_by(code=code).first() is not None
            or db.session.query(SpecialCoupon.id).filter_by(code=code).first() is not None)


def complete_referral(user_id) -> IndividualCoupon | None:
    """
    Flush-only. On the referred user's first verification: flip the referral
    to completed and mint one reward coupon for the referrer. No-op when
    there is no referral, no referrer, or it already completed.
    """
    referral = (Referral.query
                .filter_by(user_id=user_id)
                .with_for_update()
                .first())
    if not referral or not referral.referrer_id or referral.status == REFERRAL_COMPLETED:
        return None

    cfg = current_app.config
    referral.status = REFERRAL_COMPLETED
    coupon = IndividualCoupon(
        user_id=referral.referrer_id,
        referral_id=referral.id,
        code=unique_code(_coupon_code_taken, kind="coupon"),
        amount=D(cfg["REFERRAL_REWARD_AMOUNT"]),
        is_used=False,
        expiry_date=utcnow() + timedelta(days=cfg["REFERRAL_COUPON_TTL_DAYS"]),
    )
    db.session.add(coupon)
    db.session.flush()
    logger.info("referral_completed", referral_id=referral.id, user_id=user_id,
                referrer_id=referral.referrer_id, coupon_id=coupon.id)
    return coupon


# ---- special coupon administration -----------------------------------------

def create_special_coupon(data: dict) -> SpecialCoupon:
    code = normalize_code(data.get("code"))
    amount = parse_money(data.get("amount"))
    percentage = parse_money(data.get("percentage"))
    min_order = parse_money(data.get("minOrderAmount"))
    raw_limit = data.get("limit")

    if not code or raw_limit in (None, "") or not data.get("expiryDate"):
        raise InvalidRequest("Required fields missing")
    if len(code) > 16:
        raise InvalidRequest("code must be at most 16 characters")
    if (amount is None) == (percentage is None):
        raise InvalidRequest("exactly one of amount or percentage is required")
    if amount is not None and amount <= 0:
        raise InvalidRequest("amount must be > 0")
    if percentage is not None and not (0 < percentage <= 100):
        raise InvalidRequest("percentage must be > 0 and <= 100")
    if min_order is not None and min_order < 0:
        raise InvalidRequest("minOrderAmount must be >= 0")
    try:
        limit = int(raw_limit)
    except (TypeError, ValueError):
        raise InvalidRequest("limit must be an integer")
    if limit < 1:
        raise InvalidRequest("limit must be >= 1")

    expiry = parse_iso8601(data.get("expiryDate"))
    if not expiry:
        raise InvalidRequest("Invalid datetime format for expiryDate")

    # codes are stored upper-case; compare the same way
    if (SpecialCoupon.query.filter(func.upper(SpecialCoupon.code) == code).first()
            or IndividualCoupon.query.filter_by(code=code).first()):
        raise InvalidRequest("Coupon code already exists")

    c = SpecialCoupon(
        code=code,
        amount=round_money(amount) if amount is not None else None,
        percentage=percentage,
        limit=limit,
        min_order_amount=round_money(min_order) if min_order is not None else None,
        expiry_date=expiry,
    )
    with atomic():
        db.session.add(c)
    logger.info("special_coupon_created", coupon_id=c.id, code=c.code, limit=limit)
    return c


def delete_special_coupon(coupon_id) -> None:
    c = db.session.get(SpecialCoupon, coupon_id)
    if not c:
        raise InvalidCode("Coupon not found")
    with atomic():
        db.session.delete(c)
    logger.info("special_coupon_deleted", coupon_id=coupon_id)
