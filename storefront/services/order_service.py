# storefront/services/order_service.py
from decimal import Decimal

import structlog

from ..extensions import db, atomic
from ..errors import (
    InvalidRequest, NotFound, Conflict, InvalidStatus, IllegalTransition, StorefrontError,
)
from ..model import Order, OrderItem, CheckoutItem
from ..model.order import ORDER_STATUSES, PAYMENT_STATUSES, PAYMENT_METHODS, DELIVERY_MODES
from ..utils.dates import utcnow
from ..utils.money import D, parse_money, round_money
from . import checkout_service, coupon_service

logger = structlog.get_logger(__name__)


# ---- status machine --------------------------------------------------------

def can_transition(current: str, requested: str) -> bool:
    """
    Legal iff ``requested`` sits at the same or a later position than
    ``current`` in ORDER_STATUSES. Raises InvalidStatus for unknown names.
    Note: this allows confirmed -> returned and forbids returned -> cancelled.
    """
    if current not in ORDER_STATUSES:
        raise InvalidStatus(f"Invalid status: {current}")
    if requested not in ORDER_STATUSES:
        raise InvalidStatus("Invalid status. Must be one of: " + ", ".join(ORDER_STATUSES))
    return ORDER_STATUSES.index(requested) >= ORDER_STATUSES.index(current)


def update_status(order_id, status) -> Order:
    if not status or not isinstance(status, str):
        raise InvalidStatus("Invalid status. Must be one of: " + ", ".join(ORDER_STATUSES))
    status = status.strip().lower()
    with atomic():
        order = (Order.query
                 .filter(Order.id == order_id)
                 .with_for_update()
                 .first())
        if not order:
            raise NotFound("Order not found")
        previous = order.status
        if not can_transition(previous, status):
            raise IllegalTransition(
                f"Cannot change status from {previous} to {status}. Status must follow the order: "
                + " → ".join(ORDER_STATUSES),
                data={"currentStatus": previous, "requestedStatus": status},
            )
        order.status = status
        order.updated_at = utcnow()
    logger.info("order_status_changed", order_id=str(order.id), previous=previous, status=status)
    return order


# ---- create ----------------------------------------------------------------

def _flush_order(user_id, address_id, totals: dict, items: list, **extra) -> Order:
    order = Order(
        user_id=user_id,
        address_id=address_id,
        status="confirmed",
        payment_status="pending",
        subtotal=round_money(totals.get("subtotal", totals["total_amount"])),
        discount_amount=round_money(totals.get("discount_amount", 0)),
        shipping_amount=round_money(totals.get("shipping_amount", 0)),
        total_amount=round_money(totals["total_amount"]),
        **extra,
    )
    db.session.add(order)
    db.session.flush()

    for it in items:
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=it["product_id"],
            variant_id=it["variant_id"],
            quantity=int(it["quantity"]),
            unit_price=round_money(it["unit_price"]),
        ))
    db.session.flush()
    return order


def create_order(user_id, address_id, totals: dict, items: list, **extra) -> Order:
    """
    Insert the order (confirmed / payment pending) and all its items as one
    unit. Touches neither the checkout session nor the discount ledger.
    """
    if not items:
        raise InvalidRequest("Order needs at least one item")
    for it in items:
        q = it.get("quantity")
        if isinstance(q, bool) or not isinstance(q, int) or q < 1:
            raise InvalidRequest("item quantity must be a positive integer")
    with atomic():
        order = _flush_order(user_id, address_id, totals, items, **extra)
    logger.info("order_created", order_id=str(order.id), user_id=user_id,
                total_amount=str(order.total_amount), items=len(items))
    return order


def get_order(order_id) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound("Order not found")
    return order


def user_orders(user_id):
    return (Order.query
            .filter_by(user_id=user_id)
            .order_by(Order.created_at.desc())
            .all())


def set_gateway_order_id(order_id, gateway_order_id) -> Order:
    if not gateway_order_id:
        raise InvalidRequest("gatewayOrderId is required")
    with atomic():
        order = get_order(order_id)
        order.gateway_order_id = str(gateway_order_id)
        order.updated_at = utcnow()
    return order


def gateway_order_owner(gateway_order_id):
    """Id of the order that recorded this gateway order, if any."""
    row = (db.session.query(Order.id)
           .filter(Order.gateway_order_id == str(gateway_order_id))
           .first())
    return row[0] if row else None


def delete_order(order_id) -> None:
    """Admin correction only; customers cancel through a status change."""
    with atomic():
        order = get_order(order_id)
        db.session.delete(order)
    logger.info("order_deleted", order_id=str(order_id))


# ---- checkout submission ---------------------------------------------------

def _settle(order: Order, discount) -> None:
    """Flush-only: redeem the carried discount and convert the session."""
    if discount is not None:
        coupon_service.redeem_discount(discount, order.user_id)
    if order.checkout_session_id:
        checkout_service.complete_session(order.checkout_session_id)
    checkout_service.clear_user_items(order.user_id)


def place_order(user_id, data: dict) -> Order:
    """
    Turn the caller's active checkout session into an order.

    The order and its items are committed first. Cash-on-delivery orders
    settle (discount redeemed, session converted) right after; gateway
    orders settle when the payment is reconciled. A settlement failure
    leaves the order confirmed / payment pending for support to reconcile.
    """
    session_id = data.get("checkoutSessionId")
    address_id = data.get("addressId")
    if not session_id or not address_id:
        raise InvalidRequest("Missing required fields")
    try:
        address_id = int(address_id)
    except (TypeError, ValueError):
        raise InvalidRequest("addressId must be an integer")

    payment_method = (data.get("paymentMethod") or "razorpay").strip().lower()
    if payment_method not in PAYMENT_METHODS:
        raise InvalidRequest("paymentMethod must be one of: " + ", ".join(PAYMENT_METHODS))
    delivery_mode = (data.get("deliveryMode") or "standard").strip().lower()
    if delivery_mode not in DELIVERY_MODES:
        raise InvalidRequest("deliveryMode must be one of: " + ", ".join(DELIVERY_MODES))
    shipping = parse_money(data.get("shippingAmount", 0))
    if shipping is None or shipping < 0:
        raise InvalidRequest("shippingAmount must be >= 0")

    session = checkout_service.get_session(user_id)
    if session is None or str(session.id) != str(session_id):
        raise Conflict("No active checkout session", code="NO_ACTIVE_SESSION")

    lines = (CheckoutItem.query
             .filter_by(checkout_session_id=session.id)
             .order_by(CheckoutItem.id.asc())
             .all())
    if not lines:
        raise InvalidRequest("Checkout empty")

    items = []
    subtotal = Decimal("0")
    for line in lines:
        qty = line.safe_quantity()
        line_total = round_money(line.total_price)
        subtotal += line_total
        items.append({
            "product_id": line.product_id,
            "variant_id": line.variant_id,
            "quantity": qty,
            "unit_price": round_money(line_total / qty),
        })
    subtotal = round_money(subtotal)

    discount = None
    if data.get("couponCode"):
        discount = coupon_service.validate(data["couponCode"], user_id, subtotal)
    discount_amount = discount.amount_off(subtotal) if discount else Decimal("0.00")
    total = round_money(max(D(0), subtotal - discount_amount) + shipping)

    with atomic():
        order = _flush_order(
            user_id, address_id,
            {
                "subtotal": subtotal,
                "discount_amount": discount_amount,
                "shipping_amount": shipping,
                "total_amount": total,
            },
            items,
            checkout_session_id=session.id,
            payment_method=payment_method,
            delivery_mode=delivery_mode,
            order_notes=(data.get("orderNotes") or None),
            coupon_code=discount.code if discount else None,
            coupon_type=discount.coupon_type if discount else None,
            coupon_id=discount.coupon_id if discount else None,
        )
    logger.info("order_placed", order_id=str(order.id), user_id=user_id,
                payment_method=payment_method, total_amount=str(total),
                coupon_code=order.coupon_code)

    if payment_method == "cod":
        order_id = str(order.id)
        try:
            with atomic():
                _settle(order, discount)
        except StorefrontError as e:
            logger.warning("order_settlement_failed", order_id=order_id, code=e.code, error=e.message)
            # the order is already committed; the caller needs its id to follow up
            e.data = {**e.data, "orderId": order_id}
            raise
    return order


# ---- payment reconciliation ------------------------------------------------

def reconcile_payment(order_id, verified: bool, *, gateway_order_id=None, payment_id=None) -> Order:
    """
    Apply a gateway-verified outcome. Success redeems the discount carried on
    the order, converts its session, clears the user's line items and marks
    it paid, all in one transaction. Failure only marks the payment failed;
    the order is not cancelled. Re-delivery for a paid order is a no-op.
    A gateway order id already recorded on the order is never replaced; a
    success reported against a different one counts as a failure.
    """
    order = get_order(order_id)
    if order.payment_status == "paid":
        logger.info("payment_already_reconciled", order_id=str(order.id))
        return order

    if verified and gateway_order_id and order.gateway_order_id \
            and order.gateway_order_id != str(gateway_order_id):
        logger.warning("gateway_order_mismatch", order_id=str(order.id),
                       recorded=order.gateway_order_id, claimed=str(gateway_order_id))
        verified = False

    if not verified:
        with atomic():
            order.payment_status = "failed"
            order.updated_at = utcnow()
        logger.warning("payment_failed", order_id=str(order.id), gateway_order_id=gateway_order_id,
                       payment_id=payment_id)
        return order

    discount = coupon_service.discount_from_order(order)
    try:
        with atomic():
            locked = (Order.query
                      .filter(Order.id == order.id)
                      .with_for_update()
                      .first())
            if locked.payment_status == "paid":
                return locked
            _settle(locked, discount)
            locked.payment_status = "paid"
            if gateway_order_id and not locked.gateway_order_id:
                locked.gateway_order_id = str(gateway_order_id)
            if payment_id:
                locked.payment_id = str(payment_id)
            locked.updated_at = utcnow()
    except StorefrontError as e:
        # money was taken but the discount no longer holds; leave it pending for support
        logger.warning("payment_settlement_failed", order_id=str(order.id), code=e.code,
                       error=e.message, gateway_order_id=gateway_order_id, payment_id=payment_id)
        raise

    logger.info("payment_reconciled", order_id=str(order.id), payment_id=payment_id,
                gateway_order_id=gateway_order_id)
    return locked


def list_orders(page=1, per_page=20, status=None, payment_status=None, user_id=None):
    if status and status not in ORDER_STATUSES:
        raise InvalidStatus("Invalid status. Must be one of: " + ", ".join(ORDER_STATUSES))
    if payment_status and payment_status not in PAYMENT_STATUSES:
        raise InvalidStatus("Invalid paymentStatus. Must be one of: " + ", ".join(PAYMENT_STATUSES))
    q = Order.query
    if status: q = q.filter(Order.status == status)
    if payment_status: q = q.filter(Order.payment_status == payment_status)
    if user_id: q = q.filter(Order.user_id == user_id)
    q = q.order_by(Order.created_at.desc())
    return q.paginate(page=page, per_page=per_page, error_out=False)


