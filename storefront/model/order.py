# storefront/model/order.py
import uuid as _uuid

from ..extensions import db
from ..utils.dates import utcnow, iso
from ..utils.money import money_or_none
from .types import GUID

# fixed order; an order only moves to an equal or later position
ORDER_STATUSES = ("confirmed", "shipped", "delivered", "cancelled", "returned")
PAYMENT_STATUSES = ("pending", "paid", "failed")
PAYMENT_METHODS = ("cod", "razorpay", "cashfree")
DELIVERY_MODES = ("standard", "express")


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(GUID(), primary_key=True, default=_uuid.uuid4)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    address_id = db.Column(db.Integer, nullable=False, index=True)

    # Link back to the reservation (not a FK constraint, sessions get purged)
    checkout_session_id = db.Column(GUID(), nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default="confirmed", index=True)
    payment_status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(20), nullable=False, default="razorpay")
    delivery_mode = db.Column(db.String(20), nullable=False, default="standard")
    order_notes = db.Column(db.String(1000))

    # Money snapshot
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    # Discount carried from validation to redemption
    coupon_code = db.Column(db.String(16))
    coupon_type = db.Column(db.String(16))   # individual | special
    coupon_id = db.Column(db.Integer)

    gateway_order_id = db.Column(db.String(255), index=True)
    payment_id = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id.asc()",
    )

    def as_api(self):
        return {
            "id": str(self.id),
            "userId": self.user_id,
            "addressId": self.address_id,
            "checkoutSessionId": str(self.checkout_session_id) if self.checkout_session_id else None,
            "status": self.status,
            "paymentStatus": self.payment_status,
            "paymentMethod": self.payment_method,
            "deliveryMode": self.delivery_mode,
            "orderNotes": self.order_notes,
            "subtotal": money_or_none(self.subtotal),
            "discountAmount": money_or_none(self.discount_amount),
            "shippingAmount": money_or_none(self.shipping_amount),
            "totalAmount": money_or_none(self.total_amount),
            "couponCode": self.coupon_code,
            "couponType": self.coupon_type,
            "gatewayOrderId": self.gateway_order_id,
            "paymentId": self.payment_id,
            "items": [i.as_api() for i in self.items],
            "totalItems": sum(i.quantity for i in self.items),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(GUID(), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    variant_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)

    def as_api(self):
        return {
            "id": self.id,
            "productId": self.product_id,
            "variantId": self.variant_id,
            "quantity": self.quantity,
            "unitPrice": money_or_none(self.unit_price),
        }
