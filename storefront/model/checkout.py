# storefront/model/checkout.py
import uuid as _uuid

from ..extensions import db
from ..utils.dates import utcnow, iso
from ..utils.money import money_or_none
from .types import GUID

SESSION_ACTIVE = "active"
SESSION_CONVERTED = "converted"


class CheckoutSession(db.Model):
    __tablename__ = "checkout_session"
    __table_args__ = (
        # at most one active reservation per user
        db.Index(
            "uniq_active_checkout_session",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
    )

    id = db.Column(GUID(), primary_key=True, default=_uuid.uuid4)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=SESSION_ACTIVE)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def as_api(self):
        return {
            "id": str(self.id),
            "userId": self.user_id,
            "status": self.status,
            "expiresAt": iso(self.expires_at),
            "createdAt": iso(self.created_at),
        }


class CheckoutItem(db.Model):
    __tablename__ = "checkout_item"
    __table_args__ = (
        db.UniqueConstraint("checkout_session_id", "variant_id", name="uniq_checkout_item"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    # NULL only for rows written before sessions existed (keyed by user)
    checkout_session_id = db.Column(
        GUID(), db.ForeignKey("checkout_session.id", ondelete="CASCADE"), nullable=True, index=True
    )
    product_id = db.Column(db.Integer, nullable=False, index=True)
    variant_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def safe_quantity(self) -> int:
        q = self.quantity
        if isinstance(q, bool) or not isinstance(q, int) or q < 1:
            return 1
        return q

    def as_api(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "checkoutSessionId": str(self.checkout_session_id) if self.checkout_session_id else None,
            "productId": self.product_id,
            "variantId": self.variant_id,
            "quantity": self.safe_quantity(),
            "totalPrice": money_or_none(self.total_price),
            "createdAt": iso(self.created_at),
        }
