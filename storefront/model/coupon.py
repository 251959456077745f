# --- storefront/model/coupon.py ---

from ..extensions import db
from ..utils.dates import utcnow, iso
from ..utils.money import money_or_none


class IndividualCoupon(db.Model):
    """Referral reward: one-time fixed amount, redeemable only by its owner."""
    __tablename__ = "individual_coupon"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    referral_id = db.Column(db.Integer, db.ForeignKey("referral.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    expiry_date = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "userId": self.user_id,
            "referralId": self.referral_id,
            "amount": money_or_none(self.amount),
            "isUsed": self.is_used,
            "expiryDate": iso(self.expiry_date),
            "createdAt": iso(self.created_at),
        }


class SpecialCoupon(db.Model):
    """Promotional code shared by everyone; each user may redeem it once."""
    __tablename__ = "special_coupon"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), unique=True, nullable=False, index=True)

    # exactly one of amount / percentage
    amount = db.Column(db.Numeric(12, 2), nullable=True)
    percentage = db.Column(db.Numeric(5, 2), nullable=True)

    limit = db.Column("usage_limit", db.Integer, nullable=False)   # remaining global uses
    min_order_amount = db.Column(db.Numeric(12, 2), nullable=True)
    expiry_date = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    usages = db.relationship(
        "SpecialCouponUsage",
        back_populates="coupon",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "amount": money_or_none(self.amount),
            "percentage": money_or_none(self.percentage),
            "limit": self.limit,
            "minOrderAmount": money_or_none(self.min_order_amount),
            "expiryDate": iso(self.expiry_date),
            "createdAt": iso(self.created_at),
        }


class SpecialCouponUsage(db.Model):
    __tablename__ = "special_coupon_usage"
    __table_args__ = (
        db.UniqueConstraint("user_id", "coupon_id", name="unique_user_coupon"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("special_coupon.id", ondelete="CASCADE"), nullable=False, index=True)
    used_at = db.Column(db.DateTime, default=utcnow)

    coupon = db.relationship("SpecialCoupon", back_populates="usages")
