# storefront/model/referral.py
from ..extensions import db
from ..utils.dates import utcnow, iso

REFERRAL_PENDING = "pending"
REFERRAL_COMPLETED = "completed"


class Referral(db.Model):
    __tablename__ = "referral"

    id = db.Column(db.Integer, primary_key=True)
    # the referred user; one referral row per user
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, unique=True)
    referral_code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    referrer_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default=REFERRAL_PENDING)
    created_at = db.Column(db.DateTime, default=utcnow)

    reward = db.relationship("IndividualCoupon", uselist=False, lazy="selectin",
                             primaryjoin="Referral.id == foreign(IndividualCoupon.referral_id)",
                             viewonly=True)

    def as_api(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "referralCode": self.referral_code,
            "referrerId": self.referrer_id,
            "status": self.status,
            "createdAt": iso(self.created_at),
        }
