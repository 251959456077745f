# storefront/services/referral_service.py
from flask import current_app

from ..errors import NotFound
from ..model import Referral, User
from ..utils.dates import iso


def referral_link(user_id) -> dict:
    referral = Referral.query.filter_by(user_id=user_id).first()
    if not referral:
        raise NotFound("No referral code found for this user")
    base = current_app.config["REFERRAL_BASE_URL"].rstrip("/")
    return {
        "referralCode": referral.referral_code,
        "referralLink": f"{base}/signup?ref={referral.referral_code}",
    }


def referrals_by(referrer_id) -> list[dict]:
    """Referrals this user brought in, with whether the reward was minted."""
    rows = (Referral.query
            .join(User, User.id == Referral.user_id)
            .filter(Referral.referrer_id == referrer_id)
            .order_by(Referral.created_at.desc())
            .add_entity(User)
            .all())
    return [
        {
            "id": r.id,
            "status": r.status,
            "createdAt": iso(r.created_at),
            "referredUser": {
                "id": u.id,
                "email": u.email,
                "name": u.name,
                "createdAt": iso(u.created_at),
            },
            "couponGenerated": r.reward is not None,
        }
        for r, u in rows
    ]
