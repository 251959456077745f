# storefront/referral/routes.py
from . import bp
from ..services import referral_service
from ..utils.api import ok
from ..utils.decorators import resolve_user_id


@bp.get("/link")
def referral_link():
    user_id = resolve_user_id(message="User ID is required")
    return ok("referral link", referral_service.referral_link(user_id))


@bp.get("")
def my_referrals():
    user_id = resolve_user_id(message="User ID is required")
    return ok("referrals", {"referrals": referral_service.referrals_by(user_id)})
