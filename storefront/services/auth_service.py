# storefront/services/auth_service.py
from datetime import timedelta
import secrets

from flask import current_app
from flask_jwt_extended import create_access_token
import structlog

from ..extensions import db, atomic
from ..errors import InvalidRequest, NotFound, StorefrontError
from ..model import User, OtpToken, Referral
from ..utils.codes import unique_code
from ..utils.dates import utcnow
from . import coupon_service

logger = structlog.get_logger(__name__)

OTP_CHANNELS = ("email", "phone")


class EmailTaken(StorefrontError):
    status_code = 409
    code = "EMAIL_TAKEN"
    message = "User with this email already exists"


def _referral_code_taken(code: str) -> bool:
    return db.session.query(Referral.id).filter_by(referral_code=code).first() is not None


def issue_otp(user_id, channel="email") -> OtpToken:
    """Flush only. Delivery is somebody else's job; we only record the token."""
    otp = OtpToken(
        user_id=user_id,
        token=f"{secrets.randbelow(10**6):06d}",
        channel=channel,
        expires_at=utcnow() + timedelta(minutes=current_app.config["OTP_TTL_MINUTES"]),
    )
    db.session.add(otp)
    db.session.flush()
    logger.info("otp_issued", user_id=user_id, channel=channel)
    return otp


def register(data: dict) -> User:
    email = (data.get("email") or "").strip().lower()
    name = (data.get("name") or "").strip()
    phone = (data.get("phone") or data.get("phoneNumber") or "").strip() or None
    referral_code = (data.get("referralCode") or "").strip().upper()

    if not email or not name:
        raise InvalidRequest("name and email are required")
    if User.query.filter_by(email=email).first():
        raise EmailTaken()

    referrer_id = None
    if referral_code:
        ref = Referral.query.filter_by(referral_code=referral_code).first()
        if not ref:
            raise InvalidRequest("Invalid referral code", code="INVALID_REFERRAL")
        referrer_id = ref.user_id

    with atomic():
        user = User(email=email, name=name, phone=phone, role="user")
        db.session.add(user)
        db.session.flush()
        db.session.add(Referral(
            user_id=user.id,
            referral_code=unique_code(_referral_code_taken, kind="referral"),
            referrer_id=referrer_id,
        ))
        issue_otp(user.id, "email")
    logger.info("user_registered", user_id=user.id, referred=referrer_id is not None)
    return user


def verify_otp(user_id, otp, channel) -> tuple[User, str]:
    """
    Marks the channel verified and consumes the OTP. The referred user's
    referral is completed in the same transaction, so a failure there
    leaves the OTP usable for a retry.
    """
    if not user_id or not otp or channel not in OTP_CHANNELS:
        raise InvalidRequest("Invalid input: userId, otp, and type (email or phone) are required")

    with atomic():
        record = (OtpToken.query
                  .filter_by(user_id=user_id, token=str(otp), channel=channel)
                  .first())
        if not record:
            raise InvalidRequest("Invalid OTP", code="INVALID_OTP")
        if record.expires_at < utcnow():
            raise InvalidRequest("OTP expired", code="OTP_EXPIRED")

        user = db.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        if channel == "email":
            user.email_verified = True
        else:
            user.phone_verified = True
        db.session.delete(record)

        coupon_service.complete_referral(user.id)

    token = create_access_token(identity=str(user.id), additional_claims={"role": user.role})
    logger.info("otp_verified", user_id=user.id, channel=channel)
    return user, token
