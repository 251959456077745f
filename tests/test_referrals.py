from datetime import timedelta

import pytest

from storefront.errors import Internal
from storefront.extensions import db
from storefront.model import IndividualCoupon, OtpToken, Referral, User
from storefront.model.referral import REFERRAL_COMPLETED, REFERRAL_PENDING
from storefront.services import coupon_service
from storefront.utils import codes
from storefront.utils.dates import utcnow


def _register(client, email, referral_code=None):
    body = {"name": email.split("@")[0], "email": email}
    if referral_code:
        body["referralCode"] = referral_code
    r = client.post("/auth/register", json=body)
    assert r.status_code == 201, r.get_json()
    return r.get_json()["data"]["userId"]


def _verify(client, user_id):
    otp = OtpToken.query.filter_by(user_id=user_id, channel="email").one()
    return client.post("/auth/verify-otp", json={"userId": user_id, "otp": otp.token, "type": "email"})


class TestReferralFlow:
    def test_referred_signup_mints_one_coupon(self, client):
        referrer_id = _register(client, "alice@example.com")
        code = client.get(f"/referrals/link?userId={referrer_id}").get_json()["data"]["referralCode"]

        invitee_id = _register(client, "bob@example.com", referral_code=code.lower())
        referral = Referral.query.filter_by(user_id=invitee_id).one()
        assert referral.referrer_id == referrer_id
        assert referral.status == REFERRAL_PENDING
        assert IndividualCoupon.query.count() == 0

        r = _verify(client, invitee_id)
        assert r.status_code == 200
        assert r.get_json()["data"]["token"]
        assert r.get_json()["data"]["user"]["emailVerified"] is True

        [coupon] = IndividualCoupon.query.all()
        assert coupon.user_id == referrer_id
        assert coupon.referral_id == referral.id
        assert float(coupon.amount) == 100.0
        assert coupon.is_used is False
        assert timedelta(days=29, hours=23) < coupon.expiry_date - utcnow() <= timedelta(days=30)
        assert db.session.get(Referral, referral.id).status == REFERRAL_COMPLETED

        listed = client.get(f"/referrals?userId={referrer_id}").get_json()["data"]["referrals"]
        assert len(listed) == 1
        assert listed[0]["referredUser"]["email"] == "bob@example.com"
        assert listed[0]["couponGenerated"] is True

    def test_second_verification_does_not_mint_again(self, client):
        referrer_id = _register(client, "alice@example.com")
        code = Referral.query.filter_by(user_id=referrer_id).one().referral_code
        invitee_id = _register(client, "bob@example.com", referral_code=code)
        assert _verify(client, invitee_id).status_code == 200

        # a later phone verification goes through the same path
        otp = OtpToken(user_id=invitee_id, token="123456", channel="phone",
                       expires_at=utcnow() + timedelta(minutes=5))
        db.session.add(otp)
        db.session.commit()
        r = client.post("/auth/verify-otp", json={"userId": invitee_id, "otp": "123456", "type": "phone"})
        assert r.status_code == 200

        assert IndividualCoupon.query.count() == 1
        assert coupon_service.complete_referral(invitee_id) is None

    def test_signup_without_referrer_mints_nothing(self, client):
        user_id = _register(client, "solo@example.com")
        assert _verify(client, user_id).status_code == 200
        assert IndividualCoupon.query.count() == 0

    def test_unknown_referral_code(self, client):
        r = client.post("/auth/register", json={"name": "x", "email": "x@example.com", "referralCode": "NOPE1234"})
        assert r.status_code == 400
        assert r.get_json()["data"]["code"] == "INVALID_REFERRAL"
        assert User.query.count() == 0

    def test_duplicate_email(self, client):
        _register(client, "dup@example.com")
        r = client.post("/auth/register", json={"name": "again", "email": "DUP@example.com"})
        assert r.status_code == 409

    def test_wrong_and_expired_otp(self, client):
        user_id = _register(client, "carol@example.com")

        r = client.post("/auth/verify-otp", json={"userId": user_id, "otp": "000000x", "type": "email"})
        assert r.get_json()["data"]["code"] == "INVALID_OTP"

        otp = OtpToken.query.filter_by(user_id=user_id).one()
        otp.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()
        r = _verify(client, user_id)
        assert r.status_code == 400
        assert r.get_json()["data"]["code"] == "OTP_EXPIRED"
        assert db.session.get(User, user_id).email_verified is False

    def test_me_with_issued_token(self, client):
        user_id = _register(client, "dave@example.com")
        token = _verify(client, user_id).get_json()["data"]["token"]
        r = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200
        assert r.get_json()["data"]["user"]["id"] == user_id

    def test_link_for_unknown_user(self, client):
        assert client.get("/referrals/link?userId=999").status_code == 404


class TestCodeGeneration:
    def test_widens_after_collisions(self, app, monkeypatch):
        sizes = []

        def fake(length):
            sizes.append(length)
            return "X" * length

        monkeypatch.setattr(codes, "random_code", fake)
        code = codes.unique_code(lambda c: c == "X" * 8, kind="coupon")

        assert sizes == [8, 8, 8, 10]
        assert code == "X" * 10

    def test_gives_up_after_max_attempts(self, app, monkeypatch):
        monkeypatch.setattr(codes, "random_code", lambda length: "A" * length)
        with pytest.raises(Internal):
            codes.unique_code(lambda c: True, kind="coupon")

    def test_reward_code_avoids_existing_codes(self, make_user, make_individual, make_referral, monkeypatch):
        referrer, invitee = make_user(), make_user()
        make_individual(referrer, code="AAAAAAAA")
        make_referral(invitee, "INVITE01", referrer=referrer)

        candidates = iter(["AAAAAAAA", "BBBBBBBB"])
        monkeypatch.setattr(codes, "random_code", lambda length: next(candidates))
        coupon = coupon_service.complete_referral(invitee.id)
        db.session.commit()

        assert coupon.code == "BBBBBBBB"
