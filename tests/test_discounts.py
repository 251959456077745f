from datetime import timedelta
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from storefront.errors import (
    AlreadyUsed, Expired, InvalidCode, InvalidRequest, LimitReached, MinAmountNotMet,
    NotFoundOrUnauthorized,
)
from storefront.extensions import db, atomic
from storefront.model import IndividualCoupon, SpecialCoupon, SpecialCouponUsage
from storefront.services import coupon_service
from storefront.services.coupon_service import IndividualDiscount, SpecialDiscount


class TestValidate:
    def test_min_amount_not_met(self, user, make_special):
        make_special(code="BIG100", amount="100", min_order_amount="1000")

        with pytest.raises(MinAmountNotMet) as exc:
            coupon_service.validate("BIG100", user.id, 500)
        assert "1000" in exc.value.message
        assert SpecialCouponUsage.query.count() == 0

    def test_min_amount_met(self, user, make_special):
        make_special(code="BIG100", amount="100", min_order_amount="1000")
        d = coupon_service.validate("big100 ", user.id, "1000")
        assert isinstance(d, SpecialDiscount)
        assert d.as_api()["type"] == "amount"
        assert d.as_api()["value"] == 100.0

    def test_expired_individual(self, user, make_individual):
        make_individual(user, code="REFOLD01", expires_in=-timedelta(days=1))
        with pytest.raises(Expired):
            coupon_service.validate("REFOLD01", user.id, 2000)

    def test_used_individual(self, user, make_individual):
        make_individual(user, code="REFUSED1", is_used=True)
        with pytest.raises(AlreadyUsed):
            coupon_service.validate("REFUSED1", user.id, 2000)

    def test_individual_takes_precedence(self, user, make_individual, make_special):
        make_special(code="SHARED01", percentage="10")
        make_individual(user, code="SHARED01", amount="75")
        d = coupon_service.validate("SHARED01", user.id, 500)
        assert isinstance(d, IndividualDiscount)
        assert d.as_api() == {"id": d.coupon_id, "code": "SHARED01", "type": "amount",
                              "value": 75.0, "couponType": "individual"}

    def test_someone_elses_individual_is_invalid(self, make_user, make_individual):
        owner, other = make_user(), make_user()
        make_individual(owner, code="REFOWNER")
        with pytest.raises(InvalidCode):
            coupon_service.validate("REFOWNER", other.id, 500)

    def test_unknown_code(self, user):
        with pytest.raises(InvalidCode):
            coupon_service.validate("NOPE", user.id, 500)

    def test_expired_special(self, user, make_special):
        make_special(code="GONE", expires_in=-timedelta(minutes=1))
        with pytest.raises(Expired):
            coupon_service.validate("GONE", user.id, 500)

    def test_exhausted_special(self, user, make_special):
        make_special(code="EMPTY", limit=0)
        with pytest.raises(LimitReached):
            coupon_service.validate("EMPTY", user.id, 500)

    def test_special_already_used_by_user(self, user, make_special):
        c = make_special(code="ONCE")
        db.session.add(SpecialCouponUsage(user_id=user.id, coupon_id=c.id))
        db.session.commit()
        with pytest.raises(AlreadyUsed):
            coupon_service.validate("ONCE", user.id, 500)

    @pytest.mark.parametrize("total", [0, -10, "0"])
    def test_non_positive_total(self, user, make_special, total):
        make_special(code="SAVE10")
        with pytest.raises(MinAmountNotMet):
            coupon_service.validate("SAVE10", user.id, total)

    @pytest.mark.parametrize("code,total", [("", 100), (None, 100), ("SAVE10", "abc"), ("SAVE10", None)])
    def test_malformed_input(self, user, make_special, code, total):
        make_special(code="SAVE10")
        with pytest.raises(InvalidRequest):
            coupon_service.validate(code, user.id, total)


class TestAmountOff:
    def test_fixed_amount_is_capped_by_subtotal(self):
        d = IndividualDiscount(coupon_id=1, code="X", amount=Decimal("100"))
        assert d.amount_off(Decimal("60")) == Decimal("60.00")
        assert d.amount_off(Decimal("500")) == Decimal("100.00")

    def test_percentage(self):
        d = SpecialDiscount(coupon_id=1, code="X", percentage=Decimal("12.5"))
        assert d.amount_off(Decimal("200")) == Decimal("25.00")
        assert d.as_api()["type"] == "percentage"

    def test_nothing_off_an_empty_cart(self):
        d = SpecialDiscount(coupon_id=1, code="X", amount=Decimal("10"))
        assert d.amount_off(0) == Decimal("0.00")


class TestRedeem:
    def test_individual_redeems_once(self, user, make_individual):
        c = make_individual(user, code="REFONCE1")
        coupon_service.redeem("REFONCE1", user.id)
        assert db.session.get(IndividualCoupon, c.id).is_used is True

        with pytest.raises(NotFoundOrUnauthorized):
            coupon_service.redeem("REFONCE1", user.id)

    def test_individual_of_another_user(self, make_user, make_individual):
        owner, other = make_user(), make_user()
        c = make_individual(owner, code="REFOTHER")
        with pytest.raises(NotFoundOrUnauthorized):
            coupon_service.redeem("REFOTHER", other.id, "individual")
        with pytest.raises(NotFoundOrUnauthorized):
            coupon_service.redeem_discount(
                IndividualDiscount(coupon_id=c.id, code=c.code, amount=Decimal("100")), other.id)
        assert db.session.get(IndividualCoupon, c.id).is_used is False

    def test_special_redeem_records_usage_and_decrements(self, user, make_special):
        c = make_special(code="FEST", limit=3)
        coupon_service.redeem("FEST", user.id)

        assert db.session.get(SpecialCoupon, c.id).limit == 2
        assert SpecialCouponUsage.query.filter_by(user_id=user.id, coupon_id=c.id).count() == 1

        with pytest.raises(AlreadyUsed):
            coupon_service.redeem("FEST", user.id)
        assert db.session.get(SpecialCoupon, c.id).limit == 2

    def test_last_use_goes_to_one_user(self, make_user, make_special):
        first, second = make_user(), make_user()
        c = make_special(code="LASTONE", limit=1)

        coupon_service.redeem("LASTONE", first.id)
        with pytest.raises(LimitReached):
            coupon_service.redeem("LASTONE", second.id)

        assert SpecialCouponUsage.query.filter_by(coupon_id=c.id).count() == 1
        assert db.session.get(SpecialCoupon, c.id).limit == 0

    def test_failed_decrement_rolls_back_usage(self, user, make_special):
        c = make_special(code="RACE", limit=1)
        discount = coupon_service.resolve("RACE", user.id)
        assert c.limit == 1

        # a concurrent redemption drains the row behind this session's back
        SpecialCoupon.query.filter_by(id=c.id).update({SpecialCoupon.limit: 0}, synchronize_session=False)

        with pytest.raises(LimitReached):
            with atomic():
                coupon_service.redeem_discount(discount, user.id)

        assert SpecialCouponUsage.query.count() == 0

    def test_expired_special_cannot_be_redeemed(self, user, make_special):
        make_special(code="LATE", expires_in=-timedelta(seconds=1))
        with pytest.raises(Expired):
            coupon_service.redeem("LATE", user.id)
        assert SpecialCouponUsage.query.count() == 0

    def test_unknown_code(self, user):
        with pytest.raises(NotFoundOrUnauthorized):
            coupon_service.redeem("WHATEVER", user.id)
        with pytest.raises(InvalidCode):
            coupon_service.redeem("WHATEVER", user.id, "special")


class TestDiscountApi:
    def test_validate_returns_descriptor(self, client, user, make_special):
        make_special(code="TENOFF", percentage="10")
        r = client.post("/discount/validate-coupon", json={"code": "tenoff", "userId": user.id, "cartTotal": 900})

        assert r.status_code == 200
        data = r.get_json()["data"]
        assert data["code"] == "TENOFF"
        assert data["type"] == "percentage"
        assert data["value"] == 10.0
        assert data["couponType"] == "special"

    def test_validate_error_codes(self, client, user, make_special):
        make_special(code="BIG100", amount="100", min_order_amount="1000")

        r = client.post("/discount/validate-coupon", json={"code": "BIG100", "userId": user.id, "cartTotal": 500})
        assert r.status_code == 400
        assert r.get_json()["data"]["code"] == "MIN_AMOUNT_NOT_MET"
        assert "1000" in r.get_json()["message"]

        r = client.post("/discount/validate-coupon", json={"code": "NOPE", "userId": user.id, "cartTotal": 500})
        assert r.status_code == 404
        assert r.get_json()["data"]["code"] == "INVALID"

        r = client.post("/discount/validate-coupon", json={"code": "BIG100", "cartTotal": 500})
        assert r.status_code == 400

    def test_redeem_endpoint(self, client, user, make_individual):
        make_individual(user, code="REFAPI01")
        r = client.post("/discount/redeem", json={"code": "REFAPI01", "userId": user.id})
        assert r.status_code == 200
        assert r.get_json()["data"]["couponType"] == "individual"

        r = client.post("/discount/redeem", json={"code": "REFAPI01", "userId": user.id})
        assert r.status_code == 404
        assert r.get_json()["data"]["code"] == "UNAUTHORIZED"

    def test_my_coupons(self, client, user, make_individual):
        make_individual(user, code="REFMINE1")
        coupons = client.get(f"/discount/coupons?userId={user.id}").get_json()["data"]["coupons"]
        assert [c["code"] for c in coupons] == ["REFMINE1"]


class TestSpecialCouponAdmin:
    payload = {"code": "diwali", "percentage": 15, "limit": 50, "expiryDate": "2099-01-01T00:00:00Z"}

    def test_requires_token(self, client):
        assert client.post("/admin/coupons/special", json=self.payload).status_code == 401

    def test_requires_admin(self, client, user):
        headers = {"Authorization": f"Bearer {create_access_token(identity=str(user.id))}"}
        assert client.post("/admin/coupons/special", json=self.payload, headers=headers).status_code == 403

    def test_create_list_delete(self, client, admin_headers):
        r = client.post("/admin/coupons/special", json=self.payload, headers=admin_headers)
        assert r.status_code == 201
        coupon = r.get_json()["data"]["coupon"]
        assert coupon["code"] == "DIWALI"
        assert coupon["limit"] == 50

        dup = client.post("/admin/coupons/special", json=self.payload, headers=admin_headers)
        assert dup.status_code == 400

        listed = client.get("/admin/coupons/special", headers=admin_headers).get_json()["data"]["coupons"]
        assert [c["code"] for c in listed] == ["DIWALI"]

        r = client.delete(f"/admin/coupons/special/{coupon['id']}", headers=admin_headers)
        assert r.status_code == 200
        assert SpecialCoupon.query.count() == 0

    @pytest.mark.parametrize("override", [
        {"amount": 10},                 # both amount and percentage
        {"percentage": 0},
        {"percentage": 150},
        {"limit": 0},
        {"expiryDate": "not-a-date"},
    ])
    def test_rejects_bad_payloads(self, client, admin_headers, override):
        body = {**self.payload, **override}
        r = client.post("/admin/coupons/special", json=body, headers=admin_headers)
        assert r.status_code == 400
