from datetime import timedelta
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from storefront import create_app
from storefront.config import TestConfig
from storefront.extensions import db
from storefront.model import User, IndividualCoupon, SpecialCoupon, Referral
from storefront.utils.dates import utcnow


@pytest.fixture
def app():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()

    yield app

    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(email=None, role="user", name="Test User"):
        counter["n"] += 1
        u = User(email=email or f"user{counter['n']}@example.com", name=name, role=role)
        db.session.add(u)
        db.session.commit()
        return u

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin_headers(make_user):
    admin = make_user(email="admin@example.com", role="admin", name="Admin")
    token = create_access_token(identity=str(admin.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_special():
    def _make(code="SAVE10", amount=None, percentage=None, limit=10, min_order_amount=None,
              expires_in=timedelta(days=7)):
        if amount is None and percentage is None:
            amount = "50"
        c = SpecialCoupon(
            code=code,
            amount=Decimal(amount) if amount is not None else None,
            percentage=Decimal(percentage) if percentage is not None else None,
            limit=limit,
            min_order_amount=Decimal(min_order_amount) if min_order_amount is not None else None,
            expiry_date=utcnow() + expires_in,
        )
        db.session.add(c)
        db.session.commit()
        return c

    return _make


@pytest.fixture
def make_individual():
    def _make(owner, code="REF12345", amount="100", is_used=False, expires_in=timedelta(days=30)):
        c = IndividualCoupon(
            code=code,
            user_id=owner.id,
            amount=Decimal(amount),
            is_used=is_used,
            expiry_date=utcnow() + expires_in,
        )
        db.session.add(c)
        db.session.commit()
        return c

    return _make


@pytest.fixture
def make_referral():
    def _make(user, code, referrer=None):
        r = Referral(user_id=user.id, referral_code=code, referrer_id=referrer.id if referrer else None)
        db.session.add(r)
        db.session.commit()
        return r

    return _make


@pytest.fixture
def checkout_with_items(client):
    """Open a checkout session for the user and put line items in it."""

    def _start(user_id, lines=((1, 11, 2, "400.00"), (2, 21, 1, "250.00"))):
        resp = client.post("/checkout/session", json={"userId": user_id})
        session_id = resp.get_json()["data"]["session"]["id"]
        for product_id, variant_id, qty, total in lines:
            r = client.post("/checkout", json={
                "userId": user_id,
                "productId": product_id,
                "variantId": variant_id,
                "quantity": qty,
                "totalPrice": total,
            })
            assert r.status_code == 201
        return session_id

    return _start
