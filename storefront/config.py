import os
from datetime import timedelta


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    ENV = os.getenv("FLASK_ENV", "development")

    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-change-me")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=12)

    # checkout
    CHECKOUT_SESSION_TTL_MINUTES = int(os.getenv("CHECKOUT_SESSION_TTL_MINUTES", 15))
    CHECKOUT_ITEM_TTL_MINUTES = int(os.getenv("CHECKOUT_ITEM_TTL_MINUTES", 12))

    # referral rewards
    REFERRAL_REWARD_AMOUNT = os.getenv("REFERRAL_REWARD_AMOUNT", "100")
    REFERRAL_COUPON_TTL_DAYS = int(os.getenv("REFERRAL_COUPON_TTL_DAYS", 30))
    REFERRAL_BASE_URL = os.getenv("REFERRAL_BASE_URL", "http://localhost:3000")
    OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", 10))

    # generated codes: CODE_LENGTH chars, +CODE_WIDEN_BY every CODE_WIDEN_EVERY misses
    CODE_LENGTH = 8
    CODE_MAX_ATTEMPTS = 6
    CODE_WIDEN_EVERY = 3
    CODE_WIDEN_BY = 2

    # gateways
    RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")
    CASHFREE_APP_ID = os.getenv("CASHFREE_APP_ID")
    CASHFREE_SECRET_KEY = os.getenv("CASHFREE_SECRET_KEY")
    CASHFREE_BASE_URL = os.getenv("CASHFREE_BASE_URL", "https://sandbox.cashfree.com/pg")
    CASHFREE_API_VERSION = os.getenv("CASHFREE_API_VERSION", "2023-08-01")
    GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", 10))

    @staticmethod
    def init_app(app):
        if not os.getenv("DATABASE_URL"):
            os.makedirs(app.instance_path, exist_ok=True)
            app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'app.db')}"
        else:
            app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL")


class TestConfig(Config):
    TESTING = True
    ENV = "test"
    JWT_SECRET_KEY = "test-secret"
    RAZORPAY_KEY_SECRET = "rzp-test-secret"
    CASHFREE_APP_ID = "cf-app"
    CASHFREE_SECRET_KEY = "cf-secret"

    @staticmethod
    def init_app(app):
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
