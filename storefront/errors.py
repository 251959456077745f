# storefront/errors.py
from flask import jsonify
from werkzeug.exceptions import HTTPException
import structlog

from .extensions import db
from .utils.api import api_error

logger = structlog.get_logger(__name__)


class StorefrontError(Exception):
    status_code = 500
    code = "SERVER_ERROR"
    message = "Internal server error"

    def __init__(self, message=None, code=None, data=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        if code:
            self.code = code
        self.data = data or {}

    def as_api(self):
        return api_error(self.message, {"code": self.code, **self.data})


class InvalidRequest(StorefrontError):
    status_code = 400
    code = "INVALID"
    message = "Invalid request data"


class NotFound(StorefrontError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class Conflict(StorefrontError):
    status_code = 400
    code = "CONFLICT"
    message = "Conflict"


class Unauthorized(StorefrontError):
    # 404 on purpose: an unowned coupon looks exactly like a missing one
    status_code = 404
    code = "UNAUTHORIZED"
    message = "Not found or unauthorized"


class UpstreamFailure(StorefrontError):
    status_code = 500
    code = "UPSTREAM_FAILURE"
    message = "Payment gateway unavailable"


class Internal(StorefrontError):
    pass


# ---- discount ledger -------------------------------------------------------

class InvalidCode(NotFound):
    code = "INVALID"
    message = "Invalid coupon code"


class Expired(Conflict):
    code = "EXPIRED"
    message = "Coupon expired"


class AlreadyUsed(Conflict):
    code = "USED"
    message = "Coupon already used"


class LimitReached(Conflict):
    code = "LIMIT_REACHED"
    message = "Coupon usage limit reached"


class MinAmountNotMet(InvalidRequest):
    code = "MIN_AMOUNT_NOT_MET"
    message = "Minimum order value not met"


class NotFoundOrUnauthorized(Unauthorized):
    message = "Coupon not found or unauthorized"


# ---- order lifecycle -------------------------------------------------------

class InvalidStatus(InvalidRequest):
    code = "INVALID_STATUS"
    message = "Invalid status"


class IllegalTransition(Conflict):
    code = "ILLEGAL_TRANSITION"


def register_error_handlers(app):
    @app.errorhandler(StorefrontError)
    def handle_storefront_error(e):
        if e.status_code >= 500:
            logger.error("request_failed", code=e.code, error=e.message)
        r = jsonify(e.as_api())
        r.status_code = e.status_code
        return r

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        r = jsonify(api_error(e.description or e.name, {"code": e.name.upper().replace(" ", "_")}))
        r.status_code = e.code or 500
        return r

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        logger.exception("unhandled_exception", error=str(e))
        r = jsonify(api_error("Internal server error", {"code": "SERVER_ERROR"}))
        r.status_code = 500
        return r
