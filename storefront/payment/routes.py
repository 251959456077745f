# storefront/payment/routes.py
from flask import request, jsonify
import structlog

from . import bp
from ..services import payment_service
from ..utils.api import ok, api_error
from ..utils.net import get_client_ip

logger = structlog.get_logger(__name__)


def _verify(gateway: str):
    data = request.get_json(silent=True) or {}
    logger.info("payment_callback", gateway=gateway, order_id=data.get("orderId"), ip=get_client_ip())
    result, order = payment_service.verify_payment(gateway, data)

    if order is None:
        return ok("Payment pending", {"orderId": str(result.order_id)}, status=202)
    if not result.verified:
        r = jsonify(api_error(result.reason or "Payment verification failed",
                              {"code": "PAYMENT_FAILED", "order": order.as_api()}))
        r.status_code = 400
        return r
    return ok("Payment verified successfully", {"order": order.as_api()})


@bp.post("/razorpay/verify")
def razorpay_verify():
    """Body: { "orderId", "gateway_order_id", "payment_id", "razorpay_signature" }"""
    return _verify("razorpay")


@bp.post("/cashfree/verify")
def cashfree_verify():
    """Body: { "orderId" }  Payment state is fetched from Cashfree."""
    return _verify("cashfree")
