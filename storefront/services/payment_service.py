# storefront/services/payment_service.py
"""
Gateway adapters. Each one turns a gateway payload into a Verification
and hands the boolean outcome to order_service.reconcile_payment; nothing
here retries, a failed verification needs a new attempt from the client.
"""
from dataclasses import dataclass
import hashlib
import hmac

from flask import current_app
import requests
import structlog

from ..errors import InvalidRequest, NotFound, UpstreamFailure, Internal
from ..model.types import parse_uuid
from . import order_service

logger = structlog.get_logger(__name__)


@dataclass
class Verification:
    order_id: object
    verified: bool
    pending: bool = False
    gateway_order_id: str | None = None
    payment_id: str | None = None
    reason: str | None = None


def _order_id(raw):
    order_id = parse_uuid(raw)
    if order_id is None:
        raise InvalidRequest("orderId is required")
    return order_id


class RazorpayAdapter:
    name = "razorpay"

    def __init__(self, key_secret: str | None):
        if not key_secret:
            raise Internal("RAZORPAY_KEY_SECRET is not configured")
        self.key_secret = key_secret.encode()

    def signature(self, gateway_order_id: str, payment_id: str) -> str:
        msg = f"{gateway_order_id}|{payment_id}".encode()
        return hmac.new(self.key_secret, msg, hashlib.sha256).hexdigest()

    def verify(self, payload: dict) -> Verification:
        order_id = _order_id(payload.get("orderId"))
        gateway_order_id = payload.get("gateway_order_id") or payload.get("razorpay_order_id")
        payment_id = payload.get("payment_id") or payload.get("razorpay_payment_id")
        signature = payload.get("razorpay_signature") or ""
        if not gateway_order_id or not payment_id:
            raise InvalidRequest("gateway_order_id and payment_id are required")

        expected = self.signature(gateway_order_id, payment_id)
        verified = hmac.compare_digest(expected, str(signature))
        return Verification(
            order_id=order_id,
            verified=verified,
            gateway_order_id=gateway_order_id,
            payment_id=payment_id,
            reason=None if verified else "Invalid payment signature",
        )


class CashfreeAdapter:
    name = "cashfree"

    def __init__(self, app_id, secret_key, base_url, api_version, timeout=10.0, http=None):
        if not app_id or not secret_key:
            raise Internal("Cashfree credentials are not configured")
        self.app_id = app_id
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self.http = http or requests

    def fetch_payments(self, order_id) -> list:
        url = f"{self.base_url}/orders/{order_id}/payments"
        headers = {
            "x-client-id": self.app_id,
            "x-client-secret": self.secret_key,
            "x-api-version": self.api_version,
            "Accept": "application/json",
        }
        try:
            resp = self.http.get(url, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as e:
            logger.warning("cashfree_unreachable", order_id=str(order_id), error=str(e))
            raise UpstreamFailure("Failed to verify payment")
        except ValueError:
            raise UpstreamFailure("Failed to verify payment")
        return body if isinstance(body, list) else (body or {}).get("data") or []

    def verify(self, payload: dict) -> Verification:
        order_id = _order_id(payload.get("orderId"))
        payments = self.fetch_payments(order_id)
        if not payments:
            raise NotFound("No payment details found")

        payment = payments[0]
        status = (payment.get("payment_status") or "").upper()
        gateway_order_id = (payment.get("payment_gateway_details") or {}).get("gateway_order_id")
        payment_id = payment.get("cf_payment_id")
        payment_id = str(payment_id) if payment_id is not None else None

        if status == "SUCCESS" and payment.get("is_captured"):
            return Verification(order_id, True, gateway_order_id=gateway_order_id, payment_id=payment_id)
        if status in ("PENDING", "NOT_ATTEMPTED") or (status == "SUCCESS" and not payment.get("is_captured")):
            return Verification(order_id, False, pending=True, gateway_order_id=gateway_order_id,
                                payment_id=payment_id, reason="Payment pending")
        return Verification(order_id, False, gateway_order_id=gateway_order_id, payment_id=payment_id,
                            reason=f"Payment {status.lower() or 'failed'}")


def get_adapter(name: str):
    cfg = current_app.config
    if name == "razorpay":
        return RazorpayAdapter(cfg.get("RAZORPAY_KEY_SECRET"))
    if name == "cashfree":
        return CashfreeAdapter(
            cfg.get("CASHFREE_APP_ID"),
            cfg.get("CASHFREE_SECRET_KEY"),
            cfg["CASHFREE_BASE_URL"],
            cfg["CASHFREE_API_VERSION"],
            timeout=cfg["GATEWAY_TIMEOUT_SECONDS"],
        )
    raise InvalidRequest(f"unknown gateway {name}")


def _bind_gateway_order(result: Verification) -> None:
    """
    A verified (gateway order, payment) pair must also belong to this order.
    A recorded gateway order id has to match; an unrecorded one must not
    already belong to another order.
    """
    if not result.gateway_order_id:
        return
    order = order_service.get_order(result.order_id)
    claimed = str(result.gateway_order_id)
    if order.gateway_order_id:
        bound = order.gateway_order_id == claimed
    else:
        bound = order_service.gateway_order_owner(claimed) in (None, order.id)
    if not bound:
        result.verified = False
        result.reason = "Gateway order does not match"


def verify_payment(gateway: str, payload: dict):
    """Returns (verification, order); order is None while the gateway says pending."""
    adapter = get_adapter(gateway)
    result = adapter.verify(payload or {})
    if result.pending:
        logger.info("payment_pending", gateway=gateway, order_id=str(result.order_id))
        return result, None
    if result.verified:
        _bind_gateway_order(result)
    if not result.verified:
        logger.warning("payment_verification_failed", gateway=gateway, order_id=str(result.order_id),
                       reason=result.reason)
    order = order_service.reconcile_payment(
        result.order_id,
        result.verified,
        gateway_order_id=result.gateway_order_id,
        payment_id=result.payment_id,
    )
    return result, order
