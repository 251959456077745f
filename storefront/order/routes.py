# storefront/order/routes.py
from flask import request

from . import bp
from ..services import order_service
from ..utils.api import ok
from ..utils.decorators import resolve_user_id, role_required


@bp.post("")
def place_order():
    """
    Body: { "userId", "checkoutSessionId", "addressId", "paymentMethod",
            "shippingAmount"?, "couponCode"?, "deliveryMode"?, "orderNotes"? }
    """
    data = request.get_json(silent=True) or {}
    user_id = resolve_user_id(data, message="Missing required fields")
    order = order_service.place_order(user_id, data)
    resp = ok("order created", {"order": order.as_api()}, status=201)
    resp.headers["X-Order-Id"] = str(order.id)
    return resp


@bp.get("")
@role_required("admin", "manager")
def list_orders():
    """
    Query params:
      - page, per_page
      - status=confirmed|shipped|delivered|cancelled|returned
      - paymentStatus=pending|paid|failed
      - userId=...
    """
    page = request.args.get("page", 1, type=int)
    per = min(request.args.get("per_page", 20, type=int), 100)
    paged = order_service.list_orders(
        page=page,
        per_page=per,
        status=request.args.get("status"),
        payment_status=request.args.get("paymentStatus"),
        user_id=request.args.get("userId", type=int),
    )
    return ok("orders", {
        "page": page,
        "per_page": per,
        "total": paged.total,
        "items": [o.as_api() for o in paged.items],
    })


@bp.get("/<uuid:order_id>")
def get_order(order_id):
    return ok("order", {"order": order_service.get_order(order_id).as_api()})


@bp.get("/user/<int:user_id>")
def orders_by_user(user_id: int):
    orders = order_service.user_orders(user_id)
    return ok("orders", {"items": [o.as_api() for o in orders]})


@bp.patch("/<uuid:order_id>/status")
@role_required("admin")
def update_status(order_id):
    """Body: { "status" }  Only forward along confirmed → shipped → delivered → cancelled → returned."""
    data = request.get_json(silent=True) or {}
    order = order_service.update_status(order_id, data.get("status"))
    return ok("Order status updated", {"order": order.as_api()})


@bp.patch("/<uuid:order_id>/gateway-order")
def set_gateway_order(order_id):
    data = request.get_json(silent=True) or {}
    order = order_service.set_gateway_order_id(order_id, data.get("gatewayOrderId"))
    return ok("Gateway order ID updated", {"order": order.as_api()})


@bp.delete("/<uuid:order_id>")
@role_required("admin")
def delete_order(order_id):
    order_service.delete_order(order_id)
    return ok("Order deleted successfully")
