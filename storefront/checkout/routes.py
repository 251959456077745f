# storefront/checkout/routes.py
from flask import request

from . import bp
from ..errors import InvalidRequest
from ..services import checkout_service
from ..utils.api import ok
from ..utils.decorators import resolve_user_id


# ---- session ---------------------------------------------------------------

@bp.get("/session")
def get_session():
    """Fetch only; never creates. data.session is null without an active one."""
    user_id = resolve_user_id()
    session = checkout_service.get_session(user_id)
    return ok("checkout session", {"session": session.as_api() if session else None})


@bp.post("/session")
def create_session():
    data = request.get_json(silent=True) or {}
    user_id = resolve_user_id(data)
    session, created = checkout_service.create_session(user_id)
    if created:
        return ok("checkout session created", {"session": session.as_api()}, status=201)
    return ok("checkout session reused", {"session": session.as_api()})


@bp.delete("/session")
def cancel_session():
    user_id = resolve_user_id()
    removed = checkout_service.cancel_session(user_id)
    if not removed:
        return ok("No active session", {"removed": 0})
    return ok("Checkout cancelled", {"removed": removed})


# ---- line items ------------------------------------------------------------

@bp.get("")
def list_items():
    user_id = resolve_user_id(message="User ID is required")
    items = checkout_service.list_items(user_id)
    return ok("checkout items", {"items": [i.as_api() for i in items]})


@bp.post("")
def add_item():
    """
    Body: { "userId", "productId", "variantId", "quantity", "totalPrice" }
    Needs an active checkout session.
    """
    data = request.get_json(silent=True) or {}
    user_id = resolve_user_id(data, message="Missing required fields")
    item, created = checkout_service.add_item(user_id, data)
    if created:
        return ok("checkout item added", {"item": item.as_api()}, status=201)
    return ok("checkout item already present", {"item": item.as_api()})


@bp.delete("")
def remove_item():
    item_id = request.args.get("id")
    if not item_id:
        raise InvalidRequest("Checkout ID and User ID are required")
    user_id = resolve_user_id(message="Checkout ID and User ID are required")
    try:
        item_id = int(item_id)
    except ValueError:
        raise InvalidRequest("id must be an integer")
    checkout_service.remove_item(user_id, item_id)
    return ok("Checkout item removed")
