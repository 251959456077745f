# storefront/services/checkout_service.py
"""
Checkout sessions are short reservations ("this user is checking out");
what is being bought lives in CheckoutItem rows keyed by the session.

Expiry is enforced lazily: every read/write path purges the caller's
expired sessions and stale line items first, so no background timer is
needed. ``purge_all`` exists for an external scheduler (flask purge-checkout).
"""
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError
import structlog

from ..extensions import db, atomic
from ..errors import InvalidRequest, NotFound
from ..model import CheckoutSession, CheckoutItem
from ..model.checkout import SESSION_ACTIVE, SESSION_CONVERTED
from ..utils.dates import utcnow
from ..utils.money import parse_money, round_money

logger = structlog.get_logger(__name__)


# ---- purge helpers (flush only) --------------------------------------------

def _delete_items_for_sessions(session_ids) -> int:
    if not session_ids:
        return 0
    return (CheckoutItem.query
            .filter(CheckoutItem.checkout_session_id.in_(session_ids))
            .delete(synchronize_session=False))

def _delete_sessions(q) -> int:
    ids = [s.id for s in q.with_entities(CheckoutSession.id).all()]
    if not ids:
        return 0
    _delete_items_for_sessions(ids)
    n = (CheckoutSession.query
         .filter(CheckoutSession.id.in_(ids))
         .delete(synchronize_session=False))
    db.session.expire_all()
    return n

def _purge_expired_sessions(user_id=None, now=None) -> int:
    now = now or utcnow()
    q = CheckoutSession.query.filter(
        CheckoutSession.status == SESSION_ACTIVE,
        CheckoutSession.expires_at < now,
    )
    if user_id is not None:
        q = q.filter(CheckoutSession.user_id == user_id)
    return _delete_sessions(q)

def _purge_stale_items(user_id=None, now=None) -> int:
    now = now or utcnow()
    cutoff = now - timedelta(minutes=current_app.config["CHECKOUT_ITEM_TTL_MINUTES"])
    q = CheckoutItem.query.filter(CheckoutItem.created_at < cutoff)
    if user_id is not None:
        q = q.filter(CheckoutItem.user_id == user_id)
    return q.delete(synchronize_session=False)

def _active_session(user_id):
    return (CheckoutSession.query
            .filter_by(user_id=user_id, status=SESSION_ACTIVE)
            .order_by(CheckoutSession.created_at.desc())
            .first())

def _purge_user(user_id):
    with atomic():
        sessions = _purge_expired_sessions(user_id)
        items = _purge_stale_items(user_id)
    if sessions or items:
        logger.debug("checkout_purged", user_id=user_id, sessions=sessions, items=items)


# ---- session manager -------------------------------------------------------

def get_session(user_id):
    """Active, unexpired session for the user, or None. Never creates."""
    _purge_user(user_id)
    return _active_session(user_id)

def create_session(user_id):
    """
    Returns (session, created). Reuses the active session when there is one;
    otherwise inserts one expiring CHECKOUT_SESSION_TTL_MINUTES from now.
    """
    _purge_user(user_id)
    existing = _active_session(user_id)
    if existing:
        return existing, False

    ttl = timedelta(minutes=current_app.config["CHECKOUT_SESSION_TTL_MINUTES"])
    session = CheckoutSession(user_id=user_id, status=SESSION_ACTIVE, expires_at=utcnow() + ttl)
    try:
        with atomic():
            db.session.add(session)
    except IntegrityError:
        # a concurrent create won the partial unique index; hand back theirs
        existing = _active_session(user_id)
        if existing is None:
            raise
        return existing, False

    logger.info("checkout_session_created", user_id=user_id, session_id=str(session.id),
                expires_at=session.expires_at.isoformat())
    return session, True

def cancel_session(user_id) -> int:
    """Explicit abandon: removes every session of the user and their line items."""
    with atomic():
        q = CheckoutSession.query.filter(CheckoutSession.user_id == user_id)
        removed = _delete_sessions(q)
        (CheckoutItem.query
         .filter(CheckoutItem.user_id == user_id, CheckoutItem.checkout_session_id.is_(None))
         .delete(synchronize_session=False))
    logger.info("checkout_session_cancelled", user_id=user_id, removed=removed)
    return removed

def complete_session(session_id):
    """
    Mark the session converted and drop its line items. Flush only: the
    order lifecycle calls this inside its own transaction.
    """
    session = db.session.get(CheckoutSession, session_id)
    _delete_items_for_sessions([session_id])
    if session is None:
        return None
    session.status = SESSION_CONVERTED
    db.session.flush()
    return session

def clear_user_items(user_id) -> int:
    """Flush only; used by payment reconciliation."""
    return (CheckoutItem.query
            .filter(CheckoutItem.user_id == user_id)
            .delete(synchronize_session=False))

def purge_all() -> tuple[int, int]:
    with atomic():
        sessions = _purge_expired_sessions()
        items = _purge_stale_items()
    logger.info("checkout_purge_all", sessions=sessions, items=items)
    return sessions, items


# ---- line items ------------------------------------------------------------

def list_items(user_id):
    session = get_session(user_id)
    if session is None:
        return []
    return (CheckoutItem.query
            .filter_by(user_id=user_id, checkout_session_id=session.id)
            .order_by(CheckoutItem.id.asc())
            .all())

def _positive_int(value, field):
    if isinstance(value, bool):
        raise InvalidRequest(f"{field} must be a positive integer")
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{field} must be a positive integer")
    if n < 1 or n != float(value):
        raise InvalidRequest(f"{field} must be a positive integer")
    return n

def add_item(user_id, data: dict):
    """
    Returns (item, created). A second add of the same variant into the same
    session returns the existing row untouched.
    """
    required = ("productId", "variantId", "quantity", "totalPrice")
    if any(data.get(k) in (None, "") for k in required):
        raise InvalidRequest("Missing required fields")

    product_id = _positive_int(data.get("productId"), "productId")
    variant_id = _positive_int(data.get("variantId"), "variantId")
    quantity = _positive_int(data.get("quantity"), "quantity")
    total_price = parse_money(data.get("totalPrice"))
    if total_price is None or total_price <= 0:
        raise InvalidRequest("totalPrice must be > 0")

    session = get_session(user_id)
    if session is None:
        raise InvalidRequest("No active checkout session")

    existing = CheckoutItem.query.filter_by(checkout_session_id=session.id, variant_id=variant_id).first()
    if existing:
        return existing, False

    item = CheckoutItem(
        user_id=user_id,
        checkout_session_id=session.id,
        product_id=product_id,
        variant_id=variant_id,
        quantity=quantity,
        total_price=round_money(total_price),
    )
    try:
        with atomic():
            db.session.add(item)
    except IntegrityError:
        existing = CheckoutItem.query.filter_by(checkout_session_id=session.id, variant_id=variant_id).first()
        if existing is None:
            raise
        return existing, False
    return item, True

def remove_item(user_id, item_id) -> None:
    with atomic():
        n = (CheckoutItem.query
             .filter_by(id=item_id, user_id=user_id)
             .delete(synchronize_session=False))
    if not n:
        raise NotFound("Checkout item not found")
