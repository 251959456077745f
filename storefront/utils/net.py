# storefront/utils/net.py
from flask import request


def get_client_ip():
    """Caller address for logs, looking through X-Forwarded-For / X-Real-IP."""
    hops = [h.strip() for h in request.headers.get("X-Forwarded-For", "").split(",") if h.strip()]
    if hops:
        return hops[0]
    return request.headers.get("X-Real-IP") or request.remote_addr
