# storefront/utils/money.py

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

Money = Decimal

def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))

def round_money(x: Money) -> Money:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def parse_money(x) -> Money | None:
    """Lenient parse for request payloads; None when not a finite number."""
    if x is None or isinstance(x, bool) or x == "":
        return None
    try:
        d = Decimal(str(x).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d

def money_or_none(x):
    return float(x) if x is not None else None
