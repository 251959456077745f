# storefront/utils/codes.py
import secrets
import string

from flask import current_app
import structlog

from ..errors import Internal

logger = structlog.get_logger(__name__)

ALPHABET = string.ascii_uppercase + string.digits


def random_code(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def unique_code(exists, *, kind: str) -> str:
    """
    Generate a code for which ``exists(code)`` is False.

    Tries CODE_MAX_ATTEMPTS candidates, widening the code by CODE_WIDEN_BY
    characters every CODE_WIDEN_EVERY misses. Gives up with Internal.
    """
    cfg = current_app.config
    length = cfg["CODE_LENGTH"]
    for attempt in range(cfg["CODE_MAX_ATTEMPTS"]):
        size = length + (attempt // cfg["CODE_WIDEN_EVERY"]) * cfg["CODE_WIDEN_BY"]
        candidate = random_code(size)
        if not exists(candidate):
            return candidate
        logger.debug("code_collision", kind=kind, attempt=attempt + 1, size=size)
    logger.error("code_generation_exhausted", kind=kind, attempts=cfg["CODE_MAX_ATTEMPTS"])
    raise Internal(f"could not generate a unique {kind} code")
