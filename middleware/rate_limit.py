# middleware/rate_limit.py
"""
Rate limiting for the portfolio write routes (slowapi).

    from middleware.rate_limit import limiter

    @router.post("/sell")
    @limiter.limit("30/minute")
    def sell(request: Request, ...):
        ...
"""
import logging
import os

from fastapi import Request
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")


def _get_rate_limit_key(request: Request) -> str:
    """
    Bucket by portfolio owner when a bearer token is present, else by client IP.

    The token is read unverified here; get_current_owner does the real check.
    """
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        try:
            sub = jwt.get_unverified_claims(token).get("sub")
        except JWTError:
            sub = None
        if sub:
            return f"owner:{sub}"

    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
    strategy="fixed-window",
)
