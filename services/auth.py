# services/auth.py
"""
Bearer-token identity for the portfolio routes.

Tokens are issued elsewhere; this only verifies them and hands the `sub`
claim to the routes as the portfolio owner id.
"""
import logging
import os

from dotenv import load_dotenv
from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

load_dotenv()

logger = logging.getLogger(__name__)

AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET")
AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE") or None
ALGORITHM = "HS256"


def get_bearer_token(request: Request) -> str:
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    return auth.split(" ", 1)[1].strip()


def decode_owner(token: str, secret: str, audience: str | None = None) -> str:
    options = {"verify_aud": audience is not None}
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM], audience=audience, options=options)
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid or expired token: {e}")

    sub = payload.get("sub")
    # owner column is String(128)
    if not sub or len(str(sub)) > 128:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid auth token")
    return str(sub)


async def get_current_owner(request: Request) -> str:
    if not AUTH_JWT_SECRET:
        raise RuntimeError("AUTH_JWT_SECRET is not configured")
    return decode_owner(get_bearer_token(request), AUTH_JWT_SECRET, AUTH_JWT_AUDIENCE)
