"""Bearer JWT authentication.

Security contract:
- HS256 tokens whose ``sub`` is the user id; ``exp`` is always enforced
- Webhook paths are public to the middleware and authenticated by their
  handler's signature check instead
- The principal is re-read from the store on every request; a deleted
  user's token stops working immediately
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from fastapi import Request
from jose import JWTError, jwt

from src.errors import AuthenticationFailed
from src.store.base import RecordNotFound, StoreError
from src.store.models import USERS, User

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_DEFAULT_TTL_SECONDS = 3600

# Exact (method, path) pairs that skip authentication
PUBLIC_ALLOWLIST: set[tuple[str, str]] = {
    ("GET", "/health"),
}

# Public to the middleware; signature-verified by the handler
WEBHOOK_PUBLIC_PATHS: frozenset[str] = frozenset({
    "/payments/webhook",
    "/verify/webhook",
})

SKIP_METHODS = {"OPTIONS"}


@dataclass(frozen=True)
class TokenMetadata:
    token: str
    expires_at: float


def is_webhook_path(path: str) -> bool:
    return path.rstrip("/") in WEBHOOK_PUBLIC_PATHS


def extract_bearer_token(header: str | None) -> str | None:
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_token(user_id: str, secret: str, expires_in: int = _DEFAULT_TTL_SECONDS) -> TokenMetadata:
    """Issue a signed access token for ``user_id``."""
    now = int(time.time())
    expires_at = now + expires_in
    token = jwt.encode({"sub": user_id, "iat": now, "exp": expires_at}, secret, algorithm=_ALGORITHM)
    return TokenMetadata(token=token, expires_at=expires_at)


def verify_token(token: str, secret: str) -> dict:
    """Decode and verify a token. Raises ValueError if invalid or expired."""
    try:
        claims = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError as e:
        raise ValueError(str(e)) from e
    if not claims.get("sub"):
        raise ValueError("token has no subject")
    return claims


def current_user(request: Request) -> User:
    """FastAPI dependency: the authenticated, non-deleted principal."""
    claims = getattr(request.state, "user", None)
    if not claims:
        raise AuthenticationFailed("unauthorized")
    store = request.app.state.store
    try:
        user = User.from_record(store.get(USERS, claims["sub"]))
    except RecordNotFound as e:
        raise AuthenticationFailed("unauthorized") from e
    except StoreError as e:
        logger.exception("Principal lookup failed")
        raise AuthenticationFailed("unauthorized") from e
    if user.is_deleted:
        raise AuthenticationFailed("unauthorized")
    return user
